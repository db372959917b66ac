"""
Doctors views: doctor profiles, hospitals, verification, doctor cards.
"""
from decimal import Decimal, InvalidOperation

from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from apps.authz.models import RoleChoices
from apps.authz.permissions import IsAdmin, IsDoctorOrAdmin, ReadOnlyOrAdmin, user_roles
from apps.core.exceptions import DomainError, error_response
from apps.core.utils import enqueue, parse_bool
from apps.doctors.models import Doctor, DoctorCertificate, Hospital
from apps.doctors.permissions import DoctorProfilePermission
from apps.doctors.serializers import (
    CertificateReviewSerializer,
    CertificateSubmitSerializer,
    DoctorCertificateSerializer,
    DoctorDetailSerializer,
    DoctorFilterSerializer,
    DoctorListSerializer,
    DoctorWriteSerializer,
    HospitalSerializer,
)
from apps.doctors.services import (
    build_doctor_card,
    build_doctor_cards,
    bulk_create_doctors,
    ensure_no_profile,
    get_doctor_for_user,
    review_verification,
    submit_verification,
)
from apps.notifications.tasks import send_verification_status_email


class DoctorViewSet(viewsets.ModelViewSet):
    """
    ViewSet for doctor profiles.

    Endpoints:
    - GET /api/v1/doctors/ - Search doctors
    - GET /api/v1/doctors/{id}/ - Doctor detail
    - POST /api/v1/doctors/ - Create profile (Doctor for self, Admin for anyone)
    - PATCH /api/v1/doctors/{id}/ - Update profile (owner or Admin)
    - DELETE /api/v1/doctors/{id}/ - Delete profile (Admin)
    - POST /api/v1/doctors/bulk/ - Bulk import (Admin)
    - GET /api/v1/doctors/me/ - Profile of the calling doctor
    - GET /api/v1/doctors/cards/ - Public doctor cards
    - GET /api/v1/doctors/{id}/card/ - Public card with reviews
    - GET /api/v1/doctors/{id}/statistics/ - Dashboard statistics

    Query parameters for list:
    - ?q=name
    - ?specialization=cardiology (matches main or sub-specializations)
    - ?language=Sinhala
    - ?min_fee=1000&max_fee=5000
    - ?min_experience=5
    - ?hospital=<uuid> - Has sessions at this hospital
    - ?verified=true
    """
    permission_classes = [DoctorProfilePermission]

    def get_queryset(self):
        queryset = Doctor.objects.select_related('certificate').all()
        params = self.request.query_params

        q = params.get('q')
        if q:
            queryset = queryset.filter(name__icontains=q)

        specialization = params.get('specialization')
        if specialization:
            queryset = queryset.filter(
                Q(specialization__icontains=specialization) |
                Q(sub_specializations__icontains=specialization)
            )

        language = params.get('language')
        if language:
            queryset = queryset.filter(languages_spoken__icontains=language)

        min_fee = self._decimal_param('min_fee')
        if min_fee is not None:
            queryset = queryset.filter(consultation_fee__gte=min_fee)

        max_fee = self._decimal_param('max_fee')
        if max_fee is not None:
            queryset = queryset.filter(consultation_fee__lte=max_fee)

        min_experience = params.get('min_experience')
        if min_experience and min_experience.isdigit():
            queryset = queryset.filter(years_of_experience__gte=int(min_experience))

        filters = DoctorFilterSerializer(data=params)
        filters.is_valid(raise_exception=True)
        hospital = filters.validated_data.get('hospital')
        if hospital:
            queryset = queryset.filter(sessions__hospital_id=hospital).distinct()

        if parse_bool(params.get('verified')):
            queryset = queryset.filter(certificate__is_verified=True)

        return queryset.order_by('name')

    def _decimal_param(self, name):
        value = self.request.query_params.get(name)
        if value in (None, ''):
            return None
        try:
            return Decimal(value)
        except InvalidOperation:
            return None

    def get_serializer_class(self):
        if self.action == 'list':
            return DoctorListSerializer
        elif self.action in ['retrieve', 'me']:
            return DoctorDetailSerializer
        return DoctorWriteSerializer

    def _is_admin(self):
        return RoleChoices.ADMIN in user_roles(self.request)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if self._is_admin():
            doctor = serializer.save()
        else:
            try:
                ensure_no_profile(request.user)
            except DomainError as exc:
                return error_response(exc)
            doctor = serializer.save(user=request.user)

        return Response(DoctorDetailSerializer(doctor).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        data = request.data
        if not self._is_admin() and 'user' in data:
            return Response(
                {'error': 'Only admins can relink a doctor profile'},
                status=status.HTTP_403_FORBIDDEN
            )
        serializer = self.get_serializer(instance, data=data, partial=partial)
        serializer.is_valid(raise_exception=True)
        doctor = serializer.save()
        return Response(DoctorDetailSerializer(doctor).data)

    @action(detail=False, methods=['post'], url_path='bulk')
    def bulk_create(self, request):
        try:
            doctors = bulk_create_doctors(request.data)
        except DomainError as exc:
            return error_response(exc)
        return Response(
            {
                'created': len(doctors),
                'doctors': DoctorDetailSerializer(doctors, many=True).data,
            },
            status=status.HTTP_201_CREATED
        )

    @action(detail=False, methods=['get'], permission_classes=[IsAuthenticated])
    def me(self, request):
        doctor = get_doctor_for_user(request.user)
        if doctor is None:
            return Response({'error': 'Doctor profile not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(DoctorDetailSerializer(doctor).data)

    @action(detail=False, methods=['get'], permission_classes=[AllowAny])
    def cards(self, request):
        return Response(build_doctor_cards())

    @action(detail=True, methods=['get'], permission_classes=[AllowAny])
    def card(self, request, pk=None):
        try:
            return Response(build_doctor_card(pk))
        except (Doctor.DoesNotExist, ValueError):
            return Response({'error': 'Doctor not found'}, status=status.HTTP_404_NOT_FOUND)

    @action(detail=True, methods=['get'], permission_classes=[IsAuthenticated])
    def statistics(self, request, pk=None):
        from apps.scheduling.services import doctor_statistics

        doctor = self.get_object()
        return Response(doctor_statistics(doctor))


class HospitalViewSet(viewsets.ModelViewSet):
    """
    Hospitals.

    - GET (any authenticated user), POST/PATCH/DELETE (Admin)
    - ?q= - Search by name or location
    """
    serializer_class = HospitalSerializer
    permission_classes = [ReadOnlyOrAdmin]

    def get_queryset(self):
        queryset = Hospital.objects.all()
        q = self.request.query_params.get('q')
        if q:
            queryset = queryset.filter(Q(name__icontains=q) | Q(location__icontains=q))
        return queryset.order_by('name')


class DoctorVerificationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Doctor verification workflow.

    Endpoints:
    - POST /api/v1/doctor-verifications/ - Submit certificates (Doctor)
    - GET /api/v1/doctor-verifications/ - List requests (Admin), ?is_verified=
    - GET /api/v1/doctor-verifications/{doctor_id}/ - Request of a doctor (Admin or owner)
    - PATCH /api/v1/doctor-verifications/{doctor_id}/ - Decide (Admin) or resubmit (owner)
    """
    serializer_class = DoctorCertificateSerializer
    permission_classes = [IsDoctorOrAdmin]
    lookup_field = 'doctor_id'

    def get_permissions(self):
        if self.action == 'list':
            return [IsAdmin()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = DoctorCertificate.objects.select_related('doctor', 'verified_by')

        if self.action == 'list':
            is_verified = self.request.query_params.get('is_verified')
            if is_verified is not None:
                queryset = queryset.filter(is_verified=parse_bool(is_verified))
            return queryset.order_by('-submitted_at')

        if RoleChoices.ADMIN not in user_roles(self.request):
            queryset = queryset.filter(doctor__user=self.request.user)
        return queryset

    def create(self, request):
        serializer = CertificateSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        doctor = serializer.validated_data.get('doctor')
        if doctor is None or RoleChoices.ADMIN not in user_roles(request):
            doctor = get_doctor_for_user(request.user)
        if doctor is None:
            return Response({'error': 'Doctor profile not found'}, status=status.HTTP_404_NOT_FOUND)

        try:
            certificate = submit_verification(doctor, serializer.validated_data['certificates'])
        except DomainError as exc:
            return error_response(exc)

        return Response(DoctorCertificateSerializer(certificate).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, doctor_id=None):
        certificate = self.get_object()
        serializer = CertificateReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        is_admin = RoleChoices.ADMIN in user_roles(request)
        try:
            certificate, decision_changed = review_verification(
                certificate, request.user, is_admin, serializer.validated_data
            )
        except DomainError as exc:
            return error_response(exc)

        if decision_changed:
            enqueue(send_verification_status_email, str(certificate.pk))

        return Response(DoctorCertificateSerializer(certificate).data)
