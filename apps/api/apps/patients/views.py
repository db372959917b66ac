"""
Patient views.
"""
from django.db.models import Q
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.authz.models import RoleChoices
from apps.authz.permissions import user_roles
from apps.core.observability.events import log_domain_event

from .models import Patient
from .permissions import PatientProfilePermission
from .serializers import PatientListSerializer, PatientSerializer


class PatientViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Patient CRUD operations.

    Supports:
    - List (doctors and admins see everyone, patients only themselves)
    - Create (patient for self, admin for anyone)
    - Retrieve / Update / Partial Update (owner, admin; doctors read)
    - Delete (admin)
    - GET /api/v1/patients/me/ - Profile of the caller

    Search: ?q= on name and email
    Ordering: -created_at (newest first)
    """
    permission_classes = [PatientProfilePermission]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['created_at', 'name']
    ordering = ['-created_at']

    def get_queryset(self):
        queryset = Patient.objects.all()

        roles = user_roles(self.request)
        if self.action == 'list' and not roles & {RoleChoices.DOCTOR, RoleChoices.ADMIN}:
            queryset = queryset.filter(user=self.request.user)

        q = self.request.query_params.get('q')
        if q:
            queryset = queryset.filter(Q(name__icontains=q) | Q(email__icontains=q))

        return queryset

    def get_serializer_class(self):
        """Use lightweight serializer for list view."""
        if self.action == 'list':
            return PatientListSerializer
        return PatientSerializer

    def perform_create(self, serializer):
        if RoleChoices.ADMIN in user_roles(self.request):
            patient = serializer.save()
        else:
            patient = serializer.save(user=self.request.user)
        log_domain_event('patient_created', entity_type='Patient', entity_id=str(patient.pk))

    def create(self, request, *args, **kwargs):
        if RoleChoices.ADMIN not in user_roles(request) and Patient.objects.filter(user=request.user).exists():
            return Response(
                {'error': 'A patient profile already exists for this user'},
                status=status.HTTP_409_CONFLICT
            )
        return super().create(request, *args, **kwargs)

    @action(detail=False, methods=['get'], permission_classes=[IsAuthenticated])
    def me(self, request):
        patient = Patient.objects.filter(user=request.user).first()
        if patient is None:
            return Response({'error': 'Patient profile not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(PatientSerializer(patient).data)
