"""
Scheduling views: sessions, time slots, booking and appointments.
"""
from django.db.models import F, Prefetch
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.models import RoleChoices
from apps.authz.permissions import user_roles
from apps.core.exceptions import DomainError, ForbiddenError, error_response
from apps.core.utils import enqueue
from apps.doctors.services import get_doctor_for_user
from apps.notifications.tasks import send_session_created_email
from apps.patients.models import Patient
from apps.patients.services import get_or_create_patient_for_user
from apps.scheduling import services
from apps.scheduling.models import AppointmentStatusChoices, Session, TimeSlot
from apps.scheduling.permissions import SessionPermission, owns_session
from apps.scheduling.serializers import (
    AppointmentSerializer,
    AppointmentTransitionSerializer,
    BookingSerializer,
    MeetingIdSerializer,
    SessionCreateSerializer,
    SessionFilterSerializer,
    SessionSerializer,
    SessionUpdateSerializer,
    TimeSlotInputSerializer,
    TimeSlotSerializer,
    TimeSlotUpdateSerializer,
)

SLOT_PATH = r'time-slots/(?P<slot_index>\d+)'


class SessionViewSet(viewsets.ModelViewSet):
    """
    ViewSet for doctor sessions and their time slots.

    Endpoints:
    - GET /api/v1/sessions/ - List sessions
    - POST /api/v1/sessions/ - Create session with slots (Doctor for self, Admin)
    - GET /api/v1/sessions/{id}/ - Session detail
    - PATCH /api/v1/sessions/{id}/ - Update session (owner or Admin)
    - DELETE /api/v1/sessions/{id}/ - Delete session without bookings (owner or Admin)
    - POST /api/v1/sessions/{id}/time-slots/ - Add slot
    - PATCH/DELETE /api/v1/sessions/{id}/time-slots/{index}/ - Edit/remove an available slot
    - POST /api/v1/sessions/{id}/time-slots/{index}/book/ - Book with a succeeded payment
    - PATCH /api/v1/sessions/{id}/meeting-id/ - Session meeting id
    - PATCH /api/v1/sessions/{id}/time-slots/{index}/meeting-id/ - Appointment meeting id
    - POST /api/v1/sessions/{id}/time-slots/{index}/transition/ - Appointment status

    Query parameters for list:
    - ?doctor=<uuid>
    - ?hospital=<uuid>
    - ?type=in-person|online
    - ?date_from=YYYY-MM-DD&date_to=YYYY-MM-DD
    - ?available=true - Sessions with at least one free slot
    """
    permission_classes = [SessionPermission]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        queryset = services.annotate_slot_counts(
            Session.objects.select_related('doctor', 'hospital').prefetch_related(
                Prefetch('time_slots', queryset=TimeSlot.objects.select_related('patient'))
            )
        )
        filters = SessionFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        params = filters.validated_data

        if params.get('doctor'):
            queryset = queryset.filter(doctor_id=params['doctor'])
        if params.get('hospital'):
            queryset = queryset.filter(hospital_id=params['hospital'])
        if params.get('type'):
            queryset = queryset.filter(type=params['type'])
        if params.get('date_from'):
            queryset = queryset.filter(date__gte=params['date_from'])
        if params.get('date_to'):
            queryset = queryset.filter(date__lte=params['date_to'])
        if params['available']:
            queryset = queryset.filter(booked_slots__lt=F('total_slots'))

        return queryset.order_by('date', 'created_at')

    def get_serializer_class(self):
        if self.action == 'create':
            return SessionCreateSerializer
        elif self.action == 'partial_update':
            return SessionUpdateSerializer
        return SessionSerializer

    def _is_admin(self):
        return RoleChoices.ADMIN in user_roles(self.request)

    def _session_response(self, session, status_code=status.HTTP_200_OK):
        session = self.get_queryset().get(pk=session.pk)
        return Response(SessionSerializer(session).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = SessionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        requested_doctor = data.pop('doctor', None)
        if self._is_admin() and requested_doctor is not None:
            doctor = requested_doctor
        else:
            doctor = get_doctor_for_user(request.user)
        if doctor is None:
            return Response({'error': 'Doctor profile not found'}, status=status.HTTP_404_NOT_FOUND)

        try:
            session = services.create_session(
                doctor=doctor,
                date=data['date'],
                session_type=data['type'],
                time_slots=data['time_slots'],
                hospital=data.get('hospital'),
                fee=data.get('fee'),
                meeting_link=data.get('meeting_link', ''),
            )
        except DomainError as exc:
            return error_response(exc)

        enqueue(send_session_created_email, str(session.pk))
        return self._session_response(session, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        session = self.get_object()
        serializer = SessionUpdateSerializer(session, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            session = services.update_session(session, serializer.validated_data)
        except DomainError as exc:
            return error_response(exc)
        return self._session_response(session)

    def destroy(self, request, *args, **kwargs):
        session = self.get_object()
        try:
            services.delete_session(session)
        except DomainError as exc:
            return error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------------
    # Time slots
    # ------------------------------------------------------------------

    @action(detail=True, methods=['post'], url_path='time-slots')
    def time_slots(self, request, pk=None):
        session = self.get_object()
        serializer = TimeSlotInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            slot = services.add_time_slot(session, **serializer.validated_data)
        except DomainError as exc:
            return error_response(exc)
        return Response(TimeSlotSerializer(slot).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['patch'], url_path=SLOT_PATH)
    def time_slot(self, request, pk=None, slot_index=None):
        session = self.get_object()
        serializer = TimeSlotUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            slot = services.update_time_slot(session, int(slot_index), serializer.validated_data)
        except DomainError as exc:
            return error_response(exc)
        return Response(TimeSlotSerializer(slot).data)

    @time_slot.mapping.delete
    def delete_time_slot(self, request, pk=None, slot_index=None):
        session = self.get_object()
        try:
            services.delete_time_slot(session, int(slot_index))
        except DomainError as exc:
            return error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------------
    # Booking and appointments
    # ------------------------------------------------------------------

    @action(detail=True, methods=['post'], url_path=f'{SLOT_PATH}/book')
    def book(self, request, pk=None, slot_index=None):
        """
        Book a slot after the client confirmed the payment.

        - 201: booked now
        - 200: already booked with this payment intent (created: false)
        - 400: payment not completed yet (retryable) or for another slot
        - 409: slot booked by someone else
        """
        serializer = BookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        patient = get_or_create_patient_for_user(request.user)
        try:
            slot, created = services.book_time_slot(
                patient,
                pk,
                int(slot_index),
                serializer.validated_data['payment_intent_id'],
                source='api',
            )
        except DomainError as exc:
            return error_response(exc)

        return Response(
            {
                'created': created,
                'appointment': AppointmentSerializer(slot).data,
            },
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    @action(detail=True, methods=['patch'], url_path='meeting-id')
    def meeting_id(self, request, pk=None):
        session = self.get_object()
        serializer = MeetingIdSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = services.set_session_meeting_id(session, serializer.validated_data['meeting_id'])
        return self._session_response(session)

    def _check_appointment_access(self, request, session, slot_index):
        """Owning doctor, the slot's patient or an admin."""
        if self._is_admin() or owns_session(request, session):
            return
        slot = TimeSlot.objects.filter(session=session, position=slot_index).select_related('patient').first()
        if slot is not None and slot.patient is not None and slot.patient.user_id == request.user.pk:
            return
        raise ForbiddenError('You cannot change this appointment')

    @action(detail=True, methods=['patch'], url_path=f'{SLOT_PATH}/meeting-id')
    def appointment_meeting_id(self, request, pk=None, slot_index=None):
        session = self.get_object()
        serializer = MeetingIdSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            self._check_appointment_access(request, session, int(slot_index))
            slot = services.set_appointment_meeting_id(
                session, int(slot_index), serializer.validated_data['meeting_id']
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(AppointmentSerializer(slot).data)

    @action(detail=True, methods=['post'], url_path=f'{SLOT_PATH}/transition')
    def transition(self, request, pk=None, slot_index=None):
        """
        Change appointment status.

        Doctors (own sessions) and admins may apply any allowed transition;
        the patient may only cancel their own appointment.
        """
        session = self.get_object()
        serializer = AppointmentTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data['status']

        try:
            self._check_appointment_access(request, session, int(slot_index))
            if (
                not self._is_admin()
                and not owns_session(request, session)
                and new_status != AppointmentStatusChoices.CANCELLED
            ):
                raise ForbiddenError('Patients can only cancel their appointments')
            slot = services.transition_appointment(
                session,
                int(slot_index),
                new_status,
                reason=serializer.validated_data.get('reason'),
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(AppointmentSerializer(slot).data)


class MyAppointmentsView(APIView):
    """
    GET /api/v1/appointments/me/

    Patients get their booked slots, doctors the booked slots of their
    sessions. ?status= filters by appointment status.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        roles = user_roles(request)
        appointment_status = request.query_params.get('status')

        if RoleChoices.DOCTOR in roles and RoleChoices.PATIENT not in roles:
            doctor = get_doctor_for_user(request.user)
            if doctor is None:
                return Response({'error': 'Doctor profile not found'}, status=status.HTTP_404_NOT_FOUND)
            queryset = services.my_appointments(doctor=doctor, status=appointment_status)
        else:
            patient = Patient.objects.filter(user=request.user).first()
            if patient is None:
                return Response({'count': 0, 'results': []})
            queryset = services.my_appointments(patient=patient, status=appointment_status)

        data = AppointmentSerializer(queryset, many=True).data
        return Response({'count': len(data), 'results': data})
