"""
Scheduling models: session, time_slot

A doctor publishes a Session (one date, online or at a hospital) split into
TimeSlots. Booking a slot turns it into the patient's appointment.
"""
import uuid
from datetime import datetime

import pytz
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone


class SessionTypeChoices(models.TextChoices):
    IN_PERSON = 'in-person', 'In-person'
    ONLINE = 'online', 'Online'


class SlotStatusChoices(models.TextChoices):
    AVAILABLE = 'available', 'Available'
    BOOKED = 'booked', 'Booked'


class AppointmentStatusChoices(models.TextChoices):
    UPCOMING = 'upcoming', 'Upcoming'
    ONGOING = 'ongoing', 'Ongoing'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    NO_SHOW = 'no_show', 'No Show'


def clinic_timezone():
    return pytz.timezone(settings.CLINIC_TIME_ZONE)


class Session(models.Model):
    """A doctor's consultation block on one date."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    doctor = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.CASCADE,
        related_name='sessions'
    )
    date = models.DateField()
    type = models.CharField(
        max_length=20,
        choices=SessionTypeChoices.choices,
        default=SessionTypeChoices.IN_PERSON
    )
    hospital = models.ForeignKey(
        'doctors.Hospital',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sessions',
        help_text='Required for in-person sessions'
    )
    fee = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    meeting_link = models.URLField(max_length=500, blank=True)
    meeting_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'session'
        verbose_name = 'Session'
        verbose_name_plural = 'Sessions'
        ordering = ['date', 'created_at']
        indexes = [
            models.Index(fields=['doctor', 'date'], name='idx_session_doctor_date'),
            models.Index(fields=['date'], name='idx_session_date'),
            models.Index(fields=['hospital'], name='idx_session_hospital'),
        ]

    def __str__(self):
        return f"{self.doctor} - {self.date} ({self.type})"

    def clean(self):
        if self.type == SessionTypeChoices.IN_PERSON and not self.hospital_id:
            raise ValidationError({'hospital': 'Hospital is required for in-person sessions'})

    @property
    def effective_fee(self):
        """Session fee, falling back to the doctor's consultation fee."""
        if self.fee is not None:
            return self.fee
        return self.doctor.consultation_fee


class TimeSlot(models.Model):
    """
    One bookable interval of a session.

    ``position`` is the slot index clients use in URLs and payment metadata.
    It never changes once assigned: removing a slot leaves a gap and new
    slots are appended after the highest position.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session = models.ForeignKey(
        Session,
        on_delete=models.CASCADE,
        related_name='time_slots'
    )
    position = models.PositiveIntegerField(help_text='Slot index inside the session (0-based)')
    start_time = models.TimeField()
    end_time = models.TimeField()
    status = models.CharField(
        max_length=20,
        choices=SlotStatusChoices.choices,
        default=SlotStatusChoices.AVAILABLE
    )
    appointment_status = models.CharField(
        max_length=20,
        choices=AppointmentStatusChoices.choices,
        default=AppointmentStatusChoices.UPCOMING
    )
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments'
    )
    meeting_id = models.CharField(max_length=255, blank=True)

    # Payment that paid for this booking
    payment_intent_id = models.CharField(max_length=255, null=True, blank=True, unique=True)
    payment_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    payment_currency = models.CharField(max_length=3, blank=True)
    payment_date = models.DateTimeField(null=True, blank=True)

    booked_at = models.DateTimeField(null=True, blank=True)
    status_changed_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'time_slot'
        verbose_name = 'Time Slot'
        verbose_name_plural = 'Time Slots'
        ordering = ['session', 'position']
        constraints = [
            models.UniqueConstraint(fields=['session', 'position'], name='uniq_time_slot_position'),
        ]
        indexes = [
            models.Index(fields=['patient'], name='idx_time_slot_patient'),
            models.Index(fields=['status'], name='idx_time_slot_status'),
            models.Index(fields=['appointment_status'], name='idx_time_slot_appt_status'),
        ]

    # BUSINESS RULE: Allowed appointment status transitions
    _ALLOWED_TRANSITIONS = {
        'upcoming': ['ongoing', 'cancelled', 'no_show'],
        'ongoing': ['completed', 'cancelled'],
        'completed': [],  # Terminal state
        'cancelled': [],  # Terminal state
        'no_show': [],    # Terminal state
    }

    def __str__(self):
        return f"{self.session} #{self.position} {self.start_time:%H:%M}-{self.end_time:%H:%M}"

    @property
    def is_booked(self):
        return self.status != SlotStatusChoices.AVAILABLE or self.patient_id is not None

    @property
    def appointment_key(self):
        """Composite appointment id used by ratings: <session>_<start>_<end>."""
        return f"{self.session_id}_{self.start_time:%H:%M}_{self.end_time:%H:%M}"

    def start_datetime(self):
        """Aware start of the slot in the clinic's time zone."""
        naive = datetime.combine(self.session.date, self.start_time)
        return clinic_timezone().localize(naive)

    def end_datetime(self):
        naive = datetime.combine(self.session.date, self.end_time)
        return clinic_timezone().localize(naive)

    def clean(self):
        """
        BUSINESS RULES:
        1. end_time must be after start_time
        2. Slots of one session must not overlap
        """
        errors = {}

        if self.start_time and self.end_time and self.end_time <= self.start_time:
            errors['end_time'] = 'End time must be after start time'
        elif self.session_id and self._overlapping_slots().exists():
            errors['start_time'] = 'Time slot overlaps another slot of this session'

        if errors:
            raise ValidationError(errors)

    def _overlapping_slots(self):
        """
        Slots of the same session whose interval intersects this one:
        (start1 < end2) AND (start2 < end1).
        """
        qs = TimeSlot.objects.filter(session_id=self.session_id)
        if self.pk:
            qs = qs.exclude(pk=self.pk)
        return qs.filter(
            Q(start_time__lt=self.end_time) &
            Q(end_time__gt=self.start_time)
        )

    def transition_status(self, new_status, reason=None):
        """
        Move the appointment to ``new_status``.

        BUSINESS RULES:
        1. Only booked slots have an appointment lifecycle
        2. Only allowed transitions are permitted (see _ALLOWED_TRANSITIONS)
        3. no_show can only be set once the slot start has passed

        Raises:
            ValidationError: If transition is not allowed
        """
        if not self.is_booked:
            raise ValidationError('Only booked time slots can change appointment status')

        allowed = self._ALLOWED_TRANSITIONS.get(self.appointment_status, [])
        if not allowed:
            raise ValidationError(
                f'Appointment status "{self.appointment_status}" is terminal and cannot change'
            )

        if new_status not in allowed:
            raise ValidationError(
                f'Transition not allowed: {self.appointment_status} -> {new_status}. '
                f'Valid transitions: {", ".join(allowed)}'
            )

        if new_status == AppointmentStatusChoices.NO_SHOW and self.start_datetime() > timezone.now():
            raise ValidationError('Cannot mark as no-show before the appointment starts')

        if new_status == AppointmentStatusChoices.CANCELLED and reason:
            self.cancellation_reason = reason

        self.appointment_status = new_status
        self.status_changed_at = timezone.now()
