"""
Scheduling services: session creation, time slot management, booking,
appointment lifecycle and doctor statistics.

Booking rules:
- A slot is booked only against a succeeded payment for that exact
  session and slot index.
- The slot row is locked while it is checked and written, so the client
  booking call and the payment webhook cannot both book it.
- Booking the same slot again with the same payment intent is a no-op.
"""
import time
import uuid

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Max, Q
from django.utils import timezone

from apps.core.exceptions import ConflictError, DomainError, ForbiddenError, NotFoundError
from apps.core.observability import metrics
from apps.core.observability.events import (
    log_appointment_transition,
    log_consistency_checkpoint,
    log_domain_event,
    log_slot_booked,
    log_slot_conflict,
)
from apps.core.observability.tracing import trace_span
from apps.scheduling.models import (
    AppointmentStatusChoices,
    Session,
    SlotStatusChoices,
    TimeSlot,
    clinic_timezone,
)


class SlotConflictError(ConflictError):
    """The time slot is held by another booking."""


def _validation_message(exc):
    """First readable message of a Django ValidationError."""
    if hasattr(exc, 'message_dict'):
        for messages in exc.message_dict.values():
            if messages:
                return messages[0]
    return exc.messages[0] if exc.messages else 'Invalid data'


def booked_slot_q(prefix=''):
    """A slot counts as booked when its status says so or a patient holds it."""
    return ~Q(**{f'{prefix}status': SlotStatusChoices.AVAILABLE}) | Q(**{f'{prefix}patient__isnull': False})


def annotate_slot_counts(queryset):
    return queryset.annotate(
        total_slots=Count('time_slots', distinct=True),
        booked_slots=Count('time_slots', filter=booked_slot_q('time_slots__'), distinct=True),
    )


# ============================================================================
# Sessions and time slots
# ============================================================================

@transaction.atomic
def create_session(doctor, date, session_type, time_slots, hospital=None, fee=None, meeting_link=''):
    """
    Create a session with its time slots (positions 0..n-1).

    ``time_slots`` is a list of {'start_time', 'end_time'} already checked
    for order and overlap by the serializer.
    """
    session = Session(
        doctor=doctor,
        date=date,
        type=session_type,
        hospital=hospital,
        fee=fee,
        meeting_link=meeting_link or '',
    )
    try:
        session.clean()
    except DjangoValidationError as e:
        raise DomainError(_validation_message(e))
    session.save()

    TimeSlot.objects.bulk_create([
        TimeSlot(
            session=session,
            position=position,
            start_time=slot['start_time'],
            end_time=slot['end_time'],
        )
        for position, slot in enumerate(sorted(time_slots, key=lambda s: s['start_time']))
    ])

    metrics.sessions_created_total.labels(type=session.type).inc()
    log_domain_event(
        'session_created',
        entity_type='Session',
        entity_id=str(session.pk),
        entity_ids={'doctor_id': str(doctor.pk)},
        session_type=session.type,
        slots=len(time_slots),
    )
    return session


@transaction.atomic
def update_session(session, data):
    """Update session fields (not its slots)."""
    session = Session.objects.select_for_update().get(pk=session.pk)
    for field, value in data.items():
        setattr(session, field, value)
    try:
        session.clean()
    except DjangoValidationError as e:
        raise DomainError(_validation_message(e))
    session.save()
    return session


@transaction.atomic
def delete_session(session):
    """
    Delete a session and its slots.

    Raises:
        ConflictError: if any slot is booked
    """
    session = Session.objects.select_for_update().get(pk=session.pk)
    booked = session.time_slots.filter(booked_slot_q()).count()
    if booked:
        raise ConflictError('Cannot delete a session with booked time slots', booked_slots=booked)
    log_domain_event('session_deleted', entity_type='Session', entity_id=str(session.pk))
    session.delete()


def _get_slot(session_id, slot_index, lock=False):
    queryset = TimeSlot.objects.select_related('session', 'session__doctor')
    if lock:
        queryset = queryset.select_for_update()
    slot = queryset.filter(session_id=session_id, position=slot_index).first()
    if slot is None:
        raise NotFoundError('Time slot not found', slot_index=slot_index)
    return slot


def _full_clean_slot(slot):
    try:
        slot.clean()
    except DjangoValidationError as e:
        raise DomainError(_validation_message(e))


@transaction.atomic
def add_time_slot(session, start_time, end_time):
    """Append a slot after the session's highest position."""
    session = Session.objects.select_for_update().get(pk=session.pk)
    last = session.time_slots.aggregate(last=Max('position'))['last']
    slot = TimeSlot(
        session=session,
        position=0 if last is None else last + 1,
        start_time=start_time,
        end_time=end_time,
    )
    _full_clean_slot(slot)
    slot.save()
    log_domain_event(
        'time_slot_added',
        entity_type='TimeSlot',
        entity_id=str(slot.pk),
        entity_ids={'session_id': str(session.pk)},
        slot_index=slot.position,
    )
    return slot


@transaction.atomic
def update_time_slot(session, slot_index, data):
    """
    Change the times of an available slot.

    Raises:
        NotFoundError, ConflictError (slot booked), DomainError (invalid times)
    """
    slot = _get_slot(session.pk, slot_index, lock=True)
    if slot.is_booked:
        raise ConflictError('Booked time slots cannot be modified')

    for field in ('start_time', 'end_time'):
        if field in data:
            setattr(slot, field, data[field])
    _full_clean_slot(slot)
    slot.save()
    return slot


@transaction.atomic
def delete_time_slot(session, slot_index):
    """
    Remove an available slot. Remaining slots keep their positions.

    Raises:
        NotFoundError, ConflictError (slot booked)
    """
    slot = _get_slot(session.pk, slot_index, lock=True)
    if slot.is_booked:
        raise ConflictError('Booked time slots cannot be deleted')
    log_domain_event(
        'time_slot_deleted',
        entity_type='TimeSlot',
        entity_id=str(slot.pk),
        entity_ids={'session_id': str(session.pk)},
        slot_index=slot_index,
    )
    slot.delete()


# ============================================================================
# Booking
# ============================================================================

def book_time_slot(patient, session_id, slot_index, payment_intent_id, source='api'):
    """
    Book ``slot_index`` of ``session_id`` for ``patient``.

    Returns:
        tuple: (TimeSlot, created: bool). created is False for an idempotent
        replay with the same payment intent.

    Raises:
        PaymentNotCompletedError: payment missing or not succeeded (retryable)
        DomainError: payment is for another slot
        ForbiddenError: payment belongs to another patient
        NotFoundError: unknown slot
        SlotConflictError: slot booked by someone else
    """
    from apps.payments.services import PaymentNotCompletedError, ensure_payment_succeeded

    with trace_span('book_time_slot', attributes={
        'session_id': str(session_id),
        'slot_index': slot_index,
        'source': source,
    }):
        try:
            payment = ensure_payment_succeeded(payment_intent_id)
        except PaymentNotCompletedError:
            metrics.booking_attempts_total.labels(source=source, result='unpaid').inc()
            raise

        if not _same_session(payment, session_id) or payment.slot_index != slot_index:
            metrics.booking_attempts_total.labels(source=source, result='mismatch').inc()
            raise DomainError('Payment does not match this time slot')

        if payment.patient_id is not None and payment.patient_id != patient.pk:
            metrics.booking_attempts_total.labels(source=source, result='forbidden').inc()
            raise ForbiddenError('Payment belongs to another patient')

        return _book_locked(patient, payment, source)


def _same_session(payment, session_id):
    try:
        return payment.session_id == uuid.UUID(str(session_id))
    except ValueError:
        return False


def book_slot_for_payment(payment, source='webhook'):
    """
    Book the slot a succeeded payment was made for.

    Used by the webhook: a conflict is logged and reported as None instead
    of raised.
    """
    try:
        return _book_locked(payment.patient, payment, source)
    except SlotConflictError:
        return None


@metrics.track_duration(metrics.booking_duration_seconds)
@transaction.atomic
def _book_locked(patient, payment, source):
    slot = _get_slot(payment.session_id, payment.slot_index, lock=True)

    if slot.is_booked:
        if slot.payment_intent_id == payment.payment_intent_id:
            metrics.booking_attempts_total.labels(source=source, result='replayed').inc()
            log_slot_booked(slot, source, created=False)
            return slot, False

        metrics.booking_attempts_total.labels(source=source, result='conflict').inc()
        log_slot_conflict(slot.session_id, slot.position, payment.payment_intent_id, source)
        raise SlotConflictError('Time slot already booked')

    now = timezone.now()
    slot.status = SlotStatusChoices.BOOKED
    slot.appointment_status = AppointmentStatusChoices.UPCOMING
    slot.patient = patient
    slot.payment_intent_id = payment.payment_intent_id
    slot.payment_amount = payment.amount
    slot.payment_currency = payment.currency
    slot.payment_date = payment.succeeded_at or now
    slot.booked_at = now
    slot.save()

    if payment.patient_id is None:
        payment.patient = patient
        payment.save(update_fields=['patient', 'updated_at'])

    metrics.booking_attempts_total.labels(source=source, result='booked').inc()
    log_slot_booked(slot, source, created=True)
    log_consistency_checkpoint(
        'slot_matches_payment',
        entity_ids={'slot_id': str(slot.pk), 'payment_id': str(payment.pk)},
        checks_passed={
            'patient_matches': slot.patient_id == payment.patient_id,
            'amount_matches': slot.payment_amount == payment.amount,
        },
    )
    return slot, True


# ============================================================================
# Meeting ids and appointment lifecycle
# ============================================================================

@transaction.atomic
def set_session_meeting_id(session, meeting_id):
    session = Session.objects.select_for_update().get(pk=session.pk)
    session.meeting_id = meeting_id
    session.save(update_fields=['meeting_id', 'updated_at'])
    return session


@transaction.atomic
def set_appointment_meeting_id(session, slot_index, meeting_id):
    slot = _get_slot(session.pk, slot_index, lock=True)
    slot.meeting_id = meeting_id
    slot.save(update_fields=['meeting_id', 'updated_at'])
    return slot


@transaction.atomic
def transition_appointment(session, slot_index, new_status, reason=None):
    """
    Move a booked slot's appointment to ``new_status``.

    Raises:
        NotFoundError, DomainError (transition not allowed)
    """
    slot = _get_slot(session.pk, slot_index, lock=True)
    from_status = slot.appointment_status
    try:
        slot.transition_status(new_status, reason=reason)
    except DjangoValidationError as e:
        metrics.appointment_transitions_total.labels(
            from_status=from_status, to_status=new_status, result='rejected'
        ).inc()
        log_appointment_transition(slot, from_status, new_status, result='blocked')
        raise DomainError(_validation_message(e))

    slot.save(update_fields=['appointment_status', 'status_changed_at', 'cancellation_reason', 'updated_at'])
    metrics.appointment_transitions_total.labels(
        from_status=from_status, to_status=new_status, result='success'
    ).inc()
    log_appointment_transition(slot, from_status, new_status)
    return slot


# ============================================================================
# Queries
# ============================================================================

def my_appointments(patient=None, doctor=None, status=None):
    """Booked slots of a patient (or of a doctor's sessions), newest first."""
    queryset = TimeSlot.objects.select_related(
        'session', 'session__doctor', 'session__hospital', 'patient'
    ).filter(booked_slot_q())

    if patient is not None:
        queryset = queryset.filter(patient=patient)
    elif doctor is not None:
        queryset = queryset.filter(session__doctor=doctor)
    else:
        return queryset.none()

    if status:
        queryset = queryset.filter(appointment_status=status)

    return queryset.order_by('-session__date', '-start_time')


def doctor_statistics(doctor):
    """Dashboard counters for one doctor."""
    from apps.ratings.services import rating_summary

    today = timezone.localtime(timezone.now(), clinic_timezone()).date()
    booked = TimeSlot.objects.filter(session__doctor=doctor).filter(booked_slot_q())
    ratings = rating_summary(doctor.pk)

    started = time.time()
    stats = {
        'total_patients': booked.filter(patient__isnull=False).values('patient').distinct().count(),
        'appointments_today': booked.filter(session__date=today).count(),
        'avg_rating': ratings['avg_rating'],
        'total_ratings': ratings['total_reviews'],
        'completed_sessions': booked.filter(
            appointment_status=AppointmentStatusChoices.COMPLETED
        ).count(),
    }
    log_domain_event(
        'doctor_statistics_computed',
        entity_type='Doctor',
        entity_id=str(doctor.pk),
        duration_ms=int((time.time() - started) * 1000),
    )
    return stats
