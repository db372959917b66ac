"""
Rating services: create-or-update and per-doctor summaries.
"""
import uuid

from django.db import transaction
from django.db.models import Avg, Count

from apps.core.exceptions import DomainError
from apps.core.observability.events import log_domain_event
from apps.ratings.models import Rating


def rating_summary(doctor_id):
    """{avg_rating (1 decimal), total_reviews} for one doctor; zeros when unrated."""
    stats = Rating.objects.filter(doctor_id=doctor_id).aggregate(
        avg=Avg('rating'), total=Count('id')
    )
    return {
        'avg_rating': round(float(stats['avg'] or 0), 1),
        'total_reviews': stats['total'],
    }


@transaction.atomic
def rate_doctor(patient, doctor, rating, comment='', appointment_id=''):
    """
    Create the patient's rating of ``doctor`` or replace the existing one.

    Returns:
        tuple: (Rating, created: bool)

    Raises:
        DomainError: when appointment_id does not belong to this patient and doctor
    """
    if appointment_id:
        _check_appointment(patient, doctor, appointment_id)

    existing = (
        Rating.objects.select_for_update()
        .filter(doctor=doctor, patient=patient)
        .first()
    )
    if existing:
        existing.rating = rating
        existing.comment = comment
        if appointment_id:
            existing.appointment_id = appointment_id
        existing.save(update_fields=['rating', 'comment', 'appointment_id', 'updated_at'])
        instance, created = existing, False
    else:
        instance = Rating.objects.create(
            doctor=doctor,
            patient=patient,
            rating=rating,
            comment=comment,
            appointment_id=appointment_id,
        )
        created = True

    log_domain_event(
        'rating_created' if created else 'rating_updated',
        entity_type='Rating',
        entity_id=str(instance.pk),
        entity_ids={'doctor_id': str(doctor.pk)},
        rating=rating,
    )
    return instance, created


def _check_appointment(patient, doctor, appointment_id):
    from apps.scheduling.models import TimeSlot

    try:
        session_id = uuid.UUID(appointment_id.split('_', 1)[0])
    except ValueError:
        raise DomainError('Invalid appointment id')

    booked = TimeSlot.objects.filter(
        session_id=session_id,
        session__doctor=doctor,
        patient=patient,
    )
    if not any(slot.appointment_key == appointment_id for slot in booked):
        raise DomainError('Appointment does not belong to this patient and doctor')
