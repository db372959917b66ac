"""
Doctors services: bulk import, verification workflow, doctor cards.
"""
from django.db import transaction
from django.db.models import Prefetch
from django.utils import timezone

from apps.core.exceptions import ConflictError, DomainError
from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event
from apps.doctors.models import Doctor, DoctorCertificate
from apps.doctors.serializers import DoctorDetailSerializer, DoctorWriteSerializer

UNKNOWN_HOSPITAL = {'id': None, 'name': 'Unknown hospital', 'location': ''}


# ============================================================================
# Bulk import
# ============================================================================

@transaction.atomic
@transaction.atomic
def bulk_create_doctors(rows):
    """
    Create many doctor profiles at once. All rows are validated first and
    nothing is written if any row is invalid.

    Raises:
        DomainError: with errors=[{'index': i, <field>: [...]}, ...]
    """
    if not isinstance(rows, list) or not rows:
        raise DomainError('Request body must be a non-empty array of doctors')

    validated, errors = [], []
    for index, row in enumerate(rows):
        serializer = DoctorWriteSerializer(data=row)
        if serializer.is_valid():
            validated.append(serializer)
        else:
            errors.append({'index': index, **serializer.errors})

    emails = [s.validated_data['email'].lower() for s in validated]
    numbers = [s.validated_data['registration_number'] for s in validated]
    if len(set(emails)) != len(emails) or len(set(numbers)) != len(numbers):
        errors.append({'non_field_errors': ['Duplicate email or registration number in payload']})

    if errors:
        raise DomainError('Invalid doctor rows', errors=errors)

    doctors = [s.save() for s in validated]
    log_domain_event('doctors_bulk_created', entity_type='Doctor', count=len(doctors))
    return doctors


# ============================================================================
# Verification workflow
# ============================================================================

@transaction.atomic
def submit_verification(doctor, certificates):
    """
    Open the verification request of ``doctor``.

    Raises:
        DomainError: if the doctor already has a verification record
    """
    if DoctorCertificate.objects.filter(doctor=doctor).exists():
        raise DomainError('Verification already submitted for this doctor')

    certificate = DoctorCertificate.objects.create(doctor=doctor, certificates=certificates)
    metrics.doctor_verifications_total.labels(decision='submitted').inc()
    log_domain_event(
        'doctor_verification_submitted',
        entity_type='DoctorCertificate',
        entity_id=str(certificate.pk),
        entity_ids={'doctor_id': str(doctor.pk)},
        certificates_count=len(certificates),
    )
    return certificate


@transaction.atomic
def review_verification(certificate, reviewer, is_admin, data):
    """
    Apply an update to a verification record.

    Admins decide (is_verified, comment_from_admin). The owning doctor may
    only replace certificates, which sends the request back to pending.

    Returns:
        tuple: (certificate, decision_changed: bool)
    """
    certificate = DoctorCertificate.objects.select_for_update().get(pk=certificate.pk)
    decision_changed = False

    if not is_admin and ({'is_verified', 'comment_from_admin'} & set(data)):
        raise DomainError('Only admins can change the verification decision')

    if 'certificates' in data:
        certificate.certificates = data['certificates']
        if not is_admin:
            certificate.is_verified = False
            certificate.verified_by = None
            certificate.verified_at = None

    if 'comment_from_admin' in data:
        certificate.comment_from_admin = data['comment_from_admin']

    if 'is_verified' in data and data['is_verified'] != certificate.is_verified:
        certificate.is_verified = data['is_verified']
        certificate.verified_by = reviewer if data['is_verified'] else None
        certificate.verified_at = timezone.now() if data['is_verified'] else None
        decision_changed = True
    elif 'is_verified' in data and not data['is_verified'] and 'comment_from_admin' in data:
        # Rejection with feedback on a pending request
        decision_changed = True

    certificate.save()

    if decision_changed:
        decision = 'verified' if certificate.is_verified else 'rejected'
        metrics.doctor_verifications_total.labels(decision=decision).inc()
        log_domain_event(
            f'doctor_{decision}',
            entity_type='DoctorCertificate',
            entity_id=str(certificate.pk),
            entity_ids={'doctor_id': str(certificate.doctor_id)},
        )

    return certificate, decision_changed


def get_doctor_for_user(user):
    """Doctor profile of ``user`` or None."""
    return Doctor.objects.filter(user=user).first()


def ensure_no_profile(user):
    if Doctor.objects.filter(user=user).exists():
        raise ConflictError('A doctor profile already exists for this user')


# ============================================================================
# Doctor cards (public discovery)
# ============================================================================

def _hospital_dict(hospital):
    if hospital is None:
        return dict(UNKNOWN_HOSPITAL)
    return {'id': str(hospital.pk), 'name': hospital.name, 'location': hospital.location}


def _session_dict(session):
    slots = list(session.time_slots.all())
    return {
        'id': str(session.pk),
        'date': session.date.isoformat(),
        'type': session.type,
        'fee': str(session.effective_fee),
        'hospital': _hospital_dict(session.hospital),
        'total_slots': len(slots),
        'available_slots': sum(1 for slot in slots if not slot.is_booked),
        'time_slots': [
            {
                'index': slot.position,
                'start_time': slot.start_time.strftime('%H:%M'),
                'end_time': slot.end_time.strftime('%H:%M'),
                'status': slot.status,
            }
            for slot in slots
        ],
    }


def _card_queryset():
    from apps.ratings.models import Rating
    from apps.scheduling.models import Session, TimeSlot

    return Doctor.objects.select_related('certificate').prefetch_related(
        Prefetch(
            'sessions',
            queryset=Session.objects.select_related('hospital', 'doctor').prefetch_related(
                Prefetch('time_slots', queryset=TimeSlot.objects.order_by('position'))
            ).order_by('date'),
        ),
        Prefetch(
            'ratings',
            queryset=Rating.objects.select_related('patient').order_by('-created_at'),
        ),
    )


def _rating_summary(ratings):
    total = len(ratings)
    avg = sum(r.rating for r in ratings) / total if total else 0
    return {'avg_rating': round(avg, 1), 'total_reviews': total}


def build_doctor_cards(queryset=None):
    """Every doctor with sessions and rating summary (all ratings included)."""
    doctors = _card_queryset() if queryset is None else queryset
    cards = []
    for doctor in doctors:
        ratings = list(doctor.ratings.all())
        summary = _rating_summary(ratings)
        summary['all_ratings'] = [
            {
                'rating': r.rating,
                'comment': r.comment,
                'created_at': r.created_at.isoformat(),
                'patient_name': r.patient.name if r.patient_id else 'Anonymous',
            }
            for r in ratings
        ]
        cards.append({
            'doctor': DoctorDetailSerializer(doctor).data,
            'sessions': [_session_dict(s) for s in doctor.sessions.all()],
            'rating_summary': summary,
        })
    return cards


def build_doctor_card(doctor_id):
    """
    One doctor card with reviews.

    Raises:
        Doctor.DoesNotExist
    """
    doctor = _card_queryset().get(pk=doctor_id)
    ratings = list(doctor.ratings.all())
    return {
        'doctor': DoctorDetailSerializer(doctor).data,
        'sessions': [_session_dict(s) for s in doctor.sessions.all()],
        'rating_summary': _rating_summary(ratings),
        'reviews': [
            {
                'patient_name': (r.patient.name if r.patient_id else '') or 'Anonymous',
                'rating': r.rating,
                'comment': r.comment,
                'created_at': r.created_at.isoformat(),
            }
            for r in ratings
        ],
    }
