"""
Patient services.
"""
from django.db import transaction

from apps.core.observability.events import log_domain_event
from apps.patients.models import Patient


@transaction.atomic
def get_or_create_patient_for_user(user):
    """
    Patient profile of ``user``.

    A missing profile is created from the account, or an unlinked profile
    with the same email (imported before sign-up) is linked to it.
    """
    patient = Patient.objects.filter(user=user).first()
    if patient is not None:
        return patient

    patient = Patient.objects.select_for_update().filter(
        email__iexact=user.email, user__isnull=True
    ).first()
    if patient is not None:
        patient.user = user
        patient.save(update_fields=['user', 'updated_at'])
        log_domain_event('patient_linked', entity_type='Patient', entity_id=str(patient.pk))
        return patient

    patient = Patient.objects.create(
        user=user,
        name=user.full_name or user.email,
        email=user.email.lower(),
    )
    log_domain_event('patient_created', entity_type='Patient', entity_id=str(patient.pk), source='auto')
    return patient
