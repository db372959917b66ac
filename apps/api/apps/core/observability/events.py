"""
Domain events logging helpers.

Provides structured event logging for business operations.
"""
from typing import Dict, Optional

from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'slot_booked', 'payment_succeeded')
        entity_type: Type of entity (e.g., 'TimeSlot', 'Payment')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, conflict, duplicate...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'slot_booked',
            entity_type='TimeSlot',
            entity_id=str(slot.id),
            entity_ids={'session_id': str(slot.session_id)},
            slot_index=slot.position,
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'conflict', 'denied']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points, e.g. that a booked
    slot and its payment agree on patient and amount.
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_slot_booked(slot, source, created=True):
    """Log a time slot booking (source: 'api' or 'webhook')."""
    log_domain_event(
        'slot_booked' if created else 'slot_booking_replayed',
        entity_type='TimeSlot',
        entity_id=str(slot.id),
        entity_ids={
            'session_id': str(slot.session_id),
            'patient_id': str(slot.patient_id) if slot.patient_id else None,
        },
        result='success' if created else 'duplicate',
        slot_index=slot.position,
        payment_intent_id=slot.payment_intent_id,
        source=source,
    )


def log_slot_conflict(session_id, slot_index, payment_intent_id, source):
    """Log a booking attempt on a slot that someone else already holds."""
    log_domain_event(
        'slot_booking_conflict',
        entity_type='Session',
        entity_id=str(session_id),
        result='conflict',
        slot_index=slot_index,
        payment_intent_id=payment_intent_id,
        source=source,
    )


def log_appointment_transition(slot, from_status, to_status, result='success', **extra):
    """Log appointment status transition event."""
    log_domain_event(
        'appointment_transition',
        entity_type='TimeSlot',
        entity_id=str(slot.id),
        entity_ids={'session_id': str(slot.session_id)},
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_payment_event(event_name, payment, result='success', **extra):
    """Log a payment lifecycle event (intent created, succeeded, failed)."""
    log_domain_event(
        event_name,
        entity_type='Payment',
        entity_id=str(payment.id),
        entity_ids={
            'payment_intent_id': payment.payment_intent_id,
            'session_id': str(payment.session_id),
        },
        result=result,
        amount=str(payment.amount),
        currency=payment.currency,
        **extra
    )


def log_webhook_duplicate(event_id, event_type):
    """Log a provider webhook event that was already processed."""
    log_domain_event(
        'payment_webhook_duplicate',
        entity_type='PaymentWebhookEvent',
        entity_id=event_id,
        result='duplicate',
        event_type=event_type,
    )


def log_record_event(event_name, record, actor, result='success', **extra):
    """Log a medical record mutation without its clinical content."""
    log_domain_event(
        event_name,
        entity_type='MedicalRecord',
        entity_id=record.record_id,
        entity_ids={
            'patient_id': str(record.patient_id),
            'actor_id': str(actor.pk) if actor else None,
        },
        result=result,
        **extra
    )
