"""
Payments services: intent creation, provider sync, webhook processing,
payment history and doctor earnings.
"""
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from apps.core.exceptions import ConflictError, DomainError, NotFoundError
from apps.core.observability import metrics
from apps.core.observability.events import log_payment_event, log_webhook_duplicate
from apps.core.observability.logging import get_sanitized_logger
from apps.payments import stripe_client
from apps.payments.models import (
    Payment,
    PaymentStatusChoices,
    PaymentWebhookEvent,
    WebhookResultChoices,
)
from apps.scheduling.models import TimeSlot, clinic_timezone

logger = get_sanitized_logger(__name__)


class PaymentNotCompletedError(DomainError):
    """The payment intent has not succeeded (yet). Clients retry."""

    def __init__(self, message='Payment not completed', **details):
        details.setdefault('retryable', True)
        super().__init__(message, **details)


# ============================================================================
# Intent creation and provider sync
# ============================================================================

def create_payment_intent(patient, amount, session_id, slot_index, currency=None):
    """
    Create a provider payment intent for one time slot.

    The slot must exist and still be available. The patient always comes
    from the authenticated caller and is written into the intent metadata
    so that the webhook can complete the booking.

    Returns:
        tuple: (Payment, client_secret)

    Raises:
        NotFoundError: unknown session or slot index
        ConflictError: slot already booked
        DomainError: provider rejected or unreachable
    """
    currency = (currency or settings.PAYMENTS_DEFAULT_CURRENCY).lower()

    slot = (
        TimeSlot.objects.select_related('session', 'session__doctor')
        .filter(session_id=session_id, position=slot_index)
        .first()
    )
    if slot is None:
        raise NotFoundError('Time slot not found')
    if slot.is_booked:
        metrics.payment_intents_total.labels(result='slot_unavailable').inc()
        raise ConflictError('Time slot is no longer available')

    description = (
        f"Medical consultation - {slot.start_time:%H:%M} to {slot.end_time:%H:%M}"
    )
    metadata = {
        'session_id': str(session_id),
        'slot_index': slot_index,
        'patient_id': str(patient.pk),
    }
    amount_minor = int(round(Decimal(str(amount)) * 100))

    try:
        intent = stripe_client.create_payment_intent(
            amount_minor,
            currency,
            metadata,
            description=description,
        )
    except stripe_client.StripeError as e:
        metrics.payment_intents_total.labels(result='provider_error').inc()
        raise DomainError(f'Payment provider error: {e.message}')

    payment = Payment.objects.create(
        payment_intent_id=intent['id'],
        patient=patient,
        session_id=session_id,
        slot_index=slot_index,
        amount=Decimal(amount_minor) / 100,
        currency=currency,
        status=_provider_status(intent.get('status')),
        description=description,
        metadata=metadata,
    )
    metrics.payment_intents_total.labels(result='created').inc()
    log_payment_event('payment_intent_created', payment, slot_index=slot_index)

    return payment, intent.get('client_secret')


def _provider_status(value):
    if value in PaymentStatusChoices.values:
        return value
    return PaymentStatusChoices.PROCESSING


def sync_payment_intent(intent):
    """
    Create or update the local Payment from a provider PaymentIntent object.

    Returns:
        Payment or None when the intent carries no booking metadata.
    """
    metadata = intent.get('metadata') or {}
    status = _provider_status(intent.get('status'))

    payment = Payment.objects.select_for_update().filter(payment_intent_id=intent['id']).first()
    if payment is None:
        session_id = metadata.get('session_id')
        slot_index = metadata.get('slot_index')
        if not session_id or slot_index in (None, ''):
            logger.warning(
                'Payment intent without booking metadata',
                extra={'payment_intent_id': intent['id']},
            )
            return None
        from apps.patients.models import Patient

        try:
            slot_index = int(slot_index)
            slot_exists = TimeSlot.objects.filter(session_id=session_id, position=slot_index).exists()
        except (ValueError, DjangoValidationError):
            slot_exists = False
        if not slot_exists:
            logger.warning(
                'Payment intent metadata does not reference a known slot',
                extra={'payment_intent_id': intent['id']},
            )
            return None

        patient_id = metadata.get('patient_id')
        try:
            patient = Patient.objects.filter(pk=patient_id).first() if patient_id else None
        except DjangoValidationError:
            patient = None

        payment = Payment.objects.create(
            payment_intent_id=intent['id'],
            patient=patient,
            session_id=session_id,
            slot_index=slot_index,
            amount=Decimal(intent.get('amount', 0)) / 100,
            currency=(intent.get('currency') or settings.PAYMENTS_DEFAULT_CURRENCY).lower(),
            status=status,
            succeeded_at=timezone.now() if status == PaymentStatusChoices.SUCCEEDED else None,
            description=intent.get('description') or '',
            failure_message=(intent.get('last_payment_error') or {}).get('message', ''),
            metadata=metadata,
        )

    if status != payment.status:
        payment.status = status
        if status == PaymentStatusChoices.SUCCEEDED and payment.succeeded_at is None:
            payment.succeeded_at = timezone.now()
        if status == PaymentStatusChoices.FAILED or intent.get('last_payment_error'):
            payment.failure_message = (intent.get('last_payment_error') or {}).get('message', '')
        payment.save(update_fields=['status', 'succeeded_at', 'failure_message', 'updated_at'])

    return payment


@transaction.atomic
def refresh_payment(payment_intent_id):
    """Pull the intent from the provider and update our copy."""
    intent = stripe_client.retrieve_payment_intent(payment_intent_id)
    return sync_payment_intent(intent)


def ensure_payment_succeeded(payment_intent_id):
    """
    Return the succeeded Payment for ``payment_intent_id``.

    Our copy is refreshed from the provider when it is missing or not yet
    succeeded (the client may call before the webhook arrives).

    Raises:
        PaymentNotCompletedError
    """
    payment = Payment.objects.filter(payment_intent_id=payment_intent_id).first()
    if payment is not None and payment.is_succeeded:
        return payment

    try:
        payment = refresh_payment(payment_intent_id)
    except stripe_client.StripeError as e:
        if e.status_code == 404:
            raise PaymentNotCompletedError('Payment not found', retryable=False)
        raise PaymentNotCompletedError()

    if payment is None or not payment.is_succeeded:
        raise PaymentNotCompletedError()
    return payment


# ============================================================================
# Webhook
# ============================================================================

def verify_webhook_signature(request):
    """
    Verify the Stripe-Signature header against the raw body.

    Format:
    - Header: Stripe-Signature
    - Value: t=<timestamp>,v1=<signature>[,v1=<signature>...]
    - Signed payload: <timestamp>.<raw_body>, HMAC-SHA256 with the
      endpoint secret; timestamps older than the tolerance are rejected

    Returns:
        (is_valid: bool, error_message: str)
    """
    signature_header = request.headers.get('Stripe-Signature', '')

    if not signature_header:
        return False, 'Missing Stripe-Signature header'

    if not settings.STRIPE_WEBHOOK_SECRET:
        return False, 'Webhook secret not configured'

    try:
        stripe_client.verify_webhook(request.body, signature_header)
    except stripe_client.WebhookSignatureError as e:
        return False, f'Invalid signature: {e}'

    return True, ''


def process_webhook_event(event):
    """
    Store and handle one verified webhook event.

    The event row and its effects commit together. An unexpected error
    rolls both back and propagates, so the provider's redelivery retries
    the event; a DomainError is recorded as ``failed`` and acknowledged.

    Returns:
        str: processed | duplicate | ignored | failed
    """
    event_id = event.get('id')
    event_type = event.get('type', '')
    if not event_id:
        metrics.payment_webhooks_total.labels(event_type=event_type or 'unknown', result='ignored').inc()
        return WebhookResultChoices.IGNORED

    intent = (event.get('data') or {}).get('object') or {}
    try:
        with transaction.atomic():
            try:
                with transaction.atomic():
                    record = PaymentWebhookEvent.objects.create(
                        event_id=event_id,
                        event_type=event_type,
                        payload=event,
                    )
            except IntegrityError:
                metrics.payment_webhooks_total.labels(event_type=event_type, result='duplicate').inc()
                log_webhook_duplicate(event_id, event_type)
                return 'duplicate'

            result, error_message = _apply_webhook_event(event_type, intent)
            record.result = result
            record.error_message = error_message
            record.save(update_fields=['result', 'error_message'])
    except Exception:
        metrics.payment_webhooks_total.labels(event_type=event_type, result='error').inc()
        logger.exception(
            'Webhook event could not be applied',
            extra={'event_id': event_id, 'event_type': event_type},
        )
        raise

    if result == WebhookResultChoices.FAILED:
        logger.warning(
            'Webhook event not applied',
            extra={'event_id': event_id, 'event_type': event_type, 'reason': error_message},
        )
    metrics.payment_webhooks_total.labels(event_type=event_type, result=result).inc()
    return result


def _apply_webhook_event(event_type, intent):
    """Returns (result, error_message)."""
    try:
        if event_type == 'payment_intent.succeeded':
            _handle_payment_succeeded(intent)
        elif event_type == 'payment_intent.payment_failed':
            _handle_payment_failed(intent)
        else:
            return WebhookResultChoices.IGNORED, ''
    except DomainError as e:
        # Acknowledged anyway: the provider must not keep redelivering
        return WebhookResultChoices.FAILED, e.message
    return WebhookResultChoices.PROCESSED, ''


def _handle_payment_succeeded(intent):
    from apps.scheduling.services import book_slot_for_payment

    if not intent.get('id'):
        raise DomainError('Payment intent has no id')
    with transaction.atomic():
        payment = sync_payment_intent(intent)
    if payment is None:
        raise DomainError('Payment intent has no booking metadata')

    log_payment_event('payment_succeeded', payment, source='webhook')
    if payment.patient_id is None:
        raise DomainError('Payment has no patient to book for')
    book_slot_for_payment(payment, source='webhook')


def _handle_payment_failed(intent):
    if not intent.get('id'):
        raise DomainError('Payment intent has no id')
    with transaction.atomic():
        payment = sync_payment_intent({**intent, 'status': PaymentStatusChoices.FAILED})
    if payment is None:
        raise DomainError('Payment intent has no booking metadata')
    log_payment_event(
        'payment_failed',
        payment,
        result='failure',
        failure_reason=payment.failure_message or 'Unknown',
    )


# ============================================================================
# History and details
# ============================================================================

def _payment_dict(payment):
    slot = getattr(payment, '_slot', None)
    session = payment.session
    doctor = session.doctor if session else None
    appointment_time = f"{slot.start_time:%H:%M} - {slot.end_time:%H:%M}" if slot else None
    date = payment.succeeded_at or payment.created_at
    return {
        'id': payment.payment_intent_id,
        'amount': payment.amount_minor,
        'currency': payment.currency,
        'status': payment.status,
        'date': date.isoformat(),
        'created': payment.created_at.isoformat(),
        'description': payment.description,
        'doctor_name': doctor.name if doctor else 'Unknown Doctor',
        'doctor_specialization': (doctor.specialization if doctor else '') or 'General',
        'appointment_date': session.date.isoformat() if session else None,
        'appointment_time': appointment_time,
        'appointment_status': slot.appointment_status if slot else None,
        'session_id': str(payment.session_id) if payment.session_id else None,
        'slot_index': payment.slot_index,
    }


def _attach_slots(payments):
    """Set ``_slot`` on each payment (the slot its metadata points to)."""
    keys = {(p.session_id, p.slot_index) for p in payments if p.session_id}
    if not keys:
        return payments
    q = Q()
    for session_id, position in keys:
        q |= Q(session_id=session_id, position=position)
    slots = {(s.session_id, s.position): s for s in TimeSlot.objects.filter(q)}
    for payment in payments:
        payment._slot = slots.get((payment.session_id, payment.slot_index))
    return payments


def payment_history(patient, search=None, status=None, start_date=None, end_date=None, limit=50, offset=0):
    """
    The patient's payments, newest first, filtered and paginated.

    ``search`` matches doctor name, payment intent id, amount or status;
    ``start_date``/``end_date`` are dates compared with the creation day.
    """
    queryset = Payment.objects.filter(patient=patient).select_related('session', 'session__doctor')

    if status and status != 'all':
        queryset = queryset.filter(status__iexact=status)

    if start_date:
        queryset = queryset.filter(created_at__date__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__date__lte=end_date)

    if search and search.strip():
        term = search.strip()
        match = (
            Q(session__doctor__name__icontains=term) |
            Q(payment_intent_id__icontains=term) |
            Q(status__icontains=term)
        )
        try:
            match |= Q(amount=Decimal(term))
        except ArithmeticError:
            pass
        queryset = queryset.filter(match)

    queryset = queryset.order_by('-created_at')
    total = queryset.count()
    page = _attach_slots(list(queryset[offset:offset + limit]))

    return {
        'success': True,
        'payments': [_payment_dict(p) for p in page],
        'total': total,
        'filters': {
            'search': search,
            'status': status,
            'start_date': start_date,
            'end_date': end_date,
            'limit': limit,
            'offset': offset,
        },
    }


def payment_details(payment_intent_id, user, is_admin=False):
    """
    One payment, visible to its patient, the session's doctor and admins.

    Raises:
        NotFoundError
    """
    payment = (
        Payment.objects.select_related('session', 'session__doctor', 'patient')
        .filter(payment_intent_id=payment_intent_id)
        .first()
    )
    if payment is None:
        raise NotFoundError('Payment not found')

    owner_ids = {
        payment.patient.user_id if payment.patient else None,
        payment.session.doctor.user_id if payment.session else None,
    }
    if not is_admin and user.pk not in owner_ids:
        raise NotFoundError('Payment not found')

    _attach_slots([payment])
    return {'success': True, 'payment': _payment_dict(payment)}


# ============================================================================
# Doctor earnings
# ============================================================================

def _doctor_payments(doctor):
    return Payment.objects.filter(
        session__doctor=doctor,
        status=PaymentStatusChoices.SUCCEEDED,
    )


def _total(queryset):
    return float(queryset.aggregate(total=Sum('amount'))['total'] or 0)


def doctor_earnings(doctor, recent=10):
    """Totals and recent succeeded payments for the doctor's sessions."""
    payments = _doctor_payments(doctor)
    today = timezone.localtime(timezone.now(), clinic_timezone()).date()
    month_start = today.replace(day=1)

    recent_payments = _attach_slots(
        list(payments.select_related('session', 'session__doctor').order_by('-succeeded_at')[:recent])
    )
    return {
        'success': True,
        'earnings': {
            'total': _total(payments),
            'appointments': payments.count(),
            'this_month': _total(payments.filter(succeeded_at__date__gte=month_start)),
            'currency': settings.PAYMENTS_DEFAULT_CURRENCY,
            'recent': [_payment_dict(p) for p in recent_payments],
        },
    }


EARNINGS_TIME_RANGES = ('last-week', '4weeks-daily', 'monthly')


def doctor_earnings_stats(doctor, time_range='last-week', year=None, month=None):
    """
    Daily earnings series for the dashboard chart.

    time_range:
    - last-week: last 7 days
    - 4weeks-daily: last 28 days
    - monthly: every day of ``year``/``month`` (default: current month)
    """
    if time_range not in EARNINGS_TIME_RANGES:
        raise DomainError(f'time_range must be one of: {", ".join(EARNINGS_TIME_RANGES)}')

    tz = clinic_timezone()
    today = timezone.localtime(timezone.now(), tz).date()

    if time_range == 'monthly':
        year = year or today.year
        month = month or today.month
        if not 1 <= month <= 12:
            raise DomainError('month must be between 1 and 12')
        start = today.replace(year=year, month=month, day=1)
        next_month = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
        end = next_month - timedelta(days=1)
    else:
        days = 7 if time_range == 'last-week' else 28
        end = today
        start = today - timedelta(days=days - 1)

    payments = _doctor_payments(doctor)
    daily = {
        row['day']: row
        for row in payments.filter(
            succeeded_at__date__gte=start,
            succeeded_at__date__lte=end,
        ).annotate(
            day=TruncDate('succeeded_at', tzinfo=tz)
        ).values('day').annotate(
            earnings=Sum('amount'),
            appointments=Count('id'),
        )
    }

    chart_data = []
    day = start
    while day <= end:
        row = daily.get(day)
        chart_data.append({
            'date': day.isoformat(),
            'label': day.strftime('%b %d'),
            'earnings': float(row['earnings']) if row else 0.0,
            'appointments': row['appointments'] if row else 0,
        })
        day += timedelta(days=1)

    week_start = today - timedelta(days=6)
    return {
        'success': True,
        'stats': {
            'time_range': time_range,
            'today_earnings': _total(payments.filter(succeeded_at__date=today)),
            'weekly_earnings': _total(payments.filter(succeeded_at__date__gte=week_start)),
            'chart_data': chart_data,
        },
    }
