"""
Stripe calls used by the booking flow, on top of the official ``stripe`` SDK.

Every call passes the API key explicitly. ``configure()`` (run when the
payments app loads) points the SDK at our API base and a
``stripe.RequestsClient`` carrying our timeout. Provider failures surface as
``StripeError`` so services never import the SDK's exception tree.
"""
import time

import stripe
from django.conf import settings

from apps.core.observability import metrics
from apps.core.observability.logging import get_sanitized_logger
from apps.core.observability.tracing import trace_span

logger = get_sanitized_logger(__name__)


class StripeError(Exception):
    """Provider call failed (network error or rejected request)."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class WebhookSignatureError(Exception):
    """Stripe-Signature header does not match the payload."""


def configure():
    stripe.api_base = settings.STRIPE_API_BASE
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)


def _call(operation, fn, **params):
    start = time.time()
    with trace_span(f'stripe.{operation}', kind='client'):
        try:
            obj = fn(api_key=settings.STRIPE_SECRET_KEY, **params)
        except stripe.APIConnectionError as e:
            logger.error(f'Stripe {operation} failed: {e.__class__.__name__}')
            raise StripeError(f'Payment provider unreachable: {e.__class__.__name__}') from e
        except stripe.StripeError as e:
            logger.warning(
                f'Stripe {operation} rejected',
                extra={'status_code': e.http_status, 'operation': operation},
            )
            raise StripeError(e.user_message or str(e), status_code=e.http_status) from e
        finally:
            metrics.payment_provider_duration_seconds.labels(operation=operation).observe(
                time.time() - start
            )
    return obj.to_dict()


def create_payment_intent(amount_minor, currency, metadata, description='', idempotency_key=None):
    """
    Create a payment intent with automatic payment methods.

    Metadata values are sent as strings, which is what Stripe stores anyway.

    Returns:
        dict: Stripe PaymentIntent object (id, client_secret, status, ...)
    """
    params = {
        'amount': amount_minor,
        'currency': currency,
        'automatic_payment_methods': {'enabled': True},
        'metadata': {key: str(value) for key, value in metadata.items()},
    }
    if description:
        params['description'] = description
    if idempotency_key:
        params['idempotency_key'] = idempotency_key

    return _call('create_intent', stripe.PaymentIntent.create, **params)


def retrieve_payment_intent(payment_intent_id):
    return _call('retrieve_intent', stripe.PaymentIntent.retrieve, id=payment_intent_id)


def verify_webhook(payload, signature_header):
    """
    Check ``Stripe-Signature`` (t=<timestamp>,v1=<hmac>) against the raw body.

    Raises:
        WebhookSignatureError: bad format, wrong signature or stale timestamp
    """
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode('utf-8'),
            signature_header,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError(e.user_message or str(e)) from e
    except UnicodeDecodeError as e:
        raise WebhookSignatureError('Payload is not UTF-8') from e
