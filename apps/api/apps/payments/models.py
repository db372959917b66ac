"""
Payments models: payment, payment_webhook_event

A Payment mirrors one provider payment intent. The intent metadata carries
the session and slot index it pays for, so the booking can be completed by
either the client (book endpoint) or the provider webhook.
"""
import uuid

from django.db import models


class PaymentStatusChoices(models.TextChoices):
    REQUIRES_PAYMENT_METHOD = 'requires_payment_method', 'Requires Payment Method'
    REQUIRES_CONFIRMATION = 'requires_confirmation', 'Requires Confirmation'
    REQUIRES_ACTION = 'requires_action', 'Requires Action'
    PROCESSING = 'processing', 'Processing'
    SUCCEEDED = 'succeeded', 'Succeeded'
    CANCELED = 'canceled', 'Canceled'
    FAILED = 'failed', 'Failed'


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    payment_intent_id = models.CharField(max_length=255, unique=True)
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    session = models.ForeignKey(
        'scheduling.Session',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    slot_index = models.PositiveIntegerField(help_text='TimeSlot.position inside the session')
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text='Amount in major units (the provider receives minor units)'
    )
    currency = models.CharField(max_length=3, default='lkr')
    status = models.CharField(
        max_length=30,
        choices=PaymentStatusChoices.choices,
        default=PaymentStatusChoices.REQUIRES_PAYMENT_METHOD
    )
    description = models.CharField(max_length=255, blank=True)
    succeeded_at = models.DateTimeField(null=True, blank=True)
    failure_message = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payment'
        verbose_name = 'Payment'
        verbose_name_plural = 'Payments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient', 'created_at'], name='idx_payment_patient_created'),
            models.Index(fields=['status'], name='idx_payment_status'),
            models.Index(fields=['session', 'slot_index'], name='idx_payment_session_slot'),
        ]

    def __str__(self):
        return f"{self.payment_intent_id} {self.amount} {self.currency} ({self.status})"

    @property
    def is_succeeded(self):
        return self.status == PaymentStatusChoices.SUCCEEDED

    @property
    def amount_minor(self):
        """Amount in the currency's minor unit, as the provider counts it."""
        return int(round(self.amount * 100))


class WebhookResultChoices(models.TextChoices):
    RECEIVED = 'received', 'Received'
    PROCESSED = 'processed', 'Processed'
    IGNORED = 'ignored', 'Ignored'
    FAILED = 'failed', 'Failed'


class PaymentWebhookEvent(models.Model):
    """
    Provider webhook events, stored once per event id.

    The row is written in the same transaction that applies the event, so
    it only exists once the event has been applied (or rejected). A
    redelivered event finds its row and is acknowledged without being
    processed again.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100)
    payload = models.JSONField(default=dict)
    result = models.CharField(
        max_length=20,
        choices=WebhookResultChoices.choices,
        default=WebhookResultChoices.RECEIVED
    )
    error_message = models.TextField(blank=True)
    received_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payment_webhook_event'
        verbose_name = 'Payment Webhook Event'
        verbose_name_plural = 'Payment Webhook Events'
        ordering = ['-received_at']
        indexes = [
            models.Index(fields=['event_type'], name='idx_webhook_event_type'),
        ]

    def __str__(self):
        return f"{self.event_type} {self.event_id}"
