"""Payments admin."""
from django.contrib import admin
from .models import Payment, PaymentWebhookEvent


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        'payment_intent_id', 'patient', 'session', 'slot_index',
        'amount', 'currency', 'status', 'succeeded_at', 'created_at'
    ]
    list_filter = ['status', 'currency', 'created_at']
    search_fields = ['payment_intent_id', 'patient__name', 'session__doctor__name']
    readonly_fields = ['id', 'payment_intent_id', 'metadata', 'created_at', 'updated_at']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']


@admin.register(PaymentWebhookEvent)
class PaymentWebhookEventAdmin(admin.ModelAdmin):
    list_display = ['event_id', 'event_type', 'result', 'received_at']
    list_filter = ['event_type', 'result']
    search_fields = ['event_id']
    readonly_fields = ['id', 'event_id', 'event_type', 'payload', 'result', 'error_message', 'received_at']

    def has_add_permission(self, request):
        return False
