"""Scheduling admin."""
from django.contrib import admin
from .models import Session, TimeSlot


class TimeSlotInline(admin.TabularInline):
    model = TimeSlot
    extra = 0
    fields = ['position', 'start_time', 'end_time', 'status', 'appointment_status', 'patient', 'payment_intent_id']
    readonly_fields = ['patient', 'payment_intent_id']
    ordering = ['position']


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ['date', 'doctor', 'type', 'hospital', 'fee', 'created_at']
    list_filter = ['type', 'date']
    search_fields = ['doctor__name', 'hospital__name']
    date_hierarchy = 'date'
    inlines = [TimeSlotInline]
    ordering = ['-date']


@admin.register(TimeSlot)
class TimeSlotAdmin(admin.ModelAdmin):
    list_display = [
        'session', 'position', 'start_time', 'end_time',
        'status', 'appointment_status', 'patient', 'booked_at'
    ]
    list_filter = ['status', 'appointment_status']
    search_fields = ['session__doctor__name', 'patient__name', 'payment_intent_id']
    readonly_fields = ['payment_intent_id', 'payment_amount', 'payment_currency', 'payment_date', 'booked_at']
    ordering = ['-booked_at']
