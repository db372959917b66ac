from django.contrib import admin

from .models import AssistantMessage, AssistantSession


@admin.register(AssistantSession)
class AssistantSessionAdmin(admin.ModelAdmin):
    list_display = ['id', 'owner', 'session_type', 'created_at', 'last_active_at']
    list_filter = ['session_type', 'created_at']
    readonly_fields = ['created_at', 'last_active_at']
    ordering = ['-last_active_at']


@admin.register(AssistantMessage)
class AssistantMessageAdmin(admin.ModelAdmin):
    list_display = ['session', 'role', 'created_at']
    list_filter = ['role']
    readonly_fields = ['created_at']
