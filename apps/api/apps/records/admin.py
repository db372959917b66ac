"""Medical records admin. Versions and audit entries are read-only."""
from django.contrib import admin
from .models import MedicalRecord, RecordAttachment, RecordAuditLog, RecordVersion


class RecordVersionInline(admin.TabularInline):
    model = RecordVersion
    fk_name = 'record'
    extra = 0
    fields = ['version_number', 'version_id', 'content_hash', 'content_size', 'created_by', 'created_at']
    readonly_fields = fields
    can_delete = False
    ordering = ['-version_number']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ['record_id', 'title', 'patient', 'created_by', 'is_deleted', 'updated_at']
    list_filter = ['is_deleted', 'created_at']
    search_fields = ['record_id', 'title', 'patient__name', 'created_by__name']
    readonly_fields = ['id', 'record_id', 'current_version', 'created_at', 'updated_at']
    inlines = [RecordVersionInline]
    ordering = ['-updated_at']


@admin.register(RecordAttachment)
class RecordAttachmentAdmin(admin.ModelAdmin):
    list_display = ['file_name', 'record', 'content_type', 'size', 'is_deleted', 'created_at']
    list_filter = ['is_deleted', 'content_type']
    search_fields = ['file_name', 'record__record_id']
    readonly_fields = ['id', 'object_key', 'created_at']


@admin.register(RecordAuditLog)
class RecordAuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'action', 'resource_type', 'resource_id', 'actor', 'actor_role', 'success']
    list_filter = ['action', 'resource_type', 'success', 'actor_role']
    search_fields = ['resource_id', 'actor__email', 'request_id']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
