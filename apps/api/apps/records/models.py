"""
Medical records models: record, record_version, record_attachment, record_audit_log
"""
import hashlib
import secrets
import time
import uuid

from django.conf import settings
from django.db import models

from apps.core.observability import metrics
from apps.core.utils import request_metadata


def _human_id(prefix):
    """``<PREFIX>-<epoch ms>-<9 random chars>``."""
    return f'{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}'


def generate_record_id():
    return _human_id('REC')


def generate_version_id():
    return _human_id('VER')


def content_hash(content):
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


class MedicalRecord(models.Model):
    """
    A patient's medical record. The clinical text lives in RecordVersion;
    ``current_version`` points at the latest one.

    Records are never hard-deleted: ``is_deleted`` hides them from patients
    and from default listings.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    record_id = models.CharField(
        max_length=40,
        unique=True,
        default=generate_record_id,
        editable=False,
        help_text='Human readable id (REC-<timestamp>-<random>)'
    )
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='medical_records'
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)
    current_version = models.ForeignKey(
        'RecordVersion',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_by = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.PROTECT,
        related_name='created_records'
    )
    last_modified_by = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='modified_records'
    )

    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='deleted_records'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'medical_record'
        verbose_name = 'Medical Record'
        verbose_name_plural = 'Medical Records'
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['patient', '-updated_at'], name='idx_record_patient_updated'),
            models.Index(fields=['created_by', '-created_at'], name='idx_record_creator_created'),
            models.Index(fields=['is_deleted'], name='idx_record_deleted'),
        ]

    def __str__(self):
        return f'{self.record_id} - {self.title}'


class RecordVersion(models.Model):
    """
    Immutable snapshot of a record's content.

    ``content_hash`` (SHA-256) and ``content_size`` (UTF-8 bytes) are computed
    on save; ``verify_integrity()`` recomputes the hash.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    version_id = models.CharField(
        max_length=40,
        unique=True,
        default=generate_version_id,
        editable=False
    )
    record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.CASCADE,
        related_name='versions'
    )
    version_number = models.PositiveIntegerField()
    content = models.TextField()
    content_hash = models.CharField(max_length=64, editable=False)
    content_size = models.PositiveIntegerField(default=0, editable=False)
    change_description = models.CharField(max_length=500, blank=True)
    created_by = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.PROTECT,
        related_name='record_versions'
    )
    is_approved = models.BooleanField(
        default=True,
        help_text='Versions are approved by their author on creation'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    previous_version = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'record_version'
        verbose_name = 'Record Version'
        verbose_name_plural = 'Record Versions'
        ordering = ['-version_number']
        constraints = [
            models.UniqueConstraint(
                fields=['record', 'version_number'],
                name='uniq_record_version_number'
            ),
            models.CheckConstraint(
                check=~models.Q(content=''),
                name='record_version_content_not_empty'
            ),
        ]
        indexes = [
            models.Index(fields=['content_hash'], name='idx_record_version_hash'),
        ]

    def __str__(self):
        return f'{self.version_id} (v{self.version_number})'

    def save(self, *args, **kwargs):
        self.content_hash = content_hash(self.content)
        self.content_size = len(self.content.encode('utf-8'))
        super().save(*args, **kwargs)

    def verify_integrity(self):
        return content_hash(self.content) == self.content_hash


class RecordAttachment(models.Model):
    """File attached to a record, stored in object storage under ``object_key``."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.CASCADE,
        related_name='attachments'
    )
    object_key = models.CharField(max_length=500, unique=True)
    file_name = models.CharField(max_length=255)
    content_type = models.CharField(max_length=100)
    size = models.PositiveIntegerField(help_text='Declared size in bytes')
    uploaded_by = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.SET_NULL,
        null=True,
        related_name='record_attachments'
    )
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'record_attachment'
        verbose_name = 'Record Attachment'
        verbose_name_plural = 'Record Attachments'
        ordering = ['-created_at']

    def __str__(self):
        return self.file_name


class RecordAuditActionChoices(models.TextChoices):
    CREATE_RECORD = 'CREATE_RECORD', 'Create record'
    READ_RECORD = 'READ_RECORD', 'Read record'
    UPDATE_RECORD = 'UPDATE_RECORD', 'Update record'
    DELETE_RECORD = 'DELETE_RECORD', 'Delete record'
    RESTORE_RECORD = 'RESTORE_RECORD', 'Restore record'
    CREATE_VERSION = 'CREATE_VERSION', 'Create version'
    VIEW_VERSION = 'VIEW_VERSION', 'View version'
    BACKUP_RECORD = 'BACKUP_RECORD', 'Backup record'
    UPLOAD_ATTACHMENT = 'UPLOAD_ATTACHMENT', 'Upload attachment'
    DELETE_ATTACHMENT = 'DELETE_ATTACHMENT', 'Delete attachment'
    ACCESS_PATIENT_RECORDS = 'ACCESS_PATIENT_RECORDS', 'Access patient records'


class RecordResourceTypeChoices(models.TextChoices):
    RECORD = 'RECORD', 'Record'
    VERSION = 'VERSION', 'Version'
    PATIENT = 'PATIENT', 'Patient'
    ATTACHMENT = 'ATTACHMENT', 'Attachment'


class RecordAuditLog(models.Model):
    """
    Audit trail of every access to and change of medical records.

    Rows are append-only. ``details`` never carries record content.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    action = models.CharField(max_length=30, choices=RecordAuditActionChoices.choices)
    resource_type = models.CharField(max_length=20, choices=RecordResourceTypeChoices.choices)
    resource_id = models.CharField(max_length=64, help_text='record_id, version_id, patient id or attachment id')
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='record_audit_logs'
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='record_audit_logs'
    )
    actor_role = models.CharField(max_length=20, blank=True)
    success = models.BooleanField(default=True)
    error_message = models.TextField(blank=True)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=200, blank=True)
    request_id = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'record_audit_log'
        verbose_name = 'Record Audit Log'
        verbose_name_plural = 'Record Audit Logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['resource_id', '-created_at'], name='idx_raudit_resource_created'),
            models.Index(fields=['patient', '-created_at'], name='idx_raudit_patient_created'),
            models.Index(fields=['actor', '-created_at'], name='idx_raudit_actor_created'),
            models.Index(fields=['action'], name='idx_raudit_action'),
        ]

    def __str__(self):
        return f'{self.action} {self.resource_id}'


def log_record_audit(
    actor,
    action,
    resource_type,
    resource_id,
    patient=None,
    success=True,
    error_message='',
    duration_ms=None,
    details=None,
    request=None
):
    """
    Helper function to create record audit log entries.

    Args:
        actor: User instance or None for system actions (backups)
        action: RecordAuditActionChoices value
        resource_type: RecordResourceTypeChoices value
        resource_id: record_id, version_id, patient id or attachment id
        patient: Patient the resource belongs to
        success: False for denied or failed operations
        details: JSON-serialisable dict, never record content
        request: Django request object (to capture IP/user-agent/request id)

    Returns:
        RecordAuditLog instance
    """
    request_info = request_metadata(request)
    audit_log = RecordAuditLog.objects.create(
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id),
        patient=patient,
        actor=actor if actor is not None and actor.is_authenticated else None,
        actor_role=actor.primary_role if actor is not None and actor.is_authenticated else 'system',
        success=success,
        error_message=error_message or '',
        duration_ms=duration_ms,
        details=details or {},
        ip_address=request_info.get('ip'),
        user_agent=request_info.get('user_agent', ''),
        request_id=request_info.get('request_id') or '',
    )
    metrics.record_audit_created_total.labels(
        action=action,
        success=str(success).lower()
    ).inc()
    return audit_log
