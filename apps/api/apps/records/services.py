"""
Medical records services: versioned records, access rules, audit queries,
attachments, backups and exports.

Access rules:
- Doctors create, edit, delete and restore records of any patient.
- Patients read only their own, non-deleted records.
- Admins read everything and see audit activity of any doctor.

Every access, including denied ones, is written to RecordAuditLog.
"""
import difflib
import math
import time
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Max, Q
from django.utils import timezone
from rest_framework import status

from apps.authz.models import RoleChoices
from apps.core.exceptions import DomainError, ForbiddenError, NotFoundError
from apps.core.observability import metrics
from apps.core.observability.events import log_record_event
from apps.core.observability.tracing import trace_span
from apps.core.utils import enqueue
from apps.doctors.models import Doctor
from apps.patients.models import Patient
from apps.records import storage
from apps.records.models import (
    MedicalRecord,
    RecordAttachment,
    RecordAuditActionChoices as Action,
    RecordAuditLog,
    RecordResourceTypeChoices as Resource,
    RecordVersion,
    log_record_audit,
)

MAX_PAGE_SIZE = 100
BACKUP_FORMAT_VERSION = '1.0'


class RecordAccessDenied(ForbiddenError):
    """The caller may not see or change this medical record."""


class StorageUnavailableError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def _elapsed_ms(started):
    return int((time.monotonic() - started) * 1000)


def _roles(user):
    return user.role_names or {RoleChoices.PATIENT}


def _is_staff_reader(user):
    """Doctors and admins read every patient's records."""
    return bool(_roles(user) & {RoleChoices.DOCTOR, RoleChoices.ADMIN})


def _require_doctor(user):
    doctor = Doctor.objects.filter(user=user).first()
    if doctor is None:
        raise ForbiddenError('Doctor profile required to modify medical records')
    return doctor


def _deny(user, action, resource_type, resource_id, patient, request, message):
    metrics.record_access_denied_total.labels(role=user.primary_role).inc()
    log_record_audit(
        user, action, resource_type, resource_id,
        patient=patient, success=False, error_message=message, request=request,
    )
    raise RecordAccessDenied(message)


def _check_patient_access(user, patient, action, resource_type, resource_id, request):
    if _is_staff_reader(user) or (patient.user_id is not None and patient.user_id == user.pk):
        return
    _deny(user, action, resource_type, resource_id, patient, request,
          'You can only access your own medical records')


def _get_record(user, record_id, action, request, lock=False):
    """Record by ``record_id``. Deleted records do not exist for patients."""
    queryset = MedicalRecord.objects.select_related('patient', 'current_version', 'created_by', 'last_modified_by')
    if lock:
        queryset = queryset.select_for_update(of=('self',))
    record = queryset.filter(record_id=record_id).first()
    if record is None or (record.is_deleted and not _is_staff_reader(user)):
        raise NotFoundError('Medical record not found')
    _check_patient_access(user, record.patient, action, Resource.RECORD, record.record_id, request)
    return record


def _get_patient(patient_id):
    try:
        return Patient.objects.get(pk=patient_id)
    except (Patient.DoesNotExist, ValueError):
        raise NotFoundError('Patient not found')


def _paginate(queryset, page, limit):
    limit = max(1, min(int(limit or 10), MAX_PAGE_SIZE))
    page = max(1, int(page or 1))
    total = queryset.count()
    items = list(queryset[(page - 1) * limit:page * limit])
    return items, {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if total else 0,
    }


def _create_version(record, doctor, content, change_description):
    previous = record.current_version
    version = RecordVersion.objects.create(
        record=record,
        version_number=(
            (record.versions.aggregate(n=Max('version_number'))['n'] or 0) + 1
        ),
        content=content,
        change_description=change_description or '',
        created_by=doctor,
        is_approved=True,
        approved_at=timezone.now(),
        previous_version=previous,
    )
    record.current_version = version
    metrics.record_versions_created_total.inc()
    return version


def _queue_backup(record, version, user):
    if not settings.RECORDS_BACKUP_ENABLED:
        return
    from apps.records.tasks import backup_record_version

    transaction.on_commit(
        lambda: enqueue(backup_record_version, str(version.pk), str(user.pk) if user else None)
    )


# ============================================================================
# Records
# ============================================================================

@transaction.atomic
def create_record(user, patient_id, title, description='', tags=None, content=None,
                  change_description='', request=None):
    """
    Create a record for a patient; version 1 is created only when ``content`` is given.

    Raises:
        NotFoundError: unknown patient
        ForbiddenError: caller has no doctor profile
    """
    started = time.monotonic()
    doctor = _require_doctor(user)
    patient = _get_patient(patient_id)

    with trace_span('records.create', attributes={'has_content': bool(content)}):
        record = MedicalRecord.objects.create(
            patient=patient,
            title=title,
            description=description or '',
            tags=tags or [],
            created_by=doctor,
            last_modified_by=doctor,
        )
        version = None
        if content:
            version = _create_version(record, doctor, content, change_description or 'Initial version')
            record.save(update_fields=['current_version', 'updated_at'])

    log_record_audit(
        user, Action.CREATE_RECORD, Resource.RECORD, record.record_id,
        patient=patient, duration_ms=_elapsed_ms(started), request=request,
        details={'title': record.title, 'has_content': version is not None},
    )
    if version is not None:
        log_record_audit(
            user, Action.CREATE_VERSION, Resource.VERSION, version.version_id,
            patient=patient, request=request,
            details={'record_id': record.record_id, 'version_number': version.version_number},
        )
        _queue_backup(record, version, user)
    log_record_event('record_created', record, user, has_content=version is not None)
    return record


def list_patient_records(user, patient_id, page=1, limit=10, include_deleted=False, request=None):
    """
    One page of a patient's records, newest first.

    Deleted records are listed only for doctors/admins that ask for them.
    """
    started = time.monotonic()
    patient = _get_patient(patient_id)
    _check_patient_access(user, patient, Action.ACCESS_PATIENT_RECORDS, Resource.PATIENT, patient.pk, request)

    queryset = MedicalRecord.objects.filter(patient=patient).select_related(
        'current_version', 'created_by', 'last_modified_by'
    )
    if not (include_deleted and _is_staff_reader(user)):
        queryset = queryset.filter(is_deleted=False)

    records, pagination = _paginate(queryset.order_by('-updated_at'), page, limit)
    log_record_audit(
        user, Action.ACCESS_PATIENT_RECORDS, Resource.PATIENT, patient.pk,
        patient=patient, duration_ms=_elapsed_ms(started), request=request,
        details={'returned': len(records), 'include_deleted': bool(include_deleted)},
    )
    return records, pagination


def get_record(user, record_id, request=None):
    started = time.monotonic()
    record = _get_record(user, record_id, Action.READ_RECORD, request)
    log_record_audit(
        user, Action.READ_RECORD, Resource.RECORD, record.record_id,
        patient=record.patient, duration_ms=_elapsed_ms(started), request=request,
        details={'version_number': record.current_version.version_number if record.current_version else None},
    )
    return record


@transaction.atomic
def update_record(user, record_id, data, request=None):
    """
    Update record metadata and, when ``data['content']`` differs from the
    current version, add a new version and queue its backup.

    Returns:
        tuple: (MedicalRecord, new RecordVersion or None)
    """
    started = time.monotonic()
    doctor = _require_doctor(user)
    record = _get_record(user, record_id, Action.UPDATE_RECORD, request, lock=True)
    if record.is_deleted:
        raise DomainError('Cannot update a deleted record; restore it first')

    changed_fields = []
    for field in ('title', 'description', 'tags'):
        if field in data and data[field] != getattr(record, field):
            setattr(record, field, data[field])
            changed_fields.append(field)

    version = None
    content = data.get('content')
    current_content = record.current_version.content if record.current_version else None
    if content and content != current_content:
        version = _create_version(record, doctor, content, data.get('change_description', ''))
        changed_fields.append('content')

    record.last_modified_by = doctor
    record.save()

    log_record_audit(
        user, Action.UPDATE_RECORD, Resource.RECORD, record.record_id,
        patient=record.patient, duration_ms=_elapsed_ms(started), request=request,
        details={'changed_fields': changed_fields},
    )
    if version is not None:
        log_record_audit(
            user, Action.CREATE_VERSION, Resource.VERSION, version.version_id,
            patient=record.patient, request=request,
            details={'record_id': record.record_id, 'version_number': version.version_number},
        )
        _queue_backup(record, version, user)
    log_record_event('record_updated', record, user, changed_fields=changed_fields)
    return record, version


@transaction.atomic
def delete_record(user, record_id, request=None):
    """Soft delete; versions and attachments are kept."""
    doctor = _require_doctor(user)
    record = _get_record(user, record_id, Action.DELETE_RECORD, request, lock=True)
    if record.is_deleted:
        raise DomainError('Record is already deleted')

    record.is_deleted = True
    record.deleted_at = timezone.now()
    record.deleted_by = doctor
    record.save(update_fields=['is_deleted', 'deleted_at', 'deleted_by', 'updated_at'])

    log_record_audit(
        user, Action.DELETE_RECORD, Resource.RECORD, record.record_id,
        patient=record.patient, request=request,
    )
    log_record_event('record_deleted', record, user)
    return record


@transaction.atomic
def restore_record(user, record_id, request=None):
    doctor = _require_doctor(user)
    record = _get_record(user, record_id, Action.RESTORE_RECORD, request, lock=True)
    if not record.is_deleted:
        raise DomainError('Record is not deleted')

    record.is_deleted = False
    record.deleted_at = None
    record.deleted_by = None
    record.last_modified_by = doctor
    record.save(update_fields=['is_deleted', 'deleted_at', 'deleted_by', 'last_modified_by', 'updated_at'])

    log_record_audit(
        user, Action.RESTORE_RECORD, Resource.RECORD, record.record_id,
        patient=record.patient, request=request,
    )
    log_record_event('record_restored', record, user)
    return record


# ============================================================================
# Versions
# ============================================================================

def list_versions(user, record_id, request=None):
    """Version history, newest first (content is deferred)."""
    record = _get_record(user, record_id, Action.VIEW_VERSION, request)
    versions = (
        record.versions.select_related('created_by')
        .defer('content')
        .order_by('-version_number')
    )
    return record, versions


def get_version(user, record_id, version_number, request=None):
    """
    One version with its integrity check and a unified diff against the
    previous version.

    Returns:
        dict: {'version', 'integrity_verified', 'diff'}
    """
    started = time.monotonic()
    record = _get_record(user, record_id, Action.VIEW_VERSION, request)
    version = (
        record.versions.select_related('created_by', 'previous_version')
        .filter(version_number=version_number)
        .first()
    )
    if version is None:
        raise NotFoundError(f'Version {version_number} not found')

    integrity_verified = version.verify_integrity()
    diff = None
    previous = version.previous_version
    if previous is not None:
        diff = {
            'previous_version': previous.version_number,
            'current_version': version.version_number,
            'change_description': version.change_description,
            'unified_diff': ''.join(difflib.unified_diff(
                previous.content.splitlines(keepends=True),
                version.content.splitlines(keepends=True),
                fromfile=f'v{previous.version_number}',
                tofile=f'v{version.version_number}',
            )),
        }

    log_record_audit(
        user, Action.VIEW_VERSION, Resource.VERSION, version.version_id,
        patient=record.patient, duration_ms=_elapsed_ms(started), request=request,
        details={'record_id': record.record_id, 'version_number': version.version_number,
                 'integrity_verified': integrity_verified},
    )
    if not integrity_verified:
        log_record_event('record_integrity_mismatch', record, user, result='warning',
                         version_number=version.version_number)
    return {'version': version, 'integrity_verified': integrity_verified, 'diff': diff}


# ============================================================================
# Audit queries
# ============================================================================

def _apply_date_range(queryset, start_date, end_date):
    if start_date:
        queryset = queryset.filter(created_at__date__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__date__lte=end_date)
    return queryset


def _action_counts(queryset):
    rows = queryset.order_by().values('action').annotate(count=Count('id'))
    return {row['action']: row['count'] for row in rows}


def record_audit(record_id, limit=100):
    """Audit entries for one record and its versions."""
    record = MedicalRecord.objects.filter(record_id=record_id).first()
    if record is None:
        raise NotFoundError('Medical record not found')
    version_ids = list(record.versions.values_list('version_id', flat=True))
    attachment_ids = [str(pk) for pk in record.attachments.values_list('id', flat=True)]
    queryset = RecordAuditLog.objects.filter(
        resource_id__in=[record.record_id, *version_ids, *attachment_ids]
    ).select_related('actor')
    return record, list(queryset.order_by('-created_at')[:limit])


def patient_audit(patient_id, actions=None, start_date=None, end_date=None, limit=200):
    patient = _get_patient(patient_id)
    queryset = RecordAuditLog.objects.filter(patient=patient).select_related('actor')
    if actions:
        queryset = queryset.filter(action__in=actions)
    queryset = _apply_date_range(queryset, start_date, end_date)
    return patient, list(queryset.order_by('-created_at')[:limit]), _action_counts(queryset)


def doctor_activity(user, doctor_id, start_date=None, end_date=None, limit=200):
    """
    Audit entries performed by one doctor with counts per action.
    Only that doctor or an admin may look.
    """
    try:
        doctor = Doctor.objects.get(pk=doctor_id)
    except (Doctor.DoesNotExist, ValueError):
        raise NotFoundError('Doctor not found')
    if RoleChoices.ADMIN not in _roles(user) and doctor.user_id != user.pk:
        raise ForbiddenError('You can only view your own activity')

    queryset = RecordAuditLog.objects.filter(actor_id=doctor.user_id) if doctor.user_id else RecordAuditLog.objects.none()
    queryset = _apply_date_range(queryset.select_related('patient'), start_date, end_date)
    return doctor, list(queryset.order_by('-created_at')[:limit]), _action_counts(queryset)


# ============================================================================
# Attachments
# ============================================================================

@transaction.atomic
def create_attachment_upload(user, record_id, file_name, content_type, size, request=None):
    """
    Register an attachment and return a presigned PUT URL for the upload.

    Returns:
        tuple: (RecordAttachment, upload_url)
    """
    doctor = _require_doctor(user)
    record = _get_record(user, record_id, Action.UPLOAD_ATTACHMENT, request)
    if record.is_deleted:
        raise DomainError('Cannot attach files to a deleted record')
    if size > settings.RECORDS_ATTACHMENT_MAX_BYTES:
        raise DomainError(
            'File too large',
            max_bytes=settings.RECORDS_ATTACHMENT_MAX_BYTES,
        )

    object_key = storage.generate_object_key(f'records/{record.record_id}', file_name)
    try:
        upload_url = storage.generate_presigned_put_url(settings.MINIO_RECORDS_BUCKET, object_key)
    except storage.StorageError as exc:
        raise StorageUnavailableError(str(exc))

    attachment = RecordAttachment.objects.create(
        record=record,
        object_key=object_key,
        file_name=file_name,
        content_type=content_type,
        size=size,
        uploaded_by=doctor,
    )
    log_record_audit(
        user, Action.UPLOAD_ATTACHMENT, Resource.ATTACHMENT, attachment.pk,
        patient=record.patient, request=request,
        details={'record_id': record.record_id, 'content_type': content_type, 'size': size},
    )
    return attachment, upload_url


def _get_attachment(record, attachment_id):
    try:
        return record.attachments.get(pk=attachment_id, is_deleted=False)
    except (RecordAttachment.DoesNotExist, ValueError):
        raise NotFoundError('Attachment not found')


def list_attachments(user, record_id, request=None):
    record = _get_record(user, record_id, Action.READ_RECORD, request)
    return record.attachments.filter(is_deleted=False).select_related('uploaded_by')


def attachment_download_url(user, record_id, attachment_id, request=None):
    record = _get_record(user, record_id, Action.READ_RECORD, request)
    attachment = _get_attachment(record, attachment_id)
    try:
        url = storage.generate_presigned_get_url(settings.MINIO_RECORDS_BUCKET, attachment.object_key)
    except storage.StorageError as exc:
        raise StorageUnavailableError(str(exc))
    return attachment, url


@transaction.atomic
def delete_attachment(user, record_id, attachment_id, request=None):
    """Soft delete; the stored object is retained with the record history."""
    _require_doctor(user)
    record = _get_record(user, record_id, Action.DELETE_ATTACHMENT, request)
    attachment = _get_attachment(record, attachment_id)
    attachment.is_deleted = True
    attachment.deleted_at = timezone.now()
    attachment.save(update_fields=['is_deleted', 'deleted_at'])
    log_record_audit(
        user, Action.DELETE_ATTACHMENT, Resource.ATTACHMENT, attachment.pk,
        patient=record.patient, request=request,
        details={'record_id': record.record_id},
    )
    return attachment


# ============================================================================
# Backups and exports
# ============================================================================

def _person(doctor):
    if doctor is None:
        return None
    return {'id': str(doctor.pk), 'name': doctor.name, 'specialization': doctor.specialization}


def _version_payload(version, with_content=True):
    payload = {
        'version_id': version.version_id,
        'version_number': version.version_number,
        'content_hash': version.content_hash,
        'content_size': version.content_size,
        'change_description': version.change_description,
        'created_by': _person(version.created_by),
        'created_at': version.created_at,
    }
    if with_content:
        payload['content'] = version.content
    return payload


def _record_payload(record):
    return {
        'record_id': record.record_id,
        'title': record.title,
        'description': record.description,
        'tags': record.tags,
        'created_by': _person(record.created_by),
        'last_modified_by': _person(record.last_modified_by),
        'is_deleted': record.is_deleted,
        'created_at': record.created_at,
        'updated_at': record.updated_at,
    }


def _patient_payload(patient):
    return {'id': str(patient.pk), 'name': patient.name, 'email': patient.email}


def write_backup(record, version, triggered_by=None):
    """
    Write one record version as a JSON object to the backups bucket.

    Returns:
        dict: {'key', 'etag', 'version_id', 'size'}

    Raises:
        StorageUnavailableError: upload failed (audited as a failed backup)
    """
    started = time.monotonic()
    key = storage.backup_key(record.patient_id, record.record_id, version.version_number)
    data = {
        'backup': {
            'timestamp': timezone.now(),
            'triggered_by': str(triggered_by.pk) if triggered_by else 'system',
            'backup_version': BACKUP_FORMAT_VERSION,
        },
        'record': _record_payload(record),
        'patient': _patient_payload(record.patient),
        'version': _version_payload(version),
    }
    metadata = {
        'patient-id': str(record.patient_id),
        'record-id': record.record_id,
        'version-number': str(version.version_number),
    }

    try:
        with trace_span('records.backup', kind='client', attributes={'version_number': version.version_number}):
            result = storage.put_json(settings.MINIO_BACKUPS_BUCKET, key, data, metadata)
    except storage.StorageError as exc:
        metrics.record_backups_total.labels(result='failure').inc()
        log_record_audit(
            triggered_by, Action.BACKUP_RECORD, Resource.RECORD, record.record_id,
            patient=record.patient, success=False, error_message=str(exc),
            duration_ms=_elapsed_ms(started),
            details={'version_number': version.version_number},
        )
        log_record_event('record_backup_failed', record, triggered_by, result='failure')
        raise StorageUnavailableError('Backup failed: object storage unavailable')

    metrics.record_backups_total.labels(result='success').inc()
    log_record_audit(
        triggered_by, Action.BACKUP_RECORD, Resource.RECORD, record.record_id,
        patient=record.patient, duration_ms=_elapsed_ms(started),
        details={'version_number': version.version_number, 'key': key, 'size': result['size']},
    )
    log_record_event('record_backed_up', record, triggered_by, version_number=version.version_number)
    return result


def backup_record(user, record_id, request=None):
    """Back up the current version of a record now."""
    if not settings.RECORDS_BACKUP_ENABLED:
        raise DomainError('Record backups are not enabled')
    _require_doctor(user)
    record = _get_record(user, record_id, Action.BACKUP_RECORD, request)
    if record.current_version is None:
        raise DomainError('Record has no version to back up')
    return write_backup(record, record.current_version, triggered_by=user)


def list_patient_backups(patient_id, limit=100):
    patient = _get_patient(patient_id)
    if not settings.RECORDS_BACKUP_ENABLED:
        return patient, []
    try:
        backups = storage.list_objects(
            settings.MINIO_BACKUPS_BUCKET, f'patients/{patient.pk}/records/', limit=limit
        )
    except storage.StorageError as exc:
        raise StorageUnavailableError(str(exc))
    return patient, backups


def export_patient_history(user, patient_id, request=None):
    """
    Upload the patient's complete history (every non-deleted record with all
    its versions) as one JSON object and return a download URL.
    """
    if not settings.RECORDS_BACKUP_ENABLED:
        raise DomainError('Record backups are not enabled')
    patient = _get_patient(patient_id)

    records = (
        MedicalRecord.objects.filter(patient=patient, is_deleted=False)
        .select_related('created_by', 'last_modified_by')
        .prefetch_related('versions__created_by')
        .order_by('created_at')
    )
    history = []
    total_versions = 0
    for record in records:
        versions = sorted(record.versions.all(), key=lambda v: -v.version_number)
        total_versions += len(versions)
        history.append({
            'record': _record_payload(record),
            'versions': [_version_payload(v) for v in versions],
        })

    now = timezone.now()
    data = {
        'export': {
            'timestamp': now,
            'format': 'json',
            'patient_id': str(patient.pk),
            'total_records': len(history),
            'total_versions': total_versions,
        },
        'patient': _patient_payload(patient),
        'medical_history': history,
    }
    key = storage.export_key(patient.pk, int(now.timestamp() * 1000))
    try:
        result = storage.put_json(settings.MINIO_BACKUPS_BUCKET, key, data, {'export-type': 'complete-history'})
        download_url = storage.generate_presigned_get_url(settings.MINIO_BACKUPS_BUCKET, key)
    except storage.StorageError as exc:
        raise StorageUnavailableError(str(exc))

    log_record_audit(
        user, Action.ACCESS_PATIENT_RECORDS, Resource.PATIENT, patient.pk,
        patient=patient, request=request,
        details={'export_key': key, 'total_records': len(history)},
    )
    return {
        'export_key': key,
        'download_url': download_url,
        'total_records': len(history),
        'total_versions': total_versions,
        'export_size': result['size'],
    }


def backup_stats(days=30):
    """Backup outcomes from the audit trail."""
    since = timezone.now() - timedelta(days=days)
    backups = RecordAuditLog.objects.filter(action=Action.BACKUP_RECORD)
    recent = backups.filter(created_at__gte=since)
    last = backups.filter(success=True).order_by('-created_at').values_list('created_at', flat=True).first()
    return {
        'enabled': settings.RECORDS_BACKUP_ENABLED,
        'bucket': settings.MINIO_BACKUPS_BUCKET,
        'total_backups': backups.filter(success=True).count(),
        'failed_backups': backups.filter(success=False).count(),
        'period_days': days,
        'recent_successful': recent.filter(success=True).count(),
        'recent_failed': recent.filter(success=False).count(),
        'last_backup_at': last,
    }


# ============================================================================
# Search and health
# ============================================================================

def search_records(query=None, patient_id=None, tags=None, date_from=None, date_to=None,
                   page=1, limit=10):
    """
    Non-deleted records matching ``query`` (title/description) and any of ``tags``.
    """
    queryset = MedicalRecord.objects.filter(is_deleted=False).select_related(
        'patient', 'current_version', 'created_by', 'last_modified_by'
    )
    if query:
        queryset = queryset.filter(Q(title__icontains=query) | Q(description__icontains=query))
    if patient_id:
        queryset = queryset.filter(patient_id=patient_id)
    if tags:
        tag_filter = Q()
        for tag in tags:
            # Matches the quoted element inside the stored JSON array.
            tag_filter |= Q(tags__icontains=f'"{tag}"')
        queryset = queryset.filter(tag_filter)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)
    return _paginate(queryset.order_by('-updated_at'), page, limit)


def health():
    return {
        'status': 'healthy',
        'backup_enabled': settings.RECORDS_BACKUP_ENABLED,
        'counts': {
            'records': MedicalRecord.objects.count(),
            'active_records': MedicalRecord.objects.filter(is_deleted=False).count(),
            'versions': RecordVersion.objects.count(),
            'audit_logs': RecordAuditLog.objects.count(),
        },
    }
