"""
Celery tasks for medical record backups.
"""
import logging

from celery import shared_task
from django.conf import settings

from apps.records.services import StorageUnavailableError, write_backup

logger = logging.getLogger(__name__)


@shared_task(
    name='apps.records.tasks.backup_record_version',
    autoretry_for=(StorageUnavailableError,),
    retry_backoff=True,
    max_retries=3,
)
def backup_record_version(version_id, triggered_by_id=None):
    """Write one record version to the backups bucket."""
    from apps.authz.models import User
    from apps.records.models import RecordVersion

    if not settings.RECORDS_BACKUP_ENABLED:
        logger.info('Record backup skipped: backups disabled', extra={'event': 'record_backup_skipped'})
        return None

    version = (
        RecordVersion.objects.select_related('record__patient', 'record__created_by',
                                             'record__last_modified_by', 'created_by')
        .filter(pk=version_id)
        .first()
    )
    if version is None:
        logger.warning('Record backup skipped: version not found', extra={'version_ref': str(version_id)})
        return None

    triggered_by = User.objects.filter(pk=triggered_by_id).first() if triggered_by_id else None
    result = write_backup(version.record, version, triggered_by=triggered_by)
    return result['key']
