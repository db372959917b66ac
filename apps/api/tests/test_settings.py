"""
The suite runs on its own settings module: in-memory SQLite, inline
Celery, no backups.
"""
import pytest
from django.conf import settings
from django.db import connection


@pytest.mark.django_db
def test_database_is_sqlite():
    assert connection.vendor == 'sqlite'


def test_side_effects_are_local():
    assert settings.CELERY_TASK_ALWAYS_EAGER is True
    assert settings.RECORDS_BACKUP_ENABLED is False
    assert settings.EMAIL_BACKEND == 'django.core.mail.backends.locmem.EmailBackend'
