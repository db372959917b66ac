"""
Tests for medical records: versions, access rules, audit trail,
attachments, backups and exports.

Object storage is mocked at the apps.records.storage boundary.
"""
from unittest.mock import patch

import pytest

from apps.authz.models import RoleChoices
from apps.records import services
from apps.records.models import (
    MedicalRecord,
    RecordAttachment,
    RecordAuditActionChoices as Action,
    RecordAuditLog,
    RecordVersion,
)
from apps.records.storage import StorageError
from apps.records.tasks import backup_record_version


@pytest.fixture
def record(doctor_user, doctor, patient):
    return services.create_record(
        doctor_user,
        patient.id,
        title='Cardiology consultation',
        description='Chest pain follow-up',
        tags=['cardiology', 'follow-up'],
        content='BP 130/85\nECG normal\n',
    )


@pytest.fixture
def versioned_record(record, doctor_user):
    services.update_record(doctor_user, record.record_id, {
        'content': 'BP 120/80\nECG normal\n',
        'change_description': 'Repeat reading',
    })
    record.refresh_from_db()
    return record


@pytest.fixture
def backups_enabled(settings):
    settings.RECORDS_BACKUP_ENABLED = True
    return settings


def _put_result(key='patients/x/records/y/v1.json'):
    return {'key': key, 'etag': 'etag-1', 'version_id': None, 'size': 512}


@pytest.mark.django_db
class TestCreateRecord:
    """POST /api/v1/patients/{patient_id}/records/"""

    def test_doctor_creates_record_with_first_version(self, doctor_client, patient):
        response = doctor_client.post(f'/api/v1/patients/{patient.id}/records/', {
            'title': 'Initial assessment',
            'tags': ['general'],
            'content': 'Patient reports mild headache.',
        }, format='json')

        assert response.status_code == 201
        assert response.data['record_id'].startswith('REC-')
        version = response.data['current_version']
        assert version['version_number'] == 1
        assert version['change_description'] == 'Initial version'
        assert len(version['content_hash']) == 64
        assert version['content'] == 'Patient reports mild headache.'

        actions = set(RecordAuditLog.objects.values_list('action', flat=True))
        assert {Action.CREATE_RECORD, Action.CREATE_VERSION} <= actions

    def test_record_without_content_has_no_version(self, doctor_client, patient):
        response = doctor_client.post(
            f'/api/v1/patients/{patient.id}/records/', {'title': 'Placeholder'}, format='json'
        )

        assert response.status_code == 201
        assert response.data['current_version'] is None
        assert not RecordVersion.objects.exists()

    def test_patient_cannot_create(self, patient_client, patient):
        response = patient_client.post(
            f'/api/v1/patients/{patient.id}/records/', {'title': 'Self note'}, format='json'
        )
        assert response.status_code == 403

    def test_doctor_role_without_profile(self, user_factory, patient):
        user = user_factory(email='noprofile@test.com', roles=[RoleChoices.DOCTOR])

        with pytest.raises(services.ForbiddenError):
            services.create_record(user, patient.id, title='X', content='y')

    def test_unknown_patient(self, doctor_client):
        response = doctor_client.post(
            '/api/v1/patients/00000000-0000-0000-0000-000000000000/records/',
            {'title': 'Ghost'},
            format='json'
        )
        assert response.status_code == 404


@pytest.mark.django_db
class TestRecordAccess:
    """GET /api/v1/records/{record_id}/ and patient listings"""

    def test_patient_reads_own_record(self, patient_client, record):
        response = patient_client.get(f'/api/v1/records/{record.record_id}/')

        assert response.status_code == 200
        assert response.data['patient_name'] == 'Sunil Fernando'
        assert response.data['current_version']['content'] == 'BP 130/85\nECG normal\n'

    def test_other_patient_denied_and_audited(self, other_patient_client, record):
        response = other_patient_client.get(f'/api/v1/records/{record.record_id}/')

        assert response.status_code == 403
        denied = RecordAuditLog.objects.get(action=Action.READ_RECORD, success=False)
        assert denied.resource_id == record.record_id
        assert denied.actor_role == 'patient'

    def test_doctor_reads_any_record(self, other_doctor_client, record):
        assert other_doctor_client.get(f'/api/v1/records/{record.record_id}/').status_code == 200

    def test_unknown_record(self, doctor_client):
        assert doctor_client.get('/api/v1/records/REC-0-missing/').status_code == 404

    def test_list_patient_records_paginated(self, doctor_user, doctor_client, patient, record):
        services.create_record(doctor_user, patient.id, title='Second visit')

        response = doctor_client.get(f'/api/v1/patients/{patient.id}/records/?limit=1')

        assert response.status_code == 200
        assert response.data['pagination'] == {'page': 1, 'limit': 1, 'total': 2, 'pages': 2}
        assert response.data['records'][0]['title'] == 'Second visit'
        assert 'content' not in (response.data['records'][0]['current_version'] or {})

    def test_patient_cannot_list_other_patient(self, other_patient_client, patient, record):
        response = other_patient_client.get(f'/api/v1/patients/{patient.id}/records/')
        assert response.status_code == 403


@pytest.mark.django_db
class TestUpdateRecord:
    """PUT /api/v1/records/{record_id}/"""

    def test_changed_content_creates_version(self, doctor_client, record):
        response = doctor_client.put(f'/api/v1/records/{record.record_id}/', {
            'content': 'BP 118/76\n',
            'change_description': 'Medication adjusted',
        }, format='json')

        assert response.status_code == 200
        assert response.data['new_version_created'] is True
        assert response.data['record']['current_version']['version_number'] == 2

        latest = RecordVersion.objects.get(record=record, version_number=2)
        assert latest.previous_version.version_number == 1

    def test_same_content_does_not_create_version(self, doctor_client, record):
        response = doctor_client.put(f'/api/v1/records/{record.record_id}/', {
            'title': 'Renamed consultation',
            'content': 'BP 130/85\nECG normal\n',
        }, format='json')

        assert response.status_code == 200
        assert response.data['new_version_created'] is False
        assert response.data['record']['title'] == 'Renamed consultation'
        assert record.versions.count() == 1

    def test_other_doctor_may_edit_and_is_recorded(self, other_doctor_client, other_doctor, record):
        response = other_doctor_client.patch(
            f'/api/v1/records/{record.record_id}/', {'tags': ['cardiology']}, format='json'
        )

        assert response.status_code == 200
        assert response.data['record']['last_modified_by'] == other_doctor.id
        record.refresh_from_db()
        assert record.last_modified_by == other_doctor

    def test_patient_cannot_update(self, patient_client, record):
        response = patient_client.put(
            f'/api/v1/records/{record.record_id}/', {'title': 'Mine'}, format='json'
        )
        assert response.status_code == 403

    def test_deleted_record_must_be_restored_first(self, doctor_user, doctor_client, record):
        services.delete_record(doctor_user, record.record_id)

        response = doctor_client.put(
            f'/api/v1/records/{record.record_id}/', {'title': 'Too late'}, format='json'
        )

        assert response.status_code == 400


@pytest.mark.django_db
class TestVersions:
    """/api/v1/records/{record_id}/versions/"""

    def test_history_newest_first_without_content(self, doctor_client, versioned_record):
        response = doctor_client.get(f'/api/v1/records/{versioned_record.record_id}/versions/')

        assert response.status_code == 200
        assert response.data['count'] == 2
        assert [v['version_number'] for v in response.data['versions']] == [2, 1]
        assert 'content' not in response.data['versions'][0]

    def test_version_detail_with_diff(self, patient_client, versioned_record):
        response = patient_client.get(f'/api/v1/records/{versioned_record.record_id}/versions/2/')

        assert response.status_code == 200
        assert response.data['integrity_verified'] is True
        diff = response.data['diff']
        assert diff['previous_version'] == 1
        assert diff['change_description'] == 'Repeat reading'
        assert '-BP 130/85' in diff['unified_diff']
        assert '+BP 120/80' in diff['unified_diff']

    def test_first_version_has_no_diff(self, doctor_client, record):
        response = doctor_client.get(f'/api/v1/records/{record.record_id}/versions/1/')
        assert response.data['diff'] is None

    def test_tampered_content_fails_integrity(self, doctor_client, record):
        # update() bypasses save(), so the stored hash is left stale
        RecordVersion.objects.filter(record=record).update(content='BP 90/60\n')

        response = doctor_client.get(f'/api/v1/records/{record.record_id}/versions/1/')

        assert response.data['integrity_verified'] is False

    def test_unknown_version(self, doctor_client, record):
        response = doctor_client.get(f'/api/v1/records/{record.record_id}/versions/9/')
        assert response.status_code == 404


@pytest.mark.django_db
class TestDeleteAndRestore:

    def test_soft_delete_hides_record_from_patient(self, doctor_client, patient_client, record):
        assert doctor_client.delete(f'/api/v1/records/{record.record_id}/').status_code == 204

        record.refresh_from_db()
        assert record.is_deleted is True
        assert record.versions.count() == 1
        assert patient_client.get(f'/api/v1/records/{record.record_id}/').status_code == 404

        response = doctor_client.get(f'/api/v1/records/{record.record_id}/')
        assert response.status_code == 200
        assert response.data['is_deleted'] is True

    def test_include_deleted_only_for_doctors(self, doctor_user, doctor_client, patient_client, patient, record):
        services.delete_record(doctor_user, record.record_id)

        doctor_view = doctor_client.get(f'/api/v1/patients/{patient.id}/records/?include_deleted=true')
        patient_view = patient_client.get(f'/api/v1/patients/{patient.id}/records/?include_deleted=true')

        assert doctor_view.data['pagination']['total'] == 1
        assert patient_view.data['pagination']['total'] == 0

    def test_restore(self, doctor_user, doctor_client, record):
        services.delete_record(doctor_user, record.record_id)

        response = doctor_client.post(f'/api/v1/records/{record.record_id}/restore/')

        assert response.status_code == 200
        assert response.data['is_deleted'] is False
        assert response.data['deleted_at'] is None

    def test_restore_active_record_rejected(self, doctor_client, record):
        response = doctor_client.post(f'/api/v1/records/{record.record_id}/restore/')
        assert response.status_code == 400

    def test_delete_twice_rejected(self, doctor_client, record):
        doctor_client.delete(f'/api/v1/records/{record.record_id}/')
        assert doctor_client.delete(f'/api/v1/records/{record.record_id}/').status_code == 400


@pytest.mark.django_db
class TestAuditQueries:

    def test_record_audit_includes_versions(self, doctor_client, versioned_record):
        response = doctor_client.get(f'/api/v1/records/{versioned_record.record_id}/audit/')

        assert response.status_code == 200
        actions = [log['action'] for log in response.data['audit_logs']]
        assert actions.count(Action.CREATE_VERSION) == 2
        assert Action.UPDATE_RECORD in actions

    def test_patient_cannot_read_audit(self, patient_client, record):
        assert patient_client.get(f'/api/v1/records/{record.record_id}/audit/').status_code == 403

    def test_patient_audit_filters_actions(self, doctor_client, patient_client, patient, record):
        patient_client.get(f'/api/v1/records/{record.record_id}/')

        response = doctor_client.get(
            f'/api/v1/patients/{patient.id}/records/audit/?actions=read_record'
        )

        assert response.status_code == 200
        assert {log['action'] for log in response.data['audit_logs']} == {Action.READ_RECORD}
        assert response.data['summary'] == {Action.READ_RECORD: 1}

    def test_patient_audit_rejects_unknown_action(self, doctor_client, patient):
        response = doctor_client.get(f'/api/v1/patients/{patient.id}/records/audit/?actions=PEEK')
        assert response.status_code == 400

    def test_doctor_activity_own_and_admin(self, doctor_client, admin_client, doctor, record):
        own = doctor_client.get(f'/api/v1/doctors/{doctor.id}/activity/')
        assert own.status_code == 200
        assert own.data['summary'][Action.CREATE_RECORD] == 1

        assert admin_client.get(f'/api/v1/doctors/{doctor.id}/activity/').status_code == 200

    def test_doctor_cannot_view_colleague_activity(self, other_doctor_client, doctor):
        response = other_doctor_client.get(f'/api/v1/doctors/{doctor.id}/activity/')
        assert response.status_code == 403


@pytest.mark.django_db
class TestSearch:
    """GET /api/v1/records/search/"""

    @pytest.fixture
    def records(self, doctor_user, patient, other_patient, record):
        services.create_record(doctor_user, other_patient.id, title='Skin rash', tags=['dermatology'])

    def test_text_query(self, doctor_client, records):
        response = doctor_client.get('/api/v1/records/search/?query=chest')

        assert response.status_code == 200
        assert [r['title'] for r in response.data['records']] == ['Cardiology consultation']

    def test_any_tag_matches(self, doctor_client, records):
        response = doctor_client.get('/api/v1/records/search/?tags=dermatology,follow-up')
        assert response.data['pagination']['total'] == 2

    def test_patient_filter(self, doctor_client, other_patient, records):
        response = doctor_client.get(f'/api/v1/records/search/?patient_id={other_patient.id}')
        assert [r['title'] for r in response.data['records']] == ['Skin rash']

    def test_deleted_records_excluded(self, doctor_user, doctor_client, record):
        services.delete_record(doctor_user, record.record_id)

        response = doctor_client.get('/api/v1/records/search/?query=cardiology')

        assert response.data['pagination']['total'] == 0

    def test_doctors_only(self, patient_client, admin_client):
        assert patient_client.get('/api/v1/records/search/').status_code == 403
        assert admin_client.get('/api/v1/records/search/').status_code == 403


@pytest.mark.django_db
class TestAttachments:
    """/api/v1/records/{record_id}/attachments/"""

    @patch('apps.records.storage.generate_presigned_put_url', return_value='https://minio.test/put')
    def test_upload_returns_presigned_url(self, mock_put, doctor_client, record):
        response = doctor_client.post(f'/api/v1/records/{record.record_id}/attachments/', {
            'file_name': 'ecg scan.pdf',
            'content_type': 'application/pdf',
            'size': 2048,
        }, format='json')

        assert response.status_code == 201
        assert response.data['upload_url'] == 'https://minio.test/put'
        attachment = RecordAttachment.objects.get()
        assert attachment.object_key.startswith(f'records/{record.record_id}/')
        assert attachment.object_key.endswith('_ecgscan.pdf')

    def test_file_too_large(self, doctor_client, record, settings):
        settings.RECORDS_ATTACHMENT_MAX_BYTES = 1024

        response = doctor_client.post(f'/api/v1/records/{record.record_id}/attachments/', {
            'file_name': 'mri.dcm',
            'content_type': 'application/dicom',
            'size': 4096,
        }, format='json')

        assert response.status_code == 400
        assert response.data['max_bytes'] == 1024

    @patch('apps.records.storage.generate_presigned_put_url', side_effect=StorageError('down'))
    def test_storage_unavailable(self, mock_put, doctor_client, record):
        response = doctor_client.post(f'/api/v1/records/{record.record_id}/attachments/', {
            'file_name': 'x.pdf',
            'content_type': 'application/pdf',
            'size': 10,
        }, format='json')

        assert response.status_code == 503
        assert not RecordAttachment.objects.exists()

    @patch('apps.records.storage.generate_presigned_get_url', return_value='https://minio.test/get')
    def test_patient_downloads_own_attachment(self, mock_get, patient_client, doctor, record):
        attachment = RecordAttachment.objects.create(
            record=record, object_key='records/k/a.pdf', file_name='a.pdf',
            content_type='application/pdf', size=10, uploaded_by=doctor,
        )

        response = patient_client.get(f'/api/v1/records/{record.record_id}/attachments/{attachment.id}/')

        assert response.status_code == 200
        assert response.data['download_url'] == 'https://minio.test/get'

    def test_delete_is_soft(self, doctor_client, doctor, record):
        attachment = RecordAttachment.objects.create(
            record=record, object_key='records/k/a.pdf', file_name='a.pdf',
            content_type='application/pdf', size=10, uploaded_by=doctor,
        )

        response = doctor_client.delete(f'/api/v1/records/{record.record_id}/attachments/{attachment.id}/')

        assert response.status_code == 204
        attachment.refresh_from_db()
        assert attachment.is_deleted is True
        assert doctor_client.get(f'/api/v1/records/{record.record_id}/attachments/').data == []


@pytest.mark.django_db
class TestBackups:

    @patch('apps.records.storage.put_json')
    def test_manual_backup(self, mock_put, backups_enabled, doctor_client, patient, record):
        mock_put.return_value = _put_result()

        response = doctor_client.post(f'/api/v1/records/{record.record_id}/backup/')

        assert response.status_code == 200
        assert response.data['success'] is True
        bucket, key, data, metadata = mock_put.call_args[0]
        assert bucket == 'medical-records-backup'
        assert key == f'patients/{patient.id}/records/{record.record_id}/v1.json'
        assert data['version']['content'] == 'BP 130/85\nECG normal\n'
        assert metadata['version-number'] == '1'

        stats = doctor_client.get('/api/v1/records/backup-stats/').data
        assert stats['total_backups'] == 1
        assert stats['failed_backups'] == 0

    @patch('apps.records.storage.put_json', side_effect=StorageError('bucket missing'))
    def test_failed_backup_is_audited(self, mock_put, backups_enabled, doctor_client, record):
        response = doctor_client.post(f'/api/v1/records/{record.record_id}/backup/')

        assert response.status_code == 503
        failed = RecordAuditLog.objects.get(action=Action.BACKUP_RECORD)
        assert failed.success is False

    def test_backup_disabled(self, doctor_client, record):
        response = doctor_client.post(f'/api/v1/records/{record.record_id}/backup/')
        assert response.status_code == 400

    @patch('apps.records.storage.put_json')
    def test_task_backs_up_version(self, mock_put, backups_enabled, record):
        mock_put.return_value = _put_result(key='patients/p/records/r/v1.json')

        key = backup_record_version(str(record.current_version_id))

        assert key == 'patients/p/records/r/v1.json'
        log = RecordAuditLog.objects.get(action=Action.BACKUP_RECORD)
        assert log.actor is None
        assert log.actor_role == 'system'

    @patch('apps.records.storage.put_json')
    def test_task_skips_when_disabled(self, mock_put, record):
        assert backup_record_version(str(record.current_version_id)) is None
        mock_put.assert_not_called()

    @patch('apps.records.storage.list_objects')
    def test_list_patient_backups(self, mock_list, backups_enabled, doctor_client, patient):
        mock_list.return_value = [{'key': 'a', 'last_modified': None, 'size': 1, 'etag': 'e'}]

        response = doctor_client.get(f'/api/v1/patients/{patient.id}/records/backups/')

        assert response.status_code == 200
        assert response.data['count'] == 1
        mock_list.assert_called_once_with(
            'medical-records-backup', f'patients/{patient.id}/records/', limit=100
        )

    @patch('apps.records.storage.generate_presigned_get_url', return_value='https://minio.test/export')
    @patch('apps.records.storage.put_json')
    def test_export_history(self, mock_put, mock_get, backups_enabled, doctor_client, patient, versioned_record):
        mock_put.return_value = _put_result(key='exports/x.json')

        response = doctor_client.post(f'/api/v1/patients/{patient.id}/records/export/')

        assert response.status_code == 200
        assert response.data['total_records'] == 1
        assert response.data['total_versions'] == 2
        assert response.data['download_url'] == 'https://minio.test/export'
        data = mock_put.call_args[0][2]
        assert [v['version_number'] for v in data['medical_history'][0]['versions']] == [2, 1]

    def test_patient_cannot_export(self, patient_client, patient):
        response = patient_client.post(f'/api/v1/patients/{patient.id}/records/export/')
        assert response.status_code == 403


@pytest.mark.django_db
class TestRecordsHealth:

    def test_counts(self, patient_client, versioned_record):
        response = patient_client.get('/api/v1/records/health/')

        assert response.status_code == 200
        assert response.data['status'] == 'healthy'
        assert response.data['counts']['records'] == 1
        assert response.data['counts']['versions'] == 2
        assert MedicalRecord.objects.filter(is_deleted=False).count() == response.data['counts']['active_records']

    def test_requires_authentication(self, api_client):
        assert api_client.get('/api/v1/records/health/').status_code == 401
