# Initial migration for records app: medical_record, record_version,
# record_attachment, record_audit_log

import uuid
import apps.records.models
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('doctors', '0001_initial'),
        ('patients', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='MedicalRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('record_id', models.CharField(default=apps.records.models.generate_record_id, editable=False, help_text='Human readable id (REC-<timestamp>-<random>)', max_length=40, unique=True)),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='created_records', to='doctors.doctor')),
                ('deleted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='deleted_records', to='doctors.doctor')),
                ('last_modified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='modified_records', to='doctors.doctor')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='medical_records', to='patients.patient')),
            ],
            options={
                'verbose_name': 'Medical Record',
                'verbose_name_plural': 'Medical Records',
                'db_table': 'medical_record',
                'ordering': ['-updated_at'],
            },
        ),
        migrations.CreateModel(
            name='RecordVersion',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('version_id', models.CharField(default=apps.records.models.generate_version_id, editable=False, max_length=40, unique=True)),
                ('version_number', models.PositiveIntegerField()),
                ('content', models.TextField()),
                ('content_hash', models.CharField(editable=False, max_length=64)),
                ('content_size', models.PositiveIntegerField(default=0, editable=False)),
                ('change_description', models.CharField(blank=True, max_length=500)),
                ('is_approved', models.BooleanField(default=True, help_text='Versions are approved by their author on creation')),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='record_versions', to='doctors.doctor')),
                ('previous_version', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='records.recordversion')),
                ('record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='versions', to='records.medicalrecord')),
            ],
            options={
                'verbose_name': 'Record Version',
                'verbose_name_plural': 'Record Versions',
                'db_table': 'record_version',
                'ordering': ['-version_number'],
            },
        ),
        migrations.AddField(
            model_name='medicalrecord',
            name='current_version',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='records.recordversion'),
        ),
        migrations.CreateModel(
            name='RecordAttachment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('object_key', models.CharField(max_length=500, unique=True)),
                ('file_name', models.CharField(max_length=255)),
                ('content_type', models.CharField(max_length=100)),
                ('size', models.PositiveIntegerField(help_text='Declared size in bytes')),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attachments', to='records.medicalrecord')),
                ('uploaded_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='record_attachments', to='doctors.doctor')),
            ],
            options={
                'verbose_name': 'Record Attachment',
                'verbose_name_plural': 'Record Attachments',
                'db_table': 'record_attachment',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='RecordAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(choices=[('CREATE_RECORD', 'Create record'), ('READ_RECORD', 'Read record'), ('UPDATE_RECORD', 'Update record'), ('DELETE_RECORD', 'Delete record'), ('RESTORE_RECORD', 'Restore record'), ('CREATE_VERSION', 'Create version'), ('VIEW_VERSION', 'View version'), ('BACKUP_RECORD', 'Backup record'), ('UPLOAD_ATTACHMENT', 'Upload attachment'), ('DELETE_ATTACHMENT', 'Delete attachment'), ('ACCESS_PATIENT_RECORDS', 'Access patient records')], max_length=30)),
                ('resource_type', models.CharField(choices=[('RECORD', 'Record'), ('VERSION', 'Version'), ('PATIENT', 'Patient'), ('ATTACHMENT', 'Attachment')], max_length=20)),
                ('resource_id', models.CharField(help_text='record_id, version_id, patient id or attachment id', max_length=64)),
                ('actor_role', models.CharField(blank=True, max_length=20)),
                ('success', models.BooleanField(default=True)),
                ('error_message', models.TextField(blank=True)),
                ('duration_ms', models.PositiveIntegerField(blank=True, null=True)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=200)),
                ('request_id', models.CharField(blank=True, max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='record_audit_logs', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='record_audit_logs', to='patients.patient')),
            ],
            options={
                'verbose_name': 'Record Audit Log',
                'verbose_name_plural': 'Record Audit Logs',
                'db_table': 'record_audit_log',
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddIndex(
            model_name='medicalrecord',
            index=models.Index(fields=['patient', '-updated_at'], name='idx_record_patient_updated'),
        ),
        migrations.AddIndex(
            model_name='medicalrecord',
            index=models.Index(fields=['created_by', '-created_at'], name='idx_record_creator_created'),
        ),
        migrations.AddIndex(
            model_name='medicalrecord',
            index=models.Index(fields=['is_deleted'], name='idx_record_deleted'),
        ),
        migrations.AddIndex(
            model_name='recordversion',
            index=models.Index(fields=['content_hash'], name='idx_record_version_hash'),
        ),
        migrations.AddConstraint(
            model_name='recordversion',
            constraint=models.UniqueConstraint(fields=('record', 'version_number'), name='uniq_record_version_number'),
        ),
        migrations.AddConstraint(
            model_name='recordversion',
            constraint=models.CheckConstraint(check=models.Q(('content', ''), _negated=True), name='record_version_content_not_empty'),
        ),
        migrations.AddIndex(
            model_name='recordauditlog',
            index=models.Index(fields=['resource_id', '-created_at'], name='idx_raudit_resource_created'),
        ),
        migrations.AddIndex(
            model_name='recordauditlog',
            index=models.Index(fields=['patient', '-created_at'], name='idx_raudit_patient_created'),
        ),
        migrations.AddIndex(
            model_name='recordauditlog',
            index=models.Index(fields=['actor', '-created_at'], name='idx_raudit_actor_created'),
        ),
        migrations.AddIndex(
            model_name='recordauditlog',
            index=models.Index(fields=['action'], name='idx_raudit_action'),
        ),
    ]
