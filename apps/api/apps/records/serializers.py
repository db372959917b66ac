"""
Medical records serializers.
"""
from rest_framework import serializers

from apps.records.models import (
    MedicalRecord,
    RecordAttachment,
    RecordAuditActionChoices,
    RecordAuditLog,
    RecordVersion,
)


class RecordVersionListSerializer(serializers.ModelSerializer):
    """Version history entry without content."""
    created_by_name = serializers.CharField(source='created_by.name', read_only=True)

    class Meta:
        model = RecordVersion
        fields = [
            'version_id',
            'version_number',
            'content_hash',
            'content_size',
            'change_description',
            'created_by',
            'created_by_name',
            'is_approved',
            'approved_at',
            'created_at',
        ]
        read_only_fields = fields


class RecordVersionSerializer(RecordVersionListSerializer):
    class Meta(RecordVersionListSerializer.Meta):
        fields = RecordVersionListSerializer.Meta.fields + ['content']
        read_only_fields = fields


class MedicalRecordSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.name', read_only=True)
    created_by_name = serializers.CharField(source='created_by.name', read_only=True)
    last_modified_by_name = serializers.CharField(source='last_modified_by.name', read_only=True, default=None)
    current_version = RecordVersionSerializer(read_only=True)

    class Meta:
        model = MedicalRecord
        fields = [
            'record_id',
            'patient',
            'patient_name',
            'title',
            'description',
            'tags',
            'current_version',
            'created_by',
            'created_by_name',
            'last_modified_by',
            'last_modified_by_name',
            'is_deleted',
            'deleted_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class MedicalRecordListSerializer(MedicalRecordSerializer):
    """Listing row: current version without content."""
    current_version = RecordVersionListSerializer(read_only=True)


class TagsField(serializers.ListField):
    child = serializers.CharField(max_length=50, trim_whitespace=True)


class RecordCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    tags = TagsField(required=False, default=list)
    content = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    change_description = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class RecordUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    tags = TagsField(required=False)
    content = serializers.CharField(required=False, allow_blank=False, trim_whitespace=False)
    change_description = serializers.CharField(max_length=500, required=False, allow_blank=True)


class RecordListQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False, default=10)
    include_deleted = serializers.BooleanField(required=False, default=False)


class RecordSearchQuerySerializer(RecordListQuerySerializer):
    query = serializers.CharField(required=False, allow_blank=True)
    patient_id = serializers.UUIDField(required=False)
    tags = serializers.CharField(required=False, help_text='Comma separated; any tag matches')
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate_tags(self, value):
        return [tag.strip() for tag in value.split(',') if tag.strip()]


class AuditQuerySerializer(serializers.Serializer):
    actions = serializers.CharField(required=False, help_text='Comma separated action names')
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate_actions(self, value):
        actions = [a.strip().upper() for a in value.split(',') if a.strip()]
        unknown = set(actions) - set(RecordAuditActionChoices.values)
        if unknown:
            raise serializers.ValidationError(f"Unknown actions: {', '.join(sorted(unknown))}")
        return actions

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'end_date must be on or after start_date'})
        return attrs


class RecordAuditLogSerializer(serializers.ModelSerializer):
    actor_email = serializers.EmailField(source='actor.email', read_only=True, default=None)

    class Meta:
        model = RecordAuditLog
        fields = [
            'id',
            'action',
            'resource_type',
            'resource_id',
            'patient',
            'actor',
            'actor_email',
            'actor_role',
            'success',
            'error_message',
            'duration_ms',
            'details',
            'ip_address',
            'request_id',
            'created_at',
        ]
        read_only_fields = fields


class RecordAttachmentSerializer(serializers.ModelSerializer):
    uploaded_by_name = serializers.CharField(source='uploaded_by.name', read_only=True, default=None)

    class Meta:
        model = RecordAttachment
        fields = [
            'id',
            'file_name',
            'content_type',
            'size',
            'uploaded_by',
            'uploaded_by_name',
            'created_at',
        ]
        read_only_fields = fields


class AttachmentUploadSerializer(serializers.Serializer):
    file_name = serializers.CharField(max_length=255)
    content_type = serializers.CharField(max_length=100)
    size = serializers.IntegerField(min_value=1)
