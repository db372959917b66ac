"""
Patient serializers.
"""
from rest_framework import serializers

from apps.authz.models import RoleChoices
from apps.authz.permissions import user_roles

from .models import Patient


class PatientSerializer(serializers.ModelSerializer):
    """
    Patient serializer with all fields.

    ``user`` is set by the view for self-registration; only admins may pass
    it. For everyone else the field is read-only and silently ignored.
    """

    class Meta:
        model = Patient
        fields = [
            'id',
            'user',
            'name',
            'email',
            'phone',
            'profile_image_url',
            'date_of_birth',
            'sex',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'user': {'required': False}}

    def get_fields(self):
        fields = super().get_fields()
        request = self.context.get('request')
        if request is not None and RoleChoices.ADMIN not in user_roles(request):
            fields['user'].read_only = True
        return fields

    def validate_email(self, value):
        return value.lower()

    def validate_user(self, value):
        if value is not None and self.instance is None and hasattr(value, 'patient'):
            raise serializers.ValidationError(f'User {value.email} already has a patient profile')
        return value


class PatientListSerializer(serializers.ModelSerializer):
    """
    Lightweight serializer for patient lists.
    """

    class Meta:
        model = Patient
        fields = [
            'id',
            'name',
            'email',
            'phone',
            'sex',
            'created_at',
        ]
        read_only_fields = fields
