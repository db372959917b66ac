"""
Authz serializers: registration, role management, current user.
"""
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from apps.authz.models import User, RoleChoices

# Roles a user may pick for themselves when signing up
SELF_SERVICE_ROLES = [RoleChoices.PATIENT, RoleChoices.DOCTOR]


class RegisterSerializer(serializers.ModelSerializer):
    """
    Public sign-up (POST /api/v1/auth/register/).

    The admin role can never be self-assigned.
    """
    password = serializers.CharField(write_only=True, min_length=8)
    role = serializers.ChoiceField(
        choices=SELF_SERVICE_ROLES,
        default=RoleChoices.PATIENT,
        error_messages={'invalid_choice': 'Invalid role. Must be one of: patient, doctor'},
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'first_name', 'last_name', 'role']
        read_only_fields = ['id']

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('A user with this email already exists')
        return value.lower()

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        role = validated_data.pop('role')
        user = User.objects.create_user(**validated_data)
        user.set_roles(role)
        return user


class UserSummarySerializer(serializers.ModelSerializer):
    """Compact user representation with roles."""
    roles = serializers.SerializerMethodField()
    role = serializers.CharField(source='primary_role', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'is_active', 'role', 'roles', 'created_at']
        read_only_fields = fields

    def get_roles(self, obj):
        return sorted(obj.role_names)


class RoleUpdateSerializer(serializers.Serializer):
    """Admin-only role change for any user."""
    role = serializers.ChoiceField(
        choices=RoleChoices.choices,
        error_messages={'invalid_choice': 'Invalid role. Must be one of: patient, doctor, admin'},
    )


class AdminGrantSerializer(serializers.Serializer):
    """Grant the admin role to an existing user."""
    user_id = serializers.UUIDField(
        error_messages={'required': 'user_id is required'},
    )

    def validate_user_id(self, value):
        try:
            return User.objects.get(pk=value)
        except User.DoesNotExist:
            raise serializers.ValidationError('User not found')
