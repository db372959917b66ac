"""
Doctors serializers: doctor list/detail/write, hospital, verification.
"""
from rest_framework import serializers

from apps.doctors.models import Doctor, Hospital, DoctorCertificate


def _string_list(value, field):
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise serializers.ValidationError(f'{field} must be a list of strings')
    return [v.strip() for v in value if v.strip()]


class HospitalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Hospital
        fields = ['id', 'name', 'location', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class DoctorFilterSerializer(serializers.Serializer):
    hospital = serializers.UUIDField(required=False)


class DoctorListSerializer(serializers.ModelSerializer):
    """Compact doctor representation for search results."""
    is_verified = serializers.BooleanField(read_only=True)

    class Meta:
        model = Doctor
        fields = [
            'id',
            'name',
            'specialization',
            'sub_specializations',
            'years_of_experience',
            'languages_spoken',
            'consultation_fee',
            'profile_image_url',
            'gender',
            'is_verified',
        ]
        read_only_fields = fields


class DoctorDetailSerializer(serializers.ModelSerializer):
    is_verified = serializers.BooleanField(read_only=True)

    class Meta:
        model = Doctor
        fields = [
            'id',
            'user',
            'name',
            'email',
            'phone',
            'gender',
            'profile_image_url',
            'date_of_birth',
            'specialization',
            'sub_specializations',
            'registration_number',
            'qualifications',
            'years_of_experience',
            'languages_spoken',
            'bio',
            'consultation_fee',
            'is_verified',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class DoctorWriteSerializer(serializers.ModelSerializer):
    """
    Create/update a doctor profile.

    ``user`` is set by the view (the calling doctor) and only admins may
    pass it explicitly.
    """

    class Meta:
        model = Doctor
        fields = [
            'id',
            'user',
            'name',
            'email',
            'phone',
            'gender',
            'profile_image_url',
            'date_of_birth',
            'specialization',
            'sub_specializations',
            'registration_number',
            'qualifications',
            'years_of_experience',
            'languages_spoken',
            'bio',
            'consultation_fee',
        ]
        read_only_fields = ['id']
        extra_kwargs = {'user': {'required': False}}

    def validate_sub_specializations(self, value):
        return _string_list(value, 'sub_specializations')

    def validate_qualifications(self, value):
        return _string_list(value, 'qualifications')

    def validate_languages_spoken(self, value):
        return _string_list(value, 'languages_spoken')

    def validate_user(self, value):
        if value is not None and self.instance is None and hasattr(value, 'doctor'):
            raise serializers.ValidationError(f'User {value.email} already has a doctor profile')
        return value


class DoctorCertificateSerializer(serializers.ModelSerializer):
    """Verification record as seen by admins and the owning doctor."""
    doctor_name = serializers.CharField(source='doctor.name', read_only=True)
    doctor_email = serializers.EmailField(source='doctor.email', read_only=True)
    verified_by_email = serializers.EmailField(source='verified_by.email', read_only=True, default=None)

    class Meta:
        model = DoctorCertificate
        fields = [
            'id',
            'doctor',
            'doctor_name',
            'doctor_email',
            'certificates',
            'comment_from_admin',
            'is_verified',
            'verified_by_email',
            'verified_at',
            'submitted_at',
            'updated_at',
        ]
        read_only_fields = fields


class CertificateSubmitSerializer(serializers.Serializer):
    """
    Doctor submits certificates. Admins may submit on behalf of a doctor by
    passing ``doctor``.
    """
    doctor = serializers.PrimaryKeyRelatedField(queryset=Doctor.objects.all(), required=False)
    certificates = serializers.ListField(
        child=serializers.URLField(max_length=500),
        allow_empty=False,
    )


class CertificateReviewSerializer(serializers.Serializer):
    """Fields an admin (decision) or the doctor (certificates) may change."""
    is_verified = serializers.BooleanField(required=False)
    comment_from_admin = serializers.CharField(required=False, allow_blank=True)
    certificates = serializers.ListField(
        child=serializers.URLField(max_length=500),
        required=False,
        allow_empty=False,
    )
