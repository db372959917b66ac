"""
Ratings serializers.
"""
from rest_framework import serializers

from apps.doctors.models import Doctor
from apps.ratings.models import Rating


class RatingSerializer(serializers.ModelSerializer):
    patient_name = serializers.SerializerMethodField()

    class Meta:
        model = Rating
        fields = [
            'id',
            'doctor',
            'patient',
            'patient_name',
            'appointment_id',
            'rating',
            'comment',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_patient_name(self, obj):
        return (obj.patient.name if obj.patient_id else '') or 'Anonymous'


class RateDoctorSerializer(serializers.Serializer):
    doctor_id = serializers.PrimaryKeyRelatedField(queryset=Doctor.objects.all(), source='doctor')
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, default='')
    appointment_id = serializers.CharField(required=False, allow_blank=True, default='', max_length=120)
