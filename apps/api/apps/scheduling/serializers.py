"""
Scheduling serializers: sessions, time slots, booking, appointments.
"""
from rest_framework import serializers

from apps.doctors.models import Doctor, Hospital
from apps.doctors.serializers import HospitalSerializer
from apps.scheduling.models import (
    AppointmentStatusChoices,
    Session,
    SessionTypeChoices,
    TimeSlot,
)

TIME_FORMAT = '%H:%M'


class TimeSlotSerializer(serializers.ModelSerializer):
    """Time slot as shown inside a session. ``index`` is the slot position."""
    index = serializers.IntegerField(source='position', read_only=True)
    start_time = serializers.TimeField(format=TIME_FORMAT)
    end_time = serializers.TimeField(format=TIME_FORMAT)
    patient_name = serializers.CharField(source='patient.name', read_only=True, default=None)

    class Meta:
        model = TimeSlot
        fields = [
            'id',
            'index',
            'start_time',
            'end_time',
            'status',
            'appointment_status',
            'patient',
            'patient_name',
            'meeting_id',
            'payment_intent_id',
            'payment_amount',
            'payment_currency',
            'payment_date',
            'booked_at',
        ]
        read_only_fields = [
            'id', 'status', 'appointment_status', 'patient', 'meeting_id',
            'payment_intent_id', 'payment_amount', 'payment_currency',
            'payment_date', 'booked_at',
        ]


class TimeSlotInputSerializer(serializers.Serializer):
    """Start/end of a new or edited slot (HH:MM)."""
    start_time = serializers.TimeField(input_formats=[TIME_FORMAT, 'iso-8601'])
    end_time = serializers.TimeField(input_formats=[TIME_FORMAT, 'iso-8601'])

    def validate(self, attrs):
        if attrs['end_time'] <= attrs['start_time']:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        return attrs


class TimeSlotUpdateSerializer(serializers.Serializer):
    start_time = serializers.TimeField(input_formats=[TIME_FORMAT, 'iso-8601'], required=False)
    end_time = serializers.TimeField(input_formats=[TIME_FORMAT, 'iso-8601'], required=False)


class SessionSerializer(serializers.ModelSerializer):
    """Session with slots and booking counts (annotated by the view)."""
    doctor_name = serializers.CharField(source='doctor.name', read_only=True)
    hospital_detail = HospitalSerializer(source='hospital', read_only=True)
    time_slots = serializers.SerializerMethodField()
    total_slots = serializers.IntegerField(read_only=True)
    booked_slots = serializers.IntegerField(read_only=True)
    effective_fee = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = Session
        fields = [
            'id',
            'doctor',
            'doctor_name',
            'date',
            'type',
            'hospital',
            'hospital_detail',
            'fee',
            'effective_fee',
            'meeting_link',
            'meeting_id',
            'time_slots',
            'total_slots',
            'booked_slots',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_time_slots(self, obj):
        slots = sorted(obj.time_slots.all(), key=lambda s: s.position)
        return TimeSlotSerializer(slots, many=True).data


class SessionCreateSerializer(serializers.Serializer):
    """
    Create a session with its slots.

    ``doctor`` is only read for admins; doctors always create for themselves.
    """
    doctor = serializers.PrimaryKeyRelatedField(queryset=Doctor.objects.all(), required=False)
    date = serializers.DateField()
    type = serializers.ChoiceField(choices=SessionTypeChoices.choices)
    hospital = serializers.PrimaryKeyRelatedField(
        queryset=Hospital.objects.all(), required=False, allow_null=True
    )
    fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)
    meeting_link = serializers.URLField(max_length=500, required=False, allow_blank=True)
    time_slots = TimeSlotInputSerializer(many=True, allow_empty=False)

    def validate(self, attrs):
        if attrs['type'] == SessionTypeChoices.IN_PERSON and not attrs.get('hospital'):
            raise serializers.ValidationError({'hospital': 'Hospital is required for in-person sessions'})

        slots = sorted(attrs['time_slots'], key=lambda s: s['start_time'])
        for previous, current in zip(slots, slots[1:]):
            if current['start_time'] < previous['end_time']:
                raise serializers.ValidationError({
                    'time_slots': (
                        f"Time slots overlap: {previous['start_time']:%H:%M}-{previous['end_time']:%H:%M} "
                        f"and {current['start_time']:%H:%M}-{current['end_time']:%H:%M}"
                    )
                })
        return attrs


class SessionUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Session
        fields = ['date', 'type', 'hospital', 'fee', 'meeting_link', 'meeting_id']


class SessionFilterSerializer(serializers.Serializer):
    """List filters for sessions; malformed ids and dates are rejected."""
    doctor = serializers.UUIDField(required=False)
    hospital = serializers.UUIDField(required=False)
    type = serializers.ChoiceField(choices=SessionTypeChoices.choices, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    available = serializers.BooleanField(required=False, default=False)


class BookingSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(max_length=255)


class MeetingIdSerializer(serializers.Serializer):
    meeting_id = serializers.CharField(max_length=255, allow_blank=True)


class AppointmentTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=AppointmentStatusChoices.choices)
    reason = serializers.CharField(required=False, allow_blank=True)


class AppointmentSerializer(serializers.ModelSerializer):
    """A booked slot seen as an appointment."""
    slot_index = serializers.IntegerField(source='position', read_only=True)
    appointment_id = serializers.CharField(source='appointment_key', read_only=True)
    session_id = serializers.UUIDField(read_only=True)
    date = serializers.DateField(source='session.date', read_only=True)
    type = serializers.CharField(source='session.type', read_only=True)
    start_time = serializers.TimeField(format=TIME_FORMAT, read_only=True)
    end_time = serializers.TimeField(format=TIME_FORMAT, read_only=True)
    doctor_id = serializers.UUIDField(source='session.doctor_id', read_only=True)
    doctor_name = serializers.CharField(source='session.doctor.name', read_only=True)
    doctor_specialization = serializers.CharField(source='session.doctor.specialization', read_only=True)
    hospital = HospitalSerializer(source='session.hospital', read_only=True)
    meeting_link = serializers.CharField(source='session.meeting_link', read_only=True)
    patient_name = serializers.CharField(source='patient.name', read_only=True, default=None)

    class Meta:
        model = TimeSlot
        fields = [
            'appointment_id',
            'session_id',
            'slot_index',
            'date',
            'type',
            'start_time',
            'end_time',
            'status',
            'appointment_status',
            'doctor_id',
            'doctor_name',
            'doctor_specialization',
            'hospital',
            'meeting_link',
            'meeting_id',
            'patient',
            'patient_name',
            'payment_intent_id',
            'payment_amount',
            'payment_currency',
            'booked_at',
            'cancellation_reason',
        ]
        read_only_fields = fields
