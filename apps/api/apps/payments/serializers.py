"""
Payments serializers.
"""
from decimal import Decimal

from rest_framework import serializers


class PaymentIntentMetadataSerializer(serializers.Serializer):
    session_id = serializers.UUIDField()
    slot_index = serializers.IntegerField(min_value=0)


class CreatePaymentIntentSerializer(serializers.Serializer):
    """
    Body of create-intent. ``amount`` is in major units (e.g. 2500.00 LKR).
    The patient is never read from the body.
    """
    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    currency = serializers.CharField(max_length=3, required=False)
    metadata = PaymentIntentMetadataSerializer()

    def validate_amount(self, value):
        if value <= Decimal('0'):
            raise serializers.ValidationError('Amount must be greater than 0')
        return value


class PaymentHistoryQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, allow_blank=True)
    status = serializers.CharField(required=False, allow_blank=True)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200, default=50)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)


class EarningsStatsQuerySerializer(serializers.Serializer):
    time_range = serializers.CharField(required=False, default='last-week')
    year = serializers.IntegerField(required=False, min_value=2000, max_value=2100)
    month = serializers.IntegerField(required=False, min_value=1, max_value=12)
