"""
Assistant serializers.
"""
from django.conf import settings
from rest_framework import serializers

from apps.assistant.models import SessionTypeChoices


class StartSessionSerializer(serializers.Serializer):
    session_type = serializers.ChoiceField(
        choices=SessionTypeChoices.choices,
        required=False,
        default=SessionTypeChoices.GENERAL
    )


class MessageSerializer(serializers.Serializer):
    """Non-empty text, trimmed, at most ASSISTANT_MAX_MESSAGE_CHARS long."""
    message = serializers.CharField()

    def validate_message(self, value):
        limit = settings.ASSISTANT_MAX_MESSAGE_CHARS
        if len(value) > limit:
            raise serializers.ValidationError(f'Ensure this field has no more than {limit} characters.')
        return value
