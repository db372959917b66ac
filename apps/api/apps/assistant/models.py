"""
Assistant models: assistant_session, assistant_message
"""
import uuid

from django.conf import settings
from django.db import models


class SessionTypeChoices(models.TextChoices):
    GENERAL = 'general', 'General'
    INITIAL_RECORD = 'initial_record', 'Initial Medical Record'
    PRE_CONSULTATION = 'pre_consultation', 'Pre-consultation'
    TASK_GUIDE = 'task_guide', 'Task Guide'


class MessageRoleChoices(models.TextChoices):
    USER = 'user', 'User'
    ASSISTANT = 'assistant', 'Assistant'


class AssistantSession(models.Model):
    """
    One conversation with the medical assistant.

    Sessions idle for longer than ASSISTANT_SESSION_TTL_MINUTES are dropped
    the next time they are touched.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='assistant_sessions'
    )
    session_type = models.CharField(
        max_length=20,
        choices=SessionTypeChoices.choices,
        default=SessionTypeChoices.GENERAL
    )
    system_prompt = models.TextField()
    collected_data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    last_active_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'assistant_session'
        verbose_name = 'Assistant Session'
        verbose_name_plural = 'Assistant Sessions'
        ordering = ['-last_active_at']
        indexes = [
            models.Index(fields=['owner'], name='idx_assistant_session_owner'),
        ]

    def __str__(self):
        return f"{self.session_type} session {self.id}"


class AssistantMessage(models.Model):
    session = models.ForeignKey(
        AssistantSession,
        on_delete=models.CASCADE,
        related_name='messages'
    )
    role = models.CharField(max_length=10, choices=MessageRoleChoices.choices)
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'assistant_message'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.role} message in {self.session_id}"
