"""
Medical assistant services: sessions, message turns and intake extraction.

Conversation content never reaches the logs; only ids, types and lengths do.
"""
import json
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework import status

from apps.assistant import llm, prompts
from apps.assistant.models import AssistantMessage, AssistantSession, MessageRoleChoices
from apps.core.exceptions import DomainError, ForbiddenError, NotFoundError
from apps.core.observability import metrics
from apps.core.observability.events import log_domain_event
from apps.core.observability.logging import get_sanitized_logger

logger = get_sanitized_logger(__name__)


class AssistantUnavailableError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ExtractionError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY


def _ask(operation, call):
    try:
        reply = call()
    except llm.LLMError as e:
        metrics.assistant_replies_total.labels(operation=operation, result='error').inc()
        raise AssistantUnavailableError('Assistant is unavailable, please try again later.') from e
    metrics.assistant_replies_total.labels(operation=operation, result='ok').inc()
    return reply


def _is_expired(session):
    ttl = timedelta(minutes=settings.ASSISTANT_SESSION_TTL_MINUTES)
    return session.last_active_at < timezone.now() - ttl


def get_session(user, session_id):
    """
    Load a live session owned by ``user``.

    Raises:
        NotFoundError: unknown or expired (expired sessions are deleted)
        ForbiddenError: the session belongs to someone else
    """
    session = AssistantSession.objects.filter(pk=session_id).first()
    if session is None:
        raise NotFoundError('Session not found')
    if session.owner_id != user.pk:
        raise ForbiddenError('You do not have access to this session')
    if _is_expired(session):
        session.delete()
        raise NotFoundError('Session expired, please start a new session')
    return session


def start_session(user, session_type):
    session = AssistantSession.objects.create(
        owner=user,
        session_type=session_type,
        system_prompt=prompts.SYSTEM_PROMPTS[session_type],
    )
    log_domain_event(
        'assistant_session_started',
        entity_type='AssistantSession',
        entity_id=str(session.pk),
        session_type=session_type,
    )
    return session


def history(session):
    return [
        {'role': m.role, 'content': m.content, 'timestamp': m.created_at.isoformat()}
        for m in session.messages.all()
    ]


def send_message(session, message):
    """
    Run one turn of the conversation and store both sides of it.

    Nothing is stored when the model fails, so the user can resend.
    """
    previous = [{'role': m.role, 'content': m.content} for m in session.messages.all()]
    reply = _ask('chat', lambda: llm.chat_reply(session.system_prompt, previous, message))

    with transaction.atomic():
        AssistantMessage.objects.create(session=session, role=MessageRoleChoices.USER, content=message)
        AssistantMessage.objects.create(session=session, role=MessageRoleChoices.ASSISTANT, content=reply)
        session.last_active_at = timezone.now()
        session.save(update_fields=['last_active_at'])

    logger.info(
        'Assistant reply sent',
        extra={
            'session_id': str(session.pk),
            'message_length': len(message),
            'reply_length': len(reply),
        }
    )
    return reply


def single_turn_reply(message):
    return _ask('single_turn', lambda: llm.chat_reply(prompts.GENERAL, [], message))


def session_info(session):
    return {
        'id': str(session.pk),
        'session_type': session.session_type,
        'created_at': session.created_at.isoformat(),
        'last_active_at': session.last_active_at.isoformat(),
        'message_count': session.messages.count(),
        'collected_data': session.collected_data,
    }


def close_session(user, session_id):
    """
    Delete the caller's session.

    Returns:
        bool: False when there was nothing to delete
    """
    session = AssistantSession.objects.filter(pk=session_id).first()
    if session is None:
        return False
    if session.owner_id != user.pk:
        raise ForbiddenError('You do not have access to this session')
    message_count = session.messages.count()
    session.delete()
    log_domain_event(
        'assistant_session_closed',
        entity_type='AssistantSession',
        entity_id=str(session_id),
        message_count=message_count,
    )
    return True


def _strip_fences(raw):
    text = raw.strip()
    if text.startswith('```'):
        text = text.split('\n', 1)[1] if '\n' in text else ''
        if text.rstrip().endswith('```'):
            text = text.rstrip()[:-3]
    return text.strip()


def extract_intake_data(session):
    """
    Turn the conversation into structured intake data and keep it on the session.

    Raises:
        DomainError: the conversation is empty
        ExtractionError: the model did not return a JSON object
    """
    messages = list(session.messages.all())
    if not messages:
        raise DomainError('Nothing to extract yet')

    transcript = '\n\n'.join(
        f"{'Patient' if m.role == MessageRoleChoices.USER else 'Assistant'}: {m.content}"
        for m in messages
    )
    raw = _ask('extract', lambda: llm.generate(prompts.EXTRACTOR, f'<transcript>\n{transcript}\n</transcript>'))

    try:
        data = json.loads(_strip_fences(raw))
    except json.JSONDecodeError as e:
        logger.warning('Assistant extraction returned invalid JSON', extra={'session_id': str(session.pk)})
        raise ExtractionError('Could not read the extracted data, please try again.') from e
    if not isinstance(data, dict):
        raise ExtractionError('Could not read the extracted data, please try again.')

    session.collected_data = {**session.collected_data, **data}
    session.save(update_fields=['collected_data'])
    return session.collected_data
