"""
Gemini calls behind the medical assistant, using ``google-generativeai``.

Callers pass plain strings and ``[{'role', 'content'}]`` history; provider
failures surface as ``LLMError``.
"""
import time

import google.generativeai as genai
from django.conf import settings
from google.api_core.exceptions import GoogleAPIError

from apps.core.observability.logging import get_sanitized_logger
from apps.core.observability.tracing import trace_span

logger = get_sanitized_logger(__name__)

_GEMINI_ROLES = {'user': 'user', 'assistant': 'model'}


class LLMError(Exception):
    """The model could not produce a reply."""


def configure():
    if settings.GEMINI_API_KEY:
        genai.configure(api_key=settings.GEMINI_API_KEY)


def _model(system_prompt):
    return genai.GenerativeModel(settings.GEMINI_MODEL, system_instruction=system_prompt)


def _text(operation, call):
    start = time.time()
    with trace_span(f'gemini.{operation}', kind='client', attributes={'model': settings.GEMINI_MODEL}):
        try:
            response = call()
            return response.text
        except (GoogleAPIError, ValueError) as e:
            # ValueError: blocked or empty candidates
            logger.error(f'Gemini {operation} failed: {e.__class__.__name__}')
            raise LLMError(str(e)) from e
        finally:
            logger.debug(f'Gemini {operation} took {time.time() - start:.2f}s')


def chat_reply(system_prompt, history, message):
    """
    Send ``message`` on top of ``history`` and return the model's text.

    Args:
        history: list of {'role': 'user'|'assistant', 'content': str}
    """
    chat = _model(system_prompt).start_chat(history=[
        {'role': _GEMINI_ROLES[item['role']], 'parts': [item['content']]}
        for item in history
    ])
    return _text(
        'chat',
        lambda: chat.send_message(message, request_options={'timeout': settings.GEMINI_TIMEOUT_SECONDS}),
    )


def generate(system_prompt, text):
    model = _model(system_prompt)
    return _text(
        'generate',
        lambda: model.generate_content(text, request_options={'timeout': settings.GEMINI_TIMEOUT_SECONDS}),
    )
