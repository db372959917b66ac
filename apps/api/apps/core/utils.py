"""
Small helpers shared across apps: request metadata for audit logging,
query-string booleans and task queueing.
"""
import logging

from kombu.exceptions import OperationalError as BrokerError

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Client IP, honouring the first X-Forwarded-For hop set by the proxy."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def request_metadata(request):
    """IP, user agent and request id for audit metadata."""
    if request is None:
        return {}
    return {
        'ip': get_client_ip(request),
        'user_agent': request.META.get('HTTP_USER_AGENT', '')[:200],
        'request_id': getattr(request, 'request_id', None),
    }


def parse_bool(value, default=False):
    """Query-string boolean: 'true'/'1'/'yes' (any case) are True."""
    if value is None:
        return default
    return str(value).lower() in ('true', '1', 'yes')


def enqueue(task, *args):
    """
    Queue a Celery task after the main work has been saved.

    A broker outage is logged and swallowed: the caller's write already
    happened and only the side effect (email, backup) is lost.

    Returns:
        AsyncResult or None when the broker refused the task.
    """
    try:
        return task.delay(*args)
    except BrokerError:
        logger.warning('Task not queued: %s', task.name, exc_info=True)
        return None
