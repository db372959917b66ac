"""
Request correlation middleware.

Generates/propagates X-Request-ID and injects it into logs.
"""
import uuid
import time
import logging
from threading import local

from django.utils.deprecation import MiddlewareMixin

_request_context = local()

logger = logging.getLogger(__name__)


def get_request_id():
    """Get current request ID from thread-local storage."""
    return getattr(_request_context, 'request_id', None)


def get_trace_id():
    """Get current trace ID from thread-local storage."""
    return getattr(_request_context, 'trace_id', None)


def get_user_id():
    """Get current user ID from thread-local storage."""
    return getattr(_request_context, 'user_id', None)


def get_user_roles():
    """Get current user roles from thread-local storage."""
    return getattr(_request_context, 'user_roles', [])


def bind_user(user):
    """
    Attach an authenticated user to the current request context.

    JWT authentication happens inside DRF views, after this middleware has
    already seen the request, so permission classes call this once the
    user is known.
    """
    if user is None or not user.is_authenticated:
        return
    _request_context.user_id = str(user.pk)
    _request_context.user_roles = list(
        user.user_roles.values_list('role__name', flat=True)
    )


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Middleware to handle request correlation.

    - Generates/propagates X-Request-ID
    - Stores context in thread-local for logging
    - Adds correlation headers to response
    - Tracks request duration and HTTP metrics
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'
    TRACE_ID_HEADER = 'HTTP_X_TRACE_ID'

    def process_request(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        trace_id = request.META.get(self.TRACE_ID_HEADER)

        request.request_id = request_id
        request.trace_id = trace_id
        request.start_time = time.time()

        _request_context.request_id = request_id
        _request_context.trace_id = trace_id
        _request_context.user_id = None
        _request_context.user_roles = []

        # Session-authenticated users (admin site) are known at this point
        if hasattr(request, 'user') and request.user.is_authenticated:
            bind_user(request.user)

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if getattr(request, 'trace_id', None):
            response['X-Trace-ID'] = request.trace_id

        if hasattr(request, 'start_time'):
            duration = time.time() - request.start_time
            path = self._metric_path(request)

            from .metrics import metrics
            metrics.http_requests_total.labels(
                path=path, method=request.method, status=str(response.status_code)
            ).inc()
            metrics.http_request_duration_seconds.labels(
                path=path, method=request.method
            ).observe(duration)

            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration * 1000, 2),
                    'user_id': get_user_id(),
                    'user_roles': get_user_roles(),
                }
            )

        clear_request_context()
        return response

    def process_exception(self, request, exception):
        duration_ms = 0
        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

        from .metrics import metrics
        metrics.exceptions_total.labels(
            exception_type=exception.__class__.__name__,
            location='http',
        ).inc()

        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
                'duration_ms': round(duration_ms, 2),
                'user_id': get_user_id(),
                'user_roles': get_user_roles(),
            }
        )

    @staticmethod
    def _metric_path(request):
        """Use the route pattern so UUIDs in URLs do not explode label cardinality."""
        match = getattr(request, 'resolver_match', None)
        if match is not None and match.route:
            return match.route
        return 'unmatched'


def clear_request_context():
    """Clear thread-local request context (useful for testing)."""
    for attr in ['request_id', 'trace_id', 'user_id', 'user_roles']:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)
