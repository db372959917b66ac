"""
Health check endpoints.

/healthz answers as long as the process is up, /readyz also checks the
database and the Celery broker.
"""
import logging

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse
from django.views import View

logger = logging.getLogger(__name__)


class HealthzView(View):
    """Liveness probe. Does not check dependencies."""

    def get(self, request):
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """
    Readiness probe.

    Only the database decides readiness. The broker is reported for
    dashboards but a failure there returns 200.
    """

    def get(self, request):
        checks = {
            'database': self._check_database(),
            'broker': self._check_broker(),
        }

        ready = checks['database']

        response_data = {
            'status': 'ready' if ready else 'not_ready',
            'checks': checks,
        }

        return JsonResponse(response_data, status=200 if ready else 503)

    def _check_database(self):
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
            return True
        except Exception as e:
            logger.error(
                'Database health check failed',
                extra={'event': 'health_check_failed', 'check': 'database', 'error': str(e)}
            )
            return False

    def _check_broker(self):
        try:
            redis.Redis.from_url(settings.CELERY_BROKER_URL, socket_timeout=1).ping()
            return True
        except redis.RedisError as e:
            logger.warning(
                'Broker health check failed',
                extra={'event': 'health_check_failed', 'check': 'broker', 'error': str(e)}
            )
            return False
