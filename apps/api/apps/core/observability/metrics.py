"""
Metrics instrumentation (Prometheus).
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry for the Jeewaka API.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        self._setup_metrics()

    def _setup_metrics(self):
        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        self.exceptions_total = Counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Booking Metrics
        # ===================================================================
        self.booking_attempts_total = Counter(
            'booking_attempts_total',
            'Time slot booking attempts',
            ['source', 'result']  # source: api|webhook, result: booked|replayed|conflict|unpaid
        )

        self.booking_duration_seconds = Histogram(
            'booking_duration_seconds',
            'Duration of the locked booking transaction',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
        )

        self.appointment_transitions_total = Counter(
            'appointment_transitions_total',
            'Appointment status transitions',
            ['from_status', 'to_status', 'result']
        )

        self.sessions_created_total = Counter(
            'sessions_created_total',
            'Doctor sessions created',
            ['type']
        )

        # ===================================================================
        # Payment Metrics
        # ===================================================================
        self.payment_intents_total = Counter(
            'payment_intents_total',
            'Payment intents requested from the provider',
            ['result']
        )

        self.payment_provider_duration_seconds = Histogram(
            'payment_provider_duration_seconds',
            'Payment provider API call duration',
            ['operation'],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        self.payment_webhooks_total = Counter(
            'payment_webhooks_total',
            'Payment provider webhook deliveries',
            ['event_type', 'result']  # result: processed|duplicate|rejected|ignored
        )

        # ===================================================================
        # Medical Records Metrics
        # ===================================================================
        self.record_audit_created_total = Counter(
            'record_audit_created_total',
            'Medical record audit entries created',
            ['action', 'success']
        )

        self.record_versions_created_total = Counter(
            'record_versions_created_total',
            'Medical record versions created'
        )

        self.record_access_denied_total = Counter(
            'record_access_denied_total',
            'Medical record access denied',
            ['role']
        )

        self.record_backups_total = Counter(
            'record_backups_total',
            'Medical record backups written to object storage',
            ['result']
        )

        # ===================================================================
        # Verification / Notifications
        # ===================================================================
        self.doctor_verifications_total = Counter(
            'doctor_verifications_total',
            'Doctor verification decisions',
            ['decision']  # submitted|verified|rejected
        )

        self.emails_sent_total = Counter(
            'emails_sent_total',
            'Transactional emails',
            ['template', 'result']
        )

        # ===================================================================
        # Medical Assistant
        # ===================================================================
        self.assistant_replies_total = Counter(
            'assistant_replies_total',
            'Medical assistant model calls',
            ['operation', 'result']  # operation: chat|single_turn|extract
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.booking_duration_seconds)
            def book_time_slot(...):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    histogram_metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
