"""
Tests for observability layer.

Validates that metrics, logs, and events are emitted correctly
without logging PHI/PII.
"""
import json
import logging
from unittest.mock import Mock, patch, MagicMock

import pytest
import redis

from apps.core.observability.correlation import (
    RequestCorrelationMiddleware,
    get_request_id,
    clear_request_context,
)
from apps.core.observability.logging import (
    CorrelationFilter,
    SanitizedJSONFormatter,
    sanitize_dict,
    SENSITIVE_FIELDS,
)
from apps.core.observability.metrics import metrics
from apps.core.observability.events import (
    log_domain_event,
    log_record_event,
    log_slot_conflict,
)
from apps.core.observability.tracing import trace_span


@pytest.fixture(autouse=True)
def _clean_context():
    yield
    clear_request_context()


@pytest.mark.django_db
class TestRequestCorrelation:
    """Test request correlation middleware."""

    def test_generates_request_id_if_missing(self):
        """Middleware generates request ID if not in headers."""
        middleware = RequestCorrelationMiddleware(lambda r: Mock(status_code=200))
        request = Mock(META={}, path='/api/v1/sessions/', method='GET')
        request.user = Mock(is_authenticated=False)

        middleware.process_request(request)

        assert request.request_id
        assert get_request_id() == request.request_id

    def test_propagates_existing_request_id(self):
        """Middleware uses existing request ID from headers."""
        middleware = RequestCorrelationMiddleware(lambda r: Mock(status_code=200))
        request = Mock(
            META={'HTTP_X_REQUEST_ID': 'test-request-123'},
            path='/api/v1/sessions/',
            method='GET'
        )
        request.user = Mock(is_authenticated=False)

        middleware.process_request(request)

        assert request.request_id == 'test-request-123'

    def test_request_id_returned_in_response(self, api_client):
        """X-Request-ID is echoed back on real requests."""
        response = api_client.get('/healthz', HTTP_X_REQUEST_ID='abc-123')

        assert response['X-Request-ID'] == 'abc-123'
        assert get_request_id() is None


class TestSanitization:
    """Test PHI/PII sanitization."""

    def test_sanitize_dict_redacts_sensitive_fields(self):
        """Sanitize function removes PHI/PII fields."""
        data = {
            'id': '123',
            'first_name': 'Sunil',
            'email': 'sunil@example.com',
            'phone': '0771234567',
            'content': 'BP 130/85',
            'comment': 'Great doctor',
            'status': 'booked',
        }

        sanitized = sanitize_dict(data)

        assert sanitized['id'] == '123'
        assert sanitized['status'] == 'booked'
        for field in ('first_name', 'email', 'phone', 'content', 'comment'):
            assert sanitized[field] == '[REDACTED]'

    def test_sanitize_dict_handles_nested_objects(self):
        """Sanitization works on nested dictionaries and lists."""
        data = {
            'slot': {
                'id': 'slot-1',
                'patient': {'name': 'Sunil Fernando', 'id': 'patient-123'},
            },
            'attendees': [{'email': 'a@example.com'}],
        }

        sanitized = sanitize_dict(data)

        assert sanitized['slot']['patient']['id'] == 'patient-123'
        assert sanitized['slot']['patient']['name'] == '[REDACTED]'
        assert sanitized['attendees'][0]['email'] == '[REDACTED]'

    def test_allowed_fields_not_redacted(self):
        """IDs and non-sensitive fields are preserved."""
        data = {
            'session_id': 'session-123',
            'slot_index': 2,
            'payment_intent_id': 'pi_123',
            'record_id': 'REC-1',
            'status': 'completed',
        }

        assert sanitize_dict(data) == data

    def test_secrets_are_sensitive(self):
        assert {'password', 'token', 'secret', 'authorization'} <= SENSITIVE_FIELDS


class TestJSONFormatter:
    """Formatter output for the JSON log handler."""

    def _format(self, **extra):
        record = logging.LogRecord('jeewaka', logging.INFO, __file__, 1, 'Slot booked', None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        CorrelationFilter().filter(record)
        return json.loads(SanitizedJSONFormatter().format(record))

    def test_redacts_sensitive_extras(self):
        output = self._format(event='slot_booked', email='x@example.com', details={'phone': '1', 'ok': 1})

        assert output['event'] == 'slot_booked'
        assert output['email'] == '[REDACTED]'
        assert output['details'] == {'phone': '[REDACTED]', 'ok': 1}

    def test_includes_correlation_fields(self):
        output = self._format()

        assert output['request_id'] == '-'
        assert output['user_roles'] == '-'
        assert output['message'] == 'Slot booked'


class TestMetricsEmission:
    """Test that metrics are emitted correctly."""

    def test_metrics_registry_has_all_metrics(self):
        for name in [
            'http_requests_total',
            'http_request_duration_seconds',
            'exceptions_total',
            'booking_attempts_total',
            'booking_duration_seconds',
            'appointment_transitions_total',
            'sessions_created_total',
            'payment_intents_total',
            'payment_provider_duration_seconds',
            'payment_webhooks_total',
            'record_audit_created_total',
            'record_versions_created_total',
            'record_access_denied_total',
            'record_backups_total',
            'doctor_verifications_total',
            'emails_sent_total',
            'assistant_replies_total',
        ]:
            assert hasattr(metrics, name), f'Metric {name} not found'

    @pytest.mark.django_db
    def test_booking_counts_attempts(self, session, payment_factory, patient):
        from apps.scheduling.services import book_time_slot

        payment = payment_factory(patient, session, 0)
        counter = metrics.booking_attempts_total.labels(source='api', result='booked')
        before = counter._value.get()

        book_time_slot(patient, session.pk, 0, payment.payment_intent_id)

        assert counter._value.get() == before + 1


class TestDomainEvents:
    """Test domain event logging."""

    @patch('apps.core.observability.events.logger')
    def test_log_domain_event_structure(self, mock_logger):
        """Domain events have correct structure."""
        log_domain_event(
            'slot_booked',
            entity_type='TimeSlot',
            entity_id='slot-123',
            entity_ids={'session_id': 'session-1'},
            slot_index=0,
        )

        mock_logger.info.assert_called_once()
        extra = mock_logger.info.call_args[1]['extra']
        assert extra['event'] == 'slot_booked'
        assert extra['entity_type'] == 'TimeSlot'
        assert extra['entity_id'] == 'slot-123'
        assert extra['session_id'] == 'session-1'
        assert extra['slot_index'] == 0
        assert extra['result'] == 'success'

    @patch('apps.core.observability.events.logger')
    def test_conflict_logged_as_warning(self, mock_logger):
        log_slot_conflict('session-1', 2, 'pi_123', source='webhook')

        mock_logger.warning.assert_called_once()
        extra = mock_logger.warning.call_args[1]['extra']
        assert extra['event'] == 'slot_booking_conflict'
        assert extra['slot_index'] == 2
        assert extra['source'] == 'webhook'

    @patch('apps.core.observability.events.logger')
    def test_record_event_has_no_clinical_content(self, mock_logger):
        record = Mock(record_id='REC-1', patient_id='patient-1')
        actor = Mock(pk='user-1')

        log_record_event('record_updated', record, actor, content='BP 130/85', changed_fields=['title'])

        extra = mock_logger.info.call_args[1]['extra']
        assert extra['entity_id'] == 'REC-1'
        assert extra['actor_id'] == 'user-1'
        assert extra['content'] == '[REDACTED]'
        assert extra['changed_fields'] == ['title']

    @patch('apps.core.observability.events.logger')
    def test_failure_logged_as_error(self, mock_logger):
        log_domain_event('record_backup_failed', result='failure')
        mock_logger.error.assert_called_once()


@pytest.mark.django_db
class TestHealthChecks:
    """Test health check endpoints."""

    def test_healthz_returns_200(self, client):
        response = client.get('/healthz')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'ok'
        assert 'version' in data

    @patch('apps.core.observability.health.redis.Redis.from_url')
    def test_readyz_checks_database_and_broker(self, mock_redis, client):
        response = client.get('/readyz')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'ready'
        assert data['checks'] == {'database': True, 'broker': True}

    @patch('apps.core.observability.health.redis.Redis.from_url')
    def test_broker_failure_does_not_fail_readiness(self, mock_redis, client):
        mock_redis.return_value.ping.side_effect = redis.ConnectionError('refused')

        response = client.get('/readyz')

        assert response.status_code == 200
        assert response.json()['checks']['broker'] is False

    @patch('apps.core.observability.health.redis.Redis.from_url')
    @patch('apps.core.observability.health.connection')
    def test_readyz_fails_on_db_error(self, mock_connection, mock_redis, client):
        """Readiness check returns 503 on DB failure."""
        mock_connection.cursor.side_effect = Exception('DB connection failed')

        response = client.get('/readyz')

        assert response.status_code == 503
        data = response.json()
        assert data['status'] == 'not_ready'
        assert data['checks']['database'] is False


class TestTracing:
    """Test tracing span creation."""

    def test_trace_span_without_sdk(self):
        """The OpenTelemetry API alone hands out non-recording spans."""
        with trace_span('records.create', attributes={'has_content': True}) as span:
            assert span is not None

    @patch('apps.core.observability.tracing.tracer')
    def test_trace_span_sets_attributes_and_error_status(self, mock_tracer):
        mock_span = MagicMock()
        mock_tracer.start_as_current_span.return_value.__enter__.return_value = mock_span

        with pytest.raises(ValueError):
            with trace_span('payments.create_intent', kind='client', attributes={'slot_index': 1, 'skip': None}):
                raise ValueError('boom')

        mock_span.set_attribute.assert_any_call('slot_index', 1)
        mock_span.set_attribute.assert_any_call('error.type', 'ValueError')
        mock_span.set_status.assert_called_once()
