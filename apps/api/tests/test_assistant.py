"""
Tests for the medical assistant: sessions, turns, ownership, expiry and
intake extraction. The model is always mocked.
"""
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from django.test import override_settings
from django.utils import timezone
from google.api_core.exceptions import ServiceUnavailable
from rest_framework import status

from apps.assistant import llm, prompts
from apps.assistant.models import AssistantMessage, AssistantSession
from apps.core.observability.metrics import metrics

SESSIONS = '/api/v1/assistant/sessions/'


@pytest.fixture
def chat_session(patient_client):
    response = patient_client.post(SESSIONS, {'session_type': 'initial_record'}, format='json')
    return AssistantSession.objects.get(pk=response.data['id'])


@pytest.mark.django_db
class TestSessions:

    def test_start_returns_greeting_and_default_type(self, patient_client, patient):
        response = patient_client.post(SESSIONS, {}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['greeting'] == prompts.GREETING
        assert response.data['session_type'] == 'general'
        session = AssistantSession.objects.get(pk=response.data['id'])
        assert session.owner == patient.user
        assert session.system_prompt == prompts.GENERAL

    def test_unknown_session_type_rejected(self, patient_client):
        response = patient_client.post(SESSIONS, {'session_type': 'diagnosis'}, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_requires_authentication(self, api_client):
        assert api_client.post(SESSIONS, {}, format='json').status_code == status.HTTP_401_UNAUTHORIZED

    def test_info_reports_message_count(self, patient_client, chat_session):
        AssistantMessage.objects.create(session=chat_session, role='user', content='Hi')

        response = patient_client.get(f'{SESSIONS}{chat_session.id}/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['session_type'] == 'initial_record'
        assert response.data['message_count'] == 1

    def test_other_user_is_forbidden(self, other_patient_client, chat_session):
        for url in (f'{SESSIONS}{chat_session.id}/', f'{SESSIONS}{chat_session.id}/history/'):
            assert other_patient_client.get(url).status_code == status.HTTP_403_FORBIDDEN
        assert other_patient_client.delete(f'{SESSIONS}{chat_session.id}/').status_code == status.HTTP_403_FORBIDDEN
        assert AssistantSession.objects.filter(pk=chat_session.pk).exists()

    def test_expired_session_is_dropped(self, patient_client, chat_session):
        AssistantSession.objects.filter(pk=chat_session.pk).update(
            last_active_at=timezone.now() - timedelta(minutes=31)
        )

        response = patient_client.get(f'{SESSIONS}{chat_session.id}/')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert not AssistantSession.objects.filter(pk=chat_session.pk).exists()

    def test_close_session(self, patient_client, chat_session):
        response = patient_client.delete(f'{SESSIONS}{chat_session.id}/')
        assert response.data == {'deleted': True}

        response = patient_client.delete(f'{SESSIONS}{chat_session.id}/')
        assert response.data == {'deleted': False}


@pytest.mark.django_db
class TestMessages:

    @patch('apps.assistant.llm.chat_reply')
    def test_turns_are_stored_and_replayed(self, mock_reply, patient_client, chat_session):
        mock_reply.side_effect = ['When were you born?', 'Any allergies?']
        url = f'{SESSIONS}{chat_session.id}/messages/'

        first = patient_client.post(url, {'message': '  Hello  '}, format='json')
        patient_client.post(url, {'message': '1990-04-02'}, format='json')

        assert first.data == {'reply': 'When were you born?'}
        system_prompt, previous, message = mock_reply.call_args.args
        assert system_prompt == prompts.INITIAL_RECORD
        assert previous == [
            {'role': 'user', 'content': 'Hello'},
            {'role': 'assistant', 'content': 'When were you born?'},
        ]
        assert message == '1990-04-02'

        history = patient_client.get(f'{SESSIONS}{chat_session.id}/history/').data['history']
        assert [item['role'] for item in history] == ['user', 'assistant', 'user', 'assistant']

    @pytest.mark.parametrize('message', ['', '   '])
    def test_blank_message_rejected(self, patient_client, chat_session, message):
        response = patient_client.post(f'{SESSIONS}{chat_session.id}/messages/', {'message': message}, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @override_settings(ASSISTANT_MAX_MESSAGE_CHARS=10)
    def test_long_message_rejected(self, patient_client, chat_session):
        response = patient_client.post(
            f'{SESSIONS}{chat_session.id}/messages/', {'message': 'x' * 11}, format='json'
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @patch('apps.assistant.llm.chat_reply')
    def test_model_failure_stores_nothing(self, mock_reply, patient_client, chat_session):
        mock_reply.side_effect = llm.LLMError('quota exceeded')
        counter = metrics.assistant_replies_total.labels(operation='chat', result='error')
        before = counter._value.get()

        response = patient_client.post(f'{SESSIONS}{chat_session.id}/messages/', {'message': 'Hi'}, format='json')

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert 'unavailable' in response.data['error']
        assert not chat_session.messages.exists()
        assert counter._value.get() == before + 1

    @patch('apps.assistant.llm.chat_reply')
    def test_message_to_unknown_session(self, mock_reply, patient_client):
        response = patient_client.post(
            f'{SESSIONS}00000000-0000-0000-0000-000000000000/messages/', {'message': 'Hi'}, format='json'
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        mock_reply.assert_not_called()

    @patch('apps.assistant.llm.chat_reply', return_value='Use the search page.')
    def test_single_turn_chat(self, mock_reply, doctor_client):
        response = doctor_client.post('/api/v1/assistant/chat/', {'message': 'How do I find a doctor?'}, format='json')

        assert response.data == {'reply': 'Use the search page.'}
        mock_reply.assert_called_once_with(prompts.GENERAL, [], 'How do I find a doctor?')
        assert not AssistantSession.objects.exists()

    def test_health_is_public(self, api_client):
        response = api_client.get('/api/v1/assistant/health/')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'healthy'


@pytest.mark.django_db
class TestExtraction:

    @patch('apps.assistant.llm.generate')
    def test_fenced_json_is_stored(self, mock_generate, patient_client, chat_session):
        AssistantMessage.objects.create(session=chat_session, role='user', content='I am allergic to penicillin')
        mock_generate.return_value = '```json\n{"medicalHistory": {"allergies": ["penicillin"]}}\n```'

        response = patient_client.post(f'{SESSIONS}{chat_session.id}/extract/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['data'] == {'medicalHistory': {'allergies': ['penicillin']}}
        chat_session.refresh_from_db()
        assert chat_session.collected_data['medicalHistory']['allergies'] == ['penicillin']
        system_prompt, transcript = mock_generate.call_args.args
        assert system_prompt == prompts.EXTRACTOR
        assert 'Patient: I am allergic to penicillin' in transcript

    @pytest.mark.parametrize('raw', ['Sorry, I cannot help.', '["penicillin"]'])
    @patch('apps.assistant.llm.generate')
    def test_unreadable_output_is_bad_gateway(self, mock_generate, raw, patient_client, chat_session):
        AssistantMessage.objects.create(session=chat_session, role='user', content='Hi')
        mock_generate.return_value = raw

        response = patient_client.post(f'{SESSIONS}{chat_session.id}/extract/')

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        chat_session.refresh_from_db()
        assert chat_session.collected_data == {}

    def test_empty_conversation_rejected(self, patient_client, chat_session):
        response = patient_client.post(f'{SESSIONS}{chat_session.id}/extract/')
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestGeminiClient:

    @patch('apps.assistant.llm.genai.GenerativeModel')
    def test_history_uses_gemini_roles(self, mock_model):
        chat = mock_model.return_value.start_chat.return_value
        chat.send_message.return_value = MagicMock(text='Fine')

        reply = llm.chat_reply('be kind', [
            {'role': 'user', 'content': 'Hi'},
            {'role': 'assistant', 'content': 'Hello'},
        ], 'How are you?')

        assert reply == 'Fine'
        assert mock_model.call_args.kwargs['system_instruction'] == 'be kind'
        assert mock_model.return_value.start_chat.call_args.kwargs['history'] == [
            {'role': 'user', 'parts': ['Hi']},
            {'role': 'model', 'parts': ['Hello']},
        ]
        assert chat.send_message.call_args.args == ('How are you?',)

    @patch('apps.assistant.llm.genai.GenerativeModel')
    def test_provider_error_becomes_llm_error(self, mock_model):
        mock_model.return_value.generate_content.side_effect = ServiceUnavailable('overloaded')

        with pytest.raises(llm.LLMError):
            llm.generate('extract', 'transcript')
