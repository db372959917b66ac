"""
Medical assistant views.
"""
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.assistant import prompts, services
from apps.assistant.serializers import MessageSerializer, StartSessionSerializer
from apps.core.exceptions import DomainError, error_response


class StartSessionView(APIView):
    """
    POST /api/v1/assistant/sessions/

    Body: {session_type?} (general|initial_record|pre_consultation|task_guide)
    Returns {id, session_type, greeting}.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = StartSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = services.start_session(request.user, serializer.validated_data['session_type'])
        return Response(
            {'id': str(session.pk), 'session_type': session.session_type, 'greeting': prompts.GREETING},
            status=status.HTTP_201_CREATED
        )


class SessionDetailView(APIView):
    """GET: session metadata. DELETE: close the session ({deleted})."""
    permission_classes = [IsAuthenticated]

    def get(self, request, session_id):
        try:
            session = services.get_session(request.user, session_id)
        except DomainError as exc:
            return error_response(exc)
        return Response(services.session_info(session))

    def delete(self, request, session_id):
        try:
            deleted = services.close_session(request.user, session_id)
        except DomainError as exc:
            return error_response(exc)
        return Response({'deleted': deleted})


class SessionMessageView(APIView):
    """POST /api/v1/assistant/sessions/{id}/messages/ - {message} -> {reply}"""
    permission_classes = [IsAuthenticated]

    def post(self, request, session_id):
        serializer = MessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            session = services.get_session(request.user, session_id)
            reply = services.send_message(session, serializer.validated_data['message'])
        except DomainError as exc:
            return error_response(exc)
        return Response({'reply': reply})


class SessionHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, session_id):
        try:
            session = services.get_session(request.user, session_id)
        except DomainError as exc:
            return error_response(exc)
        return Response({'history': services.history(session)})


class SessionExtractView(APIView):
    """POST /api/v1/assistant/sessions/{id}/extract/ - structured intake data from the chat."""
    permission_classes = [IsAuthenticated]

    def post(self, request, session_id):
        try:
            session = services.get_session(request.user, session_id)
            data = services.extract_intake_data(session)
        except DomainError as exc:
            return error_response(exc)
        return Response({'data': data})


class SingleTurnChatView(APIView):
    """POST /api/v1/assistant/chat/ - one question, no stored session."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = MessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            reply = services.single_turn_reply(serializer.validated_data['message'])
        except DomainError as exc:
            return error_response(exc)
        return Response({'reply': reply})


class AssistantHealthView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response({
            'status': 'healthy',
            'service': 'medical-assistant',
            'timestamp': timezone.now().isoformat(),
        })
