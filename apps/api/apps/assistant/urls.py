"""
Medical assistant URLs.
"""
from django.urls import path

from .views import (
    AssistantHealthView,
    SessionDetailView,
    SessionExtractView,
    SessionHistoryView,
    SessionMessageView,
    SingleTurnChatView,
    StartSessionView,
)

urlpatterns = [
    path('assistant/sessions/', StartSessionView.as_view(), name='assistant-session-start'),
    path('assistant/sessions/<uuid:session_id>/', SessionDetailView.as_view(), name='assistant-session-detail'),
    path('assistant/sessions/<uuid:session_id>/messages/', SessionMessageView.as_view(), name='assistant-session-message'),
    path('assistant/sessions/<uuid:session_id>/history/', SessionHistoryView.as_view(), name='assistant-session-history'),
    path('assistant/sessions/<uuid:session_id>/extract/', SessionExtractView.as_view(), name='assistant-session-extract'),
    path('assistant/chat/', SingleTurnChatView.as_view(), name='assistant-chat'),
    path('assistant/health/', AssistantHealthView.as_view(), name='assistant-health'),
]
