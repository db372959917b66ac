"""
Scheduling URLs - sessions, time slots, appointments.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import SessionViewSet, MyAppointmentsView

router = DefaultRouter()
router.register(r'sessions', SessionViewSet, basename='session')

urlpatterns = [
    path('appointments/me/', MyAppointmentsView.as_view(), name='my-appointments'),
    path('', include(router.urls)),
]
