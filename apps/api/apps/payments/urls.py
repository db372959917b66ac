"""
Payments URLs.
"""
from django.urls import path

from .views import (
    CreatePaymentIntentView,
    stripe_webhook,
    PaymentHistoryView,
    PaymentDetailView,
    DoctorEarningsView,
    DoctorEarningsStatsView,
)

urlpatterns = [
    path('payments/create-intent/', CreatePaymentIntentView.as_view(), name='payment-create-intent'),
    path('payments/webhook/', stripe_webhook, name='payment-webhook'),
    path('payments/history/', PaymentHistoryView.as_view(), name='payment-history'),
    path('payments/earnings/', DoctorEarningsView.as_view(), name='payment-earnings'),
    path('payments/earnings/stats/', DoctorEarningsStatsView.as_view(), name='payment-earnings-stats'),
    # Must stay last: catches any payment intent id
    path('payments/<str:payment_intent_id>/', PaymentDetailView.as_view(), name='payment-detail'),
]
