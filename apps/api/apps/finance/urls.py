"""
Finance URLs.
"""
from django.urls import path

from .views import (
    MonthlyIncomeByDoctorView,
    BusinessInsightsView,
    DoctorOverviewView,
    DoctorQuickStatsView,
    DoctorPaymentsView,
)

urlpatterns = [
    # Admin
    path('finance/doctors/monthly/', MonthlyIncomeByDoctorView.as_view(), name='finance-doctors-monthly'),
    path('finance/insights/', BusinessInsightsView.as_view(), name='finance-insights'),

    # Calling doctor (admins: ?doctor_id=)
    path('finance/doctor/overview/', DoctorOverviewView.as_view(), name='finance-doctor-overview'),
    path('finance/doctor/quick/', DoctorQuickStatsView.as_view(), name='finance-doctor-quick'),
    path('finance/doctor/payments/', DoctorPaymentsView.as_view(), name='finance-doctor-payments'),
]
