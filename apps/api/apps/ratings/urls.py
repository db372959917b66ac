"""
Ratings URLs.
"""
from django.urls import path

from .views import RateDoctorView, DoctorReviewsView, DoctorAverageView, RatingByAppointmentView

urlpatterns = [
    path('ratings/', RateDoctorView.as_view(), name='rating-create'),
    path('ratings/doctor/<uuid:doctor_id>/', DoctorReviewsView.as_view(), name='rating-doctor-reviews'),
    path('ratings/doctor/<uuid:doctor_id>/average/', DoctorAverageView.as_view(), name='rating-doctor-average'),
    path('ratings/appointment/<str:appointment_id>/', RatingByAppointmentView.as_view(), name='rating-by-appointment'),
]
