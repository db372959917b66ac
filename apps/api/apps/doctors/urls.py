"""
Doctors URLs - doctor profiles, hospitals, verification.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import DoctorViewSet, HospitalViewSet, DoctorVerificationViewSet

router = DefaultRouter()
router.register(r'doctors', DoctorViewSet, basename='doctor')
router.register(r'hospitals', HospitalViewSet, basename='hospital')
router.register(r'doctor-verifications', DoctorVerificationViewSet, basename='doctor-verification')

urlpatterns = [
    path('', include(router.urls)),
]
