"""
Doctors models: doctor, hospital, doctor_certificate
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class GenderChoices(models.TextChoices):
    MALE = 'Male', 'Male'
    FEMALE = 'Female', 'Female'
    OTHER = 'Other', 'Other'


class Hospital(models.Model):
    """Hospitals and clinics where in-person sessions take place."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    location = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'hospital'
        verbose_name = 'Hospital'
        verbose_name_plural = 'Hospitals'
        indexes = [
            models.Index(fields=['name'], name='idx_hospital_name'),
        ]

    def __str__(self):
        return self.name


class Doctor(models.Model):
    """
    Public doctor profile used for discovery and booking.

    ``user`` is optional so that profiles can be imported in bulk before the
    doctor signs up; it is linked when the doctor creates their profile.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='doctor'
    )
    name = models.CharField(max_length=255)
    email = models.EmailField(unique=True, max_length=255)
    phone = models.CharField(max_length=30)
    gender = models.CharField(max_length=10, choices=GenderChoices.choices, blank=True)
    profile_image_url = models.URLField(max_length=500, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)

    specialization = models.CharField(max_length=150, blank=True)
    sub_specializations = models.JSONField(default=list, blank=True)
    registration_number = models.CharField(
        max_length=100,
        unique=True,
        help_text='Medical council registration number'
    )
    qualifications = models.JSONField(default=list, blank=True)
    years_of_experience = models.PositiveIntegerField(default=0)
    languages_spoken = models.JSONField(default=list, blank=True)
    bio = models.TextField(blank=True)
    consultation_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))]
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'doctor'
        verbose_name = 'Doctor'
        verbose_name_plural = 'Doctors'
        indexes = [
            models.Index(fields=['name'], name='idx_doctor_name'),
            models.Index(fields=['specialization'], name='idx_doctor_specialization'),
        ]

    def __str__(self):
        return f"Dr. {self.name}"

    @property
    def is_verified(self):
        certificate = getattr(self, 'certificate', None)
        return bool(certificate and certificate.is_verified)


class DoctorCertificate(models.Model):
    """
    Verification request of a doctor: uploaded certificate URLs plus the
    admin's decision. One per doctor.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    doctor = models.OneToOneField(
        Doctor,
        on_delete=models.CASCADE,
        related_name='certificate'
    )
    certificates = models.JSONField(default=list, help_text='Certificate document URLs')
    comment_from_admin = models.TextField(blank=True)
    is_verified = models.BooleanField(default=False)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='doctor_verifications'
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'doctor_certificate'
        verbose_name = 'Doctor Certificate'
        verbose_name_plural = 'Doctor Certificates'
        indexes = [
            models.Index(fields=['is_verified'], name='idx_certificate_verified'),
        ]

    def __str__(self):
        state = 'verified' if self.is_verified else 'pending'
        return f"{self.doctor} ({state})"
