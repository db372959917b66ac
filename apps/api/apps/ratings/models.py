"""
Ratings models: rating
"""
import uuid

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Rating(models.Model):
    """
    A patient's review of a doctor. One per (doctor, patient): rating again
    replaces the previous score and comment.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    doctor = models.ForeignKey(
        'doctors.Doctor',
        on_delete=models.CASCADE,
        related_name='ratings'
    )
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.CASCADE,
        related_name='ratings'
    )
    appointment_id = models.CharField(
        max_length=120,
        blank=True,
        help_text='Appointment key <session_id>_<start HH:MM>_<end HH:MM>'
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    comment = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'rating'
        verbose_name = 'Rating'
        verbose_name_plural = 'Ratings'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['doctor', 'patient'], name='uniq_rating_doctor_patient'),
        ]
        indexes = [
            models.Index(fields=['doctor'], name='idx_rating_doctor'),
            models.Index(fields=['appointment_id'], name='idx_rating_appointment'),
        ]

    def __str__(self):
        return f"{self.rating}/5 for {self.doctor} by {self.patient}"
