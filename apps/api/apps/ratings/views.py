"""
Ratings views.
"""
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.permissions import IsPatient
from apps.core.exceptions import DomainError, error_response
from apps.patients.models import Patient
from apps.patients.services import get_or_create_patient_for_user
from apps.ratings.models import Rating
from apps.ratings.serializers import RateDoctorSerializer, RatingSerializer
from apps.ratings.services import rate_doctor, rating_summary


class RateDoctorView(APIView):
    """
    POST /api/v1/ratings/

    Body: {doctor_id, rating (1..5), comment?, appointment_id?}
    201 when the first rating is created, 200 when it replaces the previous one.
    """
    permission_classes = [IsPatient]

    def post(self, request):
        serializer = RateDoctorSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        patient = get_or_create_patient_for_user(request.user)
        try:
            rating, created = rate_doctor(
                patient,
                data['doctor'],
                data['rating'],
                comment=data['comment'],
                appointment_id=data['appointment_id'],
            )
        except DomainError as exc:
            return error_response(exc)

        return Response(
            RatingSerializer(rating).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )


class DoctorReviewsView(APIView):
    """GET /api/v1/ratings/doctor/{doctor_id}/ - reviews, newest first."""
    permission_classes = [IsAuthenticated]

    def get(self, request, doctor_id):
        ratings = Rating.objects.filter(doctor_id=doctor_id).select_related('patient').order_by('-created_at')
        data = RatingSerializer(ratings, many=True).data
        return Response({'count': len(data), 'results': data})


class DoctorAverageView(APIView):
    """GET /api/v1/ratings/doctor/{doctor_id}/average/ - {avg_rating, total_reviews}"""
    permission_classes = [IsAuthenticated]

    def get(self, request, doctor_id):
        return Response(rating_summary(doctor_id))


class RatingByAppointmentView(APIView):
    """GET /api/v1/ratings/appointment/{appointment_id}/ - the caller's rating for it."""
    permission_classes = [IsAuthenticated]

    def get(self, request, appointment_id):
        patient = Patient.objects.filter(user=request.user).first()
        rating = None
        if patient is not None:
            rating = Rating.objects.filter(patient=patient, appointment_id=appointment_id).first()
        if rating is None:
            return Response({'error': 'Rating not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(RatingSerializer(rating).data)
