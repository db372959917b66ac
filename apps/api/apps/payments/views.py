"""
Payments views: intent creation, provider webhook, history, earnings.
"""
import json

from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.models import RoleChoices
from apps.authz.permissions import IsDoctor, IsPatient, user_roles
from apps.core.exceptions import DomainError, error_response
from apps.core.observability import metrics
from apps.core.observability.logging import get_sanitized_logger
from apps.doctors.services import get_doctor_for_user
from apps.patients.models import Patient
from apps.patients.services import get_or_create_patient_for_user
from apps.payments import services
from apps.payments.serializers import (
    CreatePaymentIntentSerializer,
    EarningsStatsQuerySerializer,
    PaymentHistoryQuerySerializer,
)

logger = get_sanitized_logger(__name__)


class CreatePaymentIntentView(APIView):
    """
    POST /api/v1/payments/create-intent/

    Body: {amount, currency?, metadata: {session_id, slot_index}}
    Returns: {client_secret, payment_intent_id}
    """
    permission_classes = [IsPatient]

    def post(self, request):
        serializer = CreatePaymentIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        patient = get_or_create_patient_for_user(request.user)
        try:
            payment, client_secret = services.create_payment_intent(
                patient,
                data['amount'],
                data['metadata']['session_id'],
                data['metadata']['slot_index'],
                currency=data.get('currency'),
            )
        except DomainError as exc:
            return error_response(exc)

        return Response({
            'client_secret': client_secret,
            'payment_intent_id': payment.payment_intent_id,
        })


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def stripe_webhook(request):
    """
    Stripe webhook endpoint.

    Validates the Stripe-Signature header (t=<timestamp>,v1=<signature>)
    against the raw body, then applies the event.

    Events:
    - payment_intent.succeeded: mark payment succeeded, book the slot if still free
    - payment_intent.payment_failed: mark payment failed (slot stays available)

    Returns:
    - 401: Invalid or missing signature
    - 200: Event received (including duplicates and events that failed to apply)
    """
    is_valid, error_message = services.verify_webhook_signature(request)

    if not is_valid:
        metrics.payment_webhooks_total.labels(event_type='unknown', result='rejected').inc()
        logger.warning(f'[STRIPE_WEBHOOK] Invalid signature: {error_message}')
        return Response(
            {'error': error_message},
            status=status.HTTP_401_UNAUTHORIZED
        )

    try:
        event = json.loads(request.body)
    except ValueError:
        return Response({'received': True, 'error': 'Invalid JSON payload'}, status=status.HTTP_200_OK)

    result = services.process_webhook_event(event)
    logger.info(f"[STRIPE_WEBHOOK] Event {event.get('type')}: {result}")
    return Response({'received': True, 'result': result}, status=status.HTTP_200_OK)


class PaymentHistoryView(APIView):
    """
    GET /api/v1/payments/history/

    ?search=&status=&start_date=&end_date=&limit=50&offset=0
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        query = PaymentHistoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        patient = Patient.objects.filter(user=request.user).first()
        if patient is None:
            return Response({'error': 'Patient profile not found'}, status=status.HTTP_404_NOT_FOUND)

        return Response(services.payment_history(patient, **query.validated_data))


class PaymentDetailView(APIView):
    """GET /api/v1/payments/{payment_intent_id}/ - owner, doctor or admin."""
    permission_classes = [IsAuthenticated]

    def get(self, request, payment_intent_id):
        is_admin = RoleChoices.ADMIN in user_roles(request)
        try:
            return Response(services.payment_details(payment_intent_id, request.user, is_admin=is_admin))
        except DomainError as exc:
            return error_response(exc)


class DoctorEarningsView(APIView):
    """GET /api/v1/payments/earnings/ - calling doctor's earnings."""
    permission_classes = [IsDoctor]

    def get(self, request):
        doctor = get_doctor_for_user(request.user)
        if doctor is None:
            return Response({'error': 'Doctor profile not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(services.doctor_earnings(doctor))


class DoctorEarningsStatsView(APIView):
    """
    GET /api/v1/payments/earnings/stats/

    ?time_range=last-week|4weeks-daily|monthly&year=&month=
    """
    permission_classes = [IsDoctor]

    def get(self, request):
        query = EarningsStatsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        doctor = get_doctor_for_user(request.user)
        if doctor is None:
            return Response({'error': 'Doctor profile not found'}, status=status.HTTP_404_NOT_FOUND)
        try:
            return Response(services.doctor_earnings_stats(doctor, **query.validated_data))
        except DomainError as exc:
            return error_response(exc)
