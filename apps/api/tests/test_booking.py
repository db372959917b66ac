"""
Tests for slot booking against payments.

A slot is booked only with a succeeded payment for that exact session and
slot index; replays with the same payment intent are idempotent.
"""
from unittest.mock import patch

import pytest

from apps.payments.models import Payment, PaymentStatusChoices
from apps.payments.stripe_client import StripeError
from apps.scheduling.models import SlotStatusChoices, TimeSlot


def _book_url(session, slot_index):
    return f'/api/v1/sessions/{session.id}/time-slots/{slot_index}/book/'


@pytest.mark.django_db
class TestBookTimeSlot:
    """POST /api/v1/sessions/{id}/time-slots/{index}/book/"""

    def test_book_with_succeeded_payment(self, patient_client, patient, session, payment_factory):
        payment = payment_factory(patient, session, 1)

        response = patient_client.post(
            _book_url(session, 1), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 201
        assert response.data['created'] is True
        appointment = response.data['appointment']
        assert appointment['slot_index'] == 1
        assert appointment['status'] == 'booked'
        assert appointment['appointment_status'] == 'upcoming'
        assert appointment['patient'] == patient.id

        slot = TimeSlot.objects.get(session=session, position=1)
        assert slot.payment_intent_id == payment.payment_intent_id
        assert slot.payment_amount == payment.amount
        assert slot.booked_at is not None

    def test_replay_with_same_payment_is_idempotent(self, patient_client, patient, session, payment_factory):
        payment = payment_factory(patient, session, 0)
        body = {'payment_intent_id': payment.payment_intent_id}

        first = patient_client.post(_book_url(session, 0), body, format='json')
        second = patient_client.post(_book_url(session, 0), body, format='json')

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.data['created'] is False
        assert TimeSlot.objects.filter(session=session, patient=patient).count() == 1

    def test_slot_taken_by_other_payment_conflicts(
        self, other_patient_client, other_patient, booked_slot, payment_factory
    ):
        payment = payment_factory(other_patient, booked_slot.session, 0)

        response = other_patient_client.post(
            _book_url(booked_slot.session, 0),
            {'payment_intent_id': payment.payment_intent_id},
            format='json'
        )

        assert response.status_code == 409
        booked_slot.refresh_from_db()
        assert booked_slot.payment_intent_id != payment.payment_intent_id

    def test_payment_for_other_slot_rejected(self, patient_client, patient, session, payment_factory):
        payment = payment_factory(patient, session, 2)

        response = patient_client.post(
            _book_url(session, 0), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 400
        assert response.data['error'] == 'Payment does not match this time slot'
        assert not TimeSlot.objects.get(session=session, position=0).is_booked

    def test_payment_of_other_patient_forbidden(self, other_patient_client, patient, session, payment_factory):
        payment = payment_factory(patient, session, 0)

        response = other_patient_client.post(
            _book_url(session, 0), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 403

    @patch('apps.payments.stripe_client.retrieve_payment_intent')
    def test_pending_payment_is_retryable(self, mock_retrieve, patient_client, patient, session, payment_factory):
        payment = payment_factory(patient, session, 0, status=PaymentStatusChoices.PROCESSING)
        mock_retrieve.return_value = {
            'id': payment.payment_intent_id,
            'status': 'processing',
            'amount': 250000,
            'currency': 'lkr',
            'metadata': payment.metadata,
        }

        response = patient_client.post(
            _book_url(session, 0), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 400
        assert response.data['retryable'] is True
        assert not TimeSlot.objects.get(session=session, position=0).is_booked

    @patch('apps.payments.stripe_client.retrieve_payment_intent')
    def test_payment_succeeded_at_provider_before_webhook(
        self, mock_retrieve, patient_client, patient, session, payment_factory
    ):
        payment = payment_factory(patient, session, 0, status=PaymentStatusChoices.PROCESSING)
        mock_retrieve.return_value = {
            'id': payment.payment_intent_id,
            'status': 'succeeded',
            'amount': 250000,
            'currency': 'lkr',
            'metadata': payment.metadata,
        }

        response = patient_client.post(
            _book_url(session, 0), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 201
        payment.refresh_from_db()
        assert payment.status == PaymentStatusChoices.SUCCEEDED
        assert payment.succeeded_at is not None

    @patch('apps.payments.stripe_client.retrieve_payment_intent')
    def test_unknown_payment_is_not_retryable(self, mock_retrieve, patient_client, session):
        mock_retrieve.side_effect = StripeError('No such payment_intent', status_code=404)

        response = patient_client.post(
            _book_url(session, 0), {'payment_intent_id': 'pi_missing'}, format='json'
        )

        assert response.status_code == 400
        assert response.data['retryable'] is False

    def test_unknown_slot_returns_404(self, patient_client, patient, session, payment_factory):
        payment = payment_factory(patient, session, 7)

        response = patient_client.post(
            _book_url(session, 7), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 404

    def test_upper_case_session_id_in_url(self, patient_client, patient, session, payment_factory):
        payment = payment_factory(patient, session, 0)
        url = f'/api/v1/sessions/{str(session.id).upper()}/time-slots/0/book/'

        response = patient_client.post(url, {'payment_intent_id': payment.payment_intent_id}, format='json')

        assert response.status_code == 201
        assert TimeSlot.objects.get(session=session, position=0).patient == patient

    @pytest.mark.parametrize('client_fixture', ['doctor_client', 'admin_client'])
    def test_only_patients_book(self, client_fixture, request, patient, session, payment_factory):
        payment = payment_factory(patient, session, 0)
        client = request.getfixturevalue(client_fixture)

        response = client.post(
            _book_url(session, 0), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 403
        assert not TimeSlot.objects.get(session=session, position=0).is_booked

    def test_patient_profile_created_on_first_booking(self, user_factory, session, payment_factory, patient):
        from rest_framework.test import APIClient
        from apps.patients.models import Patient

        user = user_factory(email='new.patient@test.com', first_name='Ravi')
        client = APIClient()
        client.force_authenticate(user=user)

        # The payment has no patient yet (created before the profile existed)
        payment = payment_factory(patient, session, 1)
        Payment.objects.filter(pk=payment.pk).update(patient=None)

        response = client.post(
            _book_url(session, 1), {'payment_intent_id': payment.payment_intent_id}, format='json'
        )

        assert response.status_code == 201
        new_patient = Patient.objects.get(user=user)
        payment.refresh_from_db()
        assert payment.patient == new_patient


@pytest.mark.django_db
class TestBookingServices:
    """Service-level booking paths used by the webhook."""

    def test_book_slot_for_payment_reports_conflict_as_none(self, booked_slot, other_patient, payment_factory):
        from apps.scheduling.services import book_slot_for_payment

        payment = payment_factory(other_patient, booked_slot.session, 0)

        assert book_slot_for_payment(payment) is None
        booked_slot.refresh_from_db()
        assert booked_slot.status == SlotStatusChoices.BOOKED

    def test_book_slot_for_payment_books_free_slot(self, patient, session, payment_factory):
        from apps.scheduling.services import book_slot_for_payment

        payment = payment_factory(patient, session, 2)

        slot, created = book_slot_for_payment(payment)

        assert created is True
        assert slot.patient == patient
