"""
Global test fixtures for pytest.

Provides reusable fixtures for API testing:
- Authenticated API clients by role (admin, doctor, patient)
- Model instances (Doctor, Patient, Hospital, Session with slots)
- Helpers for paid bookings and signed webhook payloads
"""
import hashlib
import hmac
import json
import time
from datetime import time as dt_time, timedelta
from decimal import Decimal

import pytest
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from apps.authz.models import User, RoleChoices
from apps.doctors.models import Doctor, Hospital
from apps.patients.models import Patient
from apps.payments.models import Payment, PaymentStatusChoices
from apps.scheduling.models import Session, SessionTypeChoices, TimeSlot

TEST_PASSWORD = 'S3cure-pass-2024'


@pytest.fixture(autouse=True)
def clear_throttle_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


# ============================================================================
# Users and API clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def user_factory(db):
    """Create users with the given roles (no role = patient)."""
    counter = {'n': 0}

    def create(email=None, roles=(), **extra):
        counter['n'] += 1
        user = User.objects.create_user(
            email=email or f"user{counter['n']}@test.com",
            password=TEST_PASSWORD,
            **extra
        )
        if roles:
            user.set_roles(*roles)
        return user

    return create


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def admin_user(user_factory):
    return user_factory(email='admin@test.com', roles=[RoleChoices.ADMIN], is_staff=True)


@pytest.fixture
def admin_client(admin_user):
    """Authenticated API client with Admin role."""
    return _client_for(admin_user)


@pytest.fixture
def doctor_user(user_factory):
    return user_factory(email='doctor@test.com', roles=[RoleChoices.DOCTOR], first_name='Nimal', last_name='Perera')


@pytest.fixture
def doctor(doctor_user):
    """Doctor profile linked to doctor_user."""
    return Doctor.objects.create(
        user=doctor_user,
        name='Nimal Perera',
        email='doctor@test.com',
        phone='+94771234567',
        specialization='Cardiology',
        registration_number='SLMC-1001',
        years_of_experience=12,
        languages_spoken=['English', 'Sinhala'],
        consultation_fee=Decimal('2500.00'),
    )


@pytest.fixture
def doctor_client(doctor):
    """Authenticated API client with Doctor role and profile."""
    return _client_for(doctor.user)


@pytest.fixture
def other_doctor(user_factory):
    user = user_factory(email='other.doctor@test.com', roles=[RoleChoices.DOCTOR])
    return Doctor.objects.create(
        user=user,
        name='Kamala Silva',
        email='other.doctor@test.com',
        phone='+94770000000',
        specialization='Dermatology',
        registration_number='SLMC-2002',
        consultation_fee=Decimal('1800.00'),
    )


@pytest.fixture
def other_doctor_client(other_doctor):
    return _client_for(other_doctor.user)


@pytest.fixture
def patient_user(user_factory):
    return user_factory(email='patient@test.com', roles=[RoleChoices.PATIENT], first_name='Sunil', last_name='Fernando')


@pytest.fixture
def patient(patient_user):
    """Patient profile linked to patient_user."""
    return Patient.objects.create(user=patient_user, name='Sunil Fernando', email='patient@test.com')


@pytest.fixture
def patient_client(patient):
    """Authenticated API client with Patient role and profile."""
    return _client_for(patient.user)


@pytest.fixture
def other_patient(user_factory):
    user = user_factory(email='other.patient@test.com', roles=[RoleChoices.PATIENT])
    return Patient.objects.create(user=user, name='Ayesha Khan', email='other.patient@test.com')


@pytest.fixture
def other_patient_client(other_patient):
    return _client_for(other_patient.user)


# ============================================================================
# Scheduling
# ============================================================================

@pytest.fixture
def hospital(db):
    return Hospital.objects.create(name='Asiri Central', location='Colombo 10')


@pytest.fixture
def session_factory(doctor, hospital):
    """Session with ``slots`` consecutive 30 minute slots starting 09:00."""

    def create(slots=3, session_doctor=None, on=None, session_type=SessionTypeChoices.IN_PERSON, fee=None):
        session = Session.objects.create(
            doctor=session_doctor or doctor,
            date=on or (timezone.localdate() + timedelta(days=7)),
            type=session_type,
            hospital=hospital if session_type == SessionTypeChoices.IN_PERSON else None,
            fee=fee,
        )
        for position in range(slots):
            start_minutes = 9 * 60 + position * 30
            TimeSlot.objects.create(
                session=session,
                position=position,
                start_time=dt_time(start_minutes // 60, start_minutes % 60),
                end_time=dt_time((start_minutes + 30) // 60, (start_minutes + 30) % 60),
            )
        return session

    return create


@pytest.fixture
def session(session_factory):
    return session_factory()


@pytest.fixture
def payment_factory(db):
    """Local Payment row as the provider sync would have written it."""
    counter = {'n': 0}

    def create(patient, session, slot_index, status=PaymentStatusChoices.SUCCEEDED, amount=Decimal('2500.00')):
        counter['n'] += 1
        return Payment.objects.create(
            payment_intent_id=f"pi_test_{counter['n']}_{slot_index}",
            patient=patient,
            session=session,
            slot_index=slot_index,
            amount=amount,
            currency='lkr',
            status=status,
            succeeded_at=timezone.now() if status == PaymentStatusChoices.SUCCEEDED else None,
            metadata={'session_id': str(session.pk), 'slot_index': slot_index, 'patient_id': str(patient.pk)},
        )

    return create


@pytest.fixture
def booked_slot(patient, session, payment_factory):
    """Slot 0 of ``session`` booked and paid by ``patient``."""
    from apps.scheduling.services import book_time_slot

    payment = payment_factory(patient, session, 0)
    slot, _ = book_time_slot(patient, session.pk, 0, payment.payment_intent_id)
    return slot


# ============================================================================
# Webhook helpers
# ============================================================================

@pytest.fixture
def sign_webhook():
    """Returns sign(payload, secret=None, timestamp=None) -> (body bytes, Stripe-Signature header)."""

    def sign(payload, secret=None, timestamp=None):
        body = json.dumps(payload).encode()
        timestamp = int(time.time()) if timestamp is None else timestamp
        secret = secret or settings.STRIPE_WEBHOOK_SECRET
        signature = hmac.new(secret.encode(), f'{timestamp}.'.encode() + body, hashlib.sha256).hexdigest()
        return body, f't={timestamp},v1={signature}'

    return sign
