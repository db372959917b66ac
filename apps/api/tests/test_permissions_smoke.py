"""
Smoke tests for API permissions by role.

Fast HTTP status code validation without deep content checks.
Validates that role-based permissions work correctly across endpoints.
"""
import pytest
from rest_framework import status


# ============================================================================
# Patient Endpoints
# ============================================================================

@pytest.mark.django_db
class TestPatientPermissions:
    """Test patient endpoint permissions by role."""

    endpoint = '/api/v1/patients/'

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_200_OK),
        ('patient_client', status.HTTP_200_OK),
    ])
    def test_list_patients_by_role(self, client_fixture, expected_status, request):
        """GET /api/v1/patients/ - everyone reads (patients see only themselves)."""
        client = request.getfixturevalue(client_fixture)
        response = client.get(self.endpoint)
        assert response.status_code == expected_status

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_200_OK),
        ('other_patient_client', status.HTTP_403_FORBIDDEN),
    ])
    def test_retrieve_patient_by_role(self, client_fixture, expected_status, request, patient):
        """GET /api/v1/patients/{id}/ - staff and the owner."""
        client = request.getfixturevalue(client_fixture)
        response = client.get(f'/api/v1/patients/{patient.id}/')
        assert response.status_code == expected_status

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_403_FORBIDDEN),
        ('patient_client', status.HTTP_200_OK),
        ('other_patient_client', status.HTTP_403_FORBIDDEN),
    ])
    def test_update_patient_by_role(self, client_fixture, expected_status, request, patient):
        """PATCH /api/v1/patients/{id}/ - Admin and the owner."""
        client = request.getfixturevalue(client_fixture)
        response = client.patch(f'/api/v1/patients/{patient.id}/', {'phone': '+94771112233'}, format='json')
        assert response.status_code == expected_status


# ============================================================================
# Doctor Endpoints
# ============================================================================

@pytest.mark.django_db
class TestDoctorPermissions:
    """Test doctor profile permissions by role."""

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_200_OK),
        ('patient_client', status.HTTP_200_OK),
        ('api_client', status.HTTP_401_UNAUTHORIZED),
    ])
    def test_list_doctors_by_role(self, client_fixture, expected_status, request, doctor):
        client = request.getfixturevalue(client_fixture)
        assert client.get('/api/v1/doctors/').status_code == expected_status

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_200_OK),
        ('other_doctor_client', status.HTTP_403_FORBIDDEN),
        ('patient_client', status.HTTP_403_FORBIDDEN),
    ])
    def test_update_doctor_by_role(self, client_fixture, expected_status, request, doctor):
        """PATCH /api/v1/doctors/{id}/ - Admin and the profile owner."""
        client = request.getfixturevalue(client_fixture)
        response = client.patch(f'/api/v1/doctors/{doctor.id}/', {'years_of_experience': 13}, format='json')
        assert response.status_code == expected_status

    def test_cards_are_public(self, api_client, doctor):
        assert api_client.get('/api/v1/doctors/cards/').status_code == status.HTTP_200_OK
        assert api_client.get(f'/api/v1/doctors/{doctor.id}/card/').status_code == status.HTTP_200_OK

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_403_FORBIDDEN),
        ('patient_client', status.HTTP_403_FORBIDDEN),
    ])
    def test_verification_queue_by_role(self, client_fixture, expected_status, request):
        client = request.getfixturevalue(client_fixture)
        assert client.get('/api/v1/doctor-verifications/').status_code == expected_status


# ============================================================================
# Session Endpoints
# ============================================================================

@pytest.mark.django_db
class TestSessionPermissions:
    """Test session and time slot permissions by role."""

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_200_OK),
        ('patient_client', status.HTTP_200_OK),
    ])
    def test_list_sessions_by_role(self, client_fixture, expected_status, request, session):
        client = request.getfixturevalue(client_fixture)
        assert client.get('/api/v1/sessions/').status_code == expected_status

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('admin_client', status.HTTP_200_OK),
        ('doctor_client', status.HTTP_200_OK),
        ('other_doctor_client', status.HTTP_403_FORBIDDEN),
        ('patient_client', status.HTTP_403_FORBIDDEN),
    ])
    def test_update_session_by_role(self, client_fixture, expected_status, request, session):
        """PATCH /api/v1/sessions/{id}/ - Admin and the owning doctor."""
        client = request.getfixturevalue(client_fixture)
        response = client.patch(f'/api/v1/sessions/{session.id}/', {'fee': '3000.00'}, format='json')
        assert response.status_code == expected_status

    @pytest.mark.parametrize('client_fixture,expected_status', [
        ('doctor_client', status.HTTP_201_CREATED),
        ('other_doctor_client', status.HTTP_403_FORBIDDEN),
        ('patient_client', status.HTTP_403_FORBIDDEN),
    ])
    def test_add_time_slot_by_role(self, client_fixture, expected_status, request, session):
        client = request.getfixturevalue(client_fixture)
        response = client.post(
            f'/api/v1/sessions/{session.id}/time-slots/',
            {'start_time': '15:00', 'end_time': '15:30'},
            format='json'
        )
        assert response.status_code == expected_status


# ============================================================================
# Payments, finance and records
# ============================================================================

@pytest.mark.django_db
class TestRestrictedEndpoints:
    """Role gates on doctor/admin-only endpoints."""

    @pytest.mark.parametrize('endpoint,client_fixture,expected_status', [
        ('/api/v1/payments/earnings/', 'doctor_client', status.HTTP_200_OK),
        ('/api/v1/payments/earnings/', 'patient_client', status.HTTP_403_FORBIDDEN),
        ('/api/v1/payments/history/', 'patient_client', status.HTTP_200_OK),
        ('/api/v1/finance/insights/', 'admin_client', status.HTTP_200_OK),
        ('/api/v1/finance/insights/', 'doctor_client', status.HTTP_403_FORBIDDEN),
        ('/api/v1/finance/doctor/quick/', 'doctor_client', status.HTTP_200_OK),
        ('/api/v1/finance/doctor/quick/', 'patient_client', status.HTTP_403_FORBIDDEN),
        ('/api/v1/records/search/', 'doctor_client', status.HTTP_200_OK),
        ('/api/v1/records/search/', 'patient_client', status.HTTP_403_FORBIDDEN),
        ('/api/v1/records/backup-stats/', 'admin_client', status.HTTP_200_OK),
        ('/api/v1/records/backup-stats/', 'patient_client', status.HTTP_403_FORBIDDEN),
        ('/api/v1/admins/', 'admin_client', status.HTTP_200_OK),
        ('/api/v1/admins/', 'doctor_client', status.HTTP_403_FORBIDDEN),
    ])
    def test_role_gates(self, endpoint, client_fixture, expected_status, request):
        client = request.getfixturevalue(client_fixture)
        assert client.get(endpoint).status_code == expected_status


# ============================================================================
# Unauthenticated Access
# ============================================================================

@pytest.mark.django_db
class TestUnauthenticatedAccess:
    """Test that unauthenticated requests are rejected."""

    @pytest.mark.parametrize('endpoint', [
        '/api/v1/patients/',
        '/api/v1/sessions/',
        '/api/v1/appointments/me/',
        '/api/v1/hospitals/',
        '/api/v1/payments/history/',
        '/api/v1/finance/insights/',
        '/api/v1/records/health/',
        '/api/v1/auth/me/',
    ])
    def test_unauthenticated_access_rejected(self, api_client, endpoint):
        response = api_client.get(endpoint)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
