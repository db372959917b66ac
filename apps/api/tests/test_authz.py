"""
Tests for registration, JWT login, current user and role management.
"""
import pytest
from django.core import mail
from django.core.management import call_command
from rest_framework.test import APIClient

from apps.authz.models import User, RoleChoices, UserAuditLog, UserAuditActionChoices

REGISTER_URL = '/api/v1/auth/register/'


@pytest.mark.django_db
class TestRegistration:
    """POST /api/v1/auth/register/"""

    def test_register_patient(self, api_client):
        response = api_client.post(REGISTER_URL, {
            'email': 'New.Patient@Test.com',
            'password': 'S3cure-pass-2024',
            'first_name': 'Nadeesha',
            'last_name': 'Jayasuriya',
            'role': 'patient',
        }, format='json')

        assert response.status_code == 201
        assert response.data['email'] == 'new.patient@test.com'
        assert response.data['role'] == 'patient'
        assert response.data['roles'] == ['patient']
        assert 'password' not in response.data

        user = User.objects.get(email='new.patient@test.com')
        assert user.check_password('S3cure-pass-2024')
        assert UserAuditLog.objects.filter(
            target_user=user, action=UserAuditActionChoices.REGISTER
        ).exists()

    def test_register_doctor_sends_welcome_email(self, api_client):
        response = api_client.post(REGISTER_URL, {
            'email': 'dr.new@test.com',
            'password': 'S3cure-pass-2024',
            'first_name': 'Chamari',
            'last_name': 'Wickramasinghe',
            'role': 'doctor',
        }, format='json')

        assert response.status_code == 201
        assert response.data['role'] == 'doctor'
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ['dr.new@test.com']
        assert 'Doctor account' in mail.outbox[0].subject

    def test_role_defaults_to_patient(self, api_client):
        response = api_client.post(REGISTER_URL, {
            'email': 'plain@test.com',
            'password': 'S3cure-pass-2024',
        }, format='json')

        assert response.status_code == 201
        assert response.data['role'] == 'patient'

    def test_admin_role_cannot_be_self_assigned(self, api_client):
        response = api_client.post(REGISTER_URL, {
            'email': 'sneaky@test.com',
            'password': 'S3cure-pass-2024',
            'role': 'admin',
        }, format='json')

        assert response.status_code == 400
        assert 'role' in response.data
        assert not User.objects.filter(email='sneaky@test.com').exists()

    def test_duplicate_email_rejected(self, api_client, patient_user):
        response = api_client.post(REGISTER_URL, {
            'email': 'PATIENT@test.com',
            'password': 'S3cure-pass-2024',
        }, format='json')

        assert response.status_code == 400
        assert 'email' in response.data

    def test_weak_password_rejected(self, api_client):
        response = api_client.post(REGISTER_URL, {
            'email': 'weak@test.com',
            'password': '12345678',
        }, format='json')

        assert response.status_code == 400
        assert 'password' in response.data


@pytest.mark.django_db
class TestTokenLogin:
    """POST /api/auth/token/ (JWT)"""

    def test_obtain_and_use_token(self, api_client, doctor_user):
        response = api_client.post('/api/auth/token/', {
            'email': 'doctor@test.com',
            'password': 'S3cure-pass-2024',
        }, format='json')

        assert response.status_code == 200
        assert 'access' in response.data
        assert 'refresh' in response.data

        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        me = client.get('/api/v1/auth/me/')
        assert me.status_code == 200
        assert me.data['role'] == 'doctor'

    def test_wrong_password(self, api_client, doctor_user):
        response = api_client.post('/api/auth/token/', {
            'email': 'doctor@test.com',
            'password': 'wrong',
        }, format='json')

        assert response.status_code == 401


@pytest.mark.django_db
class TestCurrentUser:
    """GET /api/v1/auth/me/"""

    def test_requires_authentication(self, api_client):
        assert api_client.get('/api/v1/auth/me/').status_code == 401

    @pytest.mark.parametrize('roles,expected', [
        ([], 'patient'),
        ([RoleChoices.PATIENT], 'patient'),
        ([RoleChoices.DOCTOR], 'doctor'),
        ([RoleChoices.DOCTOR, RoleChoices.ADMIN], 'admin'),
    ])
    def test_primary_role_precedence(self, user_factory, roles, expected):
        client = APIClient()
        client.force_authenticate(user=user_factory(roles=roles))

        response = client.get('/api/v1/auth/me/')

        assert response.status_code == 200
        assert response.data['role'] == expected


@pytest.mark.django_db
class TestRoleManagement:
    """PATCH /api/v1/users/{id}/role/ and /api/v1/admins/"""

    def test_admin_changes_role(self, admin_client, admin_user, patient_user):
        response = admin_client.patch(
            f'/api/v1/users/{patient_user.id}/role/', {'role': 'doctor'}, format='json'
        )

        assert response.status_code == 200
        assert response.data['roles'] == ['doctor']

        log = UserAuditLog.objects.get(action=UserAuditActionChoices.CHANGE_ROLE)
        assert log.actor_user == admin_user
        assert log.metadata['before'] == ['patient']
        assert log.metadata['after'] == ['doctor']

    def test_admin_cannot_demote_self(self, admin_client, admin_user):
        response = admin_client.patch(
            f'/api/v1/users/{admin_user.id}/role/', {'role': 'patient'}, format='json'
        )

        assert response.status_code == 403
        assert RoleChoices.ADMIN in admin_user.role_names

    def test_invalid_role(self, admin_client, patient_user):
        response = admin_client.patch(
            f'/api/v1/users/{patient_user.id}/role/', {'role': 'nurse'}, format='json'
        )
        assert response.status_code == 400

    def test_non_admin_cannot_change_roles(self, doctor_client, patient_user):
        response = doctor_client.patch(
            f'/api/v1/users/{patient_user.id}/role/', {'role': 'admin'}, format='json'
        )
        assert response.status_code == 403

    def test_grant_list_and_revoke_admin(self, admin_client, doctor_user):
        response = admin_client.post('/api/v1/admins/', {'user_id': str(doctor_user.id)}, format='json')
        assert response.status_code == 201
        assert 'admin' in response.data['roles']

        listing = admin_client.get('/api/v1/admins/')
        assert listing.data['count'] == 2

        response = admin_client.delete(f'/api/v1/admins/{doctor_user.id}/')
        assert response.status_code == 204
        assert doctor_user.role_names == {RoleChoices.DOCTOR}

    def test_revoke_non_admin_returns_404(self, admin_client, patient_user):
        response = admin_client.delete(f'/api/v1/admins/{patient_user.id}/')
        assert response.status_code == 404

    def test_admin_cannot_revoke_self(self, admin_client, admin_user):
        response = admin_client.delete(f'/api/v1/admins/{admin_user.id}/')
        assert response.status_code == 403

    def test_grant_unknown_user(self, admin_client):
        response = admin_client.post(
            '/api/v1/admins/', {'user_id': '00000000-0000-0000-0000-000000000000'}, format='json'
        )
        assert response.status_code == 400


@pytest.mark.django_db
class TestEnsureAdminCommand:

    def test_creates_admin_once(self, monkeypatch):
        monkeypatch.setenv('DJANGO_SUPERUSER_EMAIL', 'boot@test.com')
        monkeypatch.setenv('DJANGO_SUPERUSER_PASSWORD', 'S3cure-pass-2024')

        call_command('ensure_admin')
        call_command('ensure_admin')

        user = User.objects.get(email='boot@test.com')
        assert user.is_superuser
        assert RoleChoices.ADMIN in user.role_names
