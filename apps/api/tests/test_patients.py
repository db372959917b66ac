"""
Tests for patient profiles.
"""
import pytest
from rest_framework.test import APIClient

from apps.patients.models import Patient
from apps.patients.services import get_or_create_patient_for_user


@pytest.mark.django_db
class TestPatientProfile:
    """/api/v1/patients/"""

    def test_patient_creates_own_profile(self, user_factory):
        user = user_factory(email='kasun@test.com')
        client = APIClient()
        client.force_authenticate(user=user)

        response = client.post('/api/v1/patients/', {
            'name': 'Kasun Bandara',
            'email': 'Kasun@Test.com',
            'sex': 'Male',
        }, format='json')

        assert response.status_code == 201
        assert response.data['user'] == user.id
        assert response.data['email'] == 'kasun@test.com'

    def test_second_profile_conflicts(self, patient_client):
        response = patient_client.post('/api/v1/patients/', {
            'name': 'Again',
            'email': 'again@test.com',
        }, format='json')

        assert response.status_code == 409

    def test_patient_lists_only_self(self, patient_client, patient, other_patient):
        response = patient_client.get('/api/v1/patients/')

        assert response.status_code == 200
        assert [p['id'] for p in response.data['results']] == [str(patient.id)]

    def test_doctor_lists_and_searches_everyone(self, doctor_client, patient, other_patient):
        response = doctor_client.get('/api/v1/patients/')
        assert response.data['count'] == 2

        response = doctor_client.get('/api/v1/patients/?q=ayesha')
        assert [p['name'] for p in response.data['results']] == ['Ayesha Khan']

    def test_doctor_cannot_update(self, doctor_client, patient):
        response = doctor_client.patch(f'/api/v1/patients/{patient.id}/', {'phone': '1'}, format='json')
        assert response.status_code == 403

    def test_owner_updates_but_cannot_relink(self, patient_client, patient, other_patient):
        response = patient_client.patch(f'/api/v1/patients/{patient.id}/', {
            'phone': '+94770001122',
            'user': str(other_patient.user_id),
        }, format='json')

        assert response.status_code == 200
        patient.refresh_from_db()
        assert patient.phone == '+94770001122'
        assert patient.user_id != other_patient.user_id

    def test_patient_cannot_read_other_profile(self, patient_client, other_patient):
        response = patient_client.get(f'/api/v1/patients/{other_patient.id}/')
        assert response.status_code == 403

    def test_only_admin_deletes(self, patient_client, admin_client, patient):
        assert patient_client.delete(f'/api/v1/patients/{patient.id}/').status_code == 403
        assert admin_client.delete(f'/api/v1/patients/{patient.id}/').status_code == 204

    def test_me(self, patient_client, patient, doctor_client):
        response = patient_client.get('/api/v1/patients/me/')
        assert response.status_code == 200
        assert response.data['name'] == 'Sunil Fernando'

        assert doctor_client.get('/api/v1/patients/me/').status_code == 404


@pytest.mark.django_db
class TestGetOrCreatePatient:

    def test_returns_existing_profile(self, patient):
        assert get_or_create_patient_for_user(patient.user) == patient

    def test_links_imported_profile_by_email(self, user_factory):
        imported = Patient.objects.create(name='Imported', email='imported@test.com')
        user = user_factory(email='Imported@test.com')

        linked = get_or_create_patient_for_user(user)

        assert linked.pk == imported.pk
        assert linked.user == user

    def test_creates_profile_from_account(self, user_factory):
        user = user_factory(email='fresh@test.com', first_name='Dilini', last_name='Perera')

        patient = get_or_create_patient_for_user(user)

        assert patient.name == 'Dilini Perera'
        assert patient.email == 'fresh@test.com'
