"""
Tests for doctor ratings.

One rating per (doctor, patient); rating again replaces the previous one.
"""
import pytest

from apps.ratings.models import Rating


@pytest.mark.django_db
class TestRateDoctor:
    """POST /api/v1/ratings/"""

    def test_first_rating_created_then_replaced(self, patient_client, doctor):
        body = {'doctor_id': str(doctor.id), 'rating': 4, 'comment': 'Good'}

        first = patient_client.post('/api/v1/ratings/', body, format='json')
        assert first.status_code == 201

        second = patient_client.post('/api/v1/ratings/', {**body, 'rating': 2, 'comment': 'Late'}, format='json')
        assert second.status_code == 200
        assert second.data['rating'] == 2

        rating = Rating.objects.get(doctor=doctor)
        assert rating.comment == 'Late'
        assert Rating.objects.count() == 1

    @pytest.mark.parametrize('value', [0, 6])
    def test_rating_out_of_range(self, patient_client, doctor, value):
        response = patient_client.post(
            '/api/v1/ratings/', {'doctor_id': str(doctor.id), 'rating': value}, format='json'
        )
        assert response.status_code == 400
        assert 'rating' in response.data

    def test_unknown_doctor(self, patient_client, db):
        response = patient_client.post(
            '/api/v1/ratings/',
            {'doctor_id': '00000000-0000-0000-0000-000000000000', 'rating': 5},
            format='json'
        )
        assert response.status_code == 400

    def test_doctor_cannot_rate(self, doctor_client, other_doctor):
        response = doctor_client.post(
            '/api/v1/ratings/', {'doctor_id': str(other_doctor.id), 'rating': 5}, format='json'
        )
        assert response.status_code == 403

    def test_rating_for_own_appointment(self, patient_client, doctor, booked_slot):
        response = patient_client.post('/api/v1/ratings/', {
            'doctor_id': str(doctor.id),
            'rating': 5,
            'appointment_id': booked_slot.appointment_key,
        }, format='json')

        assert response.status_code == 201
        assert response.data['appointment_id'] == booked_slot.appointment_key

    def test_rating_for_foreign_appointment_rejected(self, other_patient_client, doctor, booked_slot):
        response = other_patient_client.post('/api/v1/ratings/', {
            'doctor_id': str(doctor.id),
            'rating': 1,
            'appointment_id': booked_slot.appointment_key,
        }, format='json')

        assert response.status_code == 400
        assert not Rating.objects.exists()

    def test_malformed_appointment_id(self, patient_client, doctor):
        response = patient_client.post('/api/v1/ratings/', {
            'doctor_id': str(doctor.id),
            'rating': 3,
            'appointment_id': 'not-an-appointment',
        }, format='json')

        assert response.status_code == 400
        assert response.data['error'] == 'Invalid appointment id'


@pytest.mark.django_db
class TestRatingQueries:

    @pytest.fixture
    def ratings(self, doctor, patient, other_patient):
        Rating.objects.create(doctor=doctor, patient=patient, rating=5, comment='Excellent')
        Rating.objects.create(doctor=doctor, patient=other_patient, rating=4, appointment_id='abc_09:00_09:30')

    def test_reviews_for_doctor(self, patient_client, doctor, ratings):
        response = patient_client.get(f'/api/v1/ratings/doctor/{doctor.id}/')

        assert response.status_code == 200
        assert response.data['count'] == 2
        assert {r['patient_name'] for r in response.data['results']} == {'Sunil Fernando', 'Ayesha Khan'}

    def test_average(self, patient_client, doctor, ratings):
        response = patient_client.get(f'/api/v1/ratings/doctor/{doctor.id}/average/')

        assert response.data == {'avg_rating': 4.5, 'total_reviews': 2}

    def test_average_without_ratings(self, patient_client, other_doctor):
        response = patient_client.get(f'/api/v1/ratings/doctor/{other_doctor.id}/average/')

        assert response.data == {'avg_rating': 0.0, 'total_reviews': 0}

    def test_rating_by_appointment_is_per_caller(self, patient_client, other_patient_client, ratings):
        url = '/api/v1/ratings/appointment/abc_09:00_09:30/'

        assert other_patient_client.get(url).status_code == 200
        assert patient_client.get(url).status_code == 404
