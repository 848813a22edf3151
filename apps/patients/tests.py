import datetime

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from rest_framework.test import APIClient

from apps.inpatient import services as inpatient_services
from apps.masterdata.models import Department, Ward, Bed

from .models import Patient, PatientAllergy, Encounter

User = get_user_model()


class PatientModelTest(TestCase):

    def test_patient_ids_are_sequential(self):
        first = Patient.objects.create(first_name='Asha', gender='female')
        second = Patient.objects.create(first_name='Vikram', gender='male')

        year = datetime.datetime.now().year
        self.assertEqual(first.patient_id, f'PAT{year}0001')
        self.assertEqual(second.patient_id, f'PAT{year}0002')

    def test_active_allergens(self):
        patient = Patient.objects.create(first_name='Asha', gender='female')
        PatientAllergy.objects.create(patient=patient, allergen='Penicillin')
        PatientAllergy.objects.create(patient=patient, allergen='Sulfa', is_active=False)

        self.assertEqual(patient.active_allergens(), ['Penicillin'])

    def test_encounter_complete_once(self):
        patient = Patient.objects.create(first_name='Asha', gender='female')
        encounter = Encounter.objects.create(patient=patient, encounter_type=Encounter.TYPE_OPD)

        self.assertTrue(encounter.complete())
        self.assertFalse(encounter.complete())
        self.assertIsNotNone(encounter.ended_at)


class PatientApiTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='desk', password='x')
        self.user.groups.add(Group.objects.create(name='Receptionist'))
        self.client.force_authenticate(self.user)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        self.assertEqual(self.client.get('/api/patients/').status_code, 401)

    def test_register_and_soft_delete(self):
        response = self.client.post('/api/patients/', {
            'first_name': 'Asha', 'last_name': 'Rao', 'gender': 'female'
        }, format='json')

        self.assertEqual(response.status_code, 201)
        patient_id = response.data['data']['id']
        self.assertEqual(response.data['data']['full_name'], 'Asha Rao')

        self.client.delete(f'/api/patients/{patient_id}/')
        self.assertFalse(Patient.objects.get(pk=patient_id).is_active)
        self.assertEqual(self.client.get('/api/patients/').data['count'], 0)

    def test_allergy_upsert(self):
        patient = Patient.objects.create(first_name='Asha', gender='female')
        url = f'/api/patients/{patient.pk}/allergies/'

        response = self.client.post(url, {'allergen': 'Penicillin', 'severity': 'mild'}, format='json')
        self.assertEqual(response.status_code, 201)
        response = self.client.post(url, {'allergen': 'Penicillin', 'severity': 'severe'}, format='json')
        self.assertEqual(response.status_code, 200)

        self.assertEqual(patient.allergies.get().severity, 'severe')

    def test_complete_encounter(self):
        patient = Patient.objects.create(first_name='Asha', gender='female')
        response = self.client.post('/api/encounters/', {
            'patient': patient.pk, 'encounter_type': 'OPD'
        }, format='json')
        self.assertEqual(response.status_code, 201)
        encounter_id = response.data['data']['id']

        response = self.client.post(f'/api/encounters/{encounter_id}/complete/')
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['status'], 'COMPLETED')

        response = self.client.post(f'/api/encounters/{encounter_id}/complete/')
        self.assertEqual(response.status_code, 422)
        self.assertFalse(response.data['success'])

    def test_patient_and_type_fixed_after_creation(self):
        patient = Patient.objects.create(first_name='Asha', gender='female')
        other = Patient.objects.create(first_name='Vikram', gender='male')
        encounter = Encounter.objects.create(patient=patient, encounter_type=Encounter.TYPE_IPD)

        response = self.client.patch(f'/api/encounters/{encounter.pk}/', {
            'encounter_type': 'OPD', 'patient': other.pk, 'chief_complaint': 'Fever'
        }, format='json')

        self.assertEqual(response.status_code, 200)
        encounter.refresh_from_db()
        self.assertEqual(encounter.encounter_type, Encounter.TYPE_IPD)
        self.assertEqual(encounter.patient, patient)
        self.assertEqual(encounter.chief_complaint, 'Fever')

    def test_completing_inpatient_encounter_releases_bed(self):
        department = Department.objects.create(name='Medicine', code='MED')
        ward = Ward.objects.create(name='General', department=department, capacity=2)
        bed = Bed.objects.create(ward=ward, bed_number='G1')
        patient = Patient.objects.create(first_name='Asha', gender='female')
        encounter = inpatient_services.admit_patient(patient, bed)

        response = self.client.post(f'/api/encounters/{encounter.pk}/complete/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['status'], 'COMPLETED')
        bed.refresh_from_db()
        self.assertEqual(bed.status, 'available')
        self.assertFalse(encounter.bed_assignments.filter(released_at__isnull=True).exists())
        self.assertEqual(self.client.post(f'/api/encounters/{encounter.pk}/complete/').status_code, 422)
