from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from rest_framework.test import APIClient

from apps.opd import services as opd_services
from apps.opd.models import OpdAppointment
from apps.patients.models import Patient, Encounter
from .models import EmergencyPatient, TriageAssessment
from . import services

User = get_user_model()


class TriageDispositionTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.nurse = User.objects.create_user(username='nurse', password='x')
        self.nurse.groups.add(Group.objects.create(name='Nurse'))
        self.client.force_authenticate(self.nurse)
        self.patient = Patient.objects.create(first_name='John', last_name='Doe', gender='male')

    def register(self, **overrides):
        data = {
            'chief_complaint': 'Fall from bike',
            'arrival_mode': 'ambulance',
            'temp_name': 'Unknown male',
        }
        data.update(overrides)
        return self.client.post('/api/emergency/patients/', data, format='json')

    def triage(self, emergency_id, **overrides):
        data = {'triage_category': 'yellow', 'disposition': 'emergency'}
        data.update(overrides)
        return self.client.post(f'/api/emergency/patients/{emergency_id}/triage/', data, format='json')

    def test_register_unregistered_arrival(self):
        response = self.register()

        self.assertEqual(response.status_code, 201)
        record = EmergencyPatient.objects.get()
        self.assertEqual(record.status, 'active')
        self.assertIsNone(record.encounter)

    def test_register_requires_name_or_patient(self):
        response = self.register(temp_name='')
        self.assertEqual(response.status_code, 400)
        self.assertIn('temp_name', response.data['errors'])

    def test_registered_patient_gets_emergency_encounter(self):
        response = self.register(patient=self.patient.pk, temp_name='')

        self.assertEqual(response.status_code, 201)
        record = EmergencyPatient.objects.get()
        self.assertEqual(record.encounter.encounter_type, Encounter.TYPE_EMERGENCY)

    def test_triage_creates_one_assessment(self):
        emergency_id = self.register().data['data']['id']

        response = self.triage(emergency_id, gcs_eye=3, gcs_motor=5, heart_rate=250)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(TriageAssessment.objects.count(), 1)
        assessment = TriageAssessment.objects.get()
        self.assertEqual(assessment.gcs_total, 8)
        self.assertEqual(assessment.heart_rate, 250)
        self.assertEqual(assessment.assessed_by, self.nurse)
        self.assertEqual(EmergencyPatient.objects.get().triage_category, 'yellow')

    def test_gcs_total_empty_without_components(self):
        emergency_id = self.register().data['data']['id']
        self.triage(emergency_id)
        self.assertIsNone(TriageAssessment.objects.get().gcs_total)

    def test_category_and_disposition_required(self):
        emergency_id = self.register().data['data']['id']
        response = self.client.post(
            f'/api/emergency/patients/{emergency_id}/triage/', {}, format='json'
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(set(response.data['errors']), {'triage_category', 'disposition'})

    def test_gcs_out_of_range(self):
        emergency_id = self.register().data['data']['id']
        response = self.triage(emergency_id, gcs_eye=5)
        self.assertEqual(response.status_code, 400)

    def test_opd_disposition_creates_waiting_appointment(self):
        emergency_id = self.register(patient=self.patient.pk, chief_complaint='Mild headache').data['data']['id']

        response = self.triage(emergency_id, triage_category='green', disposition='opd')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['warnings'], [])
        appointment = OpdAppointment.objects.get()
        self.assertEqual(appointment.status, OpdAppointment.WAITING)
        self.assertEqual(appointment.queue_number, 1)
        self.assertEqual(appointment.chief_complaint, 'Mild headache')
        self.assertEqual(appointment.emergency_patient_id, emergency_id)
        self.assertEqual(response.data['data']['opd_appointment']['id'], appointment.pk)

        record = EmergencyPatient.objects.get()
        self.assertEqual(record.status, 'transferred')
        self.assertEqual(record.encounter.status, Encounter.STATUS_COMPLETED)

    def test_referral_queues_behind_waiting_patients(self):
        first = opd_services.create_appointment(Patient.objects.create(first_name='Walk', gender='female'), {})
        second = opd_services.create_appointment(Patient.objects.create(first_name='In', gender='male'), {})
        self.assertEqual((first.queue_number, second.queue_number), (1, 2))
        OpdAppointment.objects.filter(pk=second.pk).update(status=OpdAppointment.IN_PROGRESS)
        emergency_id = self.register(patient=self.patient.pk).data['data']['id']

        self.triage(emergency_id, triage_category='green', disposition='opd')

        referral = OpdAppointment.objects.get(emergency_patient_id=emergency_id)
        self.assertEqual(referral.queue_number, 2)
        self.assertEqual(opd_services.next_queue_number(), 3)

    def test_red_to_opd_is_accepted_with_warning(self):
        emergency_id = self.register(patient=self.patient.pk).data['data']['id']

        response = self.triage(emergency_id, triage_category='red', disposition='opd')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.data['warnings']), 1)
        self.assertTrue(OpdAppointment.objects.exists())

    def test_opd_disposition_needs_registered_patient(self):
        emergency_id = self.register().data['data']['id']

        response = self.triage(emergency_id, disposition='opd')

        self.assertEqual(response.status_code, 422)
        self.assertFalse(TriageAssessment.objects.exists())

    def test_transferred_patient_cannot_be_triaged_again(self):
        emergency_id = self.register(patient=self.patient.pk).data['data']['id']
        self.triage(emergency_id, disposition='opd')

        response = self.triage(emergency_id)
        self.assertEqual(response.status_code, 422)

    def test_list_hides_closed_patients(self):
        open_id = self.register().data['data']['id']
        closed_id = self.register(temp_name='Second').data['data']['id']
        self.client.post(f'/api/emergency/patients/{closed_id}/transfer/', {
            'destination': 'discharge'
        }, format='json')

        response = self.client.get('/api/emergency/patients/')

        self.assertEqual([row['id'] for row in response.data['data']], [open_id])


class EmergencyWorkflowTest(TestCase):

    def setUp(self):
        self.record = services.register_emergency_patient({
            'temp_name': 'Jane', 'chief_complaint': 'Burns', 'arrival_mode': 'walk_in'
        })

    def test_orders(self):
        order = services.place_order(self.record, {
            'order_type': 'imaging', 'order_name': 'Chest X-ray', 'priority': 'stat'
        })
        self.assertEqual(order.status, 'pending')
        self.assertEqual(self.record.orders.count(), 1)

    def test_transfer_to_ward(self):
        record, admission = services.transfer(self.record, 'icu', notes='Needs monitoring')
        self.assertEqual(record.status, 'admitted')
        self.assertIsNone(admission)

    def test_census(self):
        services.register_emergency_patient({
            'temp_name': 'Other', 'chief_complaint': 'Cut', 'arrival_mode': 'walk_in'
        })
        services.record_triage(self.record, {'triage_category': 'red', 'disposition': 'emergency'})

        result = services.census()

        self.assertEqual(result['total'], 2)
        self.assertEqual(result['by_status'], {'active': 2})
        self.assertEqual(result['by_triage_category'], {'red': 1, 'untriaged': 1})
