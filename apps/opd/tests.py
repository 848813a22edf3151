from datetime import time, timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.broadcast import event_broadcast
from common.exceptions import UnprocessableError
from apps.masterdata.models import LabTestCategory, LabTest
from apps.orders.models import LabOrder
from apps.patients.models import Patient, Encounter
from apps.pharmacy.models import DrugFormulary, Prescription
from . import services, triage
from .models import OpdAppointment
from .signals import calendar_payload

User = get_user_model()


class TriageScoringTest(TestCase):

    def test_normal_vitals_are_routine(self):
        result = triage.calculate_triage({
            'temperature': '36.8', 'blood_pressure': '120/80', 'heart_rate': 72,
            'respiratory_rate': 16, 'oxygen_saturation': 98, 'pain_level': 1,
        })
        self.assertEqual(result, {'triage_score': 0, 'triage_level': 'routine', 'red_flags': ''})

    def test_critical_flag_forces_emergency(self):
        result = triage.calculate_triage({'oxygen_saturation': 85})
        self.assertEqual(result['triage_score'], 4)
        self.assertEqual(result['triage_level'], 'emergency')
        self.assertEqual(result['red_flags'], 'Critical hypoxia')

    def test_symptom_keywords(self):
        result = triage.calculate_triage({'chief_complaint': 'Sudden CHEST PAIN since morning'})
        self.assertEqual(result['triage_level'], 'emergency')
        self.assertIn('Chest pain', result['red_flags'])

    def test_score_thresholds(self):
        # fever (2) + tachycardia band (2) + moderate pain (2)
        result = triage.calculate_triage({'temperature': 38.6, 'heart_rate': 105, 'pain_level': 5})
        self.assertEqual(result['triage_score'], 6)
        self.assertEqual(result['triage_level'], 'urgent')

    def test_priority_order(self):
        self.assertEqual(triage.priority_order('emergency'), 1)
        self.assertEqual(triage.priority_order('routine'), 4)
        self.assertEqual(triage.priority_order(''), 5)


class AppointmentServiceTest(TestCase):

    def setUp(self):
        self.patient = Patient.objects.create(first_name='Ravi', last_name='Kumar', gender='male')

    def test_walk_in_opens_encounter_and_queues(self):
        first = services.create_appointment(self.patient, {'chief_complaint': 'Cough'})
        second = services.create_appointment(self.patient, {'chief_complaint': 'Fever'})

        self.assertEqual(first.pk, first.encounter.pk)
        self.assertEqual(first.encounter.encounter_type, Encounter.TYPE_OPD)
        self.assertEqual(first.status, OpdAppointment.WAITING)
        self.assertEqual((first.queue_number, second.queue_number), (1, 2))

        today = timezone.localdate().strftime('%Y%m%d')
        self.assertEqual(first.appointment_number, f'OPD-{today}-0001')
        self.assertEqual(second.appointment_number, f'OPD-{today}-0002')

    def test_scheduled_is_queued_at_check_in(self):
        appointment = services.create_appointment(self.patient, {'appointment_type': 'scheduled'})
        self.assertIsNone(appointment.queue_number)

        services.change_status(appointment, OpdAppointment.CHECKED_IN)
        self.assertEqual(appointment.queue_number, 1)
        self.assertIsNotNone(appointment.checked_in_at)

    def test_complete_closes_encounter(self):
        appointment = services.create_appointment(self.patient, {})
        services.change_status(appointment, OpdAppointment.IN_PROGRESS)
        services.change_status(appointment, OpdAppointment.COMPLETED)

        appointment.encounter.refresh_from_db()
        self.assertEqual(appointment.encounter.status, Encounter.STATUS_COMPLETED)

    def test_invalid_transition(self):
        appointment = services.create_appointment(self.patient, {})
        with self.assertRaises(UnprocessableError):
            services.change_status(appointment, OpdAppointment.COMPLETED)

    def test_queue_orders_by_triage_then_number(self):
        routine = services.create_appointment(self.patient, {'chief_complaint': 'Rash'})
        urgent = services.create_appointment(self.patient, {'chief_complaint': 'Fall'})
        untriaged = services.create_appointment(self.patient, {'chief_complaint': 'Review'})
        services.record_triage(routine, {'heart_rate': 70})
        services.record_triage(urgent, {'oxygen_saturation': 85})

        self.assertEqual(
            [a.pk for a in services.queue_for()],
            [urgent.pk, routine.pk, untriaged.pk]
        )

    def test_save_broadcasts_calendar_event(self):
        receiver = mock.Mock()
        event_broadcast.connect(receiver)
        self.addCleanup(event_broadcast.disconnect, receiver)

        appointment = services.create_appointment(self.patient, {'chief_complaint': 'Cough'})

        kwargs = receiver.call_args.kwargs
        self.assertEqual(kwargs['channels'], ['appointments', 'opd-appointments'])
        self.assertEqual(kwargs['event'], 'opd-appointment.updated')
        self.assertEqual(kwargs['payload']['action'], 'created')
        self.assertEqual(kwargs['payload']['appointment']['id'], appointment.pk)

    def test_calendar_payload(self):
        appointment = services.create_appointment(self.patient, {
            'appointment_type': 'scheduled',
            'appointment_time': time(9, 30),
            'chief_complaint': 'Back pain',
        })
        payload = calendar_payload(appointment)['appointment']

        day = appointment.appointment_date.isoformat()
        self.assertEqual(payload['title'], 'Ravi Kumar – Back pain')
        self.assertEqual(payload['start'], f'{day}T09:30:00')
        self.assertEqual(payload['end'], f'{day}T10:15:00')
        self.assertEqual(payload['color'], '#3b82f6')


class ConsultationApiTestBase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.doctor = User.objects.create_user(username='dr', password='x')
        self.doctor.groups.add(Group.objects.create(name='Doctor'))
        self.client.force_authenticate(self.doctor)

        self.patient = Patient.objects.create(first_name='Meera', gender='female')
        self.appointment_a = services.create_appointment(self.patient, {'chief_complaint': 'Fever'})
        self.appointment_b = services.create_appointment(self.patient, {'chief_complaint': 'Follow up'})

        category = LabTestCategory.objects.create(name='Haematology')
        self.cbc = LabTest.objects.create(name='Complete Blood Count', code='CBC', category=category, turnaround_hours=12)
        self.lft = LabTest.objects.create(name='Liver Function Test', code='LFT', category=category)

    def lab_orders_url(self, appointment, pk=None):
        url = f'/api/opd/appointments/{appointment.pk}/lab-orders/'
        return f'{url}{pk}/' if pk else url


class AppointmentLabOrderApiTest(ConsultationApiTestBase):

    def test_create_links_to_appointment_encounter(self):
        response = self.client.post(self.lab_orders_url(self.appointment_a), {
            'test': self.cbc.pk, 'priority': 'normal'
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['message'], 'Lab order created successfully')
        self.assertEqual(response.data['data']['encounter'], self.appointment_a.pk)
        self.assertEqual(response.data['data']['test_name'], 'Complete Blood Count')

        order = LabOrder.objects.get()
        self.assertEqual(order.patient, self.patient)
        expected = order.created_at + timedelta(hours=12)
        self.assertAlmostEqual(
            order.expected_completion_at.timestamp(), expected.timestamp(), delta=5
        )

    def test_urgent_priority_turnaround(self):
        self.client.post(self.lab_orders_url(self.appointment_a), {
            'test': self.cbc.pk, 'priority': 'urgent'
        }, format='json')
        order = LabOrder.objects.get()
        self.assertAlmostEqual(
            (order.expected_completion_at - order.created_at).total_seconds(), 2 * 3600, delta=5
        )

    def test_update_keeps_encounter(self):
        created = self.client.post(self.lab_orders_url(self.appointment_a), {
            'test': self.cbc.pk, 'priority': 'normal'
        }, format='json')
        pk = created.data['data']['id']

        response = self.client.put(self.lab_orders_url(self.appointment_a, pk), {
            'test': self.lft.pk, 'priority': 'fast', 'encounter': self.appointment_b.pk
        }, format='json')

        self.assertEqual(response.status_code, 200)
        order = LabOrder.objects.get(pk=pk)
        self.assertEqual(order.encounter_id, self.appointment_a.pk)
        self.assertEqual(order.test_name, 'Liver Function Test')
        self.assertEqual(order.priority, 'fast')

    def test_other_appointment_cannot_see_order(self):
        created = self.client.post(self.lab_orders_url(self.appointment_a), {
            'test': self.cbc.pk, 'priority': 'normal'
        }, format='json')
        pk = created.data['data']['id']

        self.assertEqual(self.client.get(self.lab_orders_url(self.appointment_b, pk)).status_code, 404)
        self.assertEqual(self.client.delete(self.lab_orders_url(self.appointment_b, pk)).status_code, 404)
        self.assertEqual(self.client.get(self.lab_orders_url(self.appointment_b)).data['count'], 0)

    def test_delete_leaves_siblings_linked(self):
        ids = [
            self.client.post(self.lab_orders_url(self.appointment_a), {
                'test': test.pk, 'priority': 'normal'
            }, format='json').data['data']['id']
            for test in (self.cbc, self.lft)
        ]

        response = self.client.delete(self.lab_orders_url(self.appointment_a, ids[0]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['message'], 'Lab order deleted successfully')
        sibling = LabOrder.objects.get(pk=ids[1])
        self.assertEqual(sibling.encounter_id, self.appointment_a.pk)

    def test_completed_consultation_is_read_only(self):
        services.change_status(self.appointment_a, OpdAppointment.IN_PROGRESS)
        services.change_status(self.appointment_a, OpdAppointment.COMPLETED)

        response = self.client.post(self.lab_orders_url(self.appointment_a), {
            'test': self.cbc.pk, 'priority': 'normal'
        }, format='json')

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data['error'], 'Cannot modify completed consultation')
        self.assertEqual(self.client.get(self.lab_orders_url(self.appointment_a)).status_code, 200)

    def test_non_doctor_forbidden(self):
        receptionist = User.objects.create_user(username='desk', password='x')
        receptionist.groups.add(Group.objects.create(name='Receptionist'))
        self.client.force_authenticate(receptionist)

        response = self.client.get(self.lab_orders_url(self.appointment_a))
        self.assertEqual(response.status_code, 403)

    def test_unknown_appointment(self):
        response = self.client.get('/api/opd/appointments/999999/lab-orders/')
        self.assertEqual(response.status_code, 404)

    def test_missing_priority(self):
        response = self.client.post(self.lab_orders_url(self.appointment_a), {
            'test': self.cbc.pk
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('priority', response.data['errors'])


class AppointmentPrescriptionApiTest(ConsultationApiTestBase):

    def setUp(self):
        super().setUp()
        self.drug = DrugFormulary.objects.create(
            name='Paracetamol', generic_name='Acetaminophen', strength='500mg',
            therapeutic_class='Analgesic', unit_price=Decimal('1.00'), stock_quantity=20
        )

    def url(self, appointment, pk=None):
        url = f'/api/opd/appointments/{appointment.pk}/prescriptions/'
        return f'{url}{pk}/' if pk else url

    def payload(self, **overrides):
        data = {
            'drug': self.drug.pk, 'dosage': '1 tablet', 'frequency': 'TDS',
            'duration': '3 days', 'quantity': 9,
        }
        data.update(overrides)
        return data

    def test_create_links_to_appointment(self):
        response = self.client.post(self.url(self.appointment_a), self.payload(), format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['warnings'], [])
        prescription = Prescription.objects.get()
        self.assertEqual(prescription.encounter_id, self.appointment_a.pk)
        self.assertEqual(prescription.patient, self.patient)

    def test_missing_fields_rejected(self):
        response = self.client.post(self.url(self.appointment_a), {'drug': self.drug.pk}, format='json')

        self.assertEqual(response.status_code, 422)
        self.assertEqual(set(response.data['errors']), {'dosage', 'frequency', 'duration', 'quantity'})

    def test_update_keeps_encounter(self):
        pk = self.client.post(self.url(self.appointment_a), self.payload(), format='json').data['data']['id']

        response = self.client.patch(self.url(self.appointment_a, pk), {'dosage': '2 tablets'}, format='json')

        self.assertEqual(response.status_code, 200)
        prescription = Prescription.objects.get(pk=pk)
        self.assertEqual(prescription.dosage, '2 tablets')
        self.assertEqual(prescription.encounter_id, self.appointment_a.pk)

    def test_insufficient_stock_for_instant_dispensing(self):
        response = self.client.post(
            self.url(self.appointment_a),
            self.payload(quantity=50, instant_dispensing=True),
            format='json'
        )
        self.assertEqual(response.status_code, 422)
        self.assertFalse(Prescription.objects.exists())

    def test_delete_returns_reserved_stock(self):
        pk = self.client.post(
            self.url(self.appointment_a), self.payload(instant_dispensing=True), format='json'
        ).data['data']['id']
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock_quantity, 11)

        self.client.delete(self.url(self.appointment_a, pk))

        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock_quantity, 20)
