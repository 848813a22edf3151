from datetime import timedelta

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import UnprocessableError
from apps.masterdata.models import LabTestCategory, LabTest
from apps.patients.models import Patient, Encounter
from . import services
from .models import LabOrder

User = get_user_model()


class LabOrderTestBase(TestCase):

    def setUp(self):
        category = LabTestCategory.objects.create(name='Biochemistry')
        self.test = LabTest.objects.create(
            name='Lipid Profile', code='LIPID', category=category, price='800.00', turnaround_hours=12
        )
        patient = Patient.objects.create(first_name='Meena', last_name='Iyer', gender='female')
        self.encounter = Encounter.objects.create(patient=patient, encounter_type=Encounter.TYPE_OPD)

    def order(self, priority='normal'):
        return services.create_lab_order(self.encounter, {'test': self.test, 'priority': priority})


class LabOrderServiceTest(LabOrderTestBase):

    def test_patient_and_name_from_encounter_and_test(self):
        order = self.order()

        self.assertEqual(order.patient, self.encounter.patient)
        self.assertEqual(order.test_name, 'Lipid Profile')
        self.assertTrue(order.order_number.startswith('LAB-'))

    def test_expected_completion_by_priority(self):
        for priority, hours in [('urgent', 2), ('fast', 6), ('normal', 12)]:
            order = self.order(priority)
            expected = order.created_at + timedelta(hours=hours)
            self.assertLess(abs((order.expected_completion_at - expected).total_seconds()), 5, priority)

    def test_inactive_test_rejected(self):
        self.test.is_active = False
        self.test.save()
        with self.assertRaises(UnprocessableError):
            self.order()

    def test_update_cannot_move_order(self):
        order = self.order()
        other = Encounter.objects.create(patient=self.encounter.patient, encounter_type=Encounter.TYPE_OPD)

        services.update_lab_order(order, {'encounter': other, 'priority': 'urgent'})

        order.refresh_from_db()
        self.assertEqual(order.encounter, self.encounter)
        self.assertEqual(order.priority, 'urgent')

    def test_update_rejects_inactive_test(self):
        order = self.order()
        retired = LabTest.objects.create(
            name='Old Panel', code='OLD', category=self.test.category, is_active=False
        )

        with self.assertRaises(UnprocessableError):
            services.update_lab_order(order, {'test': retired})
        order.refresh_from_db()
        self.assertEqual(order.test, self.test)

    def test_update_names_follow_catalogue(self):
        order = self.order()
        glucose = LabTest.objects.create(name='Fasting Glucose', code='FBS', category=self.test.category)

        services.update_lab_order(order, {'test': glucose})
        self.assertEqual(order.test_name, 'Fasting Glucose')

        services.update_lab_order(order, {'test_name': 'FBS (repeat)'})
        self.assertEqual(order.test_name, 'FBS (repeat)')

        services.update_lab_order(order, {'test_name': ''})
        order.refresh_from_db()
        self.assertEqual(order.test_name, 'Fasting Glucose')

    def test_completed_order_is_locked(self):
        order = self.order()
        services.record_result(order, '180 mg/dL')

        with self.assertRaises(UnprocessableError):
            services.update_lab_order(order, {'priority': 'fast'})
        with self.assertRaises(UnprocessableError):
            services.cancel_lab_order(order)

    def test_collect_only_pending(self):
        order = self.order()
        services.collect_sample(order)
        self.assertEqual(order.status, 'collected')
        with self.assertRaises(UnprocessableError):
            services.collect_sample(order)


class LabWorkQueueApiTest(LabOrderTestBase):

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.tech = User.objects.create_user(username='lab', password='x')
        self.tech.groups.add(Group.objects.create(name='Lab Technician'))
        self.client.force_authenticate(self.tech)

    def test_requires_lab_role(self):
        receptionist = User.objects.create_user(username='desk', password='x')
        receptionist.groups.add(Group.objects.create(name='Receptionist'))
        self.client.force_authenticate(receptionist)

        self.assertEqual(self.client.get('/api/orders/lab-orders/').status_code, 403)

    def test_overdue_filter(self):
        late = self.order()
        LabOrder.objects.filter(pk=late.pk).update(expected_completion_at=timezone.now() - timedelta(hours=1))
        self.order()

        response = self.client.get('/api/orders/lab-orders/', {'overdue': 'true'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([o['id'] for o in response.data['data']], [late.pk])
        self.assertTrue(response.data['data'][0]['is_overdue'])

    def test_result_workflow(self):
        order = self.order()

        self.client.post(f'/api/orders/lab-orders/{order.pk}/collect/')
        response = self.client.post(
            f'/api/orders/lab-orders/{order.pk}/result/', {'result_value': '180 mg/dL'}, format='json'
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['status'], 'completed')
        self.assertEqual(response.data['data']['reported_by'], self.tech.pk)

        response = self.client.post(f'/api/orders/lab-orders/{order.pk}/cancel/')
        self.assertEqual(response.status_code, 422)
