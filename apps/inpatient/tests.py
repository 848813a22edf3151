from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from common.exceptions import ConflictError, ResourceNotFound, UnprocessableError
from apps.masterdata.models import Department, Ward, Bed
from apps.patients.models import Patient, Encounter
from . import services
from .models import BedAssignment

User = get_user_model()


class InpatientTestMixin:

    def make_ward(self, beds=3):
        department = Department.objects.create(name='Medicine', code='MED')
        self.ward = Ward.objects.create(name='General', department=department, capacity=10)
        self.beds = [Bed.objects.create(ward=self.ward, bed_number=f'G{i}') for i in range(1, beds + 1)]

    def make_patient(self, first_name='Ravi'):
        return Patient.objects.create(first_name=first_name, last_name='Kumar', gender='male')


class BedAssignmentServiceTest(InpatientTestMixin, TestCase):

    def setUp(self):
        cache.clear()
        self.make_ward()
        self.patient = self.make_patient()

    def test_admit_occupies_bed(self):
        encounter = services.admit_patient(self.patient, self.beds[0])

        self.assertEqual(encounter.encounter_type, Encounter.TYPE_IPD)
        self.beds[0].refresh_from_db()
        self.assertEqual(self.beds[0].status, 'occupied')
        self.assertEqual(BedAssignment.objects.active().count(), 1)

    def test_transfer_releases_previous_bed(self):
        encounter = services.admit_patient(self.patient, self.beds[0])

        services.assign_bed(encounter, self.beds[1])

        statuses = dict(Bed.objects.values_list('bed_number', 'status'))
        self.assertEqual(statuses['G1'], 'available')
        self.assertEqual(statuses['G2'], 'occupied')
        self.assertEqual(encounter.bed_assignments.count(), 2)

    def test_occupied_bed_conflict(self):
        services.admit_patient(self.patient, self.beds[0])
        with self.assertRaises(ConflictError):
            services.admit_patient(self.make_patient('Anil'), self.beds[0])

    def test_maintenance_bed_rejected(self):
        self.beds[0].status = 'maintenance'
        self.beds[0].save()
        with self.assertRaises(UnprocessableError):
            services.admit_patient(self.patient, self.beds[0])

    def test_release_without_assignment(self):
        encounter = Encounter.objects.create(patient=self.patient, encounter_type=Encounter.TYPE_IPD)
        with self.assertRaises(ResourceNotFound):
            services.release_bed(encounter)

    def test_discharge(self):
        encounter = services.admit_patient(self.patient, self.beds[0])

        services.discharge_encounter(encounter)

        encounter.refresh_from_db()
        self.assertFalse(encounter.is_active)
        self.assertIsNotNone(encounter.ended_at)
        self.beds[0].refresh_from_db()
        self.assertEqual(self.beds[0].status, 'available')
        with self.assertRaises(UnprocessableError):
            services.discharge_encounter(encounter)


class ReconcileTest(InpatientTestMixin, TestCase):

    def setUp(self):
        cache.clear()
        self.make_ward(beds=4)
        self.encounter = services.admit_patient(self.make_patient(), self.beds[0])

    def test_repairs_drift(self):
        # bed 1 claims available while assigned, bed 2 claims occupied with no assignment
        Bed.objects.filter(pk=self.beds[0].pk).update(status='available')
        Bed.objects.filter(pk=self.beds[1].pk).update(status='occupied')
        self.assertEqual(Bed.objects.drift().count(), 2)

        summary = services.reconcile_bed_occupancy()

        self.assertEqual(summary['occupied'], 1)
        self.assertEqual(summary['available'], 3)
        self.assertEqual(summary['before'], {'available': 3, 'occupied': 1})
        self.assertEqual(Bed.objects.get(pk=self.beds[0].pk).status, 'occupied')
        self.assertEqual(Bed.objects.drift().count(), 0)

    def test_idempotent(self):
        Bed.objects.filter(pk=self.beds[1].pk).update(status='occupied')

        first = services.reconcile_bed_occupancy()
        second = services.reconcile_bed_occupancy()

        self.assertEqual(first['after'], second['after'])
        self.assertEqual(second['before'], second['after'])

    def test_completed_encounter_frees_bed(self):
        # completed without going through discharge
        Encounter.objects.filter(pk=self.encounter.pk).update(status=Encounter.STATUS_COMPLETED)

        summary = services.reconcile_bed_occupancy()

        self.assertEqual(summary['occupied'], 0)

    def test_blocked_beds(self):
        Bed.objects.filter(pk=self.beds[2].pk).update(status='maintenance')

        summary = services.reconcile_bed_occupancy(preserve_blocked=True)
        self.assertEqual(summary['after'].get('maintenance'), 1)

        summary = services.reconcile_bed_occupancy()
        self.assertNotIn('maintenance', summary['after'])

    def test_drift_matches_what_reconcile_writes(self):
        Bed.objects.filter(pk=self.beds[1].pk).update(status='maintenance')
        Bed.objects.filter(pk=self.beds[2].pk).update(status='reserved')

        self.assertEqual(Bed.objects.drift(preserve_blocked=True).count(), 0)
        drifting = Bed.objects.drift(preserve_blocked=False)
        self.assertEqual(
            sorted(drifting.values_list('bed_number', 'target_status')),
            [('G2', 'available'), ('G3', 'available')]
        )

        services.reconcile_bed_occupancy()
        self.assertEqual(Bed.objects.drift(preserve_blocked=False).count(), 0)

    def test_dry_run_command_lists_blocked_beds(self):
        Bed.objects.filter(pk=self.beds[1].pk).update(status='maintenance')

        out = StringIO()
        call_command('reconcile_beds', '--dry-run', stdout=out)
        self.assertIn('G2: stored maintenance, will become available', out.getvalue())
        self.assertIn('1 beds out of sync', out.getvalue())
        self.assertEqual(Bed.objects.get(pk=self.beds[1].pk).status, 'maintenance')

        out = StringIO()
        call_command('reconcile_beds', '--dry-run', '--preserve-blocked', stdout=out)
        self.assertIn('0 beds out of sync', out.getvalue())


class InpatientApiTest(InpatientTestMixin, TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.nurse = User.objects.create_user(username='nurse', password='x')
        self.nurse.groups.add(Group.objects.create(name='Nurse'))
        self.admin = User.objects.create_user(username='admin', password='x')
        self.admin.groups.add(Group.objects.create(name='Administrator'))
        self.client.force_authenticate(self.nurse)
        self.make_ward()
        self.patient = self.make_patient()

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.get('/api/inpatient/encounters/')
        self.assertEqual(response.status_code, 401)

    def test_admit_and_list(self):
        response = self.client.post('/api/inpatient/encounters/admit/', {
            'patient': self.patient.pk, 'bed': self.beds[0].pk
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['data']['current_bed']['bed_number'], 'G1')

        response = self.client.get('/api/inpatient/encounters/')
        self.assertEqual(response.data['count'], 1)

    def test_release_without_assignment_is_404(self):
        encounter = Encounter.objects.create(patient=self.patient, encounter_type=Encounter.TYPE_IPD)

        response = self.client.post(f'/api/inpatient/encounters/{encounter.pk}/release_bed/')

        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.data['success'])

    def test_discharge_removes_from_list(self):
        encounter = services.admit_patient(self.patient, self.beds[0])

        response = self.client.post(f'/api/inpatient/encounters/{encounter.pk}/discharge/')

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data['data']['current_bed'])
        self.assertEqual(self.client.get('/api/inpatient/encounters/').data['count'], 0)

    def test_occupancy_reports_drift(self):
        Bed.objects.filter(pk=self.beds[2].pk).update(status='occupied')

        response = self.client.get('/api/inpatient/beds/occupancy/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['stored']['occupied'], 1)
        self.assertEqual(response.data['data']['derived']['occupied'], 0)
        self.assertEqual(len(response.data['data']['drift']), 1)

    def test_reconcile_is_admin_only(self):
        response = self.client.post('/api/inpatient/beds/reconcile/', {}, format='json')
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(self.admin)
        Bed.objects.filter(pk=self.beds[2].pk).update(status='occupied')
        response = self.client.post('/api/inpatient/beds/reconcile/', {}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['occupied'], 0)
