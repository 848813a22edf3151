import csv
from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from common.exceptions import DomainError, UnprocessableError
from apps.inpatient.models import BedAssignment
from apps.patients.models import Patient, Encounter
from apps.pharmacy.models import DrugFormulary
from . import services
from .cache import master_data_cache
from .models import Department, Ward, Bed, LabTestCategory, LabTest, MasterDataAuditLog

User = get_user_model()


class OptionsEndpointTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(username='desk', password='x')
        self.client.force_authenticate(self.user)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        for option_type in ['departments', 'wards', 'test-catalogs', 'drugs']:
            response = self.client.get(f'/api/master-data/{option_type}/options/')
            self.assertEqual(response.status_code, 401, option_type)

    def test_empty_lists(self):
        for option_type in ['departments', 'wards', 'test-catalogs', 'drugs']:
            response = self.client.get(f'/api/master-data/{option_type}/options/')
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.data['data'], [])

    def test_departments_active_only_ordered(self):
        Department.objects.create(name='Surgery', code='SUR')
        Department.objects.create(name='Cardiology', code='CAR')
        Department.objects.create(name='Archive', code='ARC', is_active=False)

        response = self.client.get('/api/master-data/departments/options/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([d['name'] for d in response.data['data']], ['Cardiology', 'Surgery'])
        self.assertEqual(set(response.data['data'][0]), {'id', 'name'})

    def test_wards_shape(self):
        department = Department.objects.create(name='Medicine', code='MED')
        Ward.objects.create(name='Ward B', department=department, capacity=10)
        Ward.objects.create(name='Ward A', department=department, capacity=10, ward_type='icu')
        Ward.objects.create(name='Old Ward', department=department, capacity=10, is_active=False)

        data = self.client.get('/api/master-data/wards/options/').data['data']

        self.assertEqual([w['name'] for w in data], ['Ward A', 'Ward B'])
        self.assertEqual(data[0], {
            'id': data[0]['id'],
            'name': 'Ward A',
            'type': 'icu',
            'department': {'id': department.pk, 'name': 'Medicine'},
        })

    def test_test_catalogs_shape(self):
        category = LabTestCategory.objects.create(name='Haematology')
        LabTest.objects.create(name='Hemoglobin', code='HB', category=category, price='150.00')
        LabTest.objects.create(name='CBC', code='CBC', category=category, price='300.00')
        LabTest.objects.create(name='ESR (old)', code='ESR', category=category, is_active=False)

        data = self.client.get('/api/master-data/test-catalogs/options/').data['data']

        self.assertEqual([t['name'] for t in data], ['CBC', 'Hemoglobin'])
        self.assertEqual(set(data[0]), {'id', 'name', 'code', 'price', 'category'})
        self.assertEqual(data[0]['category'], {'id': category.pk, 'name': 'Haematology'})

    def test_drugs_exclude_discontinued(self):
        DrugFormulary.objects.create(name='Paracetamol', generic_name='Acetaminophen', strength='500mg')
        DrugFormulary.objects.create(name='Amoxicillin', generic_name='Amoxicillin', strength='250mg')
        DrugFormulary.objects.create(name='Ranitidine', generic_name='Ranitidine', status='discontinued')

        data = self.client.get('/api/master-data/drugs/options/').data['data']

        self.assertEqual([d['name'] for d in data], ['Amoxicillin', 'Paracetamol'])
        self.assertEqual(set(data[0]), {'id', 'name', 'generic_name', 'strength', 'form'})

    def test_unknown_option_type(self):
        response = self.client.get('/api/master-data/planets/options/')
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.data['success'])


class MasterDataCacheTest(TestCase):

    def setUp(self):
        cache.clear()

    def test_lookup_is_cached_until_cleared(self):
        Department.objects.create(name='Cardiology', code='CAR')
        self.assertEqual(len(master_data_cache.get_departments()), 1)

        # queryset updates bypass the invalidation signals
        Department.objects.update(is_active=False)
        self.assertEqual(len(master_data_cache.get_departments()), 1)

        master_data_cache.clear_all()
        self.assertEqual(master_data_cache.get_departments(), [])

    def test_save_invalidates(self):
        self.assertEqual(master_data_cache.get_departments(), [])
        Department.objects.create(name='Cardiology', code='CAR')
        self.assertEqual(len(master_data_cache.get_departments()), 1)

    def test_warm_up_fills_every_key(self):
        Department.objects.create(name='Cardiology', code='CAR')

        warmed = master_data_cache.warm_up()

        self.assertEqual(warmed['departments:active'], 1)
        self.assertTrue(all(master_data_cache.status().values()))

    def test_command(self):
        out = StringIO()
        call_command('master_data_cache', 'warm', stdout=out)
        self.assertIn('Master data cache warmed', out.getvalue())

        out = StringIO()
        call_command('master_data_cache', 'clear', stdout=out)
        self.assertIn('Cleared', out.getvalue())
        self.assertFalse(any(master_data_cache.status().values()))


class WardRulesTest(TestCase):

    def setUp(self):
        cache.clear()
        self.department = Department.objects.create(name='Medicine', code='MED')
        self.ward = Ward.objects.create(name='General', department=self.department, capacity=4)

    def _occupy(self, bed):
        patient = Patient.objects.create(first_name='In', last_name='Patient', gender='male')
        encounter = Encounter.objects.create(patient=patient, encounter_type=Encounter.TYPE_IPD)
        BedAssignment.objects.create(bed=bed, encounter=encounter)
        bed.status = 'occupied'
        bed.save()

    def test_occupancy_rate_empty_ward(self):
        self.assertEqual(services.occupancy_rate(self.ward), 0)

    def test_occupancy_rate(self):
        beds = [Bed.objects.create(ward=self.ward, bed_number=f'B{i}') for i in range(4)]
        self._occupy(beds[0])
        beds[1].status = 'reserved'
        beds[1].save()
        beds[2].status = 'maintenance'
        beds[2].save()

        # (1 occupied + 1 reserved) / 3 countable beds
        self.assertEqual(services.occupancy_rate(self.ward), 66.67)
        stats = services.ward_stats(self.ward)
        self.assertEqual(stats['total_beds'], 4)
        self.assertEqual(stats['maintenance'], 1)

    def test_stale_occupied_status_is_not_counted(self):
        Bed.objects.create(ward=self.ward, bed_number='B1', status='occupied')
        self.assertEqual(services.occupancy_rate(self.ward), 0)

    def test_capacity_rules(self):
        with self.assertRaises(DomainError):
            services.validate_ward_capacity(0)
        Bed.objects.create(ward=self.ward, bed_number='B1')
        Bed.objects.create(ward=self.ward, bed_number='B2')
        with self.assertRaises(UnprocessableError):
            services.validate_ward_capacity(1, ward=self.ward)
        services.validate_ward_capacity(2, ward=self.ward)

    def test_full_ward_and_duplicate_bed(self):
        Bed.objects.create(ward=self.ward, bed_number='B1')
        with self.assertRaises(UnprocessableError):
            services.validate_new_bed(self.ward, 'B1')

        for i in range(2, 5):
            Bed.objects.create(ward=self.ward, bed_number=f'B{i}')
        with self.assertRaises(UnprocessableError):
            services.validate_new_bed(self.ward, 'B9')

    def test_inactive_department_rejected(self):
        self.department.is_active = False
        self.department.save()
        with self.assertRaises(UnprocessableError):
            services.validate_department(self.department)


class MasterDataAdminApiTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = User.objects.create_user(username='admin', password='x')
        self.admin.groups.add(Group.objects.create(name='Administrator'))
        self.client.force_authenticate(self.admin)
        self.department = Department.objects.create(name='Medicine', code='MED')

    def test_ward_zero_capacity_rejected(self):
        response = self.client.post('/api/master-data/wards/', {
            'name': 'Tiny', 'department': self.department.pk, 'capacity': 0
        }, format='json')
        self.assertEqual(response.status_code, 400)

    def test_writes_are_audited(self):
        response = self.client.post('/api/master-data/wards/', {
            'name': 'East', 'department': self.department.pk, 'capacity': 2
        }, format='json')
        self.assertEqual(response.status_code, 201)
        ward_id = response.data['data']['id']

        self.client.patch(f'/api/master-data/wards/{ward_id}/', {'capacity': 3}, format='json')
        self.client.delete(f'/api/master-data/wards/{ward_id}/')

        actions = list(
            MasterDataAuditLog.objects.filter(entity_type='ward', entity_id=ward_id)
            .order_by('id').values_list('action', flat=True)
        )
        self.assertEqual(actions, ['created', 'updated', 'deactivated'])
        updated = MasterDataAuditLog.objects.get(action='updated')
        self.assertEqual(updated.changes, {'capacity': [2, 3]})
        self.assertFalse(Ward.objects.get(pk=ward_id).is_active)

    def test_bed_in_full_ward_rejected(self):
        ward = Ward.objects.create(name='Solo', department=self.department, capacity=1)
        self.assertEqual(
            self.client.post('/api/master-data/beds/', {'ward': ward.pk, 'bed_number': 'S1'}, format='json').status_code,
            201
        )
        response = self.client.post('/api/master-data/beds/', {'ward': ward.pk, 'bed_number': 'S2'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_non_admin_cannot_write(self):
        nurse = User.objects.create_user(username='nurse', password='x')
        nurse.groups.add(Group.objects.create(name='Nurse'))
        self.client.force_authenticate(nurse)

        response = self.client.post('/api/master-data/departments/', {'name': 'X', 'code': 'X'}, format='json')

        self.assertEqual(response.status_code, 403)

    def test_ward_export_includes_bed_counts(self):
        ward = Ward.objects.create(name='North', department=self.department, capacity=4, floor='2')
        Bed.objects.create(ward=ward, bed_number='N1')
        Bed.objects.create(ward=ward, bed_number='N2', status='maintenance')

        response = self.client.get('/api/master-data/wards/export/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('wards.csv', response['Content-Disposition'])
        header, row = list(csv.reader(StringIO(response.content.decode())))
        record = dict(zip(header, row))
        self.assertEqual(record['Name'], 'North')
        self.assertEqual(record['Department Code'], 'MED')
        self.assertEqual(record['Total Beds'], '2')
        self.assertEqual(record['Available Beds'], '1')
        self.assertEqual(record['Status'], 'Active')

    def test_lab_test_import(self):
        category = LabTestCategory.objects.create(name='Haematology')
        LabTest.objects.create(name='Hemoglobin', code='HB', category=category, price='150.00')
        upload = SimpleUploadedFile('tests.csv', (
            b'name,code,category,price,turnaround_hours,sample_type,status\n'
            b'Hemoglobin,HB,Haematology,150,,Blood,active\n'
            b'Lipid Profile,LIPID,Biochemistry,800,12,Blood,\n'
            b'Glucose,GLU,,-5,,,\n'
            b'TSH,TSH,Biochemistry,500,,Serum,inactive\n'
        ), content_type='text/csv')

        response = self.client.post('/api/master-data/tests/import/', {'file': upload}, format='multipart')

        self.assertEqual(response.status_code, 200)
        result = response.data['data']
        self.assertEqual(result['imported'], 2)
        self.assertEqual(result['skipped'], 1)
        self.assertEqual([error['row'] for error in result['errors']], [4])
        self.assertIn('price', result['errors'][0]['errors'])

        lipid = LabTest.objects.get(code='LIPID')
        self.assertEqual(lipid.category.name, 'Biochemistry')
        self.assertEqual(lipid.turnaround_hours, 12)
        tsh = LabTest.objects.get(code='TSH')
        self.assertEqual(tsh.turnaround_hours, 24)
        self.assertFalse(tsh.is_active)
        self.assertEqual(LabTestCategory.objects.filter(name='Biochemistry').count(), 1)
        self.assertFalse(LabTest.objects.filter(code='GLU').exists())
        self.assertEqual(
            MasterDataAuditLog.objects.filter(entity_type='labtest', action='created').count(), 2
        )

    def test_lab_test_import_requires_file(self):
        response = self.client.post('/api/master-data/tests/import/', {}, format='multipart')

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data['success'])
