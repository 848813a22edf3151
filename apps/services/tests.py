from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient

from apps.billing.models import BillingAccount, BillingItem
from apps.masterdata.models import Department
from apps.patients.models import Patient, Encounter
from . import catalogue
from .models import ServiceCatalogue

User = get_user_model()


class CatalogueRulesTest(TestCase):

    def setUp(self):
        cache.clear()

    def test_default_categories(self):
        self.assertEqual(catalogue.get_categories(), catalogue.DEFAULT_CATEGORIES)

    def test_generate_code_sequence(self):
        ServiceCatalogue.objects.create(code='LAB001', name='CBC', category='lab_test', unit_price=200)
        ServiceCatalogue.objects.create(code='LAB007', name='LFT', category='lab_test', unit_price=500)

        self.assertEqual(catalogue.generate_code('lab_test'), 'LAB008')
        self.assertEqual(catalogue.generate_code('unknown'), 'SVC001')

    def test_generate_code_with_department(self):
        department = Department.objects.create(name='Pathology', code='path')
        self.assertEqual(catalogue.generate_code('lab_test', department), 'LABPA001')

    def test_rename_category_persists_in_settings(self):
        catalogue.update_category('imaging', 'Radiology')

        self.assertEqual(catalogue.get_categories()['imaging'], 'Radiology')
        self.assertEqual(len(catalogue.get_categories()), len(catalogue.DEFAULT_CATEGORIES))

    def test_rename_with_average_price_rescales(self):
        ServiceCatalogue.objects.create(code='IMG001', name='X-Ray', category='imaging', unit_price=100)
        ServiceCatalogue.objects.create(code='IMG002', name='CT', category='imaging', unit_price=300)

        result = catalogue.update_category('imaging', 'Imaging', avg_price=Decimal('400'))

        self.assertEqual(result['rescaled'], 2)
        prices = sorted(ServiceCatalogue.objects.values_list('unit_price', flat=True))
        self.assertEqual(prices, [Decimal('200.00'), Decimal('600.00')])

    def test_bulk_percentage_increase(self):
        ServiceCatalogue.objects.create(code='NURS001', name='Dressing', category='nursing', unit_price=100)
        ServiceCatalogue.objects.create(code='OTH001', name='Form', category='other', unit_price=100)

        self.assertEqual(catalogue.bulk_update_prices('nursing', 'percentage', 10), 1)

        self.assertEqual(ServiceCatalogue.objects.get(code='NURS001').unit_price, Decimal('110.00'))
        self.assertEqual(ServiceCatalogue.objects.get(code='OTH001').unit_price, Decimal('100.00'))


class ServiceCatalogueApiTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = User.objects.create_user(username='admin', password='x')
        self.admin.groups.add(Group.objects.create(name='Administrator'))
        self.client.force_authenticate(self.admin)

    def test_create_rejects_unknown_category(self):
        response = self.client.post('/api/services/catalogue/', {
            'code': 'x1', 'name': 'Mystery', 'category': 'magic', 'unit_price': '10.00'
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('category', response.data['errors'])

    def test_create_normalizes_code(self):
        response = self.client.post('/api/services/catalogue/', {
            'code': 'cons001', 'name': 'General consultation', 'category': 'consultation', 'unit_price': '500.00'
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['data']['code'], 'CONS001')
        self.assertEqual(response.data['data']['category_name'], 'Consultation')

    def test_delete_blocked_while_billed(self):
        service = ServiceCatalogue.objects.create(code='PROC001', name='Suturing', category='procedure', unit_price=800)
        patient = Patient.objects.create(first_name='Ravi', gender='male')
        encounter = Encounter.objects.create(patient=patient, encounter_type=Encounter.TYPE_OPD)
        account = BillingAccount.objects.create(patient=patient, encounter=encounter)
        BillingItem.objects.create(
            account=account, service_code='PROC001', description='Suturing', unit_price=800
        )

        response = self.client.delete(f'/api/services/catalogue/{service.pk}/')

        self.assertEqual(response.status_code, 409)
        self.assertIn('1 billing items', response.data['error'])
        self.assertTrue(ServiceCatalogue.objects.filter(pk=service.pk).exists())

    def test_delete_unused_service(self):
        service = ServiceCatalogue.objects.create(code='OTH001', name='Form', category='other', unit_price=10)
        response = self.client.delete(f'/api/services/catalogue/{service.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(ServiceCatalogue.objects.exists())

    def test_category_update_requires_admin(self):
        nurse = User.objects.create_user(username='nurse', password='x')
        nurse.groups.add(Group.objects.create(name='Nurse'))
        self.client.force_authenticate(nurse)

        response = self.client.put('/api/services/categories/imaging/', {'name': 'Radiology'}, format='json')

        self.assertEqual(response.status_code, 403)

    def test_category_update_and_list(self):
        response = self.client.put('/api/services/categories/imaging/', {'name': 'Radiology'}, format='json')
        self.assertEqual(response.status_code, 200)

        listing = self.client.get('/api/services/categories/')
        names = {row['key']: row['name'] for row in listing.data['data']}
        self.assertEqual(names['imaging'], 'Radiology')

    def test_unknown_category_update_is_404(self):
        response = self.client.put('/api/services/categories/nope/', {'name': 'Nope'}, format='json')
        self.assertEqual(response.status_code, 404)

    def test_generate_code_endpoint(self):
        response = self.client.get('/api/services/catalogue/generate_code/', {'category': 'imaging'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data'], {'code': 'IMG001', 'exists': False})
