from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIClient

from .models import Hospital, Branch, SystemSetting
from .settings_store import (
    SettingTypeError,
    cast_value,
    delete_setting,
    get_setting,
    set_setting,
)

User = get_user_model()


def _hospital_data(**overrides):
    data = {
        'name': 'City Care',
        'email': 'info@citycare.example',
        'phone': '9876543210',
        'address': '12 MG Road',
        'city': 'Pune',
        'state': 'MH',
        'pincode': '411001',
    }
    data.update(overrides)
    return data


class SettingsStoreTest(TestCase):

    def setUp(self):
        cache.clear()

    def test_cast_value(self):
        self.assertEqual(cast_value('42', 'int'), 42)
        self.assertEqual(cast_value('12.50', 'decimal'), Decimal('12.50'))
        self.assertIs(cast_value('yes', 'bool'), True)
        self.assertIs(cast_value('off', 'bool'), False)
        self.assertEqual(cast_value({'a': 1}, 'json'), {'a': 1})
        with self.assertRaises(SettingTypeError):
            cast_value('many', 'int')

    def test_default_when_unset(self):
        self.assertEqual(get_setting('missing', 'fallback'), 'fallback')
        self.assertIsNone(get_setting('missing'))

    def test_write_invalidates_cached_read(self):
        set_setting('reservation_minutes', 30, value_type='int')
        self.assertEqual(get_setting('reservation_minutes'), 30)

        set_setting('reservation_minutes', '45')

        self.assertEqual(get_setting('reservation_minutes'), 45)
        self.assertEqual(SystemSetting.objects.get(key='reservation_minutes').value, 45)

    def test_decimal_stored_as_text(self):
        set_setting('consultation_fee', Decimal('500.00'), value_type='decimal')
        self.assertEqual(SystemSetting.objects.get(key='consultation_fee').value, '500.00')
        self.assertEqual(get_setting('consultation_fee'), Decimal('500.00'))

    def test_delete(self):
        set_setting('flag', True, value_type='bool')
        self.assertTrue(delete_setting('flag'))
        self.assertIsNone(get_setting('flag'))
        self.assertFalse(delete_setting('flag'))


class HospitalConfigTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(username='admin', password='x')
        self.admin.groups.add(Group.objects.create(name='Administrator'))

    def test_singleton(self):
        Hospital.objects.create(**_hospital_data())
        with self.assertRaises(ValidationError):
            Hospital.objects.create(**_hospital_data(name='Second'))
        with self.assertRaises(ValidationError):
            Hospital.get_hospital().delete()

    def test_public_read(self):
        self.assertEqual(self.client.get('/api/hospital/config/').status_code, 404)

        Hospital.objects.create(**_hospital_data())
        response = self.client.get('/api/hospital/config/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['full_address'], '12 MG Road, Pune, MH 411001, India')

    def test_update_requires_administrator(self):
        Hospital.objects.create(**_hospital_data())
        self.assertEqual(
            self.client.patch('/api/hospital/config/', {'name': 'X'}, format='json').status_code, 401
        )

        self.client.force_authenticate(self.admin)
        response = self.client.patch('/api/hospital/config/', {'name': 'City Care Plus'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Hospital.get_hospital().name, 'City Care Plus')

    def test_branch_delete_deactivates(self):
        self.client.force_authenticate(self.admin)
        branch = Branch.objects.create(name='North', code='N1')

        response = self.client.delete(f'/api/hospital/branches/{branch.pk}/')

        self.assertEqual(response.status_code, 200)
        branch.refresh_from_db()
        self.assertFalse(branch.is_active)
        listing = self.client.get('/api/hospital/branches/')
        self.assertEqual(listing.data['count'], 0)
        listing = self.client.get('/api/hospital/branches/', {'include_inactive': 'true'})
        self.assertEqual(listing.data['count'], 1)


class SystemSettingApiTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = User.objects.create_user(username='admin', password='x')
        self.admin.groups.add(Group.objects.create(name='Administrator'))
        self.nurse = User.objects.create_user(username='nurse', password='x')
        self.nurse.groups.add(Group.objects.create(name='Nurse'))

    def test_unauthenticated(self):
        self.assertEqual(self.client.get('/api/hospital/settings/anything/').status_code, 401)

    def test_staff_can_read_but_not_write(self):
        set_setting('opd_slot_minutes', 15, value_type='int')
        self.client.force_authenticate(self.nurse)

        response = self.client.get('/api/hospital/settings/opd_slot_minutes/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['value'], 15)

        response = self.client.put(
            '/api/hospital/settings/opd_slot_minutes/', {'value': 20}, format='json'
        )
        self.assertEqual(response.status_code, 403)

    def test_admin_creates_and_updates(self):
        self.client.force_authenticate(self.admin)

        response = self.client.put(
            '/api/hospital/settings/opd_slot_minutes/',
            {'value': 15, 'value_type': 'int', 'description': 'OPD slot length'},
            format='json'
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.put('/api/hospital/settings/opd_slot_minutes/', {'value': 20}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(get_setting('opd_slot_minutes'), 20)
        self.assertEqual(SystemSetting.objects.get().description, 'OPD slot length')

    def test_value_must_match_type(self):
        set_setting('opd_slot_minutes', 15, value_type='int')
        self.client.force_authenticate(self.admin)

        response = self.client.put('/api/hospital/settings/opd_slot_minutes/', {'value': 'soon'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('value', response.data['errors'])

    def test_missing_setting_is_404(self):
        self.client.force_authenticate(self.nurse)
        self.assertEqual(self.client.get('/api/hospital/settings/nope/').status_code, 404)

    def test_delete_setting(self):
        set_setting('opd_slot_minutes', 15, value_type='int')
        url = '/api/hospital/settings/opd_slot_minutes/'

        self.client.force_authenticate(self.nurse)
        self.assertEqual(self.client.delete(url).status_code, 403)

        self.client.force_authenticate(self.admin)
        self.assertEqual(self.client.delete(url).status_code, 200)
        self.assertIsNone(get_setting('opd_slot_minutes'))
        self.assertEqual(self.client.delete(url).status_code, 404)
