from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.test import TestCase
from io import StringIO
from rest_framework.test import APIClient

from common.permissions import in_any_group, ALL_ROLES

User = get_user_model()


class AuthEndpointTest(TestCase):
    """Token login and the current-user endpoint."""

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='nurse1', password='s3cret-pass')
        self.user.groups.add(Group.objects.create(name='Nurse'))

    def test_login_returns_token(self):
        response = self.client.post('/api/auth/login/', {
            'username': 'nurse1', 'password': 's3cret-pass'
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        self.assertTrue(response.data['data']['token'])
        self.assertEqual(response.data['data']['user']['roles'], ['Nurse'])

    def test_login_rejects_bad_password(self):
        response = self.client.post('/api/auth/login/', {
            'username': 'nurse1', 'password': 'wrong'
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data['success'])

    def test_me_requires_authentication(self):
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, 401)

    def test_me_with_token(self):
        login = self.client.post('/api/auth/login/', {
            'username': 'nurse1', 'password': 's3cret-pass'
        }, format='json')
        self.client.credentials(HTTP_AUTHORIZATION=f"Token {login.data['data']['token']}")

        response = self.client.get('/api/auth/me/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['username'], 'nurse1')


class RoleCheckTest(TestCase):

    def test_in_any_group(self):
        user = User.objects.create_user(username='doc', password='x')
        user.groups.add(Group.objects.create(name='Doctor'))

        self.assertTrue(in_any_group(user, ['Doctor', 'Administrator']))
        self.assertFalse(in_any_group(user, ['Administrator']))

    def test_superuser_passes_every_role(self):
        admin = User.objects.create_superuser(username='root', password='x')
        self.assertTrue(in_any_group(admin, ['Pharmacist']))

    def test_seed_auth_groups_creates_all_roles(self):
        out = StringIO()
        call_command('seed_auth_groups', stdout=out)
        call_command('seed_auth_groups', stdout=out)

        self.assertEqual(
            set(Group.objects.values_list('name', flat=True)),
            set(ALL_ROLES)
        )
        self.assertIn('Updated: 7 groups', out.getvalue())
