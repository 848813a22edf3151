"""
Tests for the shared error envelope, role checks and broadcast hook.
"""

from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser, Group
from django.test import SimpleTestCase, TestCase
from rest_framework import exceptions

from common.broadcast import broadcast, event_broadcast
from common.exceptions import (
    ConflictError,
    DomainError,
    UnprocessableError,
    envelope_exception_handler,
)
from common.permissions import in_any_group, is_administrator, ADMINISTRATOR, DOCTOR

User = get_user_model()


class EnvelopeExceptionHandlerTest(SimpleTestCase):
    """DRF and domain errors all come back as ``{'success': False, ...}``."""

    context = {'view': None}

    def test_domain_error_keeps_extra_fields(self):
        response = envelope_exception_handler(
            UnprocessableError('Insufficient stock', errors={'quantity': ['Too many']}),
            self.context
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data, {
            'success': False,
            'error': 'Insufficient stock',
            'errors': {'quantity': ['Too many']},
        })

    def test_domain_error_status_override(self):
        response = envelope_exception_handler(DomainError('Gone', status_code=410), self.context)
        self.assertEqual(response.status_code, 410)
        self.assertEqual(ConflictError('x').status_code, 409)

    def test_detail_only_errors_are_flattened(self):
        response = envelope_exception_handler(exceptions.NotFound('No such bed'), self.context)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'success': False, 'error': 'No such bed'})

    def test_validation_errors_are_nested(self):
        response = envelope_exception_handler(
            exceptions.ValidationError({'name': ['This field is required.']}),
            self.context
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['error'], 'Validation failed')
        self.assertIn('name', response.data['errors'])

    def test_unhandled_exception_is_500(self):
        with self.assertLogs('common.exceptions', level='ERROR'):
            response = envelope_exception_handler(ValueError('kaboom'), self.context)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {'success': False, 'error': 'An unexpected error occurred'})


class RoleCheckTest(TestCase):

    def setUp(self):
        self.doctor = User.objects.create_user(username='doc', password='x')
        self.doctor.groups.add(Group.objects.create(name=DOCTOR))

    def test_member(self):
        self.assertTrue(in_any_group(self.doctor, [ADMINISTRATOR, DOCTOR]))
        self.assertFalse(is_administrator(self.doctor))

    def test_anonymous_and_missing_user(self):
        self.assertFalse(in_any_group(AnonymousUser(), [DOCTOR]))
        self.assertFalse(in_any_group(None, [DOCTOR]))

    def test_superuser(self):
        root = User.objects.create_superuser(username='root', password='x', email='root@example.com')
        self.assertTrue(is_administrator(root))


class BroadcastTest(SimpleTestCase):

    def test_receivers_get_channels_event_and_payload(self):
        receiver = mock.Mock()
        event_broadcast.connect(receiver, dispatch_uid='broadcast-test')
        try:
            broadcast(('appointments',), 'opd-appointment.updated', {'id': 7})
        finally:
            event_broadcast.disconnect(dispatch_uid='broadcast-test')

        receiver.assert_called_once()
        kwargs = receiver.call_args.kwargs
        self.assertEqual(kwargs['channels'], ['appointments'])
        self.assertEqual(kwargs['event'], 'opd-appointment.updated')
        self.assertEqual(kwargs['payload'], {'id': 7})

    def test_no_receivers(self):
        self.assertEqual(broadcast(['appointments'], 'noop', {}), [])
