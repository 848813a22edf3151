import datetime
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core import mail
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from apps.masterdata.models import Bed, Department, Ward
from . import runner
from .models import ReportRun, ScheduledReport

User = get_user_model()


class ScheduleTest(TestCase):

    def test_add_months_clamps_day(self):
        moment = timezone.make_aware(datetime.datetime(2024, 1, 31, 6, 0))
        self.assertEqual(runner.add_months(moment).date(), datetime.date(2024, 2, 29))
        self.assertEqual(runner.add_months(moment, 12).date(), datetime.date(2025, 1, 31))

    def test_next_run_skips_missed_occurrences(self):
        now = timezone.now()
        report = ScheduledReport(
            name='Beds', report_type='bed_occupancy', frequency='daily',
            next_run_at=now - datetime.timedelta(days=3, hours=1)
        )
        next_run = runner.next_run_after(report, now)
        self.assertGreater(next_run, now)
        self.assertLessEqual(next_run - now, datetime.timedelta(days=1))

    def test_weekly(self):
        now = timezone.now()
        report = ScheduledReport(
            name='Beds', report_type='bed_occupancy', frequency='weekly', next_run_at=now
        )
        self.assertEqual(runner.next_run_after(report, now), now + datetime.timedelta(days=7))


class RunnerTest(TestCase):

    def setUp(self):
        self.now = timezone.now()
        self.past = self.now - datetime.timedelta(minutes=5)

    def schedule(self, **overrides):
        data = {
            'name': 'Bed occupancy',
            'report_type': 'bed_occupancy',
            'frequency': 'daily',
            'next_run_at': self.past,
        }
        data.update(overrides)
        return ScheduledReport.objects.create(**data)

    def test_due_report_generates_run_and_advances(self):
        report = self.schedule()

        result = runner.run_due_reports(now=self.now)

        self.assertEqual(result, {'due': 1, 'succeeded': 1, 'failed': 0})
        run = ReportRun.objects.get()
        self.assertEqual(run.status, 'success')
        self.assertEqual(run.payload['total_beds'], 0)
        report.refresh_from_db()
        self.assertGreater(report.next_run_at, self.now)
        self.assertEqual(report.last_run_at, self.now)

    def test_future_and_inactive_reports_skipped(self):
        self.schedule(next_run_at=self.now + datetime.timedelta(hours=1))
        self.schedule(is_active=False)

        self.assertEqual(runner.run_due_reports(now=self.now)['due'], 0)
        self.assertFalse(ReportRun.objects.exists())

    def test_failure_does_not_stop_other_reports(self):
        broken = self.schedule(name='Census', report_type='emergency_census')
        healthy = self.schedule(name='Beds')

        with mock.patch.dict(runner.GENERATORS, {'emergency_census': mock.Mock(side_effect=RuntimeError('boom'))}):
            result = runner.run_due_reports(now=self.now)

        self.assertEqual(result, {'due': 2, 'succeeded': 1, 'failed': 1})
        failed_run = ReportRun.objects.get(report=broken)
        self.assertEqual(failed_run.status, 'failed')
        self.assertEqual(failed_run.error, 'boom')
        self.assertEqual(ReportRun.objects.get(report=healthy).status, 'success')

        broken.refresh_from_db()
        self.assertGreater(broken.next_run_at, self.now)

    def test_recipients_receive_email(self):
        self.schedule(recipients=['cfo@example.com'], report_type='discount_summary', name='Discounts')

        runner.run_due_reports(now=self.now)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['cfo@example.com'])
        self.assertIn('Discounts', mail.outbox[0].subject)
        self.assertIn('total_discount', mail.outbox[0].body)

    def test_command(self):
        self.schedule()
        out = StringIO()

        call_command('run_scheduled_reports', stdout=out)

        self.assertIn('1 of 1 due reports generated', out.getvalue())


class AdminDashboardTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(username='admin', password='x')
        self.admin.groups.add(Group.objects.create(name='Administrator'))
        department = Department.objects.create(name='Medicine', code='MED')
        ward = Ward.objects.create(name='General', department=department, capacity=4)
        Bed.objects.create(ward=ward, bed_number='G1')
        # stored as occupied without an assignment: reported as available
        Bed.objects.create(ward=ward, bed_number='G2', status='occupied')
        Bed.objects.create(ward=ward, bed_number='G3', status='maintenance')

    def test_requires_administrator(self):
        self.assertEqual(self.client.get('/api/reports/admin-dashboard/').status_code, 401)

        nurse = User.objects.create_user(username='nurse', password='x')
        nurse.groups.add(Group.objects.create(name='Nurse'))
        self.client.force_authenticate(nurse)
        self.assertEqual(self.client.get('/api/reports/admin-dashboard/').status_code, 403)

    def test_snapshot(self):
        self.client.force_authenticate(self.admin)

        response = self.client.get('/api/reports/admin-dashboard/')

        self.assertEqual(response.status_code, 200)
        data = response.data['data']
        self.assertEqual(set(data), {'financials', 'beds', 'emergency', 'opd'})
        self.assertEqual(data['beds']['total_beds'], 3)
        self.assertEqual(data['beds']['available'], 2)
        self.assertEqual(data['beds']['occupied'], 0)
        self.assertEqual(data['beds']['maintenance'], 1)
        self.assertEqual(data['emergency']['total'], 0)
        self.assertEqual(data['opd']['total'], 0)
        self.assertEqual(data['financials']['growth']['revenue_growth'], 0)

    def test_schedule_report_via_api(self):
        self.client.force_authenticate(self.admin)

        response = self.client.post('/api/reports/scheduled/', {
            'name': 'Daily billing',
            'report_type': 'billing_summary',
            'frequency': 'daily',
            'recipients': ['not-an-email'],
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('recipients', response.data['errors'])

        response = self.client.post('/api/reports/scheduled/', {
            'name': 'Daily billing',
            'report_type': 'billing_summary',
            'frequency': 'daily',
            'recipients': [],
        }, format='json')
        self.assertEqual(response.status_code, 201)

        report_id = response.data['data']['id']
        run = self.client.post(f'/api/reports/scheduled/{report_id}/run/')
        self.assertEqual(run.status_code, 200)
        self.assertEqual(run.data['data']['status'], 'success')
