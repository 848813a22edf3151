import datetime
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import UnprocessableError
from apps.patients.models import Patient, Encounter
from . import analytics, invoices, services
from .models import BillingAccount, Invoice, Payment

User = get_user_model()


def _local_noon(day):
    return timezone.make_aware(datetime.datetime.combine(day, datetime.time(12)))


class BillingFixtureMixin:

    def make_account(self, amount='1000.00', item_type='consultation', item_discount='0'):
        patient = Patient.objects.create(first_name='Asha', last_name='Rao', gender='female')
        encounter = Encounter.objects.create(patient=patient, encounter_type=Encounter.TYPE_OPD)
        account = services.open_account(encounter)
        services.add_item(account, {
            'item_type': item_type,
            'description': 'Consultation',
            'unit_price': Decimal(amount),
            'discount_amount': Decimal(item_discount),
        })
        account.refresh_from_db()
        return account


class GrowthRateTest(TestCase):

    def test_zero_previous_is_zero(self):
        self.assertEqual(analytics.growth_rate(500, 0), 0)
        self.assertEqual(analytics.growth_rate(Decimal('500'), Decimal('0')), 0)
        self.assertEqual(analytics.growth_rate(0, 0), 0)

    def test_missing_previous_is_zero(self):
        self.assertEqual(analytics.growth_rate(500, None), 0)

    def test_growth_and_decline(self):
        self.assertEqual(analytics.growth_rate(150, 100), 50.0)
        self.assertEqual(analytics.growth_rate(50, 100), -50.0)
        self.assertEqual(analytics.growth_rate(Decimal('100'), Decimal('300')), -66.7)


class BillingAccountServiceTest(BillingFixtureMixin, TestCase):

    def setUp(self):
        self.accountant = User.objects.create_user(username='accounts', password='x')

    def test_items_drive_totals(self):
        account = self.make_account('1000.00')
        self.assertEqual(account.total_amount, Decimal('1000.00'))
        self.assertEqual(account.balance, Decimal('1000.00'))

    def test_open_account_reuses_open_account(self):
        account = self.make_account()
        self.assertEqual(services.open_account(account.encounter), account)

    def test_percentage_discount_and_payment(self):
        account = self.make_account('1000.00')

        services.apply_discount(account, 'percentage', '10', 'Staff family', user=self.accountant)
        services.record_payment(account, '400.00', 'upi', user=self.accountant)

        account.refresh_from_db()
        self.assertEqual(account.discount_amount, Decimal('100.00'))
        self.assertEqual(account.net_amount, Decimal('900.00'))
        self.assertEqual(account.amount_paid, Decimal('400.00'))
        self.assertEqual(account.balance, Decimal('500.00'))
        self.assertEqual(account.discount_approved_by, self.accountant)
        self.assertIsNotNone(account.discount_approved_at)

    def test_fixed_discount_cannot_exceed_total(self):
        account = self.make_account('1000.00')
        with self.assertRaises(UnprocessableError):
            services.apply_discount(account, 'fixed', '1500', 'Too much', user=self.accountant)

    def test_overpayment_rejected(self):
        account = self.make_account('1000.00')
        with self.assertRaises(UnprocessableError):
            services.record_payment(account, '1200.00')
        self.assertFalse(Payment.objects.exists())

    def test_close_requires_settled_balance(self):
        account = self.make_account('1000.00')
        with self.assertRaises(UnprocessableError):
            services.close_account(account)

        services.record_payment(account, '1000.00')
        services.close_account(account)
        account.refresh_from_db()
        self.assertEqual(account.status, 'closed')

    def test_closed_account_rejects_payments(self):
        account = self.make_account('500.00')
        services.record_payment(account, '500.00')
        services.close_account(account)
        with self.assertRaises(UnprocessableError):
            services.record_payment(account, '10.00')


class AdminFinancialsTest(BillingFixtureMixin, TestCase):

    def test_growth_against_last_month(self):
        today = timezone.localdate()
        last_month_day = today.replace(day=1) - datetime.timedelta(days=1)

        account = self.make_account('1000.00')
        services.record_payment(account, '400.00')
        old = Payment.objects.create(account=account, amount=Decimal('200.00'))
        Payment.objects.filter(pk=old.pk).update(created_at=_local_noon(last_month_day))

        data = analytics.admin_financials()

        self.assertEqual(data['today']['revenue'], 400.0)
        self.assertEqual(data['today']['payments_count'], 1)
        self.assertEqual(data['today']['avg_payment'], 400.0)
        self.assertEqual(data['month']['revenue'], 400.0)
        self.assertEqual(data['month']['invoiced'], 1000.0)
        self.assertEqual(data['growth']['revenue_growth'], 100.0)
        self.assertEqual(data['growth']['trend'], 'up')

    def test_no_previous_month_revenue(self):
        account = self.make_account('1000.00')
        services.record_payment(account, '250.00')

        data = analytics.admin_financials()

        self.assertEqual(data['growth']['revenue_growth'], 0)
        self.assertEqual(data['growth']['trend'], 'up')

    def test_empty_database(self):
        data = analytics.admin_financials()
        self.assertEqual(data['today']['avg_payment'], 0)
        self.assertEqual(data['month']['collection_rate'], 0)
        self.assertEqual(data['outstanding'], 0)


class DashboardTest(BillingFixtureMixin, TestCase):

    def test_kpis_and_chart(self):
        account = self.make_account('1000.00')
        services.record_payment(account, '300.00', 'net_banking')

        kpis = analytics.dashboard_kpis()
        self.assertEqual(kpis['revenue_today'], 300.0)
        self.assertEqual(kpis['active_accounts'], 1)
        self.assertEqual(kpis['outstanding_balance'], 700.0)
        self.assertEqual(kpis['invoices_today'], {'count': 1, 'value': 1000.0})

        chart = analytics.revenue_chart(days=30)
        self.assertEqual(len(chart), 30)
        self.assertEqual(chart[-1]['revenue'], 300.0)
        self.assertEqual(chart[0]['revenue'], 0)

    def test_payment_method_labels(self):
        account = self.make_account('1000.00')
        services.record_payment(account, '300.00', 'net_banking')
        services.record_payment(account, '100.00', 'net_banking')

        self.assertEqual(analytics.payment_methods(), [
            {'method': 'Net banking', 'total': 400.0, 'count': 2}
        ])


class DiscountReportTest(BillingFixtureMixin, TestCase):

    def setUp(self):
        self.approver = User.objects.create_user(
            username='cfo', password='x', first_name='Meera', last_name='Shah'
        )

    def test_summary(self):
        discounted = self.make_account('1000.00')
        services.apply_discount(discounted, 'percentage', '10', 'Senior citizen', user=self.approver)
        self.make_account('500.00')

        data = analytics.discount_summary(analytics.DiscountFilters())

        self.assertEqual(data['total_revenue'], 1500.0)
        self.assertEqual(data['total_discount'], 100.0)
        self.assertEqual(data['total_net'], 1400.0)
        self.assertEqual(data['discount_percentage'], 6.67)
        self.assertEqual(data['discount_count'], 1)
        self.assertEqual(data['total_accounts'], 2)
        self.assertEqual(data['accounts_with_discount_percentage'], 50.0)
        self.assertEqual(data['average_discount'], 100.0)
        self.assertEqual(data['by_type'], [{'type': 'Percentage', 'total': 100.0}])

    def test_summary_outside_window_is_empty(self):
        self.make_account('1000.00')
        long_ago = datetime.date(2000, 1, 1)
        filters = analytics.DiscountFilters(start_date=long_ago, end_date=long_ago)

        data = analytics.discount_summary(filters)

        self.assertEqual(data['total_accounts'], 0)
        self.assertEqual(data['discount_percentage'], 0)
        self.assertEqual(data['average_discount'], 0)

    def test_by_approver(self):
        first = self.make_account('1000.00')
        second = self.make_account('2000.00')
        services.apply_discount(first, 'fixed', '100', 'Goodwill', user=self.approver)
        services.apply_discount(second, 'fixed', '300', 'Goodwill', user=self.approver)

        rows = analytics.discount_by_approver(analytics.DiscountFilters())

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['name'], 'Meera Shah')
        self.assertEqual(rows[0]['count'], 2)
        self.assertEqual(rows[0]['total_discount'], 400.0)
        self.assertEqual(rows[0]['avg_discount'], 200.0)
        self.assertEqual(rows[0]['max_discount'], 300.0)

    def test_by_department_uses_item_discounts(self):
        self.make_account('1000.00', item_type='lab', item_discount='100')

        rows = analytics.discount_by_department(analytics.DiscountFilters())

        self.assertEqual(rows, [{
            'department': 'Laboratory',
            'count': 1,
            'total_discount': 100.0,
            'total_amount': 1000.0,
            'discount_percentage': 10.0,
        }])

    def test_compliance(self):
        approved = self.make_account('20000.00')
        services.apply_discount(approved, 'fixed', '15000', 'Charity case', user=self.approver)
        unapproved = self.make_account('30000.00')
        BillingAccount.objects.filter(pk=unapproved.pk).update(
            discount_type='fixed', discount_amount=Decimal('12000.00')
        )
        small = self.make_account('1000.00')
        BillingAccount.objects.filter(pk=small.pk).update(
            discount_type='fixed', discount_amount=Decimal('50.00'), discount_reason='Rounding'
        )

        data = analytics.discount_compliance(analytics.DiscountFilters(), threshold=10000)

        self.assertEqual(data['total_discounts'], 3)
        self.assertEqual(data['approved_discounts'], 1)
        self.assertEqual(data['approval_rate'], 33.33)
        self.assertEqual(data['with_reason'], 2)
        self.assertEqual(data['high_value_discounts'], 2)
        self.assertEqual(data['high_value_approved'], 1)
        self.assertEqual(data['high_value_approval_rate'], 50.0)

    def test_trends_cover_every_day(self):
        today = timezone.localdate()
        filters = analytics.DiscountFilters(start_date=today - datetime.timedelta(days=6), end_date=today)

        trends = analytics.discount_trends(filters)

        self.assertEqual(len(trends), 7)
        self.assertEqual(trends[-1]['date'], today.strftime('%b %d'))


class InvoiceBackfillTest(BillingFixtureMixin, TestCase):

    def test_generates_for_billed_accounts_only(self):
        account = self.make_account('1000.00')
        services.record_payment(account, '400.00')
        Patient.objects.create(first_name='No', gender='male')

        result = invoices.generate_missing_invoices()

        self.assertEqual(result, {'total_accounts': 1, 'generated': 1, 'errors': []})
        invoice = Invoice.objects.get()
        self.assertEqual(invoice.status, 'partial')
        self.assertEqual(invoice.balance, Decimal('600.00'))
        self.assertEqual(Payment.objects.get().invoice, invoice)

    def test_rerun_is_noop(self):
        self.make_account('1000.00')
        invoices.generate_missing_invoices()

        result = invoices.generate_missing_invoices()

        self.assertEqual(result['total_accounts'], 0)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_failure_does_not_stop_batch(self):
        failing = self.make_account('1000.00')
        self.make_account('500.00')
        original = invoices.generate_from_billing_account

        def flaky(account, user=None):
            if account.pk == failing.pk:
                raise RuntimeError('printer on fire')
            return original(account, user)

        with mock.patch.object(invoices, 'generate_from_billing_account', side_effect=flaky):
            result = invoices.generate_missing_invoices()

        self.assertEqual(result['total_accounts'], 2)
        self.assertEqual(result['generated'], 1)
        self.assertEqual(result['errors'], [{'account_id': failing.pk, 'error': 'printer on fire'}])
        self.assertFalse(Invoice.objects.filter(account=failing).exists())

    def test_invoice_status(self):
        self.assertEqual(invoices.invoice_status(Decimal('1000'), Decimal('0')), 'paid')
        self.assertEqual(invoices.invoice_status(Decimal('10'), Decimal('5')), 'partial')
        self.assertEqual(invoices.invoice_status(Decimal('0'), Decimal('5')), 'unpaid')


class BillingApiTest(BillingFixtureMixin, TestCase):

    def setUp(self):
        self.client = APIClient()
        self.accountant = User.objects.create_user(username='accountant', password='x')
        self.accountant.groups.add(Group.objects.create(name='Accountant'))
        self.receptionist = User.objects.create_user(username='desk', password='x')
        self.receptionist.groups.add(Group.objects.create(name='Receptionist'))

    def test_dashboard_requires_finance_role(self):
        self.client.force_authenticate(self.receptionist)
        self.assertEqual(self.client.get('/api/billing/dashboard/').status_code, 403)

        self.client.force_authenticate(self.accountant)
        response = self.client.get('/api/billing/dashboard/')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        self.assertEqual(len(response.data['data']['revenue_chart']), 30)

    def test_unauthenticated(self):
        self.assertEqual(self.client.get('/api/billing/discount-report/summary/').status_code, 401)

    def test_discount_report_sections(self):
        self.client.force_authenticate(self.accountant)
        account = self.make_account('1000.00')
        services.apply_discount(account, 'fixed', '250', 'Goodwill', user=self.accountant)

        summary = self.client.get('/api/billing/discount-report/summary/')
        self.assertEqual(summary.status_code, 200)
        self.assertEqual(summary.data['data']['total_discount'], 250.0)

        detailed = self.client.get('/api/billing/discount-report/detailed/')
        self.assertEqual(detailed.status_code, 200)
        self.assertEqual(detailed.data['pagination']['per_page'], 20)
        self.assertEqual(detailed.data['pagination']['total'], 1)
        self.assertEqual(detailed.data['data'][0]['account_no'], account.account_number)
        self.assertEqual(detailed.data['data'][0]['percentage'], 25.0)

        self.assertEqual(self.client.get('/api/billing/discount-report/unknown/').status_code, 404)

    def test_discount_report_rejects_inverted_window(self):
        self.client.force_authenticate(self.accountant)
        response = self.client.get(
            '/api/billing/discount-report/summary/',
            {'start_date': '2024-05-10', 'end_date': '2024-05-01'}
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn('end_date', response.data['errors'])

    def test_export_csv(self):
        self.client.force_authenticate(self.accountant)
        account = self.make_account('1000.00')
        services.apply_discount(account, 'fixed', '100', 'Goodwill', user=self.accountant)

        response = self.client.get('/api/billing/discount-report/export/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn(account.account_number, lines[1])

    def test_desk_opens_account_and_takes_payment(self):
        self.client.force_authenticate(self.receptionist)
        patient = Patient.objects.create(first_name='Ravi', gender='male')
        encounter = Encounter.objects.create(patient=patient, encounter_type=Encounter.TYPE_OPD)

        response = self.client.post('/api/billing/accounts/', {
            'encounter': encounter.pk,
            'items': [{'description': 'Consultation', 'unit_price': '600.00', 'item_type': 'consultation'}],
        }, format='json')
        self.assertEqual(response.status_code, 201)
        account_id = response.data['data']['id']
        self.assertEqual(response.data['data']['balance'], '600.00')

        payment = self.client.post(
            f'/api/billing/accounts/{account_id}/record_payment/',
            {'amount': '600.00', 'method': 'cash'}, format='json'
        )
        self.assertEqual(payment.status_code, 201)
        self.assertEqual(BillingAccount.objects.get(pk=account_id).balance, Decimal('0.00'))

    def test_discount_requires_finance_role(self):
        account = self.make_account('1000.00')
        self.client.force_authenticate(self.receptionist)
        response = self.client.post(
            f'/api/billing/accounts/{account.pk}/apply_discount/',
            {'discount_type': 'fixed', 'value': '100', 'reason': 'Goodwill'}, format='json'
        )
        self.assertEqual(response.status_code, 403)

    def test_overpayment_is_422(self):
        account = self.make_account('100.00')
        self.client.force_authenticate(self.receptionist)
        response = self.client.post(
            f'/api/billing/accounts/{account.pk}/record_payment/',
            {'amount': '150.00'}, format='json'
        )
        self.assertEqual(response.status_code, 422)
        self.assertFalse(response.data['success'])

    def test_negative_item_discount_rejected(self):
        account = self.make_account('100.00')
        self.client.force_authenticate(self.receptionist)

        response = self.client.post(f'/api/billing/accounts/{account.pk}/items/', {
            'item_type': 'lab', 'description': 'CBC', 'unit_price': '300.00', 'discount_amount': '-50.00'
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('discount_amount', response.data['errors'])
        account.refresh_from_db()
        self.assertEqual(account.total_amount, Decimal('100.00'))
