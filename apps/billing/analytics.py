"""
Billing rollups for the finance dashboards.

Each metric is its own aggregate query over payments, accounts or items,
optionally narrowed to a branch and a date window. Nothing is cached or
shared between metrics.
"""

import datetime
import logging
from decimal import Decimal

from django.conf import settings
from django.db.models import Avg, Count, DecimalField, ExpressionWrapper, F, Max, Q, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from .models import BillingAccount, BillingItem, Payment

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def _money(value):
    return float(round(value or ZERO, 2))


def _percentage(part, whole, places=2):
    """``part / whole * 100``; 0 when ``whole`` is 0."""
    if not whole:
        return 0.0
    return round(float(part or 0) / float(whole) * 100, places)


def growth_rate(current, previous):
    """Period-over-period change in percent, 1 decimal; 0 when ``previous`` is 0."""
    if not previous:
        return 0.0
    return round((float(current or 0) - float(previous)) / float(previous) * 100, 1)


def _by_branch(queryset, branch):
    if branch:
        queryset = queryset.filter(branch_id=getattr(branch, 'pk', branch))
    return queryset


def _sum(queryset, field):
    return queryset.aggregate(total=Sum(field))['total'] or ZERO


def _day_range(start, end):
    day = start
    while day <= end:
        yield day
        day += datetime.timedelta(days=1)


# ============================================================================
# ADMIN FINANCIAL SUMMARY
# ============================================================================

def admin_financials(branch=None, today=None):
    today = today or timezone.localdate()
    month_start = today.replace(day=1)
    last_month_end = month_start - datetime.timedelta(days=1)
    last_month_start = last_month_end.replace(day=1)

    payments = _by_branch(Payment.objects.all(), branch)
    accounts = _by_branch(BillingAccount.objects.all(), branch)

    today_payments = payments.filter(created_at__date=today)
    today_agg = today_payments.aggregate(revenue=Sum('amount'), count=Count('id'))
    today_revenue = today_agg['revenue'] or ZERO
    today_count = today_agg['count']

    month_revenue = _sum(
        payments.filter(created_at__date__gte=month_start, created_at__date__lte=today), 'amount'
    )
    month_accounts = accounts.filter(created_at__date__gte=month_start, created_at__date__lte=today)
    month_agg = month_accounts.aggregate(invoiced=Sum('total_amount'), discounts=Sum('discount_amount'))
    invoiced = month_agg['invoiced'] or ZERO
    month_discounts = month_agg['discounts'] or ZERO
    net = invoiced - month_discounts

    last_month_revenue = _sum(
        payments.filter(created_at__date__gte=last_month_start, created_at__date__lte=last_month_end),
        'amount'
    )
    revenue_growth = growth_rate(month_revenue, last_month_revenue)

    return {
        'today': {
            'revenue': _money(today_revenue),
            'payments_count': today_count,
            'discounts': _money(_sum(accounts.filter(created_at__date=today), 'discount_amount')),
            'avg_payment': _money(today_revenue / today_count) if today_count else 0.0,
        },
        'month': {
            'revenue': _money(month_revenue),
            'invoiced': _money(invoiced),
            'discounts': _money(month_discounts),
            'net': _money(net),
            'discount_percentage': _percentage(month_discounts, invoiced),
            'collection_rate': _percentage(month_revenue, net),
        },
        'outstanding': _money(_sum(accounts.exclude(status='closed'), 'balance')),
        'growth': {
            'revenue_growth': revenue_growth,
            'trend': 'up' if revenue_growth >= 0 else 'down',
        },
    }


# ============================================================================
# BILLING DASHBOARD
# ============================================================================

def dashboard_kpis(branch=None, today=None):
    today = today or timezone.localdate()
    payments = _by_branch(Payment.objects.all(), branch)
    accounts = _by_branch(BillingAccount.objects.all(), branch)

    invoices_today = accounts.filter(created_at__date=today).aggregate(
        count=Count('id'), value=Sum('total_amount')
    )
    return {
        'revenue_today': _money(_sum(payments.filter(created_at__date=today), 'amount')),
        'active_accounts': accounts.filter(status='open').count(),
        'outstanding_balance': _money(_sum(accounts.exclude(status='closed'), 'balance')),
        'invoices_today': {
            'count': invoices_today['count'],
            'value': _money(invoices_today['value']),
        },
    }


def revenue_chart(branch=None, days=30, today=None):
    """Daily payment totals for the last ``days`` days, oldest first."""
    today = today or timezone.localdate()
    start = today - datetime.timedelta(days=days - 1)

    rows = _by_branch(Payment.objects.all(), branch).filter(
        created_at__date__gte=start, created_at__date__lte=today
    ).annotate(day=TruncDate('created_at')).values('day').annotate(revenue=Sum('amount'))
    revenue_by_day = {row['day']: row['revenue'] for row in rows}

    return [
        {'date': day.strftime('%b %d'), 'revenue': _money(revenue_by_day.get(day))}
        for day in _day_range(start, today)
    ]


def payment_methods(branch=None, day=None):
    day = day or timezone.localdate()
    rows = _by_branch(Payment.objects.all(), branch).filter(
        created_at__date=day
    ).values('method').annotate(total=Sum('amount'), count=Count('id')).order_by('-total')

    return [
        {
            'method': row['method'].replace('_', ' ').capitalize(),
            'total': _money(row['total']),
            'count': row['count'],
        }
        for row in rows
    ]


def recent_payments(branch=None, limit=5):
    payments = _by_branch(Payment.objects.all(), branch).select_related(
        'account__patient'
    ).order_by('-created_at')[:limit]
    return [
        {
            'id': payment.pk,
            'payment_number': payment.payment_number,
            'account_number': payment.account.account_number,
            'patient_name': payment.account.patient.full_name,
            'amount': _money(payment.amount),
            'method': payment.method,
            'created_at': payment.created_at,
        }
        for payment in payments
    ]


def outstanding_accounts(branch=None, limit=10):
    accounts = _by_branch(BillingAccount.objects.all(), branch).exclude(
        status='closed'
    ).filter(balance__gt=0).select_related('patient').order_by('-balance')[:limit]
    return [
        {
            'id': account.pk,
            'account_number': account.account_number,
            'patient_name': account.patient.full_name,
            'net_amount': _money(account.net_amount),
            'amount_paid': _money(account.amount_paid),
            'balance': _money(account.balance),
            'created_at': account.created_at,
        }
        for account in accounts
    ]


def billing_dashboard(branch=None, days=30):
    return {
        'kpis': dashboard_kpis(branch),
        'revenue_chart': revenue_chart(branch, days=days),
        'payment_methods': payment_methods(branch),
        'recent_payments': recent_payments(branch),
        'outstanding_accounts': outstanding_accounts(branch),
    }


# ============================================================================
# DISCOUNT REPORT
# ============================================================================

class DiscountFilters:
    """Date window and narrowing shared by every discount report section."""

    def __init__(self, start_date=None, end_date=None, branch=None, discount_type=None, approver=None):
        today = timezone.localdate()
        self.end_date = end_date or today
        self.start_date = start_date or self.end_date.replace(day=1)
        self.branch = branch
        self.discount_type = discount_type
        self.approver = approver

    def accounts(self):
        return _by_branch(BillingAccount.objects.all(), self.branch).filter(
            created_at__date__gte=self.start_date,
            created_at__date__lte=self.end_date,
        )

    def discounted_accounts(self):
        queryset = self.accounts().filter(discount_amount__gt=0)
        if self.discount_type:
            queryset = queryset.filter(discount_type=self.discount_type)
        if self.approver:
            queryset = queryset.filter(discount_approved_by_id=self.approver)
        return queryset

    def as_dict(self):
        return {
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'branch': getattr(self.branch, 'pk', self.branch),
            'discount_type': self.discount_type,
            'approver': self.approver,
        }


def discount_summary(filters):
    accounts = filters.accounts()
    agg = accounts.aggregate(
        total_revenue=Sum('total_amount'),
        total_discount=Sum('discount_amount'),
        total_net=Sum('net_amount'),
        total_accounts=Count('id'),
        discount_count=Count('id', filter=Q(discount_amount__gt=0)),
    )
    total_revenue = agg['total_revenue'] or ZERO
    total_discount = agg['total_discount'] or ZERO
    discount_count = agg['discount_count']

    by_type = accounts.filter(discount_amount__gt=0).values('discount_type').annotate(
        total=Sum('discount_amount')
    ).order_by('-total')

    return {
        'total_revenue': _money(total_revenue),
        'total_discount': _money(total_discount),
        'total_net': _money(agg['total_net']),
        'discount_percentage': _percentage(total_discount, total_revenue),
        'discount_count': discount_count,
        'total_accounts': agg['total_accounts'],
        'accounts_with_discount_percentage': _percentage(discount_count, agg['total_accounts']),
        'average_discount': _money(total_discount / discount_count) if discount_count else 0.0,
        'by_type': [
            {'type': row['discount_type'].capitalize(), 'total': _money(row['total'])}
            for row in by_type
        ],
    }


def discount_detailed(filters):
    """Queryset of discounted accounts, largest discount first; rows via ``discount_row``."""
    return filters.discounted_accounts().select_related(
        'patient', 'encounter', 'branch', 'discount_approved_by'
    ).order_by('-discount_amount', '-created_at')


def _user_name(user):
    if user is None:
        return None
    return user.get_full_name() or user.username


def discount_row(account):
    return {
        'id': account.pk,
        'account_no': account.account_number,
        'patient_name': account.patient.full_name if account.patient_id else 'Unknown',
        'encounter_number': account.encounter.encounter_number if account.encounter_id else None,
        'branch_name': account.branch.name if account.branch_id else None,
        'total': _money(account.total_amount),
        'discount': _money(account.discount_amount),
        'type': account.discount_type,
        'percentage': _percentage(account.discount_amount, account.total_amount),
        'reason': account.discount_reason,
        'net': _money(account.net_amount),
        'approver_name': _user_name(account.discount_approved_by),
        'created_at': account.created_at,
        'approved_at': account.discount_approved_at,
    }


def discount_by_department(filters):
    gross = ExpressionWrapper(
        F('unit_price') * F('quantity'),
        output_field=DecimalField(max_digits=14, decimal_places=2)
    )
    items = BillingItem.objects.filter(
        account__in=filters.accounts(), discount_amount__gt=0
    )
    rows = items.values('item_type').annotate(
        count=Count('id'),
        total_discount=Sum('discount_amount'),
        total_amount=Sum(gross),
    ).order_by('-total_discount')

    labels = dict(BillingItem.ITEM_TYPE_CHOICES)
    return [
        {
            'department': labels.get(row['item_type'], row['item_type']),
            'count': row['count'],
            'total_discount': _money(row['total_discount']),
            'total_amount': _money(row['total_amount']),
            'discount_percentage': _percentage(row['total_discount'], row['total_amount']),
        }
        for row in rows
    ]


def discount_by_approver(filters):
    rows = filters.accounts().filter(
        discount_amount__gt=0, discount_approved_by__isnull=False
    ).values(
        'discount_approved_by',
        'discount_approved_by__username',
        'discount_approved_by__first_name',
        'discount_approved_by__last_name',
        'discount_approved_by__email',
    ).annotate(
        count=Count('id'),
        total_discount=Sum('discount_amount'),
        avg_discount=Avg('discount_amount'),
        max_discount=Max('discount_amount'),
    ).order_by('-total_discount')

    result = []
    for row in rows:
        name = f"{row['discount_approved_by__first_name']} {row['discount_approved_by__last_name']}".strip()
        result.append({
            'id': row['discount_approved_by'],
            'name': name or row['discount_approved_by__username'],
            'email': row['discount_approved_by__email'],
            'count': row['count'],
            'total_discount': _money(row['total_discount']),
            'avg_discount': _money(row['avg_discount']),
            'max_discount': _money(row['max_discount']),
        })
    return result


def discount_trends(filters):
    rows = filters.accounts().annotate(day=TruncDate('created_at')).values('day').annotate(
        discount=Sum('discount_amount'),
        revenue=Sum('total_amount'),
    )
    by_day = {row['day']: row for row in rows}

    trends = []
    for day in _day_range(filters.start_date, filters.end_date):
        row = by_day.get(day, {})
        trends.append({
            'date': day.strftime('%b %d'),
            'discount': _money(row.get('discount')),
            'revenue': _money(row.get('revenue')),
            'percentage': _percentage(row.get('discount'), row.get('revenue')),
        })
    return trends


def discount_compliance(filters, threshold=None):
    threshold = threshold if threshold is not None else settings.HIGH_VALUE_DISCOUNT_THRESHOLD
    discounted = filters.accounts().filter(discount_amount__gt=0)
    approved = Q(discount_approved_by__isnull=False)
    high_value = Q(discount_amount__gt=threshold)

    agg = discounted.aggregate(
        total=Count('id'),
        approved=Count('id', filter=approved),
        with_reason=Count('id', filter=Q(discount_reason__isnull=False) & ~Q(discount_reason='')),
        high_value=Count('id', filter=high_value),
        high_value_approved=Count('id', filter=high_value & approved),
    )
    if agg['high_value'] > agg['high_value_approved']:
        logger.warning(
            f"{agg['high_value'] - agg['high_value_approved']} high-value discounts without approval "
            f"between {filters.start_date} and {filters.end_date}"
        )

    return {
        'total_discounts': agg['total'],
        'approved_discounts': agg['approved'],
        'approval_rate': _percentage(agg['approved'], agg['total']),
        'with_reason': agg['with_reason'],
        'reason_compliance': _percentage(agg['with_reason'], agg['total']),
        'high_value_threshold': threshold,
        'high_value_discounts': agg['high_value'],
        'high_value_approved': agg['high_value_approved'],
        'high_value_approval_rate': _percentage(agg['high_value_approved'], agg['high_value']),
    }
