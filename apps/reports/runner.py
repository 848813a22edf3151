"""
Scheduled report generation.

Due reports are generated one by one; each outcome is stored as a
``ReportRun`` and the report's ``next_run_at`` moves forward even when
generation fails, so one broken report never blocks the others.
"""

import calendar
import datetime
import json
import logging

from django.core.mail import send_mail
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.utils import timezone

from apps.billing.analytics import DiscountFilters, admin_financials, discount_summary
from apps.emergency.services import census
from apps.masterdata.services import bed_stats
from .models import ReportRun, ScheduledReport

logger = logging.getLogger(__name__)


def _billing_summary(params):
    return admin_financials(branch=params.get('branch'))


def _discount_summary(params):
    return discount_summary(DiscountFilters(branch=params.get('branch')))


def _bed_occupancy(params):
    return bed_stats()


def _emergency_census(params):
    return census(date=timezone.localdate())


GENERATORS = {
    'billing_summary': _billing_summary,
    'discount_summary': _discount_summary,
    'bed_occupancy': _bed_occupancy,
    'emergency_census': _emergency_census,
}


def add_months(moment, months=1):
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_run_after(report, moment):
    """First occurrence of the report's schedule strictly after ``moment``."""
    next_run = report.next_run_at
    while next_run <= moment:
        if report.frequency == 'weekly':
            next_run += datetime.timedelta(days=7)
        elif report.frequency == 'monthly':
            next_run = add_months(next_run)
        else:
            next_run += datetime.timedelta(days=1)
    return next_run


def generate(report):
    generator = GENERATORS.get(report.report_type)
    if generator is None:
        raise ValueError(f"Unknown report type '{report.report_type}'")
    return generator(report.parameters or {})


def deliver(report, payload):
    if not report.recipients:
        return 0
    body = json.dumps(payload, cls=DjangoJSONEncoder, indent=2)
    return send_mail(
        subject=f"[HMS] {report.name} - {timezone.localdate():%d %b %Y}",
        message=body,
        from_email=None,
        recipient_list=list(report.recipients),
    )


def run_report(report, now=None):
    """Generate and deliver one report; never raises for generation errors."""
    now = now or timezone.now()
    run = ReportRun(report=report, started_at=now)
    try:
        with transaction.atomic():
            payload = generate(report)
            deliver(report, payload)
        run.status = 'success'
        run.payload = payload
    except Exception as e:
        logger.exception(f"Scheduled report {report.pk} ({report.name}) failed")
        run.status = 'failed'
        run.error = str(e)
    run.finished_at = timezone.now()
    run.save()

    report.last_run_at = now
    report.next_run_at = next_run_after(report, now)
    report.save(update_fields=['last_run_at', 'next_run_at', 'updated_at'])
    return run


def due_reports(now=None):
    now = now or timezone.now()
    return ScheduledReport.objects.filter(is_active=True, next_run_at__lte=now)


def run_due_reports(now=None):
    now = now or timezone.now()
    reports = list(due_reports(now))
    succeeded = 0
    failed = 0

    for report in reports:
        run = run_report(report, now=now)
        if run.status == 'success':
            succeeded += 1
        else:
            failed += 1

    if reports:
        logger.info(f"Scheduled reports: {succeeded} succeeded, {failed} failed of {len(reports)} due")
    return {'due': len(reports), 'succeeded': succeeded, 'failed': failed}
