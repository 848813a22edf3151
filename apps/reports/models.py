from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class ScheduledReport(models.Model):
    """A report generated periodically by ``run_scheduled_reports``."""

    REPORT_TYPE_CHOICES = [
        ('billing_summary', 'Billing Summary'),
        ('discount_summary', 'Discount Summary'),
        ('bed_occupancy', 'Bed Occupancy'),
        ('emergency_census', 'Emergency Census'),
    ]

    FREQUENCY_CHOICES = [
        ('daily', 'Daily'),
        ('weekly', 'Weekly'),
        ('monthly', 'Monthly'),
    ]

    name = models.CharField(max_length=200)
    report_type = models.CharField(max_length=30, choices=REPORT_TYPE_CHOICES)
    frequency = models.CharField(max_length=10, choices=FREQUENCY_CHOICES, default='daily')
    parameters = models.JSONField(default=dict, blank=True, help_text="e.g. {\"branch\": 1}")
    recipients = models.JSONField(default=list, blank=True, help_text="List of email addresses")
    next_run_at = models.DateTimeField(default=timezone.now)
    last_run_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='scheduled_reports'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'scheduled_reports'
        ordering = ['next_run_at']

    def __str__(self):
        return f"{self.name} ({self.get_frequency_display()})"


class ReportRun(models.Model):
    STATUS_CHOICES = [
        ('success', 'Success'),
        ('failed', 'Failed'),
    ]

    report = models.ForeignKey(
        ScheduledReport,
        on_delete=models.CASCADE,
        related_name='runs'
    )
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    payload = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    error = models.TextField(blank=True, default='')
    started_at = models.DateTimeField(default=timezone.now)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'report_runs'
        ordering = ['-started_at']

    def __str__(self):
        return f"{self.report.name} @ {self.started_at:%Y-%m-%d %H:%M} ({self.status})"
