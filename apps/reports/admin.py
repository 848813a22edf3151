from django.contrib import admin

from .models import ScheduledReport, ReportRun


@admin.register(ScheduledReport)
class ScheduledReportAdmin(admin.ModelAdmin):
    list_display = ['name', 'report_type', 'frequency', 'next_run_at', 'last_run_at', 'is_active']
    list_filter = ['report_type', 'frequency', 'is_active']
    search_fields = ['name']


@admin.register(ReportRun)
class ReportRunAdmin(admin.ModelAdmin):
    list_display = ['report', 'status', 'started_at', 'finished_at']
    list_filter = ['status']
    readonly_fields = ['report', 'status', 'payload', 'error', 'started_at', 'finished_at']
