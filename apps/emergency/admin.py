from django.contrib import admin

from .models import EmergencyPatient, TriageAssessment, EmergencyOrder


class TriageAssessmentInline(admin.TabularInline):
    model = TriageAssessment
    extra = 0
    fields = ['triage_category', 'disposition', 'gcs_total', 'assessed_by', 'assessed_at']
    readonly_fields = fields


class EmergencyOrderInline(admin.TabularInline):
    model = EmergencyOrder
    extra = 0


@admin.register(EmergencyPatient)
class EmergencyPatientAdmin(admin.ModelAdmin):
    list_display = ['id', 'display_name', 'arrival_mode', 'arrival_time', 'triage_category', 'status']
    list_filter = ['status', 'triage_category', 'arrival_mode']
    search_fields = ['temp_name', 'patient__first_name', 'patient__last_name']
    raw_id_fields = ['patient', 'encounter', 'assigned_physician']
    inlines = [TriageAssessmentInline, EmergencyOrderInline]


@admin.register(TriageAssessment)
class TriageAssessmentAdmin(admin.ModelAdmin):
    list_display = ['emergency_patient', 'triage_category', 'disposition', 'gcs_total', 'assessed_at']
    list_filter = ['triage_category', 'disposition']
