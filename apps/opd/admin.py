from django.contrib import admin

from .models import OpdAppointment


@admin.register(OpdAppointment)
class OpdAppointmentAdmin(admin.ModelAdmin):
    list_display = [
        'appointment_number', 'patient', 'physician', 'appointment_date',
        'queue_number', 'status', 'triage_level'
    ]
    list_filter = ['status', 'appointment_type', 'triage_level', 'appointment_date']
    search_fields = ['appointment_number', 'patient__first_name', 'patient__last_name']
    readonly_fields = ['appointment_number', 'encounter', 'created_at', 'updated_at']
    raw_id_fields = ['patient', 'physician', 'emergency_patient']
    date_hierarchy = 'appointment_date'
