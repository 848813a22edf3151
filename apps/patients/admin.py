from django.contrib import admin

from .models import Patient, PatientAllergy, Encounter


class PatientAllergyInline(admin.TabularInline):
    model = PatientAllergy
    extra = 0


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['patient_id', 'full_name', 'gender', 'mobile_primary', 'is_active']
    list_filter = ['gender', 'is_active']
    search_fields = ['patient_id', 'first_name', 'last_name', 'mobile_primary']
    readonly_fields = ['patient_id', 'created_at', 'updated_at']
    inlines = [PatientAllergyInline]


@admin.register(Encounter)
class EncounterAdmin(admin.ModelAdmin):
    list_display = ['encounter_number', 'patient', 'encounter_type', 'status', 'started_at', 'ended_at']
    list_filter = ['encounter_type', 'status']
    search_fields = ['encounter_number', 'patient__first_name', 'patient__last_name']
    readonly_fields = ['encounter_number', 'created_at', 'updated_at']
