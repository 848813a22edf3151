from django.contrib import admin

from .models import LabOrder


@admin.register(LabOrder)
class LabOrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'test_name', 'patient', 'encounter', 'priority', 'status', 'expected_completion_at']
    list_filter = ['status', 'priority']
    search_fields = ['order_number', 'test_name', 'patient__first_name', 'patient__last_name']
    readonly_fields = ['order_number', 'created_at', 'updated_at']
    raw_id_fields = ['patient', 'encounter', 'physician', 'test']
