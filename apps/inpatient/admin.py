from django.contrib import admin

from .models import BedAssignment


@admin.register(BedAssignment)
class BedAssignmentAdmin(admin.ModelAdmin):
    list_display = ['encounter', 'bed', 'assigned_at', 'released_at']
    list_filter = ['released_at']
    search_fields = ['encounter__encounter_number', 'bed__bed_number']
    raw_id_fields = ['encounter', 'bed', 'assigned_by', 'released_by']
