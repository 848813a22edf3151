from django.contrib import admin

from .models import Physician


@admin.register(Physician)
class PhysicianAdmin(admin.ModelAdmin):
    list_display = ['physician_code', 'full_name', 'specialty', 'department', 'consultation_fee', 'is_active']
    list_filter = ['is_active', 'department']
    search_fields = ['physician_code', 'first_name', 'last_name']
