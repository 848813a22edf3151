from django.contrib import admin

from .models import ServiceCatalogue


@admin.register(ServiceCatalogue)
class ServiceCatalogueAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'category', 'unit_price', 'department', 'is_active', 'is_billable']
    list_filter = ['category', 'is_active', 'is_billable']
    search_fields = ['name', 'code']
    ordering = ['category', 'name']
