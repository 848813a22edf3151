from django.contrib import admin

from .models import DrugFormulary, StockMovement, Prescription


@admin.register(DrugFormulary)
class DrugFormularyAdmin(admin.ModelAdmin):
    list_display = ['name', 'generic_name', 'strength', 'form', 'stock_quantity', 'reorder_level', 'status']
    list_filter = ['status', 'form', 'therapeutic_class']
    search_fields = ['name', 'generic_name', 'brand_name']


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['drug', 'movement_type', 'quantity', 'reference_no', 'user', 'created_at']
    list_filter = ['movement_type']
    search_fields = ['drug__name', 'reference_no']


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ['drug_name', 'patient', 'encounter', 'quantity', 'status', 'stock_reserved', 'created_at']
    list_filter = ['status', 'stock_reserved', 'instant_dispensing']
    search_fields = ['drug_name', 'patient__first_name', 'patient__last_name']
    raw_id_fields = ['patient', 'encounter', 'physician', 'drug']
