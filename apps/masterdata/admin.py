from django.contrib import admin

from .models import Department, Ward, Bed, LabTestCategory, LabTest, MasterDataAuditLog


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'branch', 'is_active']
    list_filter = ['is_active', 'branch']
    search_fields = ['name', 'code']


class BedInline(admin.TabularInline):
    model = Bed
    extra = 0
    fields = ['bed_number', 'bed_type', 'status', 'is_active']


@admin.register(Ward)
class WardAdmin(admin.ModelAdmin):
    list_display = ['name', 'ward_type', 'department', 'capacity', 'is_active']
    list_filter = ['ward_type', 'is_active', 'department']
    search_fields = ['name']
    inlines = [BedInline]


@admin.register(Bed)
class BedAdmin(admin.ModelAdmin):
    list_display = ['bed_number', 'ward', 'bed_type', 'status', 'last_occupied_at', 'is_active']
    list_filter = ['status', 'bed_type', 'ward']
    search_fields = ['bed_number', 'ward__name']


@admin.register(LabTestCategory)
class LabTestCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active']


@admin.register(LabTest)
class LabTestAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'category', 'price', 'turnaround_hours', 'is_active']
    list_filter = ['category', 'is_active']
    search_fields = ['name', 'code']


@admin.register(MasterDataAuditLog)
class MasterDataAuditLogAdmin(admin.ModelAdmin):
    list_display = ['entity_type', 'entity_id', 'action', 'user', 'created_at']
    list_filter = ['entity_type', 'action']
    readonly_fields = ['entity_type', 'entity_id', 'action', 'changes', 'user', 'created_at']
