from django.contrib import admin

from .models import Hospital, Branch, SystemSetting


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    """Hospital configuration admin"""

    list_display = ['name', 'type', 'city', 'phone', 'has_emergency', 'has_pharmacy']
    readonly_fields = ['created_at', 'updated_at']

    def has_add_permission(self, request):
        """Prevent adding more than one hospital"""
        if Hospital.objects.exists():
            return False
        return super().has_add_permission(request)

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'code']


@admin.register(SystemSetting)
class SystemSettingAdmin(admin.ModelAdmin):
    list_display = ['key', 'value_type', 'value', 'updated_by', 'updated_at']
    search_fields = ['key', 'description']
    readonly_fields = ['updated_by', 'created_at', 'updated_at']
