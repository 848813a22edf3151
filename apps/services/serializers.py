from rest_framework import serializers

from apps.masterdata.models import Department
from .catalogue import get_categories
from .models import ServiceCatalogue


class ServiceCatalogueSerializer(serializers.ModelSerializer):
    """Serializer for catalogue services"""
    category_name = serializers.SerializerMethodField()
    department_name = serializers.CharField(source='department.name', read_only=True)
    price_with_tax = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = ServiceCatalogue
        fields = [
            'id', 'code', 'name', 'category', 'category_name', 'description',
            'unit_price', 'unit_of_measure', 'department', 'department_name',
            'tax_rate', 'price_with_tax', 'is_active', 'is_billable',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']

    def get_category_name(self, obj):
        return get_categories().get(obj.category, obj.category)

    def validate_category(self, value):
        if value not in get_categories():
            raise serializers.ValidationError(
                f"Must be one of: {', '.join(get_categories())}"
            )
        return value

    def validate_code(self, value):
        return value.strip().upper()


class CodeRequestSerializer(serializers.Serializer):
    category = serializers.CharField()
    department = serializers.PrimaryKeyRelatedField(
        queryset=Department.objects.all(), required=False, allow_null=True
    )


class BulkPriceSerializer(serializers.Serializer):
    category = serializers.CharField()
    adjustment_type = serializers.ChoiceField(choices=['percentage', 'fixed'])
    adjustment_value = serializers.DecimalField(max_digits=10, decimal_places=2)


class CategoryUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    avg_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
