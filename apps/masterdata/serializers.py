from rest_framework import serializers

from common.exceptions import DomainError
from . import services
from .models import Department, Ward, Bed, LabTestCategory, LabTest, MasterDataAuditLog


class DepartmentSerializer(serializers.ModelSerializer):
    branch_name = serializers.CharField(source='branch.name', read_only=True)
    ward_count = serializers.SerializerMethodField()

    class Meta:
        model = Department
        fields = [
            'id', 'name', 'code', 'branch', 'branch_name', 'description',
            'is_active', 'ward_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_ward_count(self, obj):
        return obj.wards.filter(is_active=True).count()


class WardSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(source='department.name', read_only=True)
    ward_type_display = serializers.CharField(source='get_ward_type_display', read_only=True)
    bed_count = serializers.SerializerMethodField()

    class Meta:
        model = Ward
        fields = [
            'id', 'name', 'ward_type', 'ward_type_display', 'department',
            'department_name', 'capacity', 'floor', 'description',
            'is_active', 'bed_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {
            # Zero is reported by the ward rules with their own message
            'capacity': {'validators': []},
        }

    def get_bed_count(self, obj):
        return obj.beds.count()

    def validate(self, attrs):
        department = attrs.get('department', getattr(self.instance, 'department', None))
        capacity = attrs.get('capacity', getattr(self.instance, 'capacity', None))
        try:
            if 'department' in attrs or self.instance is None:
                services.validate_department(department)
            services.validate_ward_capacity(capacity, ward=self.instance)
        except DomainError as e:
            raise serializers.ValidationError(e.message)
        return attrs


class BedSerializer(serializers.ModelSerializer):
    ward_name = serializers.CharField(source='ward.name', read_only=True)
    effective_status = serializers.CharField(read_only=True)
    is_occupied = serializers.BooleanField(read_only=True)

    class Meta:
        model = Bed
        fields = [
            'id', 'ward', 'ward_name', 'bed_number', 'bed_type', 'status',
            'effective_status', 'is_occupied', 'last_occupied_at', 'notes',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'status', 'last_occupied_at', 'created_at', 'updated_at']
        # Duplicate bed numbers are reported by validate()
        validators = []

    def validate(self, attrs):
        ward = attrs.get('ward', getattr(self.instance, 'ward', None))
        bed_number = attrs.get('bed_number', getattr(self.instance, 'bed_number', None))
        try:
            if self.instance is None:
                services.validate_new_bed(ward, bed_number)
            elif ward.beds.filter(bed_number=bed_number).exclude(pk=self.instance.pk).exists():
                raise DomainError(f'Bed number {bed_number} already exists in ward {ward.name}')
        except DomainError as e:
            raise serializers.ValidationError(e.message)
        return attrs


class BedStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Bed.STATUS_CHOICES)


class LabTestCategorySerializer(serializers.ModelSerializer):

    class Meta:
        model = LabTestCategory
        fields = ['id', 'name', 'description', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class LabTestSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)

    class Meta:
        model = LabTest
        fields = [
            'id', 'name', 'code', 'category', 'category_name', 'price',
            'turnaround_hours', 'sample_type', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class MasterDataAuditLogSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = MasterDataAuditLog
        fields = ['id', 'entity_type', 'entity_id', 'action', 'changes', 'user', 'user_name', 'created_at']
        read_only_fields = fields


class LabTestImportSerializer(serializers.ModelSerializer):
    """One CSV row of the test catalogue. Unknown categories are created."""
    category = serializers.CharField(required=False, default='General')
    status = serializers.ChoiceField(choices=['active', 'inactive'], required=False, default='active')

    class Meta:
        model = LabTest
        fields = ['name', 'code', 'category', 'price', 'turnaround_hours', 'sample_type', 'status']
        extra_kwargs = {
            'turnaround_hours': {'min_value': 1},
        }

    def to_internal_value(self, data):
        # blank cells fall back to field defaults
        data = {key: value for key, value in data.items() if value not in ('', None)}
        return super().to_internal_value(data)

    def create(self, validated_data):
        category, _ = LabTestCategory.objects.get_or_create(name=validated_data.pop('category'))
        validated_data['is_active'] = validated_data.pop('status') == 'active'
        return LabTest.objects.create(category=category, **validated_data)
