from rest_framework import serializers

from .models import Hospital, Branch, SystemSetting
from .settings_store import cast_value, SettingTypeError


class HospitalSerializer(serializers.ModelSerializer):
    """Hospital configuration serializer"""
    type_display = serializers.CharField(source='get_type_display', read_only=True)
    full_address = serializers.CharField(read_only=True)

    class Meta:
        model = Hospital
        fields = [
            'id', 'name', 'type', 'type_display', 'tagline',
            'email', 'phone', 'website',
            'address', 'city', 'state', 'country', 'pincode',
            'full_address', 'logo',
            'has_emergency', 'has_pharmacy', 'has_laboratory',
            'registration_number', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class HospitalUpdateSerializer(serializers.ModelSerializer):

    class Meta:
        model = Hospital
        exclude = ['id', 'created_at', 'updated_at']


class BranchSerializer(serializers.ModelSerializer):

    class Meta:
        model = Branch
        fields = ['id', 'name', 'code', 'address', 'phone', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class SystemSettingSerializer(serializers.ModelSerializer):
    updated_by_name = serializers.CharField(source='updated_by.get_full_name', read_only=True)

    class Meta:
        model = SystemSetting
        fields = ['key', 'value', 'value_type', 'description', 'updated_by_name', 'updated_at']
        read_only_fields = ['key', 'updated_by_name', 'updated_at']

    def validate(self, attrs):
        value_type = attrs.get('value_type') or getattr(self.instance, 'value_type', 'str')
        try:
            cast_value(attrs.get('value'), value_type)
        except SettingTypeError as e:
            raise serializers.ValidationError({'value': str(e)})
        return attrs
