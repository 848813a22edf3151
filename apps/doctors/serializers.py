from rest_framework import serializers

from .models import Physician


class PhysicianSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    department_name = serializers.CharField(source='department.name', read_only=True)

    class Meta:
        model = Physician
        fields = [
            'id', 'user', 'physician_code', 'first_name', 'last_name', 'full_name',
            'specialty', 'license_number', 'department', 'department_name',
            'consultation_fee', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
