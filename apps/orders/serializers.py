from rest_framework import serializers

from apps.doctors.models import Physician
from apps.masterdata.models import LabTest
from .models import LabOrder


class LabOrderSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    physician_name = serializers.CharField(source='physician.full_name', read_only=True)
    priority_display = serializers.CharField(source='get_priority_display', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = LabOrder
        fields = [
            'id', 'order_number', 'patient', 'patient_name', 'encounter',
            'physician', 'physician_name', 'test', 'test_name',
            'priority', 'priority_display', 'status', 'status_display',
            'clinical_notes', 'expected_completion_at', 'is_overdue',
            'sample_collected_at', 'result_value', 'result_notes',
            'completed_at', 'reported_by', 'ordered_by',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class LabOrderWriteSerializer(serializers.Serializer):
    """Fields a clinician may set; patient and encounter come from the URL."""
    test = serializers.PrimaryKeyRelatedField(queryset=LabTest.objects.all())
    test_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=LabOrder.PRIORITY_CHOICES)
    clinical_notes = serializers.CharField(required=False, allow_blank=True, default='')
    physician = serializers.PrimaryKeyRelatedField(
        queryset=Physician.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )


class LabResultSerializer(serializers.Serializer):
    result_value = serializers.CharField()
    result_notes = serializers.CharField(required=False, allow_blank=True, default='')
