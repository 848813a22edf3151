from rest_framework import serializers

from apps.doctors.models import Physician
from apps.masterdata.models import Department
from apps.patients.models import Patient
from . import triage
from .models import OpdAppointment


class OpdAppointmentListSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source='pk', read_only=True)
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    physician_name = serializers.CharField(source='physician.full_name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    priority = serializers.SerializerMethodField()

    class Meta:
        model = OpdAppointment
        fields = [
            'id', 'appointment_number', 'patient', 'patient_name',
            'physician', 'physician_name', 'appointment_type',
            'appointment_date', 'appointment_time', 'status', 'status_display',
            'queue_number', 'triage_level', 'priority', 'chief_complaint',
        ]

    def get_priority(self, obj):
        return triage.priority_order(obj.triage_level)


class OpdAppointmentDetailSerializer(OpdAppointmentListSerializer):
    encounter_number = serializers.CharField(source='encounter.encounter_number', read_only=True)
    department_name = serializers.CharField(source='department.name', read_only=True)
    waiting_minutes = serializers.IntegerField(read_only=True)
    consultation_minutes = serializers.IntegerField(read_only=True)
    lab_order_count = serializers.SerializerMethodField()
    prescription_count = serializers.SerializerMethodField()

    class Meta(OpdAppointmentListSerializer.Meta):
        fields = OpdAppointmentListSerializer.Meta.fields + [
            'encounter', 'encounter_number', 'department', 'department_name',
            'emergency_patient', 'notes',
            'triage_status', 'triage_score', 'red_flags', 'temperature',
            'blood_pressure', 'heart_rate', 'respiratory_rate',
            'oxygen_saturation', 'pain_level', 'weight', 'height',
            'triage_notes', 'triaged_by', 'triaged_at',
            'checked_in_at', 'consultation_started_at', 'consultation_completed_at',
            'waiting_minutes', 'consultation_minutes',
            'lab_order_count', 'prescription_count',
            'created_at', 'updated_at',
        ]

    def get_lab_order_count(self, obj):
        return obj.encounter.lab_orders.count()

    def get_prescription_count(self, obj):
        return obj.encounter.prescriptions.count()


class OpdAppointmentCreateSerializer(serializers.Serializer):
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.filter(is_active=True))
    physician = serializers.PrimaryKeyRelatedField(
        queryset=Physician.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )
    department = serializers.PrimaryKeyRelatedField(
        queryset=Department.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )
    appointment_type = serializers.ChoiceField(choices=OpdAppointment.TYPE_CHOICES, default='walk_in')
    appointment_date = serializers.DateField(required=False)
    appointment_time = serializers.TimeField(required=False, allow_null=True)
    chief_complaint = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OpdAppointmentUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = OpdAppointment
        fields = [
            'physician', 'department', 'appointment_date', 'appointment_time',
            'chief_complaint', 'notes',
        ]


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OpdAppointment.STATUS_CHOICES)


class TriageSerializer(serializers.Serializer):
    temperature = serializers.DecimalField(max_digits=4, decimal_places=1, required=False, allow_null=True)
    blood_pressure = serializers.RegexField(
        r'^\d{2,3}/\d{2,3}$', required=False, allow_blank=True,
        error_messages={'invalid': 'Blood pressure must look like 120/80'}
    )
    heart_rate = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    respiratory_rate = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    oxygen_saturation = serializers.IntegerField(min_value=0, max_value=100, required=False, allow_null=True)
    pain_level = serializers.IntegerField(min_value=0, max_value=10, required=False, allow_null=True)
    weight = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True)
    height = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True)
    triage_notes = serializers.CharField(required=False, allow_blank=True)
    chief_complaint = serializers.CharField(required=False, allow_blank=True)
