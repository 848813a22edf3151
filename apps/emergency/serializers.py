from rest_framework import serializers

from apps.doctors.models import Physician
from apps.masterdata.models import Bed
from apps.patients.models import Patient
from .models import EmergencyPatient, TriageAssessment, EmergencyOrder


class TriageAssessmentSerializer(serializers.ModelSerializer):
    assessed_by_name = serializers.CharField(source='assessed_by.get_full_name', read_only=True)

    class Meta:
        model = TriageAssessment
        fields = [
            'id', 'emergency_patient', 'triage_category', 'temperature',
            'blood_pressure', 'heart_rate', 'respiratory_rate', 'oxygen_saturation',
            'gcs_eye', 'gcs_verbal', 'gcs_motor', 'gcs_total',
            'assessment_notes', 'disposition', 'assessed_by', 'assessed_by_name',
            'assessed_at'
        ]
        read_only_fields = fields


class TriageInputSerializer(serializers.Serializer):
    """Vitals are recorded as entered; only the GCS components are bounded."""
    triage_category = serializers.ChoiceField(choices=EmergencyPatient.TRIAGE_CATEGORY_CHOICES)
    temperature = serializers.DecimalField(max_digits=4, decimal_places=1, required=False, allow_null=True)
    blood_pressure = serializers.CharField(max_length=20, required=False, allow_blank=True)
    heart_rate = serializers.IntegerField(required=False, allow_null=True)
    respiratory_rate = serializers.IntegerField(required=False, allow_null=True)
    oxygen_saturation = serializers.IntegerField(required=False, allow_null=True)
    gcs_eye = serializers.IntegerField(min_value=1, max_value=4, required=False, allow_null=True)
    gcs_verbal = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True)
    gcs_motor = serializers.IntegerField(min_value=1, max_value=6, required=False, allow_null=True)
    assessment_notes = serializers.CharField(required=False, allow_blank=True)
    disposition = serializers.ChoiceField(choices=TriageAssessment.DISPOSITION_CHOICES)


class EmergencyOrderSerializer(serializers.ModelSerializer):
    class Meta:
        model = EmergencyOrder
        fields = [
            'id', 'emergency_patient', 'order_type', 'order_name', 'order_details',
            'priority', 'status', 'ordered_by', 'ordered_at'
        ]
        read_only_fields = ['id', 'emergency_patient', 'status', 'ordered_by', 'ordered_at']


class EmergencyPatientListSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    assigned_physician_name = serializers.CharField(source='assigned_physician.full_name', read_only=True)

    class Meta:
        model = EmergencyPatient
        fields = [
            'id', 'patient', 'display_name', 'gender', 'age', 'chief_complaint',
            'arrival_mode', 'arrival_time', 'status', 'status_display',
            'triage_category', 'assigned_physician', 'assigned_physician_name'
        ]


class EmergencyPatientDetailSerializer(EmergencyPatientListSerializer):
    triage_assessments = TriageAssessmentSerializer(many=True, read_only=True)
    orders = EmergencyOrderSerializer(many=True, read_only=True)

    class Meta(EmergencyPatientListSerializer.Meta):
        fields = EmergencyPatientListSerializer.Meta.fields + [
            'encounter', 'temp_name', 'temp_contact', 'history_of_present_illness',
            'disposition_notes', 'triage_assessments', 'orders',
            'created_at', 'updated_at'
        ]


class EmergencyPatientCreateSerializer(serializers.ModelSerializer):
    patient = serializers.PrimaryKeyRelatedField(
        queryset=Patient.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )

    class Meta:
        model = EmergencyPatient
        fields = [
            'patient', 'temp_name', 'temp_contact', 'gender', 'age',
            'chief_complaint', 'history_of_present_illness', 'arrival_mode'
        ]

    def validate(self, attrs):
        patient = attrs.get('patient', getattr(self.instance, 'patient', None))
        temp_name = attrs.get('temp_name', getattr(self.instance, 'temp_name', ''))
        if patient is None and not (temp_name or '').strip():
            raise serializers.ValidationError({
                'temp_name': 'Temporary name is required when no registered patient is selected.'
            })
        return attrs


class AssignPhysicianSerializer(serializers.Serializer):
    physician = serializers.PrimaryKeyRelatedField(queryset=Physician.objects.filter(is_active=True))


class TransferSerializer(serializers.Serializer):
    DESTINATION_CHOICES = [
        ('ward', 'Ward'),
        ('icu', 'ICU'),
        ('discharge', 'Discharge'),
    ]

    destination = serializers.ChoiceField(choices=DESTINATION_CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    bed = serializers.PrimaryKeyRelatedField(
        queryset=Bed.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )

    def validate(self, attrs):
        if attrs.get('bed') is not None and attrs['destination'] == 'discharge':
            raise serializers.ValidationError({'bed': 'A bed cannot be assigned on discharge.'})
        return attrs
