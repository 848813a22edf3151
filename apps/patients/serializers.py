from rest_framework import serializers

from .models import Patient, PatientAllergy, Encounter


class PatientAllergySerializer(serializers.ModelSerializer):

    class Meta:
        model = PatientAllergy
        fields = ['id', 'allergy_type', 'allergen', 'severity', 'reaction', 'is_active', 'created_at']
        read_only_fields = ['id', 'created_at']


class PatientListSerializer(serializers.ModelSerializer):
    """Lightweight patient row"""
    full_name = serializers.CharField(read_only=True)
    age = serializers.IntegerField(read_only=True)

    class Meta:
        model = Patient
        fields = ['id', 'patient_id', 'full_name', 'gender', 'age', 'mobile_primary', 'is_active']


class PatientDetailSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    age = serializers.IntegerField(read_only=True)
    allergies = PatientAllergySerializer(many=True, read_only=True)

    class Meta:
        model = Patient
        fields = [
            'id', 'patient_id', 'first_name', 'last_name', 'full_name',
            'date_of_birth', 'age', 'gender', 'blood_group',
            'mobile_primary', 'email', 'address', 'branch',
            'allergies', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'patient_id', 'created_at', 'updated_at']


class PatientCreateUpdateSerializer(serializers.ModelSerializer):

    class Meta:
        model = Patient
        fields = [
            'first_name', 'last_name', 'date_of_birth', 'gender',
            'blood_group', 'mobile_primary', 'email', 'address', 'branch'
        ]


class EncounterSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    physician_name = serializers.CharField(source='physician.full_name', read_only=True)

    class Meta:
        model = Encounter
        fields = [
            'id', 'encounter_number', 'patient', 'patient_name',
            'encounter_type', 'status', 'physician', 'physician_name',
            'department', 'branch', 'chief_complaint',
            'started_at', 'ended_at', 'created_at'
        ]
        read_only_fields = [
            'id', 'encounter_number', 'status', 'started_at', 'ended_at', 'created_at'
        ]

    def get_fields(self):
        fields = super().get_fields()
        # Orders, prescriptions and bed assignments hang off the encounter
        if self.instance is not None:
            fields['patient'].read_only = True
            fields['encounter_type'].read_only = True
        return fields
