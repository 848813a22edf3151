from rest_framework import serializers

from apps.masterdata.models import Bed
from apps.patients.models import Patient, Encounter
from apps.doctors.models import Physician
from .models import BedAssignment


class BedAssignmentSerializer(serializers.ModelSerializer):
    bed_number = serializers.CharField(source='bed.bed_number', read_only=True)
    ward_name = serializers.CharField(source='bed.ward.name', read_only=True)
    encounter_number = serializers.CharField(source='encounter.encounter_number', read_only=True)
    patient_name = serializers.CharField(source='encounter.patient.full_name', read_only=True)
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = BedAssignment
        fields = [
            'id', 'bed', 'bed_number', 'ward_name', 'encounter', 'encounter_number',
            'patient_name', 'assigned_at', 'assigned_by', 'released_at', 'released_by',
            'is_active', 'notes'
        ]
        read_only_fields = fields


class InpatientEncounterSerializer(serializers.ModelSerializer):
    """Active inpatient with the bed currently held"""
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    current_bed = serializers.SerializerMethodField()

    class Meta:
        model = Encounter
        fields = [
            'id', 'encounter_number', 'patient', 'patient_name', 'status',
            'physician', 'department', 'started_at', 'ended_at', 'current_bed'
        ]
        read_only_fields = fields

    def get_current_bed(self, obj):
        assignment = next(
            (a for a in obj.bed_assignments.all() if a.released_at is None),
            None
        )
        if assignment is None:
            return None
        return {
            'assignment_id': assignment.id,
            'bed_id': assignment.bed_id,
            'bed_number': assignment.bed.bed_number,
            'ward': assignment.bed.ward.name,
            'assigned_at': assignment.assigned_at,
        }


class AdmitSerializer(serializers.Serializer):
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.filter(is_active=True))
    bed = serializers.PrimaryKeyRelatedField(queryset=Bed.objects.filter(is_active=True))
    physician = serializers.PrimaryKeyRelatedField(
        queryset=Physician.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )
    chief_complaint = serializers.CharField(required=False, allow_blank=True, default='')


class AssignBedSerializer(serializers.Serializer):
    bed = serializers.PrimaryKeyRelatedField(queryset=Bed.objects.filter(is_active=True))
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ReconcileSerializer(serializers.Serializer):
    preserve_blocked = serializers.BooleanField(required=False, default=False)
