from rest_framework import serializers

from apps.doctors.models import Physician
from .models import DrugFormulary, StockMovement, Prescription


class DrugFormularySerializer(serializers.ModelSerializer):
    is_in_stock = serializers.BooleanField(read_only=True)
    low_stock_warning = serializers.BooleanField(read_only=True)

    class Meta:
        model = DrugFormulary
        fields = [
            'id', 'name', 'generic_name', 'brand_name', 'strength', 'form',
            'therapeutic_class', 'contraindications', 'unit_price',
            'stock_quantity', 'reorder_level', 'expiry_date', 'status',
            'is_in_stock', 'low_stock_warning', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'stock_quantity', 'created_at', 'updated_at']

    def validate_contraindications(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Contraindications must be a list of strings")
        return [str(item) for item in value]


class DrugImportSerializer(serializers.ModelSerializer):
    """One CSV row of the formulary"""

    class Meta:
        model = DrugFormulary
        fields = [
            'name', 'generic_name', 'brand_name', 'strength', 'form', 'therapeutic_class',
            'unit_price', 'stock_quantity', 'reorder_level', 'expiry_date', 'status',
        ]

    def to_internal_value(self, data):
        data = {key: value for key, value in data.items() if value not in ('', None)}
        for key in ('form', 'status'):
            if key in data:
                data[key] = data[key].lower()
        return super().to_internal_value(data)


class StockAdjustmentSerializer(serializers.Serializer):
    movement_type = serializers.ChoiceField(choices=['RECEIPT', 'ADJUSTMENT'])
    quantity = serializers.IntegerField()
    reference_no = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['movement_type'] == 'RECEIPT' and attrs['quantity'] <= 0:
            raise serializers.ValidationError({'quantity': 'Received quantity must be positive'})
        if attrs['quantity'] == 0:
            raise serializers.ValidationError({'quantity': 'Quantity cannot be zero'})
        return attrs


class StockMovementSerializer(serializers.ModelSerializer):
    drug_name = serializers.CharField(source='drug.name', read_only=True)
    user_name = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'drug', 'drug_name', 'movement_type', 'quantity',
            'reference_no', 'user', 'user_name', 'remarks', 'created_at'
        ]
        read_only_fields = fields


class PrescriptionSerializer(serializers.ModelSerializer):
    """Read serializer"""
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    physician_name = serializers.CharField(source='physician.full_name', read_only=True)
    interaction_warnings = serializers.SerializerMethodField()

    class Meta:
        model = Prescription
        fields = [
            'id', 'patient', 'patient_name', 'encounter', 'physician', 'physician_name',
            'drug', 'drug_name', 'dosage', 'frequency', 'duration', 'quantity',
            'route', 'instructions', 'status', 'instant_dispensing',
            'stock_reserved', 'stock_reserved_at', 'prescription_data',
            'interaction_warnings', 'dispensed_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_interaction_warnings(self, obj):
        return (obj.prescription_data or {}).get('drug_interactions', [])


class PrescriptionWriteSerializer(serializers.ModelSerializer):
    """
    Input for prescriptions written against an encounter.
    Patient and encounter come from the URL, never from the body.
    """
    drug = serializers.PrimaryKeyRelatedField(
        queryset=DrugFormulary.objects.exclude(status='discontinued'),
        required=False,
        allow_null=True
    )
    physician = serializers.PrimaryKeyRelatedField(
        queryset=Physician.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )

    class Meta:
        model = Prescription
        fields = [
            'drug', 'drug_name', 'dosage', 'frequency', 'duration', 'quantity',
            'route', 'instructions', 'instant_dispensing', 'physician'
        ]
        # Required fields are enforced by the prescription service
        extra_kwargs = {
            'drug_name': {'required': False},
            'dosage': {'required': False, 'allow_blank': True},
            'frequency': {'required': False, 'allow_blank': True},
            'duration': {'required': False, 'allow_blank': True},
            'quantity': {'required': False},
        }
