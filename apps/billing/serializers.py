from decimal import Decimal

from rest_framework import serializers

from apps.patients.models import Encounter
from .models import BillingAccount, BillingItem, Invoice, Payment


class BillingItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillingItem
        fields = [
            'id', 'item_type', 'service_code', 'description', 'quantity',
            'unit_price', 'discount_amount', 'amount', 'created_at'
        ]
        read_only_fields = ['id', 'amount', 'created_at']

    def validate(self, attrs):
        gross = attrs['unit_price'] * attrs.get('quantity', 1)
        if attrs.get('discount_amount', Decimal('0')) > gross:
            raise serializers.ValidationError({'discount_amount': 'Item discount exceeds item amount'})
        return attrs


class PaymentSerializer(serializers.ModelSerializer):
    account_number = serializers.CharField(source='account.account_number', read_only=True)
    received_by_name = serializers.CharField(source='received_by.username', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'payment_number', 'account', 'account_number', 'invoice',
            'branch', 'amount', 'method', 'reference_no', 'received_by',
            'received_by_name', 'created_at'
        ]
        read_only_fields = fields


class BillingAccountListSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    encounter_number = serializers.CharField(source='encounter.encounter_number', read_only=True)

    class Meta:
        model = BillingAccount
        fields = [
            'id', 'account_number', 'patient', 'patient_name', 'encounter',
            'encounter_number', 'branch', 'total_amount', 'discount_amount',
            'net_amount', 'amount_paid', 'balance', 'status', 'created_at'
        ]


class BillingAccountDetailSerializer(BillingAccountListSerializer):
    items = BillingItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    discount_approved_by_name = serializers.CharField(
        source='discount_approved_by.username', read_only=True
    )

    class Meta(BillingAccountListSerializer.Meta):
        fields = BillingAccountListSerializer.Meta.fields + [
            'discount_type', 'discount_percentage', 'discount_reason',
            'discount_approved_by', 'discount_approved_by_name', 'discount_approved_at',
            'items', 'payments', 'updated_at'
        ]


class BillingAccountCreateSerializer(serializers.Serializer):
    encounter = serializers.PrimaryKeyRelatedField(queryset=Encounter.objects.all())
    items = BillingItemSerializer(many=True, required=False)

    def validate_encounter(self, value):
        if not value.is_active:
            raise serializers.ValidationError('Cannot bill a completed encounter')
        return value


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, default='cash')
    reference_no = serializers.CharField(required=False, allow_blank=True, default='')


class DiscountSerializer(serializers.Serializer):
    discount_type = serializers.ChoiceField(choices=BillingAccount.DISCOUNT_TYPE_CHOICES)
    value = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0'))
    reason = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['discount_type'] != 'none' and not attrs['reason'].strip():
            raise serializers.ValidationError({'reason': 'A reason is required for discounts'})
        return attrs


class InvoiceSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    account_number = serializers.CharField(source='account.account_number', read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'account', 'account_number', 'patient',
            'patient_name', 'total_amount', 'discount_amount', 'net_amount',
            'amount_paid', 'balance', 'status', 'issued_at', 'generated_by'
        ]
        read_only_fields = fields


class DiscountReportQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    branch = serializers.IntegerField(required=False)
    discount_type = serializers.ChoiceField(choices=['percentage', 'fixed'], required=False)
    approver = serializers.IntegerField(required=False)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and start > end:
            raise serializers.ValidationError({'end_date': 'End date must be on or after start date'})
        return attrs
