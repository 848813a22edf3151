from django.core.validators import validate_email
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import ScheduledReport, ReportRun


class ReportRunSerializer(serializers.ModelSerializer):
    report_name = serializers.CharField(source='report.name', read_only=True)

    class Meta:
        model = ReportRun
        fields = ['id', 'report', 'report_name', 'status', 'payload', 'error', 'started_at', 'finished_at']
        read_only_fields = fields


class ScheduledReportSerializer(serializers.ModelSerializer):
    last_run_status = serializers.SerializerMethodField()

    class Meta:
        model = ScheduledReport
        fields = [
            'id', 'name', 'report_type', 'frequency', 'parameters', 'recipients',
            'next_run_at', 'last_run_at', 'last_run_status', 'is_active',
            'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = ['last_run_at', 'created_by', 'created_at', 'updated_at']

    def get_last_run_status(self, obj):
        run = obj.runs.first()
        return run.status if run else None

    def validate_recipients(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError('Recipients must be a list of email addresses')
        for address in value:
            try:
                validate_email(address)
            except DjangoValidationError:
                raise serializers.ValidationError(f'Invalid email address: {address}')
        return value

    def validate_parameters(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Parameters must be an object')
        return value
