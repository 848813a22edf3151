import logging

from django.db.models import Count
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsAdministrator
from apps.billing.analytics import admin_financials
from apps.emergency.services import census
from apps.masterdata.services import bed_stats
from apps.opd.models import OpdAppointment
from . import runner
from .models import ScheduledReport, ReportRun
from .serializers import ScheduledReportSerializer, ReportRunSerializer

logger = logging.getLogger(__name__)


def opd_today():
    today = timezone.localdate()
    by_status = {
        row['status']: row['count']
        for row in OpdAppointment.objects.filter(appointment_date=today)
        .values('status').annotate(count=Count('pk')).order_by('status')
    }
    return {
        'date': today.isoformat(),
        'total': sum(by_status.values()),
        'in_queue': sum(by_status.get(s, 0) for s in OpdAppointment.QUEUE_STATUSES),
        'completed': by_status.get(OpdAppointment.COMPLETED, 0),
        'by_status': by_status,
    }


class AdminDashboardView(APIView):
    """Hospital-wide snapshot for administrators."""
    permission_classes = [IsAdministrator]

    @extend_schema(
        summary="Admin dashboard",
        parameters=[OpenApiParameter(name='branch', type=int, description='Limit financials to one branch')],
        tags=['Reports']
    )
    def get(self, request):
        branch = request.query_params.get('branch') or None
        return Response({
            'success': True,
            'data': {
                'financials': admin_financials(branch=branch),
                'beds': bed_stats(),
                'emergency': census(),
                'opd': opd_today(),
            }
        })


@extend_schema_view(
    list=extend_schema(summary="List scheduled reports", tags=['Reports']),
    create=extend_schema(summary="Schedule report", tags=['Reports']),
)
class ScheduledReportViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = ScheduledReport.objects.all()
    serializer_class = ScheduledReportSerializer
    permission_classes = [IsAdministrator]
    filterset_fields = ['report_type', 'frequency', 'is_active']
    search_fields = ['name']
    resource_label = 'Scheduled report'

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    @extend_schema(summary="Run report now", tags=['Reports'])
    @action(detail=True, methods=['post'])
    def run(self, request, pk=None):
        run = runner.run_report(self.get_object())
        succeeded = run.status == 'success'
        return Response({
            'success': succeeded,
            'message': 'Report generated' if succeeded else 'Report generation failed',
            'data': ReportRunSerializer(run).data
        }, status=status.HTTP_200_OK if succeeded else status.HTTP_500_INTERNAL_SERVER_ERROR)


class ReportRunViewSet(EnvelopeResponseMixin, viewsets.ReadOnlyModelViewSet):
    queryset = ReportRun.objects.select_related('report')
    serializer_class = ReportRunSerializer
    permission_classes = [IsAdministrator]
    filterset_fields = ['report', 'status']
