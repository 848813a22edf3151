import logging

from django.utils import timezone

from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsLabTechnician
from . import services
from .models import LabOrder
from .serializers import LabOrderSerializer, LabResultSerializer

logger = logging.getLogger(__name__)


@extend_schema_view(
    list=extend_schema(
        summary="Laboratory work queue",
        parameters=[
            OpenApiParameter(name='overdue', type=bool, description='Only orders past expected completion'),
        ],
        tags=['Lab Orders']
    ),
    retrieve=extend_schema(summary="Get lab order", tags=['Lab Orders']),
)
class LabOrderViewSet(EnvelopeResponseMixin,
                      mixins.ListModelMixin,
                      mixins.RetrieveModelMixin,
                      viewsets.GenericViewSet):
    """
    Laboratory side of lab orders.
    Orders are placed by clinicians through the appointment endpoints.
    """
    queryset = LabOrder.objects.select_related('patient', 'physician', 'test')
    serializer_class = LabOrderSerializer
    permission_classes = [IsLabTechnician]
    filterset_fields = ['status', 'priority', 'patient', 'encounter', 'test']
    search_fields = ['order_number', 'test_name', 'patient__first_name', 'patient__last_name']
    ordering_fields = ['created_at', 'expected_completion_at', 'priority']
    ordering = ['expected_completion_at']

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.request.query_params.get('overdue') == 'true':
            queryset = queryset.exclude(
                status__in=['completed', 'cancelled']
            ).filter(expected_completion_at__lt=timezone.now())
        return queryset

    def _respond(self, order, message):
        return Response({
            'success': True,
            'message': message,
            'data': LabOrderSerializer(order).data
        })

    @extend_schema(summary="Mark sample collected", request=None, tags=['Lab Orders'])
    @action(detail=True, methods=['post'])
    def collect(self, request, pk=None):
        order = services.collect_sample(self.get_object(), user=request.user)
        return self._respond(order, 'Sample collected')

    @extend_schema(summary="Record result", request=LabResultSerializer, tags=['Lab Orders'])
    @action(detail=True, methods=['post'])
    def result(self, request, pk=None):
        serializer = LabResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.record_result(
            self.get_object(),
            serializer.validated_data['result_value'],
            serializer.validated_data['result_notes'],
            user=request.user
        )
        return self._respond(order, 'Result recorded')

    @extend_schema(summary="Cancel lab order", request=None, tags=['Lab Orders'])
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        order = services.cancel_lab_order(self.get_object(), user=request.user)
        return self._respond(order, 'Lab order cancelled')
