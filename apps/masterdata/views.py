import logging

from django.db.models import Model
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiResponse

from common.mixins import EnvelopeResponseMixin, SoftDeleteMixin
from apps.accounts.permissions import (
    IsAdministrator,
    IsAdministratorOrReadOnly,
    IsClinicalStaff,
)
from . import services, transfer
from .cache import master_data_cache
from .models import Department, Ward, Bed, LabTestCategory, LabTest, MasterDataAuditLog
from .serializers import (
    DepartmentSerializer,
    WardSerializer,
    BedSerializer,
    BedStatusSerializer,
    LabTestCategorySerializer,
    LabTestSerializer,
    LabTestImportSerializer,
    MasterDataAuditLogSerializer,
)

logger = logging.getLogger(__name__)


def _plain(value):
    if isinstance(value, Model):
        return value.pk
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return str(value)


# ============================================================================
# OPTIONS (dropdown sources)
# ============================================================================

class MasterDataOptionsView(APIView):
    """
    Active reference data for form dropdowns, ordered by name.

    departments:   {id, name}
    wards:         {id, name, type, department: {id, name}}
    test-catalogs: {id, name, code, price, category: {id, name}}
    drugs:         {id, name, generic_name, strength, form}
    """

    LOADERS = {
        'departments': lambda: master_data_cache.get_departments(active_only=True),
        'wards': master_data_cache.get_wards,
        'test-catalogs': master_data_cache.get_test_catalogs,
        'drugs': master_data_cache.get_drug_formulary,
    }

    @extend_schema(
        summary="Dropdown options",
        responses={200: OpenApiResponse(description="List of options")},
        tags=['Master Data']
    )
    def get(self, request, option_type):
        loader = self.LOADERS.get(option_type)
        if loader is None:
            return Response({
                'success': False,
                'error': f"Unknown option type '{option_type}'"
            }, status=status.HTTP_404_NOT_FOUND)

        return Response({
            'success': True,
            'data': loader()
        })


class MasterDataCacheStatsView(APIView):
    permission_classes = [IsAdministrator]

    @extend_schema(summary="Master data statistics", tags=['Master Data'])
    def get(self, request):
        return Response({
            'success': True,
            'data': {
                'stats': master_data_cache.get_stats(),
                'cached_keys': master_data_cache.status(),
            }
        })


# ============================================================================
# CRUD WITH AUDIT TRAIL
# ============================================================================

class AuditedViewSetMixin:
    """Record every write in MasterDataAuditLog."""

    def _audit(self, instance, action_name, changes=None):
        MasterDataAuditLog.objects.create(
            entity_type=instance._meta.model_name,
            entity_id=instance.pk,
            action=action_name,
            changes=changes or {},
            user=self.request.user if self.request.user.is_authenticated else None,
        )

    def perform_create(self, serializer):
        instance = serializer.save()
        self._audit(instance, 'created', {
            field: _plain(value) for field, value in serializer.validated_data.items()
        })

    def perform_update(self, serializer):
        before = {
            field: _plain(getattr(serializer.instance, field, None))
            for field in serializer.validated_data
        }
        instance = serializer.save()
        changes = {}
        for field, value in serializer.validated_data.items():
            if before[field] != _plain(value):
                changes[field] = [before[field], _plain(value)]
        self._audit(instance, 'updated', changes)

    def perform_destroy(self, instance):
        super().perform_destroy(instance)
        self._audit(instance, 'deactivated')


@extend_schema_view(
    list=extend_schema(summary="List departments", tags=['Master Data']),
    create=extend_schema(summary="Create department", tags=['Master Data']),
)
class DepartmentViewSet(EnvelopeResponseMixin, AuditedViewSetMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    queryset = Department.objects.select_related('branch')
    serializer_class = DepartmentSerializer
    permission_classes = [IsAdministratorOrReadOnly]
    filterset_fields = ['branch', 'is_active']
    search_fields = ['name', 'code']
    ordering = ['name']


@extend_schema_view(
    list=extend_schema(summary="List wards", tags=['Master Data']),
    create=extend_schema(summary="Create ward", tags=['Master Data']),
)
class WardViewSet(EnvelopeResponseMixin, AuditedViewSetMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    queryset = Ward.objects.select_related('department')
    serializer_class = WardSerializer
    permission_classes = [IsAdministratorOrReadOnly]
    filterset_fields = ['department', 'ward_type', 'is_active']
    search_fields = ['name']
    ordering = ['name']

    @extend_schema(summary="Ward bed statistics", tags=['Master Data'])
    @action(detail=True, methods=['get'])
    def stats(self, request, pk=None):
        ward = self.get_object()
        return Response({
            'success': True,
            'data': services.ward_stats(ward)
        })

    @extend_schema(summary="Beds in ward", tags=['Master Data'])
    @action(detail=True, methods=['get'])
    def beds(self, request, pk=None):
        ward = self.get_object()
        return Response({
            'success': True,
            'data': master_data_cache.get_ward_beds(ward.pk)
        })

    @extend_schema(summary="Export wards as CSV", tags=['Master Data'])
    @action(detail=False, methods=['get'])
    def export(self, request):
        wards = self.filter_queryset(self.get_queryset())

        def rows():
            for ward in wards:
                stats = services.ward_stats(ward)
                yield [
                    ward.pk, ward.name, ward.get_ward_type_display(),
                    ward.department.name, ward.department.code, ward.capacity, ward.floor,
                    stats['total_beds'], stats['available'], stats['occupied'],
                    stats['occupancy_rate'], 'Active' if ward.is_active else 'Inactive',
                ]

        return transfer.csv_response('wards.csv', [
            'ID', 'Name', 'Type', 'Department', 'Department Code', 'Capacity', 'Floor',
            'Total Beds', 'Available Beds', 'Occupied Beds', 'Occupancy Rate (%)', 'Status',
        ], rows())


@extend_schema_view(
    list=extend_schema(summary="List beds", tags=['Master Data']),
    create=extend_schema(summary="Add bed to ward", tags=['Master Data']),
)
class BedViewSet(EnvelopeResponseMixin, AuditedViewSetMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    queryset = Bed.objects.select_related('ward')
    serializer_class = BedSerializer
    permission_classes = [IsAdministratorOrReadOnly]
    filterset_fields = ['ward', 'bed_type', 'status', 'is_active']
    search_fields = ['bed_number', 'ward__name']
    ordering = ['ward', 'bed_number']

    def get_queryset(self):
        return super().get_queryset().with_occupancy()

    def get_response_data(self, instance):
        instance = Bed.objects.with_occupancy().select_related('ward').get(pk=instance.pk)
        return BedSerializer(instance, context=self.get_serializer_context()).data

    def get_permissions(self):
        if self.action == 'set_status':
            return [IsClinicalStaff()]
        return super().get_permissions()

    @extend_schema(
        summary="Change bed status",
        request=BedStatusSerializer,
        tags=['Master Data']
    )
    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        bed = self.get_object()
        serializer = BedStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        old_status = bed.status
        services.set_bed_status(bed, serializer.validated_data['status'])
        self._audit(bed, 'updated', {'status': [old_status, bed.status]})

        bed = self.get_queryset().get(pk=bed.pk)
        return Response({
            'success': True,
            'message': f'Bed status changed to {bed.status}',
            'data': BedSerializer(bed).data
        })


class LabTestCategoryViewSet(EnvelopeResponseMixin, AuditedViewSetMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    queryset = LabTestCategory.objects.all()
    serializer_class = LabTestCategorySerializer
    permission_classes = [IsAdministratorOrReadOnly]
    search_fields = ['name']
    resource_label = 'Test category'


class LabTestViewSet(EnvelopeResponseMixin, AuditedViewSetMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    queryset = LabTest.objects.select_related('category')
    serializer_class = LabTestSerializer
    permission_classes = [IsAdministratorOrReadOnly]
    filterset_fields = ['category', 'is_active']
    search_fields = ['name', 'code']
    ordering = ['name']
    resource_label = 'Lab test'

    @extend_schema(summary="Import lab tests from CSV", tags=['Master Data'])
    @action(detail=False, methods=['post'], url_path='import')
    def import_csv(self, request):
        """
        Columns: name, code, category, price, turnaround_hours, sample_type, status.
        Rows whose code already exists are skipped.
        """
        rows = transfer.read_upload(request.FILES.get('file'))
        result = transfer.import_rows(
            rows,
            LabTestImportSerializer,
            exists=lambda row: LabTest.objects.filter(code=row.get('code', '')).exists(),
            on_created=lambda test: self._audit(test, 'created', {'source': 'import'}),
        )
        return Response({
            'success': True,
            'message': f"{result['imported']} lab tests imported",
            'data': result
        })


class MasterDataAuditLogViewSet(EnvelopeResponseMixin, viewsets.ReadOnlyModelViewSet):
    queryset = MasterDataAuditLog.objects.select_related('user')
    serializer_class = MasterDataAuditLogSerializer
    permission_classes = [IsAdministrator]
    filterset_fields = ['entity_type', 'entity_id', 'action', 'user']
