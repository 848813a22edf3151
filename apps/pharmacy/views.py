import logging
from datetime import timedelta

from django.db import transaction
from django.db.models import F, Sum, Count, Q
from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.exceptions import UnprocessableError
from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsPharmacist
from apps.masterdata import transfer
from . import services
from .models import DrugFormulary, StockMovement, Prescription
from .serializers import (
    DrugFormularySerializer,
    DrugImportSerializer,
    StockAdjustmentSerializer,
    StockMovementSerializer,
    PrescriptionSerializer,
)

logger = logging.getLogger(__name__)


# ============================================================================
# DRUG FORMULARY
# ============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List formulary drugs",
        parameters=[
            OpenApiParameter(name='include_discontinued', type=bool),
            OpenApiParameter(name='in_stock', type=bool),
        ],
        tags=['Pharmacy']
    ),
)
class DrugFormularyViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    """Formulary management; discontinuing replaces deletion"""
    queryset = DrugFormulary.objects.all()
    serializer_class = DrugFormularySerializer
    permission_classes = [IsPharmacist]
    filterset_fields = ['form', 'therapeutic_class', 'status']
    search_fields = ['name', 'generic_name', 'brand_name']
    ordering_fields = ['name', 'stock_quantity', 'expiry_date', 'unit_price']
    ordering = ['name']
    resource_label = 'Drug'

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params

        if self.action == 'list' and params.get('include_discontinued', 'false').lower() != 'true':
            queryset = queryset.exclude(status='discontinued')

        in_stock = params.get('in_stock')
        if in_stock == 'true':
            queryset = queryset.filter(stock_quantity__gt=0)
        elif in_stock == 'false':
            queryset = queryset.filter(stock_quantity=0)
        return queryset

    def perform_destroy(self, instance):
        instance.status = 'discontinued'
        instance.save(update_fields=['status', 'updated_at'])
        logger.info(f"Drug {instance.pk} discontinued")

    @action(detail=False, methods=['get'])
    def low_stock(self, request):
        """Drugs at or below their reorder level"""
        drugs = self.get_queryset().filter(
            stock_quantity__lte=F('reorder_level'),
            status='active'
        ).order_by('stock_quantity')

        return Response({
            'success': True,
            'count': drugs.count(),
            'data': self.get_serializer(drugs, many=True).data
        })

    @action(detail=False, methods=['get'])
    def near_expiry(self, request):
        """Drugs expiring within ``days`` (90 by default)"""
        days = int(request.query_params.get('days', 90))
        today = timezone.now().date()
        drugs = self.get_queryset().filter(
            expiry_date__lte=today + timedelta(days=days),
            expiry_date__gte=today,
        ).order_by('expiry_date')

        return Response({
            'success': True,
            'count': drugs.count(),
            'threshold_days': days,
            'data': self.get_serializer(drugs, many=True).data
        })

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        today = timezone.now().date()
        stats = DrugFormulary.objects.aggregate(
            total_drugs=Count('id'),
            active_drugs=Count('id', filter=Q(status='active')),
            discontinued_drugs=Count('id', filter=Q(status='discontinued')),
            out_of_stock=Count('id', filter=Q(status='active', stock_quantity=0)),
            low_stock=Count('id', filter=Q(status='active', stock_quantity__lte=F('reorder_level'))),
            expired=Count('id', filter=Q(expiry_date__lt=today)),
            units_in_stock=Sum('stock_quantity'),
        )
        stats['reserved_units'] = Prescription.objects.filter(
            stock_reserved=True
        ).aggregate(total=Sum('quantity'))['total'] or 0

        return Response({
            'success': True,
            'data': stats
        })

    @extend_schema(summary="Receive or adjust stock", request=StockAdjustmentSerializer, tags=['Pharmacy'])
    @action(detail=True, methods=['post'])
    def adjust_stock(self, request, pk=None):
        drug = self.get_object()
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with transaction.atomic():
            drug = DrugFormulary.objects.select_for_update().get(pk=drug.pk)
            if drug.stock_quantity + data['quantity'] < 0:
                raise UnprocessableError('Adjustment would make stock negative')
            drug.stock_quantity += data['quantity']
            drug.save(update_fields=['stock_quantity', 'updated_at'])
            StockMovement.objects.create(
                drug=drug,
                movement_type=data['movement_type'],
                quantity=data['quantity'],
                reference_no=data['reference_no'],
                user=request.user,
                remarks=data['remarks'],
            )

        return Response({
            'success': True,
            'message': 'Stock updated',
            'data': DrugFormularySerializer(drug).data
        })

    @extend_schema(summary="Export formulary as CSV", tags=['Pharmacy'])
    @action(detail=False, methods=['get'])
    def export(self, request):
        drugs = self.filter_queryset(self.get_queryset())

        def stock_status(drug):
            if not drug.is_in_stock:
                return 'Out of Stock'
            if drug.low_stock_warning:
                return 'Low Stock'
            return 'In Stock'

        rows = (
            [
                drug.pk, drug.name, drug.generic_name, drug.strength, drug.get_form_display(),
                drug.stock_quantity, drug.reorder_level, drug.unit_price,
                drug.expiry_date or '', stock_status(drug), drug.get_status_display(),
            ]
            for drug in drugs
        )
        return transfer.csv_response('drug_formulary.csv', [
            'ID', 'Name', 'Generic Name', 'Strength', 'Form', 'Stock Quantity',
            'Reorder Level', 'Unit Price', 'Expiry Date', 'Stock Status', 'Status',
        ], rows)

    @extend_schema(summary="Import formulary from CSV", tags=['Pharmacy'])
    @action(detail=False, methods=['post'], url_path='import')
    def import_csv(self, request):
        """
        Columns: name, generic_name, brand_name, strength, form, therapeutic_class,
        unit_price, stock_quantity, reorder_level, expiry_date, status.
        A row matching an existing name and strength is skipped. Opening stock
        is booked as a RECEIPT movement.
        """
        def exists(row):
            return DrugFormulary.objects.filter(
                name__iexact=row.get('name', ''),
                strength__iexact=row.get('strength', ''),
            ).exists()

        def book_opening_stock(drug):
            if drug.stock_quantity:
                StockMovement.objects.create(
                    drug=drug,
                    movement_type='RECEIPT',
                    quantity=drug.stock_quantity,
                    reference_no='IMPORT',
                    user=request.user,
                    remarks='Opening stock',
                )

        rows = transfer.read_upload(request.FILES.get('file'))
        result = transfer.import_rows(rows, DrugImportSerializer, exists=exists, on_created=book_opening_stock)
        return Response({
            'success': True,
            'message': f"{result['imported']} drugs imported",
            'data': result
        })


class StockMovementViewSet(EnvelopeResponseMixin, viewsets.ReadOnlyModelViewSet):
    queryset = StockMovement.objects.select_related('drug', 'user')
    serializer_class = StockMovementSerializer
    permission_classes = [IsPharmacist]
    filterset_fields = ['drug', 'movement_type', 'user']
    ordering = ['-created_at']


# ============================================================================
# DISPENSING
# ============================================================================

class PrescriptionQueueViewSet(EnvelopeResponseMixin,
                               mixins.ListModelMixin,
                               mixins.RetrieveModelMixin,
                               viewsets.GenericViewSet):
    """Pharmacy view of prescriptions awaiting dispensing"""
    queryset = Prescription.objects.select_related('patient', 'physician', 'drug')
    serializer_class = PrescriptionSerializer
    permission_classes = [IsPharmacist]
    filterset_fields = ['status', 'patient', 'encounter', 'drug', 'stock_reserved']
    search_fields = ['drug_name', 'patient__first_name', 'patient__last_name']
    ordering = ['-created_at']

    @extend_schema(summary="Dispense prescription", request=None, tags=['Pharmacy'])
    @action(detail=True, methods=['post'])
    def dispense(self, request, pk=None):
        prescription = services.dispense_prescription(self.get_object(), user=request.user)
        return Response({
            'success': True,
            'message': 'Prescription dispensed',
            'data': PrescriptionSerializer(prescription).data
        })

    @extend_schema(summary="Release reserved stock", request=None, tags=['Pharmacy'])
    @action(detail=True, methods=['post'])
    def release(self, request, pk=None):
        prescription = self.get_object()
        released = services.release_stock(prescription, user=request.user)
        return Response({
            'success': True,
            'message': 'Reserved stock released' if released else 'No stock reserved',
            'data': PrescriptionSerializer(prescription).data
        }, status=status.HTTP_200_OK)
