import csv
import logging

from django.db import transaction
from django.http import HttpResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsBillingStaff, IsFinanceStaff
from . import analytics, services
from .invoices import generate_from_billing_account
from .models import BillingAccount, Invoice, Payment
from .serializers import (
    BillingAccountListSerializer,
    BillingAccountDetailSerializer,
    BillingAccountCreateSerializer,
    BillingItemSerializer,
    PaymentSerializer,
    PaymentCreateSerializer,
    DiscountSerializer,
    InvoiceSerializer,
    DiscountReportQuerySerializer,
)

logger = logging.getLogger(__name__)


# ============================================================================
# ACCOUNTS, PAYMENTS, INVOICES
# ============================================================================

@extend_schema_view(
    list=extend_schema(summary="List billing accounts", tags=['Billing']),
    create=extend_schema(
        summary="Open billing account",
        description="Opens (or returns) the open account of an encounter, optionally with initial items",
        request=BillingAccountCreateSerializer,
        tags=['Billing']
    ),
    retrieve=extend_schema(summary="Billing account with items and payments", tags=['Billing']),
)
class BillingAccountViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = BillingAccount.objects.select_related('patient', 'encounter', 'branch')
    permission_classes = [IsBillingStaff]
    filterset_fields = ['status', 'branch', 'patient', 'encounter', 'discount_type']
    search_fields = ['account_number', 'patient__first_name', 'patient__last_name', 'patient__patient_id']
    ordering_fields = ['created_at', 'balance', 'total_amount']
    ordering = ['-created_at']
    http_method_names = ['get', 'post', 'head', 'options']
    detail_serializer_class = BillingAccountDetailSerializer
    resource_label = 'Billing account'

    def get_serializer_class(self):
        if self.action == 'list':
            return BillingAccountListSerializer
        if self.action == 'create':
            return BillingAccountCreateSerializer
        return BillingAccountDetailSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'retrieve':
            queryset = queryset.prefetch_related('items', 'payments')
        return queryset

    def get_permissions(self):
        if self.action == 'apply_discount':
            return [IsFinanceStaff()]
        return super().get_permissions()

    @transaction.atomic
    def perform_create(self, serializer):
        data = serializer.validated_data
        account = services.open_account(data['encounter'], user=self.request.user)
        for item in data.get('items', []):
            services.add_item(account, item)
        serializer.instance = account

    def _account_response(self, account, message, http_status=status.HTTP_200_OK):
        account = self.get_queryset().prefetch_related('items', 'payments').get(pk=account.pk)
        return Response({
            'success': True,
            'message': message,
            'data': BillingAccountDetailSerializer(account).data
        }, status=http_status)

    @extend_schema(summary="Add billing item", request=BillingItemSerializer, tags=['Billing'])
    @action(detail=True, methods=['post'])
    def items(self, request, pk=None):
        account = self.get_object()
        serializer = BillingItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.add_item(account, serializer.validated_data)
        return self._account_response(account, 'Item added', status.HTTP_201_CREATED)

    @extend_schema(summary="Record payment", request=PaymentCreateSerializer, tags=['Billing'])
    @action(detail=True, methods=['post'])
    def record_payment(self, request, pk=None):
        account = self.get_object()
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = services.record_payment(
            account, data['amount'], data['method'], data['reference_no'], user=request.user
        )
        return Response({
            'success': True,
            'message': 'Payment recorded',
            'data': PaymentSerializer(payment).data
        }, status=status.HTTP_201_CREATED)

    @extend_schema(summary="Apply discount", request=DiscountSerializer, tags=['Billing'])
    @action(detail=True, methods=['post'])
    def apply_discount(self, request, pk=None):
        account = self.get_object()
        serializer = DiscountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        account = services.apply_discount(
            account, data['discount_type'], data['value'], data['reason'], user=request.user
        )
        return self._account_response(account, 'Discount applied')

    @extend_schema(summary="Close account", tags=['Billing'])
    @action(detail=True, methods=['post'])
    def close(self, request, pk=None):
        account = services.close_account(self.get_object())
        return self._account_response(account, 'Billing account closed')

    @extend_schema(summary="Generate invoice", tags=['Billing'])
    @action(detail=True, methods=['post'])
    def invoice(self, request, pk=None):
        invoice = generate_from_billing_account(self.get_object(), user=request.user)
        return Response({
            'success': True,
            'message': 'Invoice generated',
            'data': InvoiceSerializer(invoice).data
        }, status=status.HTTP_201_CREATED)


class PaymentViewSet(EnvelopeResponseMixin, viewsets.ReadOnlyModelViewSet):
    queryset = Payment.objects.select_related('account', 'received_by')
    serializer_class = PaymentSerializer
    permission_classes = [IsBillingStaff]
    filterset_fields = ['method', 'branch', 'account']
    search_fields = ['payment_number', 'reference_no', 'account__account_number']
    ordering = ['-created_at']


class InvoiceViewSet(EnvelopeResponseMixin, viewsets.ReadOnlyModelViewSet):
    queryset = Invoice.objects.select_related('account', 'patient')
    serializer_class = InvoiceSerializer
    permission_classes = [IsBillingStaff]
    filterset_fields = ['status', 'patient', 'account']
    search_fields = ['invoice_number', 'patient__first_name', 'patient__last_name']
    ordering = ['-issued_at']


# ============================================================================
# DASHBOARD & DISCOUNT REPORT
# ============================================================================

class BillingDashboardView(APIView):
    permission_classes = [IsFinanceStaff]

    @extend_schema(
        summary="Billing dashboard",
        parameters=[
            OpenApiParameter(name='branch', type=int, description='Limit to one branch'),
            OpenApiParameter(name='days', type=int, description='Revenue chart length (default 30)'),
        ],
        tags=['Billing Reports']
    )
    def get(self, request):
        branch = request.query_params.get('branch') or None
        try:
            days = max(1, min(int(request.query_params.get('days', 30)), 366))
        except ValueError:
            days = 30
        return Response({
            'success': True,
            'data': analytics.billing_dashboard(branch=branch, days=days)
        })


class DiscountReportPagination(PageNumberPagination):
    page_size = 20


class DiscountReportView(APIView):
    """
    Discount report sections:
    summary, detailed, by-department, by-approver, trends, compliance, export (CSV)
    """
    permission_classes = [IsFinanceStaff]

    SECTIONS = {
        'summary': analytics.discount_summary,
        'by-department': analytics.discount_by_department,
        'by-approver': analytics.discount_by_approver,
        'trends': analytics.discount_trends,
        'compliance': analytics.discount_compliance,
    }

    EXPORT_COLUMNS = [
        'account_no', 'patient_name', 'encounter_number', 'branch_name', 'total',
        'discount', 'type', 'percentage', 'reason', 'net', 'approver_name',
        'created_at', 'approved_at',
    ]

    def _filters(self, request):
        serializer = DiscountReportQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        return analytics.DiscountFilters(**serializer.validated_data)

    @extend_schema(
        summary="Discount report",
        parameters=[
            OpenApiParameter(name='start_date', type=str, description='YYYY-MM-DD, default first day of month'),
            OpenApiParameter(name='end_date', type=str, description='YYYY-MM-DD, default today'),
            OpenApiParameter(name='branch', type=int),
            OpenApiParameter(name='discount_type', type=str, description='percentage or fixed'),
            OpenApiParameter(name='approver', type=int, description='Approving user id'),
        ],
        tags=['Billing Reports']
    )
    def get(self, request, section):
        filters = self._filters(request)

        if section == 'detailed':
            return self._detailed(request, filters)
        if section == 'export':
            return self._export(filters)

        builder = self.SECTIONS.get(section)
        if builder is None:
            return Response({
                'success': False,
                'error': f"Unknown report section '{section}'"
            }, status=status.HTTP_404_NOT_FOUND)

        return Response({
            'success': True,
            'filters': filters.as_dict(),
            'data': builder(filters)
        })

    def _detailed(self, request, filters):
        paginator = DiscountReportPagination()
        page = paginator.paginate_queryset(analytics.discount_detailed(filters), request, view=self)
        return Response({
            'success': True,
            'filters': filters.as_dict(),
            'data': [analytics.discount_row(account) for account in page],
            'pagination': {
                'current_page': paginator.page.number,
                'last_page': paginator.page.paginator.num_pages,
                'per_page': paginator.page_size,
                'total': paginator.page.paginator.count,
            }
        })

    def _export(self, filters):
        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = (
            f'attachment; filename="discount-report-{filters.start_date}-{filters.end_date}.csv"'
        )
        writer = csv.writer(response)
        writer.writerow(self.EXPORT_COLUMNS)
        for account in analytics.discount_detailed(filters):
            row = analytics.discount_row(account)
            writer.writerow([row[column] if row[column] is not None else '' for column in self.EXPORT_COLUMNS])
        logger.info(f"Discount report exported for {filters.start_date}..{filters.end_date}")
        return response
