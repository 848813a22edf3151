from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsAdministrator, IsAdministratorOrReadOnly
from . import catalogue
from .models import ServiceCatalogue
from .serializers import (
    ServiceCatalogueSerializer,
    CodeRequestSerializer,
    BulkPriceSerializer,
    CategoryUpdateSerializer,
)


@extend_schema_view(
    list=extend_schema(
        summary="List services",
        parameters=[
            OpenApiParameter(name='category', type=str, description='Category key'),
            OpenApiParameter(name='department', type=int),
            OpenApiParameter(name='is_active', type=bool),
        ],
        tags=['Service Catalogue']
    ),
    create=extend_schema(summary="Create service", tags=['Service Catalogue']),
    destroy=extend_schema(summary="Delete service (blocked while billed)", tags=['Service Catalogue']),
)
class ServiceCatalogueViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    """Service catalogue management"""
    queryset = ServiceCatalogue.objects.select_related('department')
    serializer_class = ServiceCatalogueSerializer
    permission_classes = [IsAdministratorOrReadOnly]
    filterset_fields = ['category', 'department', 'is_active', 'is_billable']
    search_fields = ['name', 'code', 'description']
    ordering_fields = ['name', 'unit_price', 'created_at']
    resource_label = 'Service'

    def perform_destroy(self, instance):
        catalogue.delete_service(instance)

    @extend_schema(
        summary="Suggest service code",
        parameters=[
            OpenApiParameter(name='category', type=str, required=True),
            OpenApiParameter(name='department', type=int),
        ],
        tags=['Service Catalogue']
    )
    @action(detail=False, methods=['get'])
    def generate_code(self, request):
        serializer = CodeRequestSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        code = catalogue.generate_code(
            serializer.validated_data['category'],
            serializer.validated_data.get('department')
        )
        return Response({
            'success': True,
            'data': {
                'code': code,
                'exists': ServiceCatalogue.objects.filter(code=code).exists()
            }
        })

    @extend_schema(summary="Adjust prices of a category", request=BulkPriceSerializer, tags=['Service Catalogue'])
    @action(detail=False, methods=['post'])
    def bulk_update_prices(self, request):
        serializer = BulkPriceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        updated = catalogue.bulk_update_prices(
            data['category'], data['adjustment_type'], data['adjustment_value']
        )
        return Response({
            'success': True,
            'message': f'Updated prices for {updated} services',
            'data': {'updated': updated}
        })

    @extend_schema(summary="Activate / deactivate service", tags=['Service Catalogue'])
    @action(detail=True, methods=['post'])
    def toggle_status(self, request, pk=None):
        service = self.get_object()
        service.is_active = not service.is_active
        service.save(update_fields=['is_active', 'updated_at'])
        return Response({
            'success': True,
            'message': f"Service {'activated' if service.is_active else 'deactivated'}",
            'data': ServiceCatalogueSerializer(service).data
        })


class ServiceCategoryListView(APIView):

    @extend_schema(summary="Service categories with counts and average price", tags=['Service Catalogue'])
    def get(self, request):
        return Response({
            'success': True,
            'data': catalogue.category_stats()
        })


class ServiceCategoryDetailView(APIView):
    permission_classes = [IsAdministrator]

    @extend_schema(summary="Rename category / set average price", request=CategoryUpdateSerializer, tags=['Service Catalogue'])
    def put(self, request, key):
        serializer = CategoryUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = catalogue.update_category(
            key,
            serializer.validated_data['name'],
            serializer.validated_data.get('avg_price'),
            user=request.user
        )
        return Response({
            'success': True,
            'message': 'Category updated successfully',
            'data': result
        })
