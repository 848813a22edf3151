import logging

from rest_framework import generics, status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema

from common.mixins import EnvelopeResponseMixin, SoftDeleteMixin
from apps.accounts.permissions import IsAdministrator, IsAdministratorOrReadOnly
from .models import Hospital, Branch, SystemSetting
from .serializers import (
    HospitalSerializer,
    HospitalUpdateSerializer,
    BranchSerializer,
    SystemSettingSerializer,
)
from .settings_store import get_setting, set_setting, delete_setting

logger = logging.getLogger(__name__)


class HospitalConfigView(generics.RetrieveUpdateAPIView):
    """
    Hospital Configuration View

    GET: Retrieve hospital configuration (public)
    PUT/PATCH: Update hospital configuration (admin only)
    """
    queryset = Hospital.objects.all()

    def get_serializer_class(self):
        if self.request.method in ['PUT', 'PATCH']:
            return HospitalUpdateSerializer
        return HospitalSerializer

    def get_permissions(self):
        """Anyone can view, only admins can update"""
        if self.request.method == 'GET':
            return []
        return [IsAdministrator()]

    def get_object(self):
        return Hospital.get_hospital()

    def retrieve(self, request, *args, **kwargs):
        instance = self.get_object()
        if instance is None:
            return Response({
                'success': False,
                'error': 'Hospital configuration not found'
            }, status=status.HTTP_404_NOT_FOUND)

        return Response({
            'success': True,
            'data': self.get_serializer(instance).data
        })

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        instance = serializer.save()

        return Response({
            'success': True,
            'message': 'Hospital configuration updated successfully',
            'data': HospitalSerializer(instance).data
        })


@extend_schema(tags=['Branches'])
class BranchViewSet(EnvelopeResponseMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    """Hospital branches (admin writes)"""
    queryset = Branch.objects.all()
    serializer_class = BranchSerializer
    permission_classes = [IsAdministratorOrReadOnly]
    search_fields = ['name', 'code']
    filterset_fields = ['is_active']


class SystemSettingListView(generics.ListAPIView):
    queryset = SystemSetting.objects.select_related('updated_by')
    serializer_class = SystemSettingSerializer
    permission_classes = [IsAdministrator]
    pagination_class = None

    @extend_schema(summary="List system settings", tags=['Settings'])
    def get(self, request, *args, **kwargs):
        return Response({
            'success': True,
            'data': self.get_serializer(self.get_queryset(), many=True).data
        })


class SystemSettingDetailView(APIView):
    """
    GET: typed value of a setting
    PUT: create or replace the setting (admin only)
    DELETE: drop the setting; readers fall back to their defaults
    """
    permission_classes = [IsAdministratorOrReadOnly]

    @extend_schema(summary="Get setting", tags=['Settings'])
    def get(self, request, key):
        setting = SystemSetting.objects.filter(key=key).first()
        if setting is None:
            return Response({
                'success': False,
                'error': f"Setting '{key}' not found"
            }, status=status.HTTP_404_NOT_FOUND)

        return Response({
            'success': True,
            'data': {
                'key': key,
                'value': get_setting(key),
                'value_type': setting.value_type,
                'description': setting.description,
            }
        })

    @extend_schema(summary="Set setting", request=SystemSettingSerializer, tags=['Settings'])
    def put(self, request, key):
        instance = SystemSetting.objects.filter(key=key).first()
        serializer = SystemSettingSerializer(instance, data=request.data, partial=instance is not None)
        serializer.is_valid(raise_exception=True)

        setting = set_setting(
            key,
            serializer.validated_data.get('value'),
            value_type=serializer.validated_data.get('value_type'),
            user=request.user,
            description=serializer.validated_data.get('description'),
        )
        return Response({
            'success': True,
            'message': 'Setting saved',
            'data': SystemSettingSerializer(setting).data
        })

    @extend_schema(summary="Delete setting", tags=['Settings'])
    def delete(self, request, key):
        if not delete_setting(key):
            return Response({
                'success': False,
                'error': f"Setting '{key}' not found"
            }, status=status.HTTP_404_NOT_FOUND)

        logger.info(f"Setting {key} deleted by {request.user}")
        return Response({
            'success': True,
            'message': 'Setting deleted'
        })
