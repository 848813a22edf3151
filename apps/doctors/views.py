from rest_framework import viewsets

from drf_spectacular.utils import extend_schema, extend_schema_view

from common.mixins import EnvelopeResponseMixin, SoftDeleteMixin
from apps.accounts.permissions import IsAdministratorOrReadOnly
from .models import Physician
from .serializers import PhysicianSerializer


@extend_schema_view(
    list=extend_schema(summary="List physicians", tags=['Physicians']),
    create=extend_schema(summary="Create physician", tags=['Physicians']),
)
class PhysicianViewSet(EnvelopeResponseMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    queryset = Physician.objects.select_related('department', 'user')
    serializer_class = PhysicianSerializer
    permission_classes = [IsAdministratorOrReadOnly]
    filterset_fields = ['department', 'specialty', 'is_active']
    search_fields = ['physician_code', 'first_name', 'last_name', 'specialty']
