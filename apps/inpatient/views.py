import logging

from django.db.models import Prefetch
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiResponse

from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsAdministrator, IsClinicalStaff
from apps.masterdata.cache import master_data_cache
from apps.masterdata.models import Bed
from apps.masterdata.serializers import BedSerializer
from apps.patients.models import Encounter
from . import services
from .models import BedAssignment
from .serializers import (
    AdmitSerializer,
    AssignBedSerializer,
    BedAssignmentSerializer,
    InpatientEncounterSerializer,
    ReconcileSerializer,
)

logger = logging.getLogger(__name__)


# ============================================================================
# INPATIENT ENCOUNTERS
# ============================================================================

@extend_schema_view(
    list=extend_schema(summary="Active inpatients", tags=['Inpatient']),
    retrieve=extend_schema(summary="Inpatient encounter", tags=['Inpatient']),
)
class InpatientViewSet(EnvelopeResponseMixin,
                       mixins.ListModelMixin,
                       mixins.RetrieveModelMixin,
                       viewsets.GenericViewSet):
    """Admission, bed moves and discharge for IPD encounters"""
    serializer_class = InpatientEncounterSerializer
    permission_classes = [IsClinicalStaff]
    filterset_fields = ['status', 'physician', 'department']
    search_fields = ['encounter_number', 'patient__first_name', 'patient__last_name']

    def get_queryset(self):
        queryset = Encounter.objects.filter(
            encounter_type=Encounter.TYPE_IPD
        ).select_related('patient').prefetch_related(
            Prefetch(
                'bed_assignments',
                queryset=BedAssignment.objects.select_related('bed__ward')
            )
        )
        if self.action == 'list' and 'status' not in self.request.query_params:
            queryset = queryset.filter(status=Encounter.STATUS_ACTIVE)
        return queryset

    def _encounter_response(self, encounter, message, http_status=status.HTTP_200_OK):
        encounter = self.get_queryset().get(pk=encounter.pk)
        return Response({
            'success': True,
            'message': message,
            'data': InpatientEncounterSerializer(encounter).data
        }, status=http_status)

    @extend_schema(summary="Admit patient to a bed", request=AdmitSerializer, tags=['Inpatient'])
    @action(detail=False, methods=['post'])
    def admit(self, request):
        serializer = AdmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        encounter = services.admit_patient(
            data['patient'],
            data['bed'],
            user=request.user,
            physician=data.get('physician'),
            chief_complaint=data.get('chief_complaint', ''),
        )
        return self._encounter_response(encounter, 'Patient admitted', status.HTTP_201_CREATED)

    @extend_schema(summary="Assign or transfer bed", request=AssignBedSerializer, tags=['Inpatient'])
    @action(detail=True, methods=['post'])
    def assign_bed(self, request, pk=None):
        encounter = self.get_object()
        serializer = AssignBedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        services.assign_bed(
            encounter,
            serializer.validated_data['bed'],
            user=request.user,
            notes=serializer.validated_data.get('notes', ''),
        )
        return self._encounter_response(encounter, 'Bed assigned successfully')

    @extend_schema(summary="Release bed", request=None, tags=['Inpatient'])
    @action(detail=True, methods=['post'])
    def release_bed(self, request, pk=None):
        encounter = self.get_object()
        assignment = services.release_bed(encounter, user=request.user)
        return Response({
            'success': True,
            'message': 'Bed released successfully',
            'data': BedAssignmentSerializer(assignment).data
        })

    @extend_schema(summary="Discharge", request=None, tags=['Inpatient'])
    @action(detail=True, methods=['post'])
    def discharge(self, request, pk=None):
        encounter = self.get_object()
        services.discharge_encounter(encounter, user=request.user)
        return self._encounter_response(encounter, 'Patient discharged')

    @extend_schema(summary="Bed history", tags=['Inpatient'])
    @action(detail=True, methods=['get'])
    def assignments(self, request, pk=None):
        encounter = self.get_object()
        return Response({
            'success': True,
            'data': BedAssignmentSerializer(encounter.bed_assignments.all(), many=True).data
        })


# ============================================================================
# BED OCCUPANCY
# ============================================================================

class BedOccupancyView(APIView):
    """Stored vs derived bed status"""
    permission_classes = [IsClinicalStaff]

    @extend_schema(summary="Bed occupancy and drift", tags=['Inpatient'])
    def get(self, request):
        drift = Bed.objects.drift().select_related('ward')
        return Response({
            'success': True,
            'data': {
                'stored': services.bed_status_distribution(),
                'derived': master_data_cache.get_stats()['beds'],
                'drift': BedSerializer(drift, many=True).data,
            }
        })


class BedReconcileView(APIView):
    permission_classes = [IsAdministrator]

    @extend_schema(
        summary="Reconcile bed status with assignments",
        request=ReconcileSerializer,
        responses={200: OpenApiResponse(description="Status distribution before/after")},
        tags=['Inpatient']
    )
    def post(self, request):
        serializer = ReconcileSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        summary = services.reconcile_bed_occupancy(
            preserve_blocked=serializer.validated_data['preserve_blocked']
        )
        logger.info(f"Bed reconciliation triggered by {request.user}")
        return Response({
            'success': True,
            'message': 'Bed occupancy reconciled',
            'data': summary
        })
