import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsClinicalStaff
from apps.opd.serializers import OpdAppointmentDetailSerializer
from . import services
from .models import EmergencyPatient
from .serializers import (
    EmergencyPatientListSerializer,
    EmergencyPatientDetailSerializer,
    EmergencyPatientCreateSerializer,
    TriageInputSerializer,
    TriageAssessmentSerializer,
    EmergencyOrderSerializer,
    AssignPhysicianSerializer,
    TransferSerializer,
)

logger = logging.getLogger(__name__)


@extend_schema_view(
    list=extend_schema(
        summary="Emergency board",
        description="Active and admitted emergency patients, newest arrival first",
        parameters=[
            OpenApiParameter(name='all', type=bool, description='Include transferred and discharged patients'),
        ],
        tags=['Emergency']
    ),
    create=extend_schema(summary="Register emergency arrival", tags=['Emergency']),
    retrieve=extend_schema(summary="Emergency patient with assessments and orders", tags=['Emergency']),
)
class EmergencyPatientViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = EmergencyPatient.objects.select_related('patient', 'assigned_physician')
    permission_classes = [IsClinicalStaff]
    filterset_fields = ['status', 'triage_category', 'arrival_mode', 'assigned_physician']
    search_fields = ['temp_name', 'patient__first_name', 'patient__last_name', 'chief_complaint']
    ordering = ['-arrival_time']
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']
    detail_serializer_class = EmergencyPatientDetailSerializer
    resource_label = 'Emergency patient'

    def get_serializer_class(self):
        if self.action == 'list':
            return EmergencyPatientListSerializer
        if self.action in ['create', 'update', 'partial_update']:
            return EmergencyPatientCreateSerializer
        return EmergencyPatientDetailSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'retrieve':
            queryset = queryset.prefetch_related('triage_assessments', 'orders')
        params = self.request.query_params
        if self.action == 'list' and params.get('all') != 'true' and 'status' not in params:
            queryset = queryset.filter(status__in=services.OPEN_STATUSES)
        return queryset

    def perform_create(self, serializer):
        serializer.instance = services.register_emergency_patient(
            serializer.validated_data, user=self.request.user
        )

    def _patient_response(self, emergency_patient, message, http_status=status.HTTP_200_OK, **extra):
        emergency_patient = self.get_queryset().prefetch_related(
            'triage_assessments', 'orders'
        ).get(pk=emergency_patient.pk)
        payload = {
            'success': True,
            'message': message,
            'data': EmergencyPatientDetailSerializer(emergency_patient).data
        }
        payload.update(extra)
        return Response(payload, status=http_status)

    @extend_schema(summary="Record triage and disposition", request=TriageInputSerializer, tags=['Emergency'])
    @action(detail=True, methods=['post'])
    def triage(self, request, pk=None):
        emergency_patient = self.get_object()
        serializer = TriageInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assessment, appointment, warnings = services.record_triage(
            emergency_patient, serializer.validated_data, user=request.user
        )

        data = {
            'assessment': TriageAssessmentSerializer(assessment).data,
            'opd_appointment': OpdAppointmentDetailSerializer(appointment).data if appointment else None,
        }
        return Response({
            'success': True,
            'message': 'Patient sent to OPD' if appointment else 'Triage assessment recorded',
            'warnings': warnings,
            'data': data
        }, status=status.HTTP_201_CREATED)

    @extend_schema(summary="Place emergency order", request=EmergencyOrderSerializer, tags=['Emergency'])
    @action(detail=True, methods=['post'])
    def orders(self, request, pk=None):
        emergency_patient = self.get_object()
        serializer = EmergencyOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = services.place_order(emergency_patient, serializer.validated_data, user=request.user)
        return Response({
            'success': True,
            'message': 'Order placed',
            'data': EmergencyOrderSerializer(order).data
        }, status=status.HTTP_201_CREATED)

    @extend_schema(summary="Assign physician", request=AssignPhysicianSerializer, tags=['Emergency'])
    @action(detail=True, methods=['post'])
    def assign_physician(self, request, pk=None):
        emergency_patient = self.get_object()
        serializer = AssignPhysicianSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        emergency_patient = services.assign_physician(
            emergency_patient, serializer.validated_data['physician'], user=request.user
        )
        return self._patient_response(emergency_patient, 'Physician assigned')

    @extend_schema(summary="Admit or discharge", request=TransferSerializer, tags=['Emergency'])
    @action(detail=True, methods=['post'])
    def transfer(self, request, pk=None):
        emergency_patient = self.get_object()
        serializer = TransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        emergency_patient, admission = services.transfer(
            emergency_patient,
            data['destination'],
            notes=data['notes'],
            bed=data.get('bed'),
            user=request.user
        )
        return self._patient_response(
            emergency_patient,
            f"Patient {emergency_patient.get_status_display().lower()}",
            inpatient_encounter=admission.pk if admission else None
        )

    @extend_schema(summary="Emergency census", tags=['Emergency'])
    @action(detail=False, methods=['get'])
    def census(self, request):
        return Response({
            'success': True,
            'data': services.census()
        })
