import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.exceptions import UnprocessableError
from common.mixins import EnvelopeResponseMixin, SoftDeleteMixin
from apps.accounts.permissions import IsFrontDesk
from apps.inpatient import services as inpatient_services
from .models import Patient, PatientAllergy, Encounter
from .serializers import (
    PatientListSerializer,
    PatientDetailSerializer,
    PatientCreateUpdateSerializer,
    PatientAllergySerializer,
    EncounterSerializer,
)

logger = logging.getLogger(__name__)


@extend_schema_view(
    list=extend_schema(summary="List patients", tags=['Patients']),
    create=extend_schema(summary="Register patient", tags=['Patients']),
    retrieve=extend_schema(summary="Patient details", tags=['Patients']),
)
class PatientViewSet(EnvelopeResponseMixin, SoftDeleteMixin, viewsets.ModelViewSet):
    queryset = Patient.objects.prefetch_related('allergies')
    permission_classes = [IsFrontDesk]
    detail_serializer_class = PatientDetailSerializer
    filterset_fields = ['gender', 'branch', 'is_active']
    search_fields = ['patient_id', 'first_name', 'last_name', 'mobile_primary']
    ordering = ['-created_at']

    def get_serializer_class(self):
        if self.action == 'list':
            return PatientListSerializer
        elif self.action in ['create', 'update', 'partial_update']:
            return PatientCreateUpdateSerializer
        return PatientDetailSerializer

    @extend_schema(summary="Add allergy", request=PatientAllergySerializer, tags=['Patients'])
    @action(detail=True, methods=['post'])
    def allergies(self, request, pk=None):
        patient = self.get_object()
        serializer = PatientAllergySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        allergy, created = PatientAllergy.objects.update_or_create(
            patient=patient,
            allergen=serializer.validated_data['allergen'],
            defaults={k: v for k, v in serializer.validated_data.items() if k != 'allergen'}
        )
        return Response({
            'success': True,
            'data': PatientAllergySerializer(allergy).data
        }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@extend_schema_view(
    list=extend_schema(
        summary="List encounters",
        parameters=[
            OpenApiParameter(name='encounter_type', type=str, description='OPD, IPD or EMERGENCY'),
            OpenApiParameter(name='status', type=str, description='ACTIVE or COMPLETED'),
        ],
        tags=['Encounters']
    ),
)
class EncounterViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    """Encounters are retired by completion, never deleted"""
    queryset = Encounter.objects.select_related('patient', 'physician')
    serializer_class = EncounterSerializer
    permission_classes = [IsFrontDesk]
    http_method_names = ['get', 'post', 'patch', 'head', 'options']
    filterset_fields = ['patient', 'encounter_type', 'status', 'physician', 'department', 'branch']
    search_fields = ['encounter_number', 'patient__first_name', 'patient__last_name']

    def perform_create(self, serializer):
        encounter = serializer.save(created_by=self.request.user)
        logger.info(f"Opened {encounter.encounter_type} encounter {encounter.encounter_number}")

    @extend_schema(summary="Complete encounter", request=None, tags=['Encounters'])
    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        encounter = self.get_object()
        if encounter.encounter_type == Encounter.TYPE_IPD:
            inpatient_services.discharge_encounter(encounter, user=request.user)
        elif not encounter.complete():
            raise UnprocessableError('Encounter is already completed')
        return Response({
            'success': True,
            'message': 'Encounter completed',
            'data': EncounterSerializer(encounter).data
        })
