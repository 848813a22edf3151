import logging

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter

from common.exceptions import UnprocessableError
from common.mixins import EnvelopeResponseMixin
from apps.accounts.permissions import IsDoctorOrAdministrator, IsFrontDesk, IsClinicalStaff
from apps.orders import services as lab_services
from apps.orders.models import LabOrder
from apps.orders.serializers import LabOrderSerializer, LabOrderWriteSerializer
from apps.pharmacy import services as pharmacy_services
from apps.pharmacy.models import Prescription
from apps.pharmacy.serializers import PrescriptionSerializer, PrescriptionWriteSerializer
from . import services
from .models import OpdAppointment
from .serializers import (
    OpdAppointmentListSerializer,
    OpdAppointmentDetailSerializer,
    OpdAppointmentCreateSerializer,
    OpdAppointmentUpdateSerializer,
    StatusChangeSerializer,
    TriageSerializer,
)

logger = logging.getLogger(__name__)


# ============================================================================
# APPOINTMENTS
# ============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List OPD appointments",
        parameters=[
            OpenApiParameter(name='date', type=str, description='Appointment date (YYYY-MM-DD)'),
        ],
        tags=['OPD - Appointments']
    ),
    create=extend_schema(
        summary="Book OPD appointment",
        description="Opens an OPD encounter; the appointment id is the encounter id",
        request=OpdAppointmentCreateSerializer,
        tags=['OPD - Appointments']
    ),
    retrieve=extend_schema(summary="Get OPD appointment", tags=['OPD - Appointments']),
)
class OpdAppointmentViewSet(EnvelopeResponseMixin, viewsets.ModelViewSet):
    queryset = OpdAppointment.objects.select_related(
        'patient', 'physician', 'department', 'encounter'
    )
    permission_classes = [IsFrontDesk]
    filterset_fields = ['patient', 'physician', 'department', 'status', 'appointment_type', 'triage_level']
    search_fields = ['appointment_number', 'patient__first_name', 'patient__last_name', 'patient__patient_id']
    ordering_fields = ['appointment_date', 'queue_number', 'created_at']
    ordering = ['-appointment_date', 'queue_number']
    http_method_names = ['get', 'post', 'put', 'patch', 'head', 'options']
    detail_serializer_class = OpdAppointmentDetailSerializer
    resource_label = 'Appointment'

    def get_serializer_class(self):
        if self.action == 'list':
            return OpdAppointmentListSerializer
        if self.action == 'create':
            return OpdAppointmentCreateSerializer
        if self.action in ['update', 'partial_update']:
            return OpdAppointmentUpdateSerializer
        return OpdAppointmentDetailSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        appointment_date = self.request.query_params.get('date')
        if appointment_date:
            queryset = queryset.filter(appointment_date=appointment_date)
        return queryset

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        patient = data.pop('patient')
        serializer.instance = services.create_appointment(patient, data, user=self.request.user)

    def perform_update(self, serializer):
        services.ensure_modifiable(serializer.instance)
        appointment = serializer.save()
        encounter = appointment.encounter
        encounter.physician = appointment.physician
        encounter.department = appointment.department
        encounter.chief_complaint = appointment.chief_complaint
        encounter.save(update_fields=['physician', 'department', 'chief_complaint', 'updated_at'])

    @extend_schema(summary="Today's appointments", tags=['OPD - Appointments'])
    @action(detail=False, methods=['get'])
    def today(self, request):
        appointments = self.get_queryset().filter(appointment_date=timezone.localdate())
        serializer = OpdAppointmentListSerializer(appointments, many=True)
        return Response({
            'success': True,
            'count': len(serializer.data),
            'data': serializer.data
        })

    @extend_schema(
        summary="Consultation queue",
        description="Waiting, checked-in and in-progress patients ordered by triage priority then queue number",
        parameters=[OpenApiParameter(name='physician', type=int)],
        tags=['OPD - Appointments']
    )
    @action(detail=False, methods=['get'])
    def queue(self, request):
        queryset = services.queue_for()
        physician = request.query_params.get('physician')
        if physician:
            queryset = queryset.filter(physician_id=physician)

        serializer = OpdAppointmentListSerializer(queryset, many=True)
        return Response({
            'success': True,
            'count': len(serializer.data),
            'data': serializer.data
        })

    @extend_schema(summary="Change appointment status", request=StatusChangeSerializer, tags=['OPD - Appointments'])
    @action(detail=True, methods=['post'], url_path='status')
    def change_status(self, request, pk=None):
        appointment = self.get_object()
        serializer = StatusChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        appointment = services.change_status(appointment, serializer.validated_data['status'], user=request.user)
        return Response({
            'success': True,
            'message': f'Appointment {appointment.get_status_display().lower()}',
            'data': OpdAppointmentDetailSerializer(appointment).data
        })

    @extend_schema(summary="Record OPD triage", request=TriageSerializer, tags=['OPD - Appointments'])
    @action(detail=True, methods=['post'], permission_classes=[IsClinicalStaff])
    def triage(self, request, pk=None):
        appointment = self.get_object()
        serializer = TriageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        appointment = services.record_triage(appointment, serializer.validated_data, user=request.user)
        return Response({
            'success': True,
            'message': f'Triage recorded: {appointment.triage_level}',
            'data': OpdAppointmentDetailSerializer(appointment).data
        })

    @extend_schema(summary="Reopen completed consultation", request=None, tags=['OPD - Appointments'])
    @action(detail=True, methods=['post'], permission_classes=[IsDoctorOrAdministrator])
    def reopen(self, request, pk=None):
        appointment = services.reopen_consultation(self.get_object(), user=request.user)
        return Response({
            'success': True,
            'message': 'Consultation reopened',
            'data': OpdAppointmentDetailSerializer(appointment).data
        })


# ============================================================================
# CONSULTATION ORDERS (scoped to one appointment)
# ============================================================================

class AppointmentScopedMixin:
    """
    Resources created during a consultation.

    Everything is looked up through the appointment in the URL, so a record
    belonging to another appointment is a 404 here. Writes are refused once
    the consultation is completed.
    """
    permission_classes = [IsDoctorOrAdministrator]

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.appointment = get_object_or_404(
            OpdAppointment.objects.select_related('encounter', 'patient', 'physician'),
            pk=self.kwargs['appointment_id']
        )
        if request.method not in permissions.SAFE_METHODS:
            services.ensure_modifiable(self.appointment)

    def scoped(self, queryset):
        if getattr(self, 'swagger_fake_view', False):
            return queryset.none()
        return queryset.filter(encounter_id=self.kwargs['appointment_id'])


@extend_schema_view(
    list=extend_schema(summary="List lab orders of appointment", tags=['OPD - Consultation']),
    create=extend_schema(summary="Order lab test", request=LabOrderWriteSerializer, tags=['OPD - Consultation']),
)
class AppointmentLabOrderViewSet(AppointmentScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    serializer_class = LabOrderSerializer
    detail_serializer_class = LabOrderSerializer
    resource_label = 'Lab order'

    def get_queryset(self):
        return self.scoped(LabOrder.objects.select_related('test', 'patient', 'physician'))

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return LabOrderWriteSerializer
        return LabOrderSerializer

    def perform_create(self, serializer):
        serializer.instance = lab_services.create_lab_order(
            self.appointment.encounter,
            {'physician': self.appointment.physician, **serializer.validated_data},
            user=self.request.user
        )

    def perform_update(self, serializer):
        lab_services.update_lab_order(serializer.instance, serializer.validated_data, user=self.request.user)

    def perform_destroy(self, instance):
        if instance.status == 'completed':
            raise UnprocessableError('Completed lab orders cannot be deleted')
        logger.info(f"Lab order {instance.order_number} deleted from encounter {instance.encounter_id}")
        instance.delete()


@extend_schema_view(
    list=extend_schema(summary="List prescriptions of appointment", tags=['OPD - Consultation']),
    create=extend_schema(summary="Prescribe", request=PrescriptionWriteSerializer, tags=['OPD - Consultation']),
)
class AppointmentPrescriptionViewSet(AppointmentScopedMixin, EnvelopeResponseMixin, viewsets.ModelViewSet):
    serializer_class = PrescriptionSerializer
    detail_serializer_class = PrescriptionSerializer
    resource_label = 'Prescription'

    def get_queryset(self):
        return self.scoped(Prescription.objects.select_related('drug', 'patient', 'physician'))

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return PrescriptionWriteSerializer
        return PrescriptionSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = {
            'physician': self.appointment.physician,
            **serializer.validated_data,
            'patient': self.appointment.patient,
            'encounter': self.appointment.encounter,
        }
        prescription = pharmacy_services.create_prescription(data, user=request.user)
        return Response({
            'success': True,
            'message': 'Prescription created successfully',
            'warnings': prescription.prescription_data.get('drug_interactions', []),
            'data': PrescriptionSerializer(prescription).data
        }, status=status.HTTP_201_CREATED)

    def perform_update(self, serializer):
        pharmacy_services.update_prescription(serializer.instance, serializer.validated_data, user=self.request.user)

    def perform_destroy(self, instance):
        if instance.status in ('dispensed', 'completed'):
            raise UnprocessableError('Dispensed prescriptions cannot be deleted')
        pharmacy_services.release_stock(instance, self.request.user, reason=f'Prescription #{instance.pk} deleted')
        logger.info(f"Prescription {instance.pk} deleted from encounter {instance.encounter_id}")
        instance.delete()
