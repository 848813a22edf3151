"""
OPD appointment workflow: booking, queueing, triage and status changes.
"""

import logging

from django.db import transaction
from django.db.models import Case, IntegerField, Max, Value, When
from django.utils import timezone

from common.exceptions import UnprocessableError
from apps.patients.models import Encounter
from . import triage
from .models import OpdAppointment

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OpdAppointment.SCHEDULED: [
        OpdAppointment.CONFIRMED, OpdAppointment.CHECKED_IN, OpdAppointment.WAITING,
        OpdAppointment.CANCELLED, OpdAppointment.NO_SHOW,
    ],
    OpdAppointment.CONFIRMED: [
        OpdAppointment.CHECKED_IN, OpdAppointment.WAITING,
        OpdAppointment.CANCELLED, OpdAppointment.NO_SHOW,
    ],
    OpdAppointment.CHECKED_IN: [
        OpdAppointment.WAITING, OpdAppointment.IN_PROGRESS, OpdAppointment.CANCELLED,
    ],
    OpdAppointment.WAITING: [
        OpdAppointment.IN_PROGRESS, OpdAppointment.CANCELLED, OpdAppointment.NO_SHOW,
    ],
    OpdAppointment.IN_PROGRESS: [OpdAppointment.COMPLETED],
    OpdAppointment.COMPLETED: [],
    OpdAppointment.CANCELLED: [],
    OpdAppointment.NO_SHOW: [],
}

CLOSING_STATUSES = [OpdAppointment.COMPLETED, OpdAppointment.CANCELLED, OpdAppointment.NO_SHOW]


def _user_or_none(user):
    return user if user is not None and user.is_authenticated else None


def next_queue_number(appointment_date=None, waiting_only=False):
    """
    Highest queue number of the day plus one. Emergency referrals join
    behind the patients still waiting (``waiting_only``).
    """
    appointment_date = appointment_date or timezone.localdate()
    appointments = OpdAppointment.objects.filter(appointment_date=appointment_date)
    if waiting_only:
        appointments = appointments.filter(status=OpdAppointment.WAITING)
    last = appointments.aggregate(last=Max('queue_number'))['last']
    return (last or 0) + 1


def ensure_modifiable(appointment):
    """Orders and prescriptions are frozen once the consultation is completed."""
    if appointment.status == OpdAppointment.COMPLETED:
        raise UnprocessableError('Cannot modify completed consultation')


@transaction.atomic
def create_appointment(patient, data, user=None, emergency_patient=None):
    """
    Open an OPD encounter and its appointment.

    Walk-ins and emergency referrals go straight to the waiting queue;
    everything else starts as SCHEDULED and is queued at check-in.
    """
    appointment_type = data.get('appointment_type', 'walk_in')
    appointment_date = data.get('appointment_date') or timezone.localdate()

    encounter = Encounter.objects.create(
        patient=patient,
        encounter_type=Encounter.TYPE_OPD,
        physician=data.get('physician'),
        department=data.get('department'),
        branch=patient.branch,
        chief_complaint=data.get('chief_complaint', ''),
        created_by=_user_or_none(user),
    )

    queued = appointment_type in ('walk_in', 'emergency_referral')
    appointment = OpdAppointment.objects.create(
        encounter=encounter,
        patient=patient,
        physician=data.get('physician'),
        department=data.get('department'),
        emergency_patient=emergency_patient,
        appointment_type=appointment_type,
        appointment_date=appointment_date,
        appointment_time=data.get('appointment_time'),
        status=OpdAppointment.WAITING if queued else OpdAppointment.SCHEDULED,
        queue_number=next_queue_number(
            appointment_date, waiting_only=emergency_patient is not None
        ) if queued else None,
        checked_in_at=timezone.now() if queued else None,
        chief_complaint=data.get('chief_complaint', ''),
        notes=data.get('notes', ''),
        created_by=_user_or_none(user),
    )

    logger.info(
        f"OPD appointment {appointment.appointment_number} created for patient "
        f"{patient.patient_id} ({appointment.status})"
    )
    return appointment


@transaction.atomic
def change_status(appointment, new_status, user=None):
    current = appointment.status
    if new_status == current:
        return appointment
    if new_status not in ALLOWED_TRANSITIONS.get(current, []):
        raise UnprocessableError(f'Cannot change appointment from {current} to {new_status}')

    now = timezone.now()
    appointment.status = new_status

    if new_status in (OpdAppointment.CHECKED_IN, OpdAppointment.WAITING):
        appointment.checked_in_at = appointment.checked_in_at or now
        if appointment.queue_number is None:
            appointment.queue_number = next_queue_number(appointment.appointment_date)
    elif new_status == OpdAppointment.IN_PROGRESS:
        appointment.consultation_started_at = now
    elif new_status == OpdAppointment.COMPLETED:
        appointment.consultation_completed_at = now

    appointment.save()

    if new_status in CLOSING_STATUSES:
        appointment.encounter.complete()

    logger.info(f"OPD appointment {appointment.appointment_number}: {current} -> {new_status}")
    return appointment


@transaction.atomic
def reopen_consultation(appointment, user=None):
    if appointment.status != OpdAppointment.COMPLETED:
        raise UnprocessableError('Only completed consultations can be reopened')

    appointment.status = OpdAppointment.IN_PROGRESS
    appointment.consultation_completed_at = None
    appointment.save()

    encounter = appointment.encounter
    encounter.status = Encounter.STATUS_ACTIVE
    encounter.ended_at = None
    encounter.save(update_fields=['status', 'ended_at', 'updated_at'])

    logger.info(f"OPD appointment {appointment.appointment_number} reopened")
    return appointment


TRIAGE_FIELDS = [
    'temperature', 'blood_pressure', 'heart_rate', 'respiratory_rate',
    'oxygen_saturation', 'pain_level', 'weight', 'height', 'triage_notes',
]


def record_triage(appointment, data, user=None):
    """Store vitals and the computed triage score, level and red flags."""
    if appointment.status in CLOSING_STATUSES:
        raise UnprocessableError(f'Cannot triage a {appointment.status.lower()} appointment')

    for field in TRIAGE_FIELDS:
        if field in data:
            setattr(appointment, field, data[field])

    result = triage.calculate_triage({
        **{field: getattr(appointment, field) for field in TRIAGE_FIELDS},
        'chief_complaint': data.get('chief_complaint') or appointment.chief_complaint,
    })
    appointment.triage_score = result['triage_score']
    appointment.triage_level = result['triage_level']
    appointment.red_flags = result['red_flags']
    appointment.triage_status = 'completed'
    appointment.triaged_by = _user_or_none(user)
    appointment.triaged_at = timezone.now()
    appointment.save()

    if result['triage_level'] == triage.EMERGENCY:
        logger.warning(
            f"OPD appointment {appointment.appointment_number} triaged as emergency: {result['red_flags']}"
        )
    return appointment


def queue_for(appointment_date=None, physician=None):
    """Today's consultation queue: triage priority first, then queue number."""
    appointment_date = appointment_date or timezone.localdate()
    queryset = OpdAppointment.objects.select_related('patient', 'physician').filter(
        appointment_date=appointment_date,
        status__in=OpdAppointment.QUEUE_STATUSES,
    )
    if physician is not None:
        queryset = queryset.filter(physician=physician)

    return queryset.annotate(
        queue_priority=Case(
            *[When(triage_level=level, then=Value(order)) for level, order in triage.PRIORITY_ORDER.items()],
            default=Value(triage.UNKNOWN_PRIORITY),
            output_field=IntegerField(),
        )
    ).order_by('queue_priority', 'queue_number')
