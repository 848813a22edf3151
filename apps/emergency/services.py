"""
Emergency department workflow.

Triage records the operator's clinical category and disposition exactly as
entered. Category and disposition are independent choices; a critical
category sent to OPD is accepted but reported back as a warning.
"""

import logging

from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from common.exceptions import UnprocessableError
from apps.patients.models import Encounter
from .models import EmergencyPatient, TriageAssessment, EmergencyOrder

logger = logging.getLogger(__name__)

CRITICAL_CATEGORIES = ('red', 'black')
GCS_FIELDS = ('gcs_eye', 'gcs_verbal', 'gcs_motor')
OPEN_STATUSES = ('active', 'admitted')


def _user_or_none(user):
    return user if user is not None and user.is_authenticated else None


def _ensure_open(emergency_patient):
    if emergency_patient.status not in OPEN_STATUSES:
        raise UnprocessableError(
            f"Emergency patient is already {emergency_patient.get_status_display().lower()}"
        )


def gcs_total(data):
    """Sum of the supplied GCS components; None when none were recorded."""
    parts = [data.get(field) for field in GCS_FIELDS]
    if all(part is None for part in parts):
        return None
    return sum(part or 0 for part in parts)


@transaction.atomic
def register_emergency_patient(data, user=None):
    patient = data.get('patient')
    emergency_patient = EmergencyPatient(
        arrival_time=timezone.now(),
        status='active',
        created_by=_user_or_none(user),
        **data
    )
    if patient is not None:
        emergency_patient.encounter = Encounter.objects.create(
            patient=patient,
            encounter_type=Encounter.TYPE_EMERGENCY,
            branch=patient.branch,
            chief_complaint=data.get('chief_complaint', ''),
            created_by=_user_or_none(user),
        )
    emergency_patient.save()

    logger.info(
        f"Emergency arrival {emergency_patient.pk} registered "
        f"({emergency_patient.display_name}, {emergency_patient.arrival_mode})"
    )
    return emergency_patient


@transaction.atomic
def record_triage(emergency_patient, data, user=None):
    """
    Store a triage assessment and apply its disposition.

    Returns ``(assessment, appointment, warnings)``; ``appointment`` is the OPD
    appointment created for an ``opd`` disposition, otherwise None.
    """
    _ensure_open(emergency_patient)

    category = data['triage_category']
    disposition = data['disposition']
    warnings = []

    if disposition == 'opd' and not emergency_patient.is_registered:
        raise UnprocessableError(
            'Patient must be registered before being sent to OPD',
            errors={'disposition': ['OPD disposition requires a registered patient.']}
        )

    if disposition == 'opd' and category in CRITICAL_CATEGORIES:
        message = f"Triage category '{category}' dispositioned to OPD"
        warnings.append(message)
        logger.warning(f"{message} for emergency patient {emergency_patient.pk}")

    assessment = TriageAssessment.objects.create(
        emergency_patient=emergency_patient,
        triage_category=category,
        temperature=data.get('temperature'),
        blood_pressure=data.get('blood_pressure') or '',
        heart_rate=data.get('heart_rate'),
        respiratory_rate=data.get('respiratory_rate'),
        oxygen_saturation=data.get('oxygen_saturation'),
        gcs_eye=data.get('gcs_eye'),
        gcs_verbal=data.get('gcs_verbal'),
        gcs_motor=data.get('gcs_motor'),
        gcs_total=gcs_total(data),
        assessment_notes=data.get('assessment_notes') or '',
        disposition=disposition,
        assessed_by=_user_or_none(user),
        assessed_at=timezone.now(),
    )

    emergency_patient.triage_category = category
    appointment = None
    if disposition == 'opd':
        appointment = send_to_opd(emergency_patient, user)
    emergency_patient.save()

    logger.info(
        f"Emergency patient {emergency_patient.pk} triaged {category}, disposition {disposition}"
    )
    return assessment, appointment, warnings


def send_to_opd(emergency_patient, user=None):
    from apps.opd.services import create_appointment

    appointment = create_appointment(
        emergency_patient.patient,
        {
            'appointment_type': 'emergency_referral',
            'chief_complaint': emergency_patient.chief_complaint,
        },
        user=user,
        emergency_patient=emergency_patient,
    )
    emergency_patient.status = 'transferred'
    if emergency_patient.encounter_id:
        emergency_patient.encounter.complete()
    logger.info(
        f"Emergency patient {emergency_patient.pk} sent to OPD as {appointment.appointment_number}"
    )
    return appointment


def place_order(emergency_patient, data, user=None):
    _ensure_open(emergency_patient)
    order = EmergencyOrder.objects.create(
        emergency_patient=emergency_patient,
        ordered_by=_user_or_none(user),
        ordered_at=timezone.now(),
        **data
    )
    logger.info(f"{order.get_priority_display()} {order.order_type} order placed for emergency patient {emergency_patient.pk}")
    return order


def assign_physician(emergency_patient, physician, user=None):
    _ensure_open(emergency_patient)
    emergency_patient.assigned_physician = physician
    emergency_patient.save(update_fields=['assigned_physician', 'updated_at'])
    if emergency_patient.encounter_id:
        encounter = emergency_patient.encounter
        encounter.physician = physician
        encounter.save(update_fields=['physician', 'updated_at'])
    return emergency_patient


@transaction.atomic
def transfer(emergency_patient, destination, notes='', bed=None, user=None):
    """
    ward/icu -> admitted, discharge -> discharged.

    With a bed and a registered patient the admission also opens an IPD
    encounter in that bed.
    """
    _ensure_open(emergency_patient)

    admission = None
    if destination in ('ward', 'icu'):
        emergency_patient.status = 'admitted'
        if bed is not None:
            if not emergency_patient.is_registered:
                raise UnprocessableError('Patient must be registered before admission to a bed')
            from apps.inpatient.services import admit_patient
            admission = admit_patient(
                emergency_patient.patient,
                bed,
                user=user,
                physician=emergency_patient.assigned_physician,
                chief_complaint=emergency_patient.chief_complaint,
            )
    else:
        emergency_patient.status = 'discharged'

    emergency_patient.disposition_notes = notes or ''
    emergency_patient.save(update_fields=['status', 'disposition_notes', 'updated_at'])

    if emergency_patient.encounter_id:
        emergency_patient.encounter.complete()

    logger.info(f"Emergency patient {emergency_patient.pk} transferred to {destination}")
    return emergency_patient, admission


def census(date=None):
    """Emergency patients by status and by current triage category."""
    queryset = EmergencyPatient.objects.all()
    if date is not None:
        queryset = queryset.filter(arrival_time__date=date)

    by_status = {
        row['status']: row['count']
        for row in queryset.values('status').annotate(count=Count('id')).order_by('status')
    }
    by_category = {
        row['triage_category'] or 'untriaged': row['count']
        for row in queryset.filter(status__in=OPEN_STATUSES)
        .values('triage_category').annotate(count=Count('id')).order_by('triage_category')
    }
    return {
        'total': sum(by_status.values()),
        'by_status': by_status,
        'by_triage_category': by_category,
    }
