import logging
from datetime import datetime, time, timedelta

from django.db.models.signals import post_save
from django.dispatch import receiver

from common.broadcast import broadcast
from .models import OpdAppointment

logger = logging.getLogger(__name__)

CHANNELS = ['appointments', 'opd-appointments']
EVENT_NAME = 'opd-appointment.updated'

STATUS_COLORS = {
    'SCHEDULED': '#3b82f6',
    'CONFIRMED': '#10b981',
    'CHECKED_IN': '#8b5cf6',
    'IN_PROGRESS': '#f59e0b',
    'COMPLETED': '#0284c7',
    'CANCELLED': '#ef4444',
    'NO_SHOW': '#9ca3af',
}
DEFAULT_COLOR = '#14b8a6'
SLOT_MINUTES = 45
DEFAULT_TIME = time(8, 0)


def calendar_payload(appointment, action='updated'):
    """Calendar event for the appointment as pushed to the schedule views."""
    status = appointment.status.upper()
    start_time = appointment.appointment_time or DEFAULT_TIME
    start = datetime.combine(appointment.appointment_date, start_time)
    end = start + timedelta(minutes=SLOT_MINUTES)

    patient = appointment.patient
    patient_name = patient.full_name if patient else 'Unknown Patient'
    complaint = appointment.chief_complaint or 'General consultation'

    return {
        'action': action,
        'appointment': {
            'id': appointment.pk,
            'title': f"{patient_name} – {complaint}",
            'start': start.strftime('%Y-%m-%dT%H:%M:%S'),
            'end': end.strftime('%Y-%m-%dT%H:%M:%S'),
            'color': STATUS_COLORS.get(status, DEFAULT_COLOR),
            'status': status,
            'extendedProps': {
                'appointmentId': appointment.pk,
                'appointmentNumber': appointment.appointment_number,
                'patient': {
                    'id': patient.pk,
                    'patient_id': patient.patient_id,
                    'first_name': patient.first_name,
                    'last_name': patient.last_name,
                    'full_name': patient_name,
                    'date_of_birth': patient.date_of_birth.isoformat() if patient.date_of_birth else None,
                    'gender': patient.gender,
                    'phone': patient.mobile_primary or 'N/A',
                    'allergies': patient.active_allergens(),
                } if patient else None,
                'appointment': {
                    'date': appointment.appointment_date.isoformat(),
                    'time': start_time.strftime('%H:%M:%S'),
                    'status': status,
                    'chief_complaint': complaint,
                    'notes': appointment.notes,
                    'queue_number': appointment.queue_number,
                    'triage_level': appointment.triage_level or None,
                    'physician_id': appointment.physician_id,
                    'department_id': appointment.department_id,
                },
                'tooltip': f"Patient: {patient_name}\nStatus: {status}\nComplaint: {complaint}",
            },
        },
    }


@receiver(post_save, sender=OpdAppointment)
def broadcast_appointment(sender, instance, created, **kwargs):
    """Push every appointment change to the calendar channels."""
    try:
        payload = calendar_payload(instance, 'created' if created else 'updated')
    except Exception:
        logger.exception(f"Failed to build broadcast payload for OPD appointment {instance.pk}")
        payload = {
            'action': 'created' if created else 'updated',
            'appointment': {'id': instance.pk, 'status': instance.status.upper()},
        }
    broadcast(CHANNELS, EVENT_NAME, payload)
