"""
Inpatient bed workflows.

Assignment and release keep ``beds.status`` in step with the assignment
rows. ``reconcile_bed_occupancy`` is the batch repair for beds whose stored
status has drifted anyway (manual edits, aborted requests, imports).
"""

import logging

from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from common.exceptions import ConflictError, ResourceNotFound, UnprocessableError
from apps.masterdata.cache import master_data_cache
from apps.masterdata.models import Bed
from apps.patients.models import Encounter
from .models import BedAssignment

logger = logging.getLogger(__name__)

BLOCKED_STATUSES = ['maintenance', 'out_of_order', 'reserved']


def _forget_bed_cache(*ward_ids):
    for ward_id in set(ward_ids):
        master_data_cache.invalidate_beds(ward_id=ward_id)


def _release(assignment, user=None):
    now = timezone.now()
    assignment.released_at = now
    assignment.released_by = user if user and user.is_authenticated else None
    assignment.save(update_fields=['released_at', 'released_by', 'updated_at'])

    bed = assignment.bed
    bed.status = 'available'
    bed.save(update_fields=['status', 'updated_at'])
    return assignment


@transaction.atomic
def assign_bed(encounter, bed, user=None, notes=''):
    """
    Put an active inpatient encounter into ``bed``.

    A current assignment of the encounter is released first (bed transfer).
    """
    if encounter.encounter_type != Encounter.TYPE_IPD or not encounter.is_active:
        raise UnprocessableError('Beds can only be assigned to an active inpatient encounter')

    bed = Bed.objects.select_for_update().select_related('ward').get(pk=bed.pk)
    if not bed.is_active or bed.status in ('maintenance', 'out_of_order'):
        raise UnprocessableError(f'Bed {bed.bed_number} is not available for assignment')

    occupied_by_other = BedAssignment.objects.active().filter(bed=bed).exclude(encounter=encounter)
    if occupied_by_other.exists():
        raise ConflictError(f'Bed {bed.bed_number} is already occupied')

    current = BedAssignment.objects.active().filter(encounter=encounter).select_related('bed').first()
    if current and current.bed_id == bed.pk:
        return current

    ward_ids = [bed.ward_id]
    if current:
        ward_ids.append(current.bed.ward_id)
        _release(current, user)
        logger.info(f"Encounter {encounter.encounter_number} moved out of bed {current.bed_id}")

    assignment = BedAssignment.objects.create(
        bed=bed,
        encounter=encounter,
        assigned_by=user if user and user.is_authenticated else None,
        notes=notes,
    )
    bed.status = 'occupied'
    bed.last_occupied_at = assignment.assigned_at
    bed.save(update_fields=['status', 'last_occupied_at', 'updated_at'])

    _forget_bed_cache(*ward_ids)
    logger.info(f"Encounter {encounter.encounter_number} assigned to bed {bed}")
    return assignment


@transaction.atomic
def release_bed(encounter, user=None):
    current = BedAssignment.objects.active().filter(encounter=encounter).select_related('bed').first()
    if current is None:
        raise ResourceNotFound('No active bed assignment found for this encounter')

    _release(current, user)
    _forget_bed_cache(current.bed.ward_id)
    logger.info(f"Encounter {encounter.encounter_number} released bed {current.bed_id}")
    return current


@transaction.atomic
def admit_patient(patient, bed, user=None, physician=None, department=None, branch=None,
                  chief_complaint=''):
    """Open an IPD encounter and put it into ``bed``."""
    encounter = Encounter.objects.create(
        patient=patient,
        encounter_type=Encounter.TYPE_IPD,
        physician=physician,
        department=department or bed.ward.department,
        branch=branch,
        chief_complaint=chief_complaint,
        created_by=user if user and user.is_authenticated else None,
    )
    assign_bed(encounter, bed, user=user)
    return encounter


@transaction.atomic
def discharge_encounter(encounter, user=None):
    """Release the bed (if any) and complete the encounter."""
    if encounter.encounter_type != Encounter.TYPE_IPD:
        raise UnprocessableError('Only inpatient encounters can be discharged')
    if not encounter.is_active:
        raise UnprocessableError('Encounter is already completed')

    current = BedAssignment.objects.active().filter(encounter=encounter).select_related('bed').first()
    if current:
        _release(current, user)
        _forget_bed_cache(current.bed.ward_id)
    encounter.complete()
    logger.info(f"Encounter {encounter.encounter_number} discharged")
    return encounter


def bed_status_distribution():
    rows = Bed.objects.values('status').annotate(count=Count('id')).order_by('status')
    return {row['status']: row['count'] for row in rows}


@transaction.atomic
def reconcile_bed_occupancy(preserve_blocked=False):
    """
    Rebuild ``beds.status`` from the assignment rows.

    1. every bed is set to 'available'
       (with ``preserve_blocked`` maintenance/out_of_order/reserved beds keep
       their status)
    2. every bed holding an unreleased assignment on an ACTIVE IPD encounter
       is set to 'occupied'

    Running it twice without intervening writes gives the same result.
    Concurrent assignment changes are not locked out.
    """
    before = bed_status_distribution()
    now = timezone.now()

    reset = Bed.objects.exclude(status='available')
    if preserve_blocked:
        reset = reset.exclude(status__in=BLOCKED_STATUSES)
    reset.update(status='available', updated_at=now)

    occupied_bed_ids = BedAssignment.objects.active().filter(
        encounter__encounter_type=Encounter.TYPE_IPD,
        encounter__status=Encounter.STATUS_ACTIVE,
    ).values_list('bed_id', flat=True)
    occupied = Bed.objects.filter(pk__in=list(occupied_bed_ids)).update(
        status='occupied',
        updated_at=now
    )

    after = bed_status_distribution()
    _forget_bed_cache(*Bed.objects.values_list('ward_id', flat=True).distinct())

    summary = {
        'beds_total': sum(after.values()),
        'occupied': after.get('occupied', 0),
        'available': after.get('available', 0),
        'before': before,
        'after': after,
    }
    logger.info(
        f"Bed reconciliation: {occupied} occupied of {summary['beds_total']} beds "
        f"(before {before}, after {after})"
    )
    return summary
