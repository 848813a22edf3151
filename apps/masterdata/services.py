"""
Ward and bed rules.

Occupancy figures read the derived ``effective_status`` so they never
depend on the stored ``beds.status`` column being up to date.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Count, Q
from django.utils import timezone

from common.exceptions import DomainError, UnprocessableError
from .models import Bed, Department

logger = logging.getLogger(__name__)

# Beds that count towards the occupancy denominator
OCCUPANCY_BASE_STATUSES = ['available', 'occupied', 'reserved']


def bed_stats(queryset=None):
    """Bed counts per derived status plus the occupancy rate."""
    queryset = Bed.objects.all() if queryset is None else queryset
    counts = queryset.filter(is_active=True).with_occupancy().aggregate(
        total_beds=Count('id'),
        available=Count('id', filter=Q(effective_status='available')),
        occupied=Count('id', filter=Q(effective_status='occupied')),
        maintenance=Count('id', filter=Q(effective_status='maintenance')),
        reserved=Count('id', filter=Q(effective_status='reserved')),
        out_of_order=Count('id', filter=Q(effective_status='out_of_order')),
    )
    counts['occupancy_rate'] = _rate(
        counts['occupied'] + counts['reserved'],
        counts['available'] + counts['occupied'] + counts['reserved']
    )
    return counts


def ward_stats(ward):
    return bed_stats(Bed.objects.filter(ward=ward))


def occupancy_rate(ward):
    """
    (occupied + reserved) / beds that are available, occupied or reserved,
    as a percentage rounded to 2 places. 0 for a ward without such beds.
    """
    return ward_stats(ward)['occupancy_rate']


def _rate(part, whole):
    if not whole:
        return 0.0
    value = Decimal(part) * 100 / Decimal(whole)
    return float(value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def validate_department(department):
    if department is None:
        raise DomainError('Department is required')
    if not Department.objects.filter(pk=department.pk, is_active=True).exists():
        raise UnprocessableError('Department does not exist or is inactive')


def validate_ward_capacity(capacity, ward=None):
    """Capacity must be positive and not below the ward's current bed count."""
    if capacity is None or capacity <= 0:
        raise DomainError('Ward capacity must be greater than 0')
    if ward is not None and ward.pk:
        bed_count = ward.beds.count()
        if capacity < bed_count:
            raise UnprocessableError(
                f'Capacity cannot be less than the current number of beds ({bed_count})'
            )


def validate_new_bed(ward, bed_number):
    if not ward.is_active:
        raise UnprocessableError('Cannot add beds to an inactive ward')
    if ward.beds.count() >= ward.capacity:
        raise UnprocessableError(f'Ward {ward.name} is at full capacity ({ward.capacity} beds)')
    if ward.beds.filter(bed_number=bed_number).exists():
        raise UnprocessableError(f'Bed number {bed_number} already exists in ward {ward.name}')


def set_bed_status(bed, new_status):
    """Manual status change (maintenance, reserved, ...)."""
    valid = dict(Bed.STATUS_CHOICES)
    if new_status not in valid:
        raise DomainError(f'Invalid bed status: {new_status}')

    if bed.status == 'occupied' and new_status != 'occupied':
        # Occupied beds are released through the inpatient workflow
        active = bed.assignments.filter(released_at__isnull=True).exists()
        if active:
            raise UnprocessableError('Bed has an active assignment; release it first')

    old_status = bed.status
    bed.status = new_status
    update_fields = ['status', 'updated_at']
    if new_status == 'occupied':
        bed.last_occupied_at = timezone.now()
        update_fields.append('last_occupied_at')
    bed.save(update_fields=update_fields)

    logger.info(f"Bed {bed.pk} status {old_status} -> {new_status}")
    return bed
