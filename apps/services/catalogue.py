"""
Service catalogue rules: configurable categories, service codes and
price adjustments.

Categories live in the ``service_categories`` system setting as a JSON
object ``{key: label}``; the defaults apply until an administrator edits one.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.db.models import Avg, Count, F

from common.exceptions import ConflictError, ResourceNotFound, UnprocessableError
from apps.hospital.settings_store import get_setting, set_setting
from .models import ServiceCatalogue

logger = logging.getLogger(__name__)

SETTING_KEY = 'service_categories'

DEFAULT_CATEGORIES = {
    'consultation': 'Consultation',
    'lab_test': 'Lab Test',
    'imaging': 'Imaging',
    'procedure': 'Procedure',
    'medication': 'Medication',
    'consumable': 'Consumable',
    'bed_charge': 'Bed Charge',
    'nursing': 'Nursing',
    'other': 'Other',
}

CODE_PREFIXES = {
    'consultation': 'CONS',
    'lab_test': 'LAB',
    'imaging': 'IMG',
    'procedure': 'PROC',
    'medication': 'MED',
    'consumable': 'CONS',
    'bed_charge': 'BED',
    'nursing': 'NURS',
    'other': 'OTH',
}
FALLBACK_PREFIX = 'SVC'

CENT = Decimal('0.01')


def get_categories():
    return dict(get_setting(SETTING_KEY, DEFAULT_CATEGORIES))


def validate_category(key):
    if key not in get_categories():
        raise UnprocessableError(
            f"Unknown service category '{key}'",
            errors={'category': [f"Must be one of: {', '.join(get_categories())}"]}
        )
    return key


def category_stats():
    """Configured categories with service count and average price."""
    rows = {
        row['category']: row
        for row in ServiceCatalogue.objects.values('category').annotate(
            count=Count('id'), avg_price=Avg('unit_price')
        )
    }
    stats = []
    for key, label in get_categories().items():
        row = rows.get(key, {})
        avg_price = row.get('avg_price')
        stats.append({
            'key': key,
            'name': label,
            'count': row.get('count', 0),
            'avg_price': float(round(avg_price, 2)) if avg_price is not None else 0.0,
        })
    return stats


@transaction.atomic
def update_category(key, name, avg_price=None, user=None):
    """
    Rename category ``key``. With ``avg_price`` the category's services are
    rescaled so their average matches it.
    """
    categories = get_categories()
    if key not in categories:
        raise ResourceNotFound(f"Service category '{key}' not found")

    categories[key] = name
    set_setting(SETTING_KEY, categories, value_type='json', user=user)

    rescaled = 0
    if avg_price is not None:
        services = ServiceCatalogue.objects.filter(category=key)
        current_avg = services.aggregate(avg=Avg('unit_price'))['avg']
        if current_avg:
            multiplier = Decimal(str(avg_price)) / Decimal(str(current_avg))
            for service in services:
                service.unit_price = (service.unit_price * multiplier).quantize(CENT, rounding=ROUND_HALF_UP)
                service.save(update_fields=['unit_price', 'updated_at'])
                rescaled += 1

    logger.info(f"Service category {key} renamed to {name}; {rescaled} services rescaled")
    return {'key': key, 'name': name, 'rescaled': rescaled}


def _next_sequence(prefix):
    codes = ServiceCatalogue.objects.filter(code__startswith=prefix).values_list('code', flat=True)
    numbers = [int(code[len(prefix):]) for code in codes if code[len(prefix):].isdigit()]
    return max(numbers, default=0) + 1


def generate_code(category, department=None):
    """``<PREFIX><DEPT>NNN``, e.g. ``LABPA001`` for lab tests in pathology."""
    prefix = CODE_PREFIXES.get(category, FALLBACK_PREFIX)
    if department is not None and department.code:
        prefix += department.code[:2].upper()
    return f"{prefix}{_next_sequence(prefix):03d}"


@transaction.atomic
def bulk_update_prices(category, adjustment_type, value):
    """Percentage (``value`` may be negative) or fixed increment for one category."""
    validate_category(category)
    value = Decimal(str(value))
    services = ServiceCatalogue.objects.filter(category=category)

    if adjustment_type == 'percentage':
        multiplier = Decimal('1') + value / Decimal('100')
        if multiplier < 0:
            raise UnprocessableError('Adjustment would make prices negative')
        updated = services.update(unit_price=F('unit_price') * multiplier)
    elif adjustment_type == 'fixed':
        if services.filter(unit_price__lt=-value).exists():
            raise UnprocessableError('Adjustment would make prices negative')
        updated = services.update(unit_price=F('unit_price') + value)
    else:
        raise UnprocessableError(f"Unknown adjustment type '{adjustment_type}'")

    logger.info(f"Adjusted {updated} {category} prices ({adjustment_type} {value})")
    return updated


def delete_service(service):
    from apps.billing.models import BillingItem

    used = BillingItem.objects.filter(service_code=service.code).count()
    if used:
        raise ConflictError(f'Cannot delete service. It is being used in {used} billing items.')
    service.delete()
    logger.info(f"Service {service.code} deleted")
