"""
Lab order workflow.

Orders always belong to the encounter they were created under; updates may
change the test, priority or notes but never the encounter or patient.
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from common.exceptions import UnprocessableError
from .models import LabOrder

logger = logging.getLogger(__name__)

LOCKED_FIELDS = ('patient', 'encounter')


def _user_or_none(user):
    return user if user is not None and user.is_authenticated else None


def _expected_completion(order, start=None):
    start = start or order.created_at or timezone.now()
    return start + timedelta(hours=order.turnaround_hours())


@transaction.atomic
def create_lab_order(encounter, data, user=None):
    """Create an order for ``encounter``; patient comes from the encounter."""
    test = data['test']
    if not test.is_active:
        raise UnprocessableError(f"Test '{test.name}' is not available")

    order = LabOrder(
        patient=encounter.patient,
        encounter=encounter,
        physician=data.get('physician') or encounter.physician,
        test=test,
        test_name=data.get('test_name') or test.name,
        priority=data['priority'],
        clinical_notes=data.get('clinical_notes', ''),
        ordered_by=_user_or_none(user),
    )
    order.expected_completion_at = _expected_completion(order, timezone.now())
    order.save()

    logger.info(
        f"Lab order {order.order_number} ({order.test_name}, {order.priority}) "
        f"created on encounter {encounter.pk}"
    )
    return order


@transaction.atomic
def update_lab_order(order, data, user=None):
    if order.status in ('completed', 'cancelled'):
        raise UnprocessableError(f'Lab order is already {order.status}')

    data = {k: v for k, v in data.items() if k not in LOCKED_FIELDS}

    test = data.get('test')
    test_changed = test is not None and test.pk != order.test_id
    if test_changed:
        if not test.is_active:
            raise UnprocessableError(f"Test '{test.name}' is not available")
        order.test = test

    for field in ('priority', 'clinical_notes', 'physician'):
        if field in data:
            setattr(order, field, data[field])

    # A blank name falls back to the catalogue name, as on create
    if data.get('test_name'):
        order.test_name = data['test_name']
    elif test_changed or 'test_name' in data:
        order.test_name = order.test.name

    if 'priority' in data or test is not None:
        order.expected_completion_at = _expected_completion(order)

    order.save()
    return order


def collect_sample(order, user=None):
    if order.status != 'pending':
        raise UnprocessableError('Sample can only be collected for pending orders')
    order.status = 'collected'
    order.sample_collected_at = timezone.now()
    order.save(update_fields=['status', 'sample_collected_at', 'updated_at'])
    return order


def record_result(order, result_value, result_notes='', user=None):
    if order.status in ('completed', 'cancelled'):
        raise UnprocessableError(f'Lab order is already {order.status}')
    order.result_value = result_value
    order.result_notes = result_notes
    order.status = 'completed'
    order.completed_at = timezone.now()
    order.reported_by = _user_or_none(user)
    order.save()
    logger.info(f"Result recorded for lab order {order.order_number}")
    return order


def cancel_lab_order(order, user=None):
    if order.status == 'completed':
        raise UnprocessableError('Completed lab orders cannot be cancelled')
    order.status = 'cancelled'
    order.save(update_fields=['status', 'updated_at'])
    return order
