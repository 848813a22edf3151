"""
Billing account workflow: items, payments and discounts.
Every write re-derives the account totals through ``recalculate()``.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from common.exceptions import ConflictError, UnprocessableError
from .models import BillingAccount, BillingItem, Payment

logger = logging.getLogger(__name__)


def _user_or_none(user):
    return user if user is not None and user.is_authenticated else None


def ensure_open(account):
    if account.status != 'open':
        raise UnprocessableError(f'Billing account is {account.status}')


@transaction.atomic
def open_account(encounter, user=None, branch=None):
    """One open account per encounter; returns the existing one if present."""
    existing = BillingAccount.objects.filter(encounter=encounter, status='open').first()
    if existing is not None:
        return existing

    account = BillingAccount.objects.create(
        patient=encounter.patient,
        encounter=encounter,
        branch=branch or encounter.branch,
        created_by=_user_or_none(user),
    )
    logger.info(f"Billing account {account.account_number} opened for encounter {encounter.encounter_number}")
    return account


@transaction.atomic
def add_item(account, data):
    ensure_open(account)
    item = BillingItem.objects.create(account=account, **data)
    account.recalculate()
    return item


@transaction.atomic
def record_payment(account, amount, method='cash', reference_no='', user=None):
    ensure_open(account)
    amount = Decimal(amount)
    if amount <= 0:
        raise UnprocessableError('Payment amount must be greater than zero')
    if amount > account.balance:
        raise UnprocessableError(
            f'Payment of {amount} exceeds outstanding balance {account.balance}',
            errors={'amount': ['Exceeds outstanding balance']}
        )

    payment = Payment.objects.create(
        account=account,
        branch=account.branch,
        amount=amount,
        method=method,
        reference_no=reference_no or '',
        received_by=_user_or_none(user),
        invoice=account.invoices.order_by('-issued_at').first(),
    )
    account.recalculate()
    logger.info(f"Payment {payment.payment_number} of {amount} ({method}) on {account.account_number}")
    return payment


@transaction.atomic
def apply_discount(account, discount_type, value, reason, user=None):
    """
    ``percentage``: ``value`` is 0-100 of the total.
    ``fixed``: ``value`` is an amount up to the total.
    ``none``: removes the discount.
    """
    ensure_open(account)
    value = Decimal(value or 0)

    if discount_type == 'none':
        account.discount_percentage = Decimal('0')
        account.discount_amount = Decimal('0')
        account.discount_reason = None
        account.discount_approved_by = None
        account.discount_approved_at = None
    else:
        if discount_type == 'percentage':
            if not Decimal('0') < value <= Decimal('100'):
                raise UnprocessableError(
                    'Discount percentage must be between 0 and 100',
                    errors={'value': ['Must be between 0 and 100']}
                )
            account.discount_percentage = value
        elif discount_type == 'fixed':
            if value <= 0 or value > account.total_amount:
                raise UnprocessableError(
                    'Fixed discount must be positive and not exceed the account total',
                    errors={'value': [f'Must be between 0 and {account.total_amount}']}
                )
            account.discount_percentage = Decimal('0')
            account.discount_amount = value
        else:
            raise UnprocessableError(f"Unknown discount type '{discount_type}'")

        account.discount_reason = reason or None
        account.discount_approved_by = _user_or_none(user)
        account.discount_approved_at = timezone.now()

    account.discount_type = discount_type
    account.save(update_fields=[
        'discount_type', 'discount_percentage', 'discount_amount', 'discount_reason',
        'discount_approved_by', 'discount_approved_at', 'updated_at'
    ])
    account.recalculate()

    if account.amount_paid > account.net_amount:
        raise ConflictError('Discount would leave the account overpaid')

    logger.info(
        f"Discount {discount_type} ({value}) applied to {account.account_number}: "
        f"{account.discount_amount} by {user}"
    )
    return account


@transaction.atomic
def close_account(account, status='closed'):
    ensure_open(account)
    account.recalculate()
    if account.balance > 0:
        raise UnprocessableError(
            f'Cannot close account with outstanding balance {account.balance}'
        )
    account.status = status
    account.save(update_fields=['status', 'updated_at'])
    logger.info(f"Billing account {account.account_number} {status}")
    return account
