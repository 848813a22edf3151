"""
Invoice generation from billing accounts, and the backfill job for
accounts billed before invoicing was switched on.
"""

import logging

from django.db import transaction
from django.db.models import Exists, OuterRef

from .models import BillingAccount, Invoice

logger = logging.getLogger(__name__)


def invoice_status(amount_paid, balance):
    if balance <= 0:
        return 'paid'
    if amount_paid > 0:
        return 'partial'
    return 'unpaid'


@transaction.atomic
def generate_from_billing_account(account, user=None):
    account.recalculate()
    invoice = Invoice.objects.create(
        account=account,
        patient=account.patient,
        total_amount=account.total_amount,
        discount_amount=account.discount_amount,
        net_amount=account.net_amount,
        amount_paid=account.amount_paid,
        balance=account.balance,
        status=invoice_status(account.amount_paid, account.balance),
        generated_by=user if user is not None and user.is_authenticated else None,
    )
    account.payments.filter(invoice__isnull=True).update(invoice=invoice)
    logger.info(f"Invoice {invoice.invoice_number} generated for {account.account_number}")
    return invoice


def accounts_missing_invoices():
    return BillingAccount.objects.filter(total_amount__gt=0).exclude(
        Exists(Invoice.objects.filter(account=OuterRef('pk')))
    ).select_related('patient')


def generate_missing_invoices():
    """
    One invoice per billed account that has none. Safe to re-run: accounts
    already invoiced are skipped. A failing account is logged and skipped.
    """
    accounts = list(accounts_missing_invoices())
    generated = 0
    errors = []

    for account in accounts:
        try:
            generate_from_billing_account(account)
            generated += 1
        except Exception as e:
            logger.exception(f"Failed to generate invoice for billing account {account.pk}")
            errors.append({'account_id': account.pk, 'error': str(e)})

    logger.info(f"Invoice backfill: {generated} of {len(accounts)} generated, {len(errors)} errors")
    return {
        'total_accounts': len(accounts),
        'generated': generated,
        'errors': errors,
    }
