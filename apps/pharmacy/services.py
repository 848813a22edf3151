"""
Prescription workflow: validation, allergy and interaction checks and
stock reservation for instant dispensing.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from common.exceptions import DomainError, UnprocessableError
from .models import DrugFormulary, Prescription, StockMovement

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ['dosage', 'frequency', 'duration', 'quantity']


def _user_or_none(user):
    return user if user is not None and user.is_authenticated else None


def validate_required_fields(data):
    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise UnprocessableError(
            f"Required fields missing: {', '.join(missing)}",
            errors={field: ['This field is required.'] for field in missing}
        )


def check_allergies(patient, drug):
    """Allergens of ``patient`` found in the drug's name, generic name or class."""
    if drug is None:
        return []
    haystacks = [
        (drug.name or '').lower(),
        (drug.generic_name or '').lower(),
        (drug.therapeutic_class or '').lower(),
    ]
    return [
        allergen for allergen in patient.active_allergens()
        if allergen.strip() and any(allergen.strip().lower() in text for text in haystacks)
    ]


def check_drug_interactions(patient, drug, exclude_id=None):
    """
    Warnings against the patient's current prescriptions.

    Same therapeutic class, or a contraindication mentioning the other drug.
    """
    if drug is None:
        return []

    current = Prescription.objects.filter(
        patient=patient,
        status__in=Prescription.CURRENT_STATUSES,
        drug__isnull=False,
    ).select_related('drug')
    if exclude_id:
        current = current.exclude(pk=exclude_id)

    interactions = []
    for prescription in current:
        existing = prescription.drug
        if existing.pk == drug.pk:
            continue

        if drug.therapeutic_class and drug.therapeutic_class == existing.therapeutic_class:
            interactions.append({
                'drug_name': existing.name,
                'interaction_type': 'therapeutic_class',
                'message': (
                    f"Potential interaction: both drugs belong to the same "
                    f"therapeutic class ({drug.therapeutic_class})"
                ),
            })

        for contraindication in drug.contraindications or []:
            text = str(contraindication).lower()
            if existing.generic_name.lower() in text or existing.name.lower() in text:
                interactions.append({
                    'drug_name': existing.name,
                    'interaction_type': 'contraindication',
                    'message': f"Contraindication: {contraindication}",
                })
    return interactions


def _screen(patient, drug, data, exclude_id=None):
    """Block on allergy, attach interaction warnings to ``prescription_data``."""
    allergens = check_allergies(patient, drug)
    if allergens:
        logger.warning(
            f"Prescription of {drug} blocked for patient {patient.patient_id}: "
            f"allergic to {', '.join(allergens)}"
        )
        raise UnprocessableError(
            'Patient is allergic to this medication. Prescription blocked.',
            errors={'drug': [f"Allergy: {', '.join(allergens)}"]}
        )

    interactions = check_drug_interactions(patient, drug, exclude_id=exclude_id)
    prescription_data = dict(data.get('prescription_data') or {})
    if interactions:
        prescription_data['drug_interactions'] = interactions
    else:
        prescription_data.pop('drug_interactions', None)
    data['prescription_data'] = prescription_data
    return interactions


@transaction.atomic
def create_prescription(data, user=None):
    """
    ``data`` holds model field values (patient, encounter, drug, ...).
    Returns the saved prescription; interaction warnings are in
    ``prescription.prescription_data['drug_interactions']``.
    """
    data = dict(data)
    validate_required_fields(data)

    patient = data['patient']
    drug = data.get('drug')
    if drug is not None and not data.get('drug_name'):
        data['drug_name'] = f"{drug.name} {drug.strength}".strip()
    if not data.get('drug_name'):
        raise DomainError('Either drug or drug_name is required')

    _screen(patient, drug, data)

    if data.get('instant_dispensing'):
        if drug is None or not data.get('quantity'):
            raise UnprocessableError('Drug and quantity are required for instant dispensing.')
        if drug.stock_quantity < data['quantity']:
            raise UnprocessableError('Insufficient stock for instant dispensing.')

    prescription = Prescription.objects.create(created_by=_user_or_none(user), **data)
    if prescription.instant_dispensing:
        reserve_stock(prescription, user)

    logger.info(
        f"Prescription {prescription.pk} ({prescription.drug_name}) created on encounter "
        f"{prescription.encounter_id}"
    )
    return prescription


@transaction.atomic
def update_prescription(prescription, data, user=None):
    """Apply ``data``; the encounter/patient linkage never changes here."""
    data = {k: v for k, v in data.items() if k not in ('patient', 'encounter')}
    merged = {field: getattr(prescription, field) for field in REQUIRED_FIELDS}
    merged.update(data)
    validate_required_fields(merged)

    drug = data.get('drug', prescription.drug)
    if 'drug' in data:
        if drug is not None and 'drug_name' not in data:
            data['drug_name'] = f"{drug.name} {drug.strength}".strip()
        data.setdefault('prescription_data', prescription.prescription_data)
        _screen(prescription.patient, drug, data, exclude_id=prescription.pk)

    if prescription.stock_reserved and (
        'drug' in data or 'quantity' in data or data.get('instant_dispensing') is False
    ):
        release_stock(prescription, user)

    for field, value in data.items():
        setattr(prescription, field, value)
    prescription.save()

    if (prescription.instant_dispensing and not prescription.stock_reserved
            and prescription.status == 'pending'):
        reserve_stock(prescription, user)
    return prescription


def reserve_stock(prescription, user=None):
    """Take the prescribed quantity out of stock until dispensed or released."""
    if prescription.drug_id is None:
        raise UnprocessableError('Drug formulary not found for prescription.')

    updated = DrugFormulary.objects.filter(
        pk=prescription.drug_id,
        stock_quantity__gte=prescription.quantity
    ).update(stock_quantity=F('stock_quantity') - prescription.quantity)
    if not updated:
        raise UnprocessableError('Insufficient stock for instant dispensing.')

    prescription.stock_reserved = True
    prescription.stock_reserved_at = timezone.now()
    prescription.save(update_fields=['stock_reserved', 'stock_reserved_at', 'updated_at'])

    StockMovement.objects.create(
        drug_id=prescription.drug_id,
        movement_type='RESERVATION',
        quantity=prescription.quantity,
        reference_no=f'PRESCRIPTION-{prescription.pk}',
        user=_user_or_none(user),
        remarks=f'Stock reserved for instant dispensing prescription #{prescription.pk}',
    )
    logger.info(f"Reserved {prescription.quantity} of drug {prescription.drug_id} for prescription {prescription.pk}")


def release_stock(prescription, user=None, reason=''):
    """Return reserved stock; no-op when nothing is reserved."""
    if not prescription.stock_reserved or prescription.drug_id is None:
        return False

    DrugFormulary.objects.filter(pk=prescription.drug_id).update(
        stock_quantity=F('stock_quantity') + prescription.quantity
    )
    prescription.stock_reserved = False
    prescription.stock_reserved_at = None
    prescription.save(update_fields=['stock_reserved', 'stock_reserved_at', 'updated_at'])

    StockMovement.objects.create(
        drug_id=prescription.drug_id,
        movement_type='RETURN',
        quantity=prescription.quantity,
        reference_no=f'PRESCRIPTION-{prescription.pk}',
        user=_user_or_none(user),
        remarks=reason or f'Stock released from prescription #{prescription.pk}',
    )
    logger.info(f"Released {prescription.quantity} of drug {prescription.drug_id} from prescription {prescription.pk}")
    return True


@transaction.atomic
def dispense_prescription(prescription, user=None):
    if prescription.status in ('dispensed', 'completed', 'cancelled'):
        raise UnprocessableError(f'Prescription is already {prescription.status}')
    if prescription.drug_id is None:
        raise UnprocessableError('Only formulary drugs can be dispensed')

    if not prescription.stock_reserved:
        updated = DrugFormulary.objects.filter(
            pk=prescription.drug_id,
            stock_quantity__gte=prescription.quantity
        ).update(stock_quantity=F('stock_quantity') - prescription.quantity)
        if not updated:
            raise UnprocessableError('Insufficient stock to dispense')

    StockMovement.objects.create(
        drug_id=prescription.drug_id,
        movement_type='DISPENSE',
        quantity=prescription.quantity,
        reference_no=f'PRESCRIPTION-{prescription.pk}',
        user=_user_or_none(user),
        remarks=f'Dispensed prescription #{prescription.pk}',
    )

    prescription.status = 'dispensed'
    prescription.stock_reserved = False
    prescription.stock_reserved_at = None
    prescription.dispensed_at = timezone.now()
    prescription.dispensed_by = _user_or_none(user)
    prescription.save()
    return prescription


@transaction.atomic
def cancel_prescription(prescription, user=None):
    if prescription.status in ('dispensed', 'completed'):
        raise UnprocessableError('Dispensed prescriptions cannot be cancelled')
    release_stock(prescription, user, reason=f'Prescription #{prescription.pk} cancelled')
    prescription.status = 'cancelled'
    prescription.save(update_fields=['status', 'updated_at'])
    return prescription


def release_expired_reservations(minutes=None):
    """
    Release reservations older than ``minutes``
    (``STOCK_RESERVATION_MINUTES`` by default). A failing prescription is
    logged and skipped.
    """
    minutes = minutes if minutes is not None else settings.STOCK_RESERVATION_MINUTES
    cutoff = timezone.now() - timedelta(minutes=minutes)
    expired = Prescription.objects.filter(
        stock_reserved=True,
        stock_reserved_at__lt=cutoff,
    ).exclude(status__in=['dispensed', 'completed'])

    released = 0
    failed = 0
    for prescription in expired:
        try:
            with transaction.atomic():
                if release_stock(prescription, reason=f'Reservation expired after {minutes} minutes'):
                    released += 1
        except Exception:
            failed += 1
            logger.exception(f"Failed to release reservation for prescription {prescription.pk}")

    if released or failed:
        logger.info(f"Released {released} expired stock reservations ({failed} failed)")
    return {'released': released, 'failed': failed}
