from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone

ZERO = Decimal('0.00')


def _next_number(model, field, prefix):
    """``<prefix>YYYYMMDD-NNNN`` numbered per day"""
    stem = f"{prefix}{timezone.localdate().strftime('%Y%m%d')}-"
    last = model.objects.filter(
        **{f'{field}__startswith': stem}
    ).order_by(f'-{field}').values_list(field, flat=True).first()
    num = int(last.split('-')[-1]) + 1 if last else 1
    return f"{stem}{num:04d}"


class BillingAccount(models.Model):
    """
    Running bill of one encounter.
    Totals are denormalized from items and payments by ``recalculate()``.
    """
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('closed', 'Closed'),
        ('discharged', 'Discharged'),
    ]

    DISCOUNT_TYPE_CHOICES = [
        ('none', 'None'),
        ('percentage', 'Percentage'),
        ('fixed', 'Fixed Amount'),
    ]

    account_number = models.CharField(max_length=30, unique=True, editable=False)
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='billing_accounts'
    )
    encounter = models.ForeignKey(
        'patients.Encounter',
        on_delete=models.PROTECT,
        related_name='billing_accounts'
    )
    branch = models.ForeignKey(
        'hospital.Branch',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='billing_accounts'
    )

    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES, default='none')
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount_reason = models.TextField(blank=True, null=True)
    discount_approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='approved_discounts'
    )
    discount_approved_at = models.DateTimeField(null=True, blank=True)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_billing_accounts'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'billing_accounts'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='billing_status_idx'),
            models.Index(fields=['branch', 'created_at'], name='billing_branch_date_idx'),
        ]

    def __str__(self):
        return f"{self.account_number} - {self.patient}"

    def save(self, *args, **kwargs):
        if not self.account_number:
            self.account_number = _next_number(BillingAccount, 'account_number', 'BA-')
        super().save(*args, **kwargs)

    def recalculate(self, save=True):
        """Re-derive totals, discount, net, paid and balance."""
        self.total_amount = self.items.aggregate(total=Sum('amount'))['total'] or ZERO
        if self.discount_type == 'percentage':
            self.discount_amount = (
                self.total_amount * self.discount_percentage / Decimal('100')
            ).quantize(Decimal('0.01'))
        elif self.discount_type == 'none':
            self.discount_amount = ZERO
        self.discount_amount = min(self.discount_amount, self.total_amount)
        self.net_amount = self.total_amount - self.discount_amount
        self.amount_paid = self.payments.aggregate(total=Sum('amount'))['total'] or ZERO
        self.balance = self.net_amount - self.amount_paid
        if save:
            self.save(update_fields=[
                'total_amount', 'discount_amount', 'net_amount',
                'amount_paid', 'balance', 'updated_at'
            ])
        return self


class BillingItem(models.Model):
    ITEM_TYPE_CHOICES = [
        ('consultation', 'Consultation'),
        ('lab', 'Laboratory'),
        ('pharmacy', 'Pharmacy'),
        ('procedure', 'Procedure'),
        ('room', 'Room Charges'),
        ('emergency', 'Emergency'),
        ('service', 'Service'),
        ('other', 'Other'),
    ]

    account = models.ForeignKey(
        BillingAccount,
        on_delete=models.CASCADE,
        related_name='items'
    )
    item_type = models.CharField(max_length=20, choices=ITEM_TYPE_CHOICES, default='service')
    service_code = models.CharField(max_length=50, blank=True, default='')
    description = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(ZERO)]
    )
    discount_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=ZERO,
        validators=[MinValueValidator(ZERO)]
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'billing_items'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.description} x {self.quantity}"

    def save(self, *args, **kwargs):
        self.amount = self.unit_price * self.quantity - self.discount_amount
        super().save(*args, **kwargs)


class Invoice(models.Model):
    STATUS_CHOICES = [
        ('unpaid', 'Unpaid'),
        ('partial', 'Partially Paid'),
        ('paid', 'Paid'),
    ]

    invoice_number = models.CharField(max_length=30, unique=True, editable=False)
    account = models.ForeignKey(
        BillingAccount,
        on_delete=models.PROTECT,
        related_name='invoices'
    )
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='invoices'
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='unpaid')
    issued_at = models.DateTimeField(default=timezone.now)
    generated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='generated_invoices'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'invoices'
        ordering = ['-issued_at']

    def __str__(self):
        return self.invoice_number

    def save(self, *args, **kwargs):
        if not self.invoice_number:
            self.invoice_number = _next_number(Invoice, 'invoice_number', 'INV-')
        super().save(*args, **kwargs)


class Payment(models.Model):
    METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('upi', 'UPI'),
        ('net_banking', 'Net Banking'),
        ('cheque', 'Cheque'),
        ('insurance', 'Insurance'),
        ('other', 'Other'),
    ]

    payment_number = models.CharField(max_length=30, unique=True, editable=False)
    account = models.ForeignKey(
        BillingAccount,
        on_delete=models.PROTECT,
        related_name='payments'
    )
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    branch = models.ForeignKey(
        'hospital.Branch',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default='cash')
    reference_no = models.CharField(max_length=100, blank=True, default='')
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='received_payments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['created_at'], name='payment_date_idx'),
            models.Index(fields=['method'], name='payment_method_idx'),
        ]

    def __str__(self):
        return f"{self.payment_number} - {self.amount}"

    def save(self, *args, **kwargs):
        if not self.payment_number:
            self.payment_number = _next_number(Payment, 'payment_number', 'PAY-')
        super().save(*args, **kwargs)
