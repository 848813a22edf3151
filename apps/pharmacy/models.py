from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal


class DrugFormulary(models.Model):
    """Drug stocked by the hospital pharmacy"""

    FORM_CHOICES = [
        ('tablet', 'Tablet'),
        ('capsule', 'Capsule'),
        ('syrup', 'Syrup'),
        ('injection', 'Injection'),
        ('ointment', 'Ointment'),
        ('drops', 'Drops'),
        ('inhaler', 'Inhaler'),
        ('other', 'Other'),
    ]

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('discontinued', 'Discontinued'),
    ]

    name = models.CharField(max_length=255)
    generic_name = models.CharField(max_length=255)
    brand_name = models.CharField(max_length=255, blank=True, default='')
    strength = models.CharField(max_length=50, blank=True, default='')
    form = models.CharField(max_length=20, choices=FORM_CHOICES, default='tablet')
    therapeutic_class = models.CharField(max_length=100, blank=True, default='')
    contraindications = models.JSONField(
        default=list,
        blank=True,
        help_text="Free-text contraindications, e.g. 'Do not combine with warfarin'"
    )
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    reorder_level = models.PositiveIntegerField(default=10)
    expiry_date = models.DateField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'drug_formulary'
        ordering = ['name']
        verbose_name_plural = 'Drug Formulary'
        indexes = [
            models.Index(fields=['status'], name='drug_status_idx'),
            models.Index(fields=['generic_name'], name='drug_generic_idx'),
        ]

    def __str__(self):
        return f"{self.name} {self.strength}".strip()

    @property
    def is_in_stock(self):
        return self.stock_quantity > 0

    @property
    def low_stock_warning(self):
        return self.stock_quantity <= self.reorder_level


class StockMovement(models.Model):
    MOVEMENT_TYPE_CHOICES = [
        ('RECEIPT', 'Receipt'),
        ('DISPENSE', 'Dispense'),
        ('RESERVATION', 'Reservation'),
        ('RETURN', 'Return'),
        ('ADJUSTMENT', 'Adjustment'),
    ]

    drug = models.ForeignKey(
        DrugFormulary,
        on_delete=models.CASCADE,
        related_name='stock_movements'
    )
    movement_type = models.CharField(max_length=20, choices=MOVEMENT_TYPE_CHOICES)
    quantity = models.IntegerField()
    reference_no = models.CharField(max_length=100, blank=True, default='')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='stock_movements'
    )
    remarks = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.movement_type} {self.quantity} x {self.drug}"


class Prescription(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('active', 'Active'),
        ('dispensed', 'Dispensed'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    # Statuses that count as current medication for interaction checks
    CURRENT_STATUSES = ['pending', 'active', 'dispensed']

    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='prescriptions'
    )
    encounter = models.ForeignKey(
        'patients.Encounter',
        on_delete=models.PROTECT,
        related_name='prescriptions'
    )
    physician = models.ForeignKey(
        'doctors.Physician',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='prescriptions'
    )
    drug = models.ForeignKey(
        DrugFormulary,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='prescriptions'
    )
    drug_name = models.CharField(max_length=255)
    dosage = models.CharField(max_length=100)
    frequency = models.CharField(max_length=100)
    duration = models.CharField(max_length=100)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    route = models.CharField(max_length=50, blank=True, default='oral')
    instructions = models.TextField(blank=True, default='')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    instant_dispensing = models.BooleanField(default=False)
    stock_reserved = models.BooleanField(default=False)
    stock_reserved_at = models.DateTimeField(null=True, blank=True)
    prescription_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Interaction warnings and other clinical annotations"
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='prescriptions_written'
    )
    dispensed_at = models.DateTimeField(null=True, blank=True)
    dispensed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='prescriptions_dispensed'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'prescriptions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['encounter'], name='prescription_encounter_idx'),
            models.Index(fields=['stock_reserved', 'stock_reserved_at'], name='prescription_reserved_idx'),
        ]

    def __str__(self):
        return f"{self.drug_name} for {self.patient}"
