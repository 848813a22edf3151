from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal


class Physician(models.Model):
    """Doctor who can be assigned encounters, orders and prescriptions"""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='physician'
    )
    physician_code = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default='')
    specialty = models.CharField(max_length=100, blank=True, default='')
    license_number = models.CharField(max_length=64, blank=True, default='')
    department = models.ForeignKey(
        'masterdata.Department',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='physicians'
    )
    consultation_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'physicians'
        ordering = ['first_name', 'last_name']

    def __str__(self):
        return f"Dr. {self.full_name} ({self.physician_code})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()
