from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class ServiceCatalogue(models.Model):
    """
    Billable service with its list price.
    ``category`` is a key of the configured service categories
    (see ``apps.services.catalogue.get_categories``).
    """
    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=50, db_index=True)
    description = models.TextField(blank=True, null=True)
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00')), MaxValueValidator(Decimal('999999.99'))]
    )
    unit_of_measure = models.CharField(max_length=50, blank=True, default='')
    department = models.ForeignKey(
        'masterdata.Department',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='services'
    )
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00')), MaxValueValidator(Decimal('100.00'))]
    )
    is_active = models.BooleanField(default=True)
    is_billable = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'service_catalogues'
        verbose_name = 'Service'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"

    @property
    def price_with_tax(self):
        return (self.unit_price * (Decimal('1') + self.tax_rate / Decimal('100'))).quantize(Decimal('0.01'))
