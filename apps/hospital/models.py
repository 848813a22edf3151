from django.db import models
from django.core.exceptions import ValidationError


class Hospital(models.Model):
    """
    Hospital/Clinic configuration - Singleton model.
    Only one instance allowed in the entire system.
    """
    TYPE_CHOICES = [
        ('clinic', 'Clinic'),
        ('hospital', 'Hospital'),
    ]

    # Basic Information
    name = models.CharField(max_length=200)
    type = models.CharField(
        max_length=20,
        choices=TYPE_CHOICES,
        default='hospital'
    )
    tagline = models.CharField(max_length=300, blank=True, null=True)

    # Contact Information
    email = models.EmailField()
    phone = models.CharField(max_length=15)
    website = models.URLField(blank=True, null=True)

    # Address
    address = models.TextField()
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    country = models.CharField(max_length=100, default='India')
    pincode = models.CharField(max_length=10)

    logo = models.ImageField(upload_to='hospital/', blank=True, null=True)

    # Services
    has_emergency = models.BooleanField(default=True)
    has_pharmacy = models.BooleanField(default=True)
    has_laboratory = models.BooleanField(default=True)
    registration_number = models.CharField(max_length=100, blank=True, null=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'hospital_config'
        verbose_name = 'Hospital Configuration'
        verbose_name_plural = 'Hospital Configuration'

    def __str__(self):
        return f"{self.name} ({self.get_type_display()})"

    def save(self, *args, **kwargs):
        """Enforce singleton pattern - only one hospital allowed"""
        if not self.pk and Hospital.objects.exists():
            raise ValidationError(
                'Hospital configuration already exists. '
                'Please update the existing record instead of creating a new one.'
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Hospital configuration cannot be deleted.')

    @classmethod
    def get_hospital(cls):
        """Get the hospital instance (singleton) or None"""
        return cls.objects.first()

    @property
    def full_address(self):
        return f"{self.address}, {self.city}, {self.state} {self.pincode}, {self.country}"


class Branch(models.Model):
    """A physical site of the hospital; billing and reports filter by branch."""

    name = models.CharField(max_length=200)
    code = models.CharField(max_length=20, unique=True)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=15, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'branches'
        ordering = ['name']
        verbose_name_plural = 'Branches'

    def __str__(self):
        return f"{self.name} ({self.code})"


class SystemSetting(models.Model):
    """
    Runtime-editable business setting.

    Values are stored as JSON and read back through
    ``apps.hospital.settings_store`` which casts them to ``value_type``.
    """
    VALUE_TYPE_CHOICES = [
        ('str', 'Text'),
        ('int', 'Integer'),
        ('decimal', 'Decimal'),
        ('bool', 'Boolean'),
        ('json', 'JSON'),
    ]

    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(null=True, blank=True)
    value_type = models.CharField(
        max_length=10,
        choices=VALUE_TYPE_CHOICES,
        default='str'
    )
    description = models.CharField(max_length=255, blank=True)
    updated_by = models.ForeignKey(
        'auth.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='updated_settings'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'system_settings'
        ordering = ['key']

    def __str__(self):
        return self.key
