from django.apps import apps
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Case, CharField, Exists, F, OuterRef, Value, When
from decimal import Decimal


class Department(models.Model):
    """Clinical or administrative department"""

    name = models.CharField(max_length=150)
    code = models.CharField(max_length=20, unique=True)
    branch = models.ForeignKey(
        'hospital.Branch',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='departments'
    )
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'departments'
        ordering = ['name']

    def __str__(self):
        return self.name


class Ward(models.Model):
    WARD_TYPE_CHOICES = [
        ('general', 'General'),
        ('private', 'Private'),
        ('semi_private', 'Semi Private'),
        ('icu', 'ICU'),
        ('emergency', 'Emergency'),
        ('maternity', 'Maternity'),
        ('pediatric', 'Pediatric'),
    ]

    name = models.CharField(max_length=150)
    ward_type = models.CharField(max_length=20, choices=WARD_TYPE_CHOICES, default='general')
    department = models.ForeignKey(
        Department,
        on_delete=models.PROTECT,
        related_name='wards'
    )
    capacity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Maximum number of beds"
    )
    floor = models.CharField(max_length=20, blank=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'wards'
        ordering = ['name']

    def __str__(self):
        return self.name


class BedQuerySet(models.QuerySet):

    def with_occupancy(self):
        """
        Annotate occupancy derived from bed assignments.

        ``is_occupied``: an unreleased assignment exists on an ACTIVE IPD
        encounter. ``effective_status``: 'occupied' when ``is_occupied``,
        'available' when the stored status claims occupied without such an
        assignment, otherwise the stored status.
        """
        BedAssignment = apps.get_model('inpatient', 'BedAssignment')
        active = BedAssignment.objects.filter(
            bed=OuterRef('pk'),
            released_at__isnull=True,
            encounter__encounter_type='IPD',
            encounter__status='ACTIVE',
        )
        return self.annotate(is_occupied=Exists(active)).annotate(
            effective_status=Case(
                When(is_occupied=True, then=Value('occupied')),
                When(status='occupied', then=Value('available')),
                default=F('status'),
                output_field=CharField(),
            )
        )

    def drift(self, preserve_blocked=True):
        """
        Beds whose stored status differs from ``target_status``.

        ``target_status`` is what a reconciliation writes. With
        ``preserve_blocked`` it is the derived ``effective_status``; without
        it every bed lacking an active assignment goes to 'available',
        including maintenance, out_of_order and reserved beds.
        """
        if preserve_blocked:
            target = F('effective_status')
        else:
            target = Case(
                When(is_occupied=True, then=Value('occupied')),
                default=Value('available'),
                output_field=CharField(),
            )
        return self.with_occupancy().annotate(
            target_status=target
        ).exclude(status=F('target_status'))


class Bed(models.Model):
    BED_TYPE_CHOICES = [
        ('standard', 'Standard'),
        ('icu', 'ICU'),
        ('isolation', 'Isolation'),
        ('pediatric', 'Pediatric'),
        ('maternity', 'Maternity'),
    ]

    STATUS_CHOICES = [
        ('available', 'Available'),
        ('occupied', 'Occupied'),
        ('maintenance', 'Maintenance'),
        ('reserved', 'Reserved'),
        ('out_of_order', 'Out of Order'),
    ]

    ward = models.ForeignKey(Ward, on_delete=models.CASCADE, related_name='beds')
    bed_number = models.CharField(max_length=20)
    bed_type = models.CharField(max_length=20, choices=BED_TYPE_CHOICES, default='standard')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='available')
    last_occupied_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BedQuerySet.as_manager()

    class Meta:
        db_table = 'beds'
        ordering = ['ward', 'bed_number']
        constraints = [
            models.UniqueConstraint(fields=['ward', 'bed_number'], name='unique_bed_number_per_ward'),
        ]
        indexes = [
            models.Index(fields=['status'], name='bed_status_idx'),
        ]

    def __str__(self):
        return f"{self.ward.name} / {self.bed_number}"


class LabTestCategory(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'test_categories'
        ordering = ['name']
        verbose_name_plural = 'Test Categories'

    def __str__(self):
        return self.name


class LabTest(models.Model):
    """Orderable laboratory test"""

    name = models.CharField(max_length=200)
    code = models.CharField(max_length=30, unique=True)
    category = models.ForeignKey(
        LabTestCategory,
        on_delete=models.PROTECT,
        related_name='tests'
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    turnaround_hours = models.PositiveIntegerField(
        default=24,
        help_text="Normal-priority turnaround"
    )
    sample_type = models.CharField(max_length=50, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'test_catalogs'
        ordering = ['name']

    def __str__(self):
        return f"{self.code} - {self.name}"


class MasterDataAuditLog(models.Model):
    ACTION_CHOICES = [
        ('created', 'Created'),
        ('updated', 'Updated'),
        ('deactivated', 'Deactivated'),
        ('deleted', 'Deleted'),
    ]

    entity_type = models.CharField(max_length=50)
    entity_id = models.PositiveBigIntegerField()
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    changes = models.JSONField(default=dict, blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='master_data_changes'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'master_data_audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='md_audit_entity_idx'),
        ]

    def __str__(self):
        return f"{self.entity_type}#{self.entity_id} {self.action}"
