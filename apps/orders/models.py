from django.conf import settings
from django.db import models
from django.utils import timezone


class LabOrder(models.Model):
    """
    Laboratory test ordered during an encounter.
    The encounter is fixed at creation; later edits never move an order.
    """
    PRIORITY_URGENT = 'urgent'
    PRIORITY_FAST = 'fast'
    PRIORITY_NORMAL = 'normal'

    PRIORITY_CHOICES = [
        (PRIORITY_URGENT, 'Urgent'),
        (PRIORITY_FAST, 'Fast'),
        (PRIORITY_NORMAL, 'Normal'),
    ]

    # Turnaround in hours; normal priority uses the test's own turnaround
    PRIORITY_TURNAROUND_HOURS = {
        PRIORITY_URGENT: 2,
        PRIORITY_FAST: 6,
    }
    DEFAULT_TURNAROUND_HOURS = 24

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('collected', 'Sample Collected'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    order_number = models.CharField(max_length=30, unique=True, editable=False)
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='lab_orders'
    )
    encounter = models.ForeignKey(
        'patients.Encounter',
        on_delete=models.PROTECT,
        related_name='lab_orders'
    )
    physician = models.ForeignKey(
        'doctors.Physician',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='lab_orders'
    )
    test = models.ForeignKey(
        'masterdata.LabTest',
        on_delete=models.PROTECT,
        related_name='orders'
    )
    test_name = models.CharField(max_length=200)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    clinical_notes = models.TextField(blank=True, default='')
    expected_completion_at = models.DateTimeField(null=True, blank=True)

    # Results
    sample_collected_at = models.DateTimeField(null=True, blank=True)
    result_value = models.TextField(blank=True, default='')
    result_notes = models.TextField(blank=True, default='')
    completed_at = models.DateTimeField(null=True, blank=True)
    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reported_lab_orders'
    )

    ordered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='lab_orders'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'lab_orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['encounter'], name='lab_order_encounter_idx'),
            models.Index(fields=['status', 'priority'], name='lab_order_status_idx'),
        ]

    def __str__(self):
        return f"{self.order_number} - {self.test_name}"

    def save(self, *args, **kwargs):
        if not self.order_number:
            self.order_number = self.generate_order_number()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_order_number():
        """LAB-YYYYMMDD-NNNN"""
        today = timezone.localdate()
        prefix = f"LAB-{today.strftime('%Y%m%d')}-"
        last = LabOrder.objects.filter(
            order_number__startswith=prefix
        ).order_by('-order_number').first()
        num = int(last.order_number.split('-')[-1]) + 1 if last else 1
        return f"{prefix}{num:04d}"

    def turnaround_hours(self):
        hours = self.PRIORITY_TURNAROUND_HOURS.get(self.priority)
        if hours is None:
            hours = (self.test.turnaround_hours if self.test_id else None) or self.DEFAULT_TURNAROUND_HOURS
        return hours

    @property
    def is_overdue(self):
        return (
            self.status not in ('completed', 'cancelled')
            and self.expected_completion_at is not None
            and self.expected_completion_at < timezone.now()
        )
