from django.conf import settings
from django.db import models
from django.utils import timezone


class BedAssignmentQuerySet(models.QuerySet):

    def active(self):
        return self.filter(released_at__isnull=True)


class BedAssignment(models.Model):
    """
    Links a bed to an inpatient encounter.
    ``released_at`` stays null while the patient occupies the bed.
    """

    bed = models.ForeignKey(
        'masterdata.Bed',
        on_delete=models.PROTECT,
        related_name='assignments'
    )
    encounter = models.ForeignKey(
        'patients.Encounter',
        on_delete=models.CASCADE,
        related_name='bed_assignments'
    )
    assigned_at = models.DateTimeField(default=timezone.now)
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bed_assignments_made'
    )
    released_at = models.DateTimeField(null=True, blank=True)
    released_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bed_assignments_released'
    )
    notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BedAssignmentQuerySet.as_manager()

    class Meta:
        db_table = 'bed_assignments'
        ordering = ['-assigned_at']
        indexes = [
            models.Index(fields=['bed', 'released_at'], name='bed_assignment_active_idx'),
            models.Index(fields=['encounter', 'released_at'], name='encounter_assignment_idx'),
        ]

    def __str__(self):
        return f"{self.encounter} -> {self.bed}"

    @property
    def is_active(self):
        return self.released_at is None
