from django.conf import settings
from django.db import models
from django.utils import timezone


class OpdAppointment(models.Model):
    """
    Outpatient appointment.

    The appointment shares its primary key with its OPD encounter, so the
    appointment id is also the encounter id that orders and prescriptions
    link to.
    """
    SCHEDULED = 'SCHEDULED'
    CONFIRMED = 'CONFIRMED'
    WAITING = 'WAITING'
    CHECKED_IN = 'CHECKED_IN'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'

    STATUS_CHOICES = [
        (SCHEDULED, 'Scheduled'),
        (CONFIRMED, 'Confirmed'),
        (WAITING, 'Waiting'),
        (CHECKED_IN, 'Checked In'),
        (IN_PROGRESS, 'In Progress'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
        (NO_SHOW, 'No Show'),
    ]

    # Statuses shown in the consultation queue
    QUEUE_STATUSES = [WAITING, CHECKED_IN, IN_PROGRESS]

    TYPE_CHOICES = [
        ('walk_in', 'Walk-in'),
        ('scheduled', 'Scheduled'),
        ('follow_up', 'Follow-up'),
        ('emergency_referral', 'Emergency Referral'),
    ]

    TRIAGE_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('skipped', 'Skipped'),
    ]

    TRIAGE_LEVEL_CHOICES = [
        ('emergency', 'Emergency'),
        ('urgent', 'Urgent'),
        ('non-urgent', 'Non-urgent'),
        ('routine', 'Routine'),
    ]

    encounter = models.OneToOneField(
        'patients.Encounter',
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='opd_appointment'
    )
    appointment_number = models.CharField(max_length=30, unique=True, editable=False)
    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.PROTECT,
        related_name='opd_appointments'
    )
    physician = models.ForeignKey(
        'doctors.Physician',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='opd_appointments'
    )
    department = models.ForeignKey(
        'masterdata.Department',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='opd_appointments'
    )
    emergency_patient = models.ForeignKey(
        'emergency.EmergencyPatient',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='opd_appointments',
        help_text="Set when the patient was dispositioned from emergency triage"
    )

    appointment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='walk_in')
    appointment_date = models.DateField(default=timezone.localdate)
    appointment_time = models.TimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=SCHEDULED)
    queue_number = models.PositiveIntegerField(null=True, blank=True)
    chief_complaint = models.TextField(blank=True, default='')
    notes = models.TextField(blank=True, default='')

    # Triage
    triage_status = models.CharField(max_length=20, choices=TRIAGE_STATUS_CHOICES, default='pending')
    triage_level = models.CharField(max_length=20, choices=TRIAGE_LEVEL_CHOICES, blank=True, default='')
    triage_score = models.PositiveIntegerField(null=True, blank=True)
    red_flags = models.TextField(blank=True, default='')
    temperature = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    blood_pressure = models.CharField(max_length=20, blank=True, default='')
    heart_rate = models.PositiveIntegerField(null=True, blank=True)
    respiratory_rate = models.PositiveIntegerField(null=True, blank=True)
    oxygen_saturation = models.PositiveIntegerField(null=True, blank=True)
    pain_level = models.PositiveSmallIntegerField(null=True, blank=True)
    weight = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    height = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    triage_notes = models.TextField(blank=True, default='')
    triaged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='triaged_appointments'
    )
    triaged_at = models.DateTimeField(null=True, blank=True)

    # Timing
    checked_in_at = models.DateTimeField(null=True, blank=True)
    consultation_started_at = models.DateTimeField(null=True, blank=True)
    consultation_completed_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_opd_appointments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'opd_appointments'
        ordering = ['-appointment_date', 'queue_number']
        verbose_name = 'OPD Appointment'
        verbose_name_plural = 'OPD Appointments'
        indexes = [
            models.Index(fields=['appointment_date', 'status'], name='opd_date_status_idx'),
            models.Index(fields=['physician', 'appointment_date'], name='opd_physician_date_idx'),
        ]

    def __str__(self):
        return self.appointment_number

    def save(self, *args, **kwargs):
        if not self.appointment_number:
            self.appointment_number = self.generate_appointment_number(self.appointment_date)
        super().save(*args, **kwargs)

    @staticmethod
    def generate_appointment_number(appointment_date=None):
        """OPD-YYYYMMDD-NNNN numbered per appointment date"""
        appointment_date = appointment_date or timezone.localdate()
        prefix = f"OPD-{appointment_date.strftime('%Y%m%d')}-"
        last = OpdAppointment.objects.filter(
            appointment_number__startswith=prefix
        ).order_by('-appointment_number').first()
        num = int(last.appointment_number.split('-')[-1]) + 1 if last else 1
        return f"{prefix}{num:04d}"

    @property
    def is_completed(self):
        return self.status == self.COMPLETED

    @property
    def waiting_minutes(self):
        """Minutes between check-in and consultation start (or now)."""
        if not self.checked_in_at:
            return 0
        end = self.consultation_started_at or timezone.now()
        return max(0, int((end - self.checked_in_at).total_seconds() // 60))

    @property
    def consultation_minutes(self):
        if not self.consultation_started_at:
            return 0
        end = self.consultation_completed_at or timezone.now()
        return max(0, int((end - self.consultation_started_at).total_seconds() // 60))
