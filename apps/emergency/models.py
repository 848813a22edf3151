from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


class EmergencyPatient(models.Model):
    """
    Emergency department arrival.

    Treatment may start before registration, so the patient link is optional
    and a temporary identity is kept until then.
    """
    ARRIVAL_MODE_CHOICES = [
        ('ambulance', 'Ambulance'),
        ('walk_in', 'Walk-in'),
        ('police', 'Police'),
        ('referral', 'Referral'),
    ]

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('admitted', 'Admitted'),
        ('transferred', 'Transferred to OPD'),
        ('discharged', 'Discharged'),
    ]

    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]

    TRIAGE_CATEGORY_CHOICES = [
        ('red', 'Red - Immediate'),
        ('yellow', 'Yellow - Urgent'),
        ('green', 'Green - Minor'),
        ('black', 'Black - Expectant'),
    ]

    patient = models.ForeignKey(
        'patients.Patient',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='emergency_visits'
    )
    encounter = models.OneToOneField(
        'patients.Encounter',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='emergency_patient'
    )
    temp_name = models.CharField(max_length=200, blank=True, default='')
    temp_contact = models.CharField(max_length=20, blank=True, default='')
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True, default='')
    age = models.PositiveIntegerField(null=True, blank=True)

    chief_complaint = models.TextField()
    history_of_present_illness = models.TextField(blank=True, default='')
    arrival_mode = models.CharField(max_length=20, choices=ARRIVAL_MODE_CHOICES)
    arrival_time = models.DateTimeField(default=timezone.now)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    triage_category = models.CharField(
        max_length=10,
        choices=TRIAGE_CATEGORY_CHOICES,
        blank=True,
        default='',
        help_text="Category of the latest triage assessment"
    )
    assigned_physician = models.ForeignKey(
        'doctors.Physician',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='emergency_patients'
    )
    disposition_notes = models.TextField(blank=True, default='')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='registered_emergency_patients'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'emergency_patients'
        ordering = ['-arrival_time']
        indexes = [
            models.Index(fields=['status', 'arrival_time'], name='emergency_status_idx'),
        ]

    def __str__(self):
        return f"{self.display_name} ({self.get_status_display()})"

    @property
    def display_name(self):
        if self.patient_id:
            return self.patient.full_name
        return self.temp_name or 'Unknown'

    @property
    def is_registered(self):
        return self.patient_id is not None


class TriageAssessment(models.Model):
    DISPOSITION_CHOICES = [
        ('emergency', 'Continue in Emergency'),
        ('opd', 'Send to OPD'),
    ]

    emergency_patient = models.ForeignKey(
        EmergencyPatient,
        on_delete=models.CASCADE,
        related_name='triage_assessments'
    )
    triage_category = models.CharField(max_length=10, choices=EmergencyPatient.TRIAGE_CATEGORY_CHOICES)

    temperature = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    blood_pressure = models.CharField(max_length=20, blank=True, default='')
    heart_rate = models.IntegerField(null=True, blank=True)
    respiratory_rate = models.IntegerField(null=True, blank=True)
    oxygen_saturation = models.IntegerField(null=True, blank=True)
    gcs_eye = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(4)]
    )
    gcs_verbal = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    gcs_motor = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(6)]
    )
    gcs_total = models.PositiveSmallIntegerField(null=True, blank=True)

    assessment_notes = models.TextField(blank=True, default='')
    disposition = models.CharField(max_length=10, choices=DISPOSITION_CHOICES)
    assessed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='triage_assessments'
    )
    assessed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'triage_assessments'
        ordering = ['-assessed_at']

    def __str__(self):
        return f"{self.emergency_patient.display_name}: {self.triage_category} -> {self.disposition}"


class EmergencyOrder(models.Model):
    ORDER_TYPE_CHOICES = [
        ('lab', 'Laboratory'),
        ('imaging', 'Imaging'),
        ('medication', 'Medication'),
        ('procedure', 'Procedure'),
        ('consultation', 'Consultation'),
    ]

    PRIORITY_CHOICES = [
        ('stat', 'STAT'),
        ('urgent', 'Urgent'),
        ('routine', 'Routine'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    emergency_patient = models.ForeignKey(
        EmergencyPatient,
        on_delete=models.CASCADE,
        related_name='orders'
    )
    order_type = models.CharField(max_length=20, choices=ORDER_TYPE_CHOICES)
    order_name = models.CharField(max_length=200)
    order_details = models.TextField(blank=True, default='')
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    ordered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='emergency_orders'
    )
    ordered_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'emergency_orders'
        ordering = ['-ordered_at']

    def __str__(self):
        return f"{self.get_order_type_display()}: {self.order_name}"
