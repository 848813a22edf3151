from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models
from django.utils import timezone
import datetime


class Patient(models.Model):
    """
    Registered patient.
    Emergency arrivals may be treated before registration (see EmergencyPatient).
    """
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]

    BLOOD_GROUP_CHOICES = [
        ('A+', 'A+'), ('A-', 'A-'),
        ('B+', 'B+'), ('B-', 'B-'),
        ('AB+', 'AB+'), ('AB-', 'AB-'),
        ('O+', 'O+'), ('O-', 'O-'),
    ]

    phone_regex = RegexValidator(
        regex=r'^\+?1?\d{9,15}$',
        message="Phone number must be entered in the format: '+999999999'. Up to 15 digits allowed."
    )

    patient_id = models.CharField(max_length=20, unique=True, editable=False)

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default='')
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    blood_group = models.CharField(max_length=5, choices=BLOOD_GROUP_CHOICES, blank=True, null=True)

    mobile_primary = models.CharField(max_length=15, validators=[phone_regex], blank=True, default='')
    email = models.EmailField(blank=True, null=True)
    address = models.TextField(blank=True, default='')

    branch = models.ForeignKey(
        'hospital.Branch',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='patients'
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient_id']),
            models.Index(fields=['mobile_primary']),
            models.Index(fields=['last_name', 'first_name']),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.patient_id})"

    def save(self, *args, **kwargs):
        if not self.patient_id:
            self.patient_id = self.generate_patient_id()
        super().save(*args, **kwargs)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def age(self):
        if not self.date_of_birth:
            return None
        today = datetime.date.today()
        return today.year - self.date_of_birth.year - (
            (today.month, today.day) <
            (self.date_of_birth.month, self.date_of_birth.day)
        )

    @classmethod
    def generate_patient_id(cls):
        """Generate unique patient ID: PAT2025XXXX"""
        year = datetime.datetime.now().year
        last = cls.objects.filter(
            patient_id__startswith=f'PAT{year}'
        ).order_by('-patient_id').first()

        if last:
            try:
                num = int(last.patient_id[-4:]) + 1
            except ValueError:
                num = 1
        else:
            num = 1

        return f'PAT{year}{num:04d}'

    def active_allergens(self):
        return list(
            self.allergies.filter(is_active=True).values_list('allergen', flat=True)
        )


class PatientAllergy(models.Model):
    """Patient allergies"""
    SEVERITY_CHOICES = [
        ('mild', 'Mild'),
        ('moderate', 'Moderate'),
        ('severe', 'Severe'),
        ('life_threatening', 'Life Threatening'),
    ]

    ALLERGY_TYPES = [
        ('drug', 'Drug/Medication'),
        ('food', 'Food'),
        ('environmental', 'Environmental'),
        ('other', 'Other'),
    ]

    patient = models.ForeignKey(
        Patient,
        on_delete=models.CASCADE,
        related_name='allergies'
    )
    allergy_type = models.CharField(max_length=20, choices=ALLERGY_TYPES, default='drug')
    allergen = models.CharField(max_length=200)
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES, default='moderate')
    reaction = models.TextField(blank=True, default='')
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient_allergies'
        verbose_name_plural = 'Patient Allergies'
        unique_together = ['patient', 'allergen']
        ordering = ['allergen']

    def __str__(self):
        return f"{self.patient.full_name} - {self.allergen}"


class Encounter(models.Model):
    """
    A care episode. Orders, prescriptions, bed assignments and billing all
    link to the encounter rather than directly to a visit record.
    """
    TYPE_OPD = 'OPD'
    TYPE_IPD = 'IPD'
    TYPE_EMERGENCY = 'EMERGENCY'

    TYPE_CHOICES = [
        (TYPE_OPD, 'Outpatient'),
        (TYPE_IPD, 'Inpatient'),
        (TYPE_EMERGENCY, 'Emergency'),
    ]

    STATUS_ACTIVE = 'ACTIVE'
    STATUS_COMPLETED = 'COMPLETED'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    encounter_number = models.CharField(max_length=30, unique=True, editable=False)
    patient = models.ForeignKey(
        Patient,
        on_delete=models.PROTECT,
        related_name='encounters'
    )
    encounter_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    physician = models.ForeignKey(
        'doctors.Physician',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='encounters'
    )
    department = models.ForeignKey(
        'masterdata.Department',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='encounters'
    )
    branch = models.ForeignKey(
        'hospital.Branch',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='encounters'
    )
    chief_complaint = models.TextField(blank=True, default='')
    started_at = models.DateTimeField(default=timezone.now)
    ended_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_encounters'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'encounters'
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['encounter_type', 'status'], name='encounter_type_status_idx'),
            models.Index(fields=['patient', 'started_at'], name='encounter_patient_idx'),
        ]

    def __str__(self):
        return self.encounter_number

    def save(self, *args, **kwargs):
        if not self.encounter_number:
            self.encounter_number = self.generate_encounter_number(self.encounter_type)
        super().save(*args, **kwargs)

    @staticmethod
    def generate_encounter_number(encounter_type):
        """ENC/<TYPE>/YYYYMMDD/#### numbered per type and day"""
        today = timezone.localdate()
        prefix = f"ENC/{encounter_type}/{today.strftime('%Y%m%d')}/"
        count = Encounter.objects.filter(encounter_number__startswith=prefix).count() + 1
        return f"{prefix}{count:04d}"

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE

    def complete(self):
        if self.status == self.STATUS_COMPLETED:
            return False
        self.status = self.STATUS_COMPLETED
        self.ended_at = timezone.now()
        self.save(update_fields=['status', 'ended_at', 'updated_at'])
        return True
