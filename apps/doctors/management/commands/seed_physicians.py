from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.db import transaction
from decimal import Decimal

User = get_user_model()


class Command(BaseCommand):
    help = "Seed departments and sample physicians with login users (idempotent)"

    DEPARTMENTS = [
        {"code": "EMR", "name": "Emergency"},
        {"code": "GEN", "name": "General Medicine"},
        {"code": "CARD", "name": "Cardiology"},
    ]

    PHYSICIANS = [
        {
            "username": "dr.sharma",
            "email": "dr.sharma@hospital.com",
            "first_name": "Rajesh",
            "last_name": "Sharma",
            "physician_code": "PHY001",
            "specialty": "Cardiology",
            "department": "CARD",
            "consultation_fee": Decimal("800.00"),
        },
        {
            "username": "dr.patel",
            "email": "dr.patel@hospital.com",
            "first_name": "Priya",
            "last_name": "Patel",
            "physician_code": "PHY002",
            "specialty": "General Medicine",
            "department": "GEN",
            "consultation_fee": Decimal("600.00"),
        },
        {
            "username": "dr.khan",
            "email": "dr.khan@hospital.com",
            "first_name": "Imran",
            "last_name": "Khan",
            "physician_code": "PHY003",
            "specialty": "Emergency Medicine",
            "department": "EMR",
            "consultation_fee": Decimal("1000.00"),
        },
    ]

    def add_arguments(self, parser):
        parser.add_argument('--password', default='doctor123', help='Password for newly created users')

    @transaction.atomic
    def handle(self, *args, **options):
        from apps.doctors.models import Physician
        from apps.masterdata.models import Department

        self.stdout.write("Starting physician seeding…")
        doctor_group, _ = Group.objects.get_or_create(name="Doctor")

        departments = {}
        for item in self.DEPARTMENTS:
            department, _ = Department.objects.get_or_create(
                code=item["code"],
                defaults={"name": item["name"]},
            )
            departments[item["code"]] = department

        created = 0
        for item in self.PHYSICIANS:
            user, user_created = User.objects.get_or_create(
                username=item["username"],
                defaults={
                    "email": item["email"],
                    "first_name": item["first_name"],
                    "last_name": item["last_name"],
                },
            )
            if user_created:
                user.set_password(options['password'])
                user.save(update_fields=["password"])
            user.groups.add(doctor_group)

            _, physician_created = Physician.objects.update_or_create(
                physician_code=item["physician_code"],
                defaults={
                    "user": user,
                    "first_name": item["first_name"],
                    "last_name": item["last_name"],
                    "specialty": item["specialty"],
                    "department": departments[item["department"]],
                    "consultation_fee": item["consultation_fee"],
                },
            )
            created += int(physician_created)
            self.stdout.write(f"  ✓ {item['physician_code']} Dr. {item['first_name']} {item['last_name']}")

        self.stdout.write(self.style.SUCCESS(
            f"Physicians seeded: {created} created, {len(self.PHYSICIANS) - created} updated"
        ))
