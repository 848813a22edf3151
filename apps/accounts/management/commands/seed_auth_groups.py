from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission


class Command(BaseCommand):
    help = 'Seed role groups with model permissions'

    # app_label -> permission actions granted on every model of that app
    GROUPS_CONFIG = {
        'Administrator': {
            'all': True,
        },
        'Doctor': {
            'patients': ['view', 'add', 'change'],
            'opd': ['view', 'add', 'change'],
            'orders': ['view', 'add', 'change', 'delete'],
            'pharmacy': ['view', 'add', 'change'],
            'emergency': ['view', 'add', 'change'],
            'inpatient': ['view', 'add', 'change'],
        },
        'Nurse': {
            'patients': ['view', 'change'],
            'emergency': ['view', 'add', 'change'],
            'inpatient': ['view', 'add', 'change'],
            'opd': ['view', 'change'],
        },
        'Receptionist': {
            'patients': ['view', 'add', 'change'],
            'opd': ['view', 'add', 'change'],
            'billing': ['view'],
        },
        'Pharmacist': {
            'patients': ['view'],
            'pharmacy': ['view', 'add', 'change'],
        },
        'Lab Technician': {
            'patients': ['view'],
            'orders': ['view', 'change'],
        },
        'Accountant': {
            'billing': ['view', 'add', 'change'],
            'reports': ['view', 'add', 'change'],
        },
    }

    def handle(self, *args, **kwargs):
        self.stdout.write(self.style.WARNING('Creating groups and assigning permissions...'))

        created_count = 0
        updated_count = 0

        for group_name, config in self.GROUPS_CONFIG.items():
            group, created = Group.objects.get_or_create(name=group_name)

            if created:
                created_count += 1
            else:
                updated_count += 1

            if config.get('all'):
                permissions = Permission.objects.all()
                group.permissions.set(permissions)
                self.stdout.write(
                    self.style.SUCCESS(f'✓ {group_name}: ALL permissions ({permissions.count()} perms)')
                )
                continue

            perms = []
            for app_label, actions in config.items():
                for action in actions:
                    perms.extend(Permission.objects.filter(
                        codename__startswith=f'{action}_',
                        content_type__app_label=app_label
                    ))
            group.permissions.set(perms)

            self.stdout.write(
                self.style.SUCCESS(f'✓ {group_name}: {len(perms)} permissions assigned')
            )

        self.stdout.write('')
        self.stdout.write(self.style.SUCCESS('Groups seeded successfully'))
        self.stdout.write(self.style.SUCCESS(f'   Created: {created_count} groups'))
        self.stdout.write(self.style.SUCCESS(f'   Updated: {updated_count} groups'))
