from django.conf import settings
from django.core.management.base import BaseCommand

from apps.pharmacy.services import release_expired_reservations


class Command(BaseCommand):
    help = 'Return stock held by instant-dispensing reservations that were never dispensed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--minutes',
            type=int,
            default=None,
            help=f'Reservation age limit (default STOCK_RESERVATION_MINUTES={settings.STOCK_RESERVATION_MINUTES})'
        )

    def handle(self, *args, **options):
        result = release_expired_reservations(minutes=options['minutes'])
        self.stdout.write(self.style.SUCCESS(f"✓ Released {result['released']} expired reservations"))
        if result['failed']:
            self.stdout.write(self.style.ERROR(f"✗ {result['failed']} reservations could not be released"))
