from django.core.management.base import BaseCommand

from apps.masterdata.models import Bed
from apps.inpatient.services import reconcile_bed_occupancy


class Command(BaseCommand):
    help = 'Rebuild bed status from active bed assignments'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only list beds whose status the reconciliation would change'
        )
        parser.add_argument(
            '--preserve-blocked',
            action='store_true',
            help='Keep maintenance, out_of_order and reserved beds as they are'
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            drift = Bed.objects.drift(
                preserve_blocked=options['preserve_blocked']
            ).select_related('ward')
            for bed in drift:
                self.stdout.write(
                    f'   {bed.ward.name} / {bed.bed_number}: stored {bed.status}, '
                    f'will become {bed.target_status}'
                )
            self.stdout.write(self.style.WARNING(f'{len(drift)} beds out of sync'))
            return

        summary = reconcile_bed_occupancy(preserve_blocked=options['preserve_blocked'])
        self.stdout.write(f"   before: {summary['before']}")
        self.stdout.write(f"   after:  {summary['after']}")
        self.stdout.write(self.style.SUCCESS(
            f"✓ Reconciled {summary['beds_total']} beds "
            f"({summary['occupied']} occupied, {summary['available']} available)"
        ))
