from django.core.management.base import BaseCommand

from apps.billing.invoices import accounts_missing_invoices, generate_missing_invoices


class Command(BaseCommand):
    help = 'Generate invoices for billing accounts that have none'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report how many accounts would be invoiced'
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            count = accounts_missing_invoices().count()
            self.stdout.write(f'{count} billing accounts without an invoice')
            return

        result = generate_missing_invoices()
        self.stdout.write(self.style.SUCCESS(
            f"✓ Generated {result['generated']} of {result['total_accounts']} invoices"
        ))
        for error in result['errors']:
            self.stdout.write(self.style.ERROR(
                f"✗ account {error['account_id']}: {error['error']}"
            ))
