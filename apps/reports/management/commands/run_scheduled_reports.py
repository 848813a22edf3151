from django.core.management.base import BaseCommand, CommandError

from apps.reports.models import ScheduledReport
from apps.reports.runner import run_due_reports, run_report


class Command(BaseCommand):
    help = 'Generate every scheduled report that is due (run from cron)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--report',
            type=int,
            help='Run this report now, whether due or not'
        )

    def handle(self, *args, **options):
        if options['report']:
            try:
                report = ScheduledReport.objects.get(pk=options['report'])
            except ScheduledReport.DoesNotExist:
                raise CommandError(f"Scheduled report {options['report']} not found")
            run = run_report(report)
            if run.status == 'success':
                self.stdout.write(self.style.SUCCESS(f'✓ {report.name} generated'))
            else:
                self.stdout.write(self.style.ERROR(f'✗ {report.name} failed: {run.error}'))
            return

        result = run_due_reports()
        self.stdout.write(self.style.SUCCESS(
            f"✓ {result['succeeded']} of {result['due']} due reports generated"
        ))
        if result['failed']:
            self.stdout.write(self.style.ERROR(f"✗ {result['failed']} reports failed"))
