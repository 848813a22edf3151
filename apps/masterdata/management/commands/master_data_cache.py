import json

from django.core.management.base import BaseCommand

from apps.masterdata.cache import master_data_cache


class Command(BaseCommand):
    help = 'Manage the master data cache (clear, warm, stats)'

    def add_arguments(self, parser):
        parser.add_argument(
            'operation',
            choices=['clear', 'warm', 'stats'],
            help='clear: drop all keys, warm: reload all lookups, stats: show cached keys and counts'
        )

    def handle(self, *args, **options):
        operation = options['operation']

        if operation == 'clear':
            count = master_data_cache.clear_all()
            self.stdout.write(self.style.SUCCESS(f'✓ Cleared {count} master data cache keys'))

        elif operation == 'warm':
            self.stdout.write(self.style.WARNING('Warming master data cache...'))
            warmed = master_data_cache.warm_up()
            for name, count in warmed.items():
                self.stdout.write(f'   {name}: {count} entries')
            self.stdout.write(self.style.SUCCESS('✓ Master data cache warmed'))

        else:
            for name, cached in master_data_cache.status().items():
                state = self.style.SUCCESS('cached') if cached else self.style.WARNING('missing')
                self.stdout.write(f'   {name}: {state}')
            self.stdout.write(json.dumps(master_data_cache.get_stats(), indent=2))
