"""
Cache layer for near-static reference data.

Every lookup is stored under ``master_data:<name>`` in the default Django
cache. Entries expire after ``MASTER_DATA_CACHE_TTL`` (stats after
``MASTER_DATA_STATS_TTL``); beyond that they are only refreshed by the
``invalidate_*`` hooks (fired from model signals) and the
``master_data_cache`` management command.
"""

import logging

from django.apps import apps
from django.conf import settings
from django.core.cache import cache
from django.db.models import Count, Q

logger = logging.getLogger(__name__)

PREFIX = 'master_data:'

DEPARTMENTS_ALL = 'departments:all'
DEPARTMENTS_ACTIVE = 'departments:active'
TEST_CATALOGS = 'test_catalogs'
DRUG_FORMULARY = 'drug_formulary'
WARDS = 'wards'
BEDS = 'beds'
STATS = 'stats'
WARD_BEDS = 'ward_beds:{ward_id}'


class MasterDataCache:

    def __init__(self, backend=None):
        self.cache = backend or cache

    @property
    def ttl(self):
        return getattr(settings, 'MASTER_DATA_CACHE_TTL', 3600)

    @property
    def stats_ttl(self):
        return getattr(settings, 'MASTER_DATA_STATS_TTL', 300)

    def key(self, name):
        return f'{PREFIX}{name}'

    def _remember(self, name, loader, ttl=None):
        key = self.key(name)
        value = self.cache.get(key)
        if value is None:
            value = loader()
            self.cache.set(key, value, ttl or self.ttl)
            logger.debug(f"Cache miss for {key}, stored {len(value)} entries")
        return value

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_departments(self, active_only=True):
        if active_only:
            return self._remember(DEPARTMENTS_ACTIVE, self._load_active_departments)
        return self._remember(DEPARTMENTS_ALL, self._load_all_departments)

    def get_wards(self):
        return self._remember(WARDS, self._load_wards)

    def get_beds(self):
        return self._remember(BEDS, self._load_beds)

    def get_ward_beds(self, ward_id):
        return self._remember(
            WARD_BEDS.format(ward_id=ward_id),
            lambda: self._load_beds(ward_id=ward_id)
        )

    def get_test_catalogs(self):
        return self._remember(TEST_CATALOGS, self._load_test_catalogs)

    def get_drug_formulary(self):
        return self._remember(DRUG_FORMULARY, self._load_drug_formulary)

    def get_stats(self):
        return self._remember(STATS, self._load_stats, ttl=self.stats_ttl)

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    def _load_active_departments(self):
        Department = apps.get_model('masterdata', 'Department')
        return list(
            Department.objects.filter(is_active=True)
            .order_by('name')
            .values('id', 'name')
        )

    def _load_all_departments(self):
        Department = apps.get_model('masterdata', 'Department')
        return list(
            Department.objects.order_by('name')
            .values('id', 'name', 'code', 'is_active')
        )

    def _load_wards(self):
        Ward = apps.get_model('masterdata', 'Ward')
        wards = Ward.objects.filter(is_active=True).select_related('department').order_by('name')
        return [
            {
                'id': ward.id,
                'name': ward.name,
                'type': ward.ward_type,
                'department': {
                    'id': ward.department_id,
                    'name': ward.department.name,
                },
            }
            for ward in wards
        ]

    def _load_beds(self, ward_id=None):
        Bed = apps.get_model('masterdata', 'Bed')
        beds = Bed.objects.filter(is_active=True).with_occupancy()
        if ward_id is not None:
            beds = beds.filter(ward_id=ward_id)
        return [
            {
                'id': bed.id,
                'ward_id': bed.ward_id,
                'bed_number': bed.bed_number,
                'bed_type': bed.bed_type,
                'status': bed.effective_status,
            }
            for bed in beds.order_by('ward_id', 'bed_number')
        ]

    def _load_test_catalogs(self):
        LabTest = apps.get_model('masterdata', 'LabTest')
        tests = LabTest.objects.filter(is_active=True).select_related('category').order_by('name')
        return [
            {
                'id': test.id,
                'name': test.name,
                'code': test.code,
                'price': str(test.price),
                'category': {
                    'id': test.category_id,
                    'name': test.category.name,
                },
            }
            for test in tests
        ]

    def _load_drug_formulary(self):
        DrugFormulary = apps.get_model('pharmacy', 'DrugFormulary')
        return list(
            DrugFormulary.objects.exclude(status='discontinued')
            .order_by('name')
            .values('id', 'name', 'generic_name', 'strength', 'form')
        )

    def _load_stats(self):
        Department = apps.get_model('masterdata', 'Department')
        Ward = apps.get_model('masterdata', 'Ward')
        Bed = apps.get_model('masterdata', 'Bed')
        LabTest = apps.get_model('masterdata', 'LabTest')
        DrugFormulary = apps.get_model('pharmacy', 'DrugFormulary')

        beds = Bed.objects.filter(is_active=True).with_occupancy().aggregate(
            total=Count('id'),
            available=Count('id', filter=Q(effective_status='available')),
            occupied=Count('id', filter=Q(effective_status='occupied')),
            maintenance=Count('id', filter=Q(effective_status='maintenance')),
            reserved=Count('id', filter=Q(effective_status='reserved')),
            out_of_order=Count('id', filter=Q(effective_status='out_of_order')),
        )
        return {
            'departments': {
                'total': Department.objects.count(),
                'active': Department.objects.filter(is_active=True).count(),
            },
            'wards': {
                'total': Ward.objects.count(),
                'active': Ward.objects.filter(is_active=True).count(),
            },
            'beds': beds,
            'test_catalogs': LabTest.objects.filter(is_active=True).count(),
            'drug_formulary': DrugFormulary.objects.exclude(status='discontinued').count(),
        }

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def _forget(self, *names):
        self.cache.delete_many([self.key(name) for name in names])

    def invalidate_departments(self):
        # Ward options embed the department name
        self._forget(DEPARTMENTS_ALL, DEPARTMENTS_ACTIVE, WARDS, STATS)

    def invalidate_wards(self):
        self._forget(WARDS, STATS)

    def invalidate_beds(self, ward_id=None):
        names = [BEDS, STATS]
        if ward_id is not None:
            names.append(WARD_BEDS.format(ward_id=ward_id))
        self._forget(*names)

    def invalidate_test_catalogs(self):
        self._forget(TEST_CATALOGS, STATS)

    def invalidate_drug_formulary(self):
        self._forget(DRUG_FORMULARY, STATS)

    def clear_all(self):
        """Drop every master data key; returns the number of keys addressed."""
        Ward = apps.get_model('masterdata', 'Ward')
        names = [
            DEPARTMENTS_ALL, DEPARTMENTS_ACTIVE, TEST_CATALOGS,
            DRUG_FORMULARY, WARDS, BEDS, STATS,
        ]
        names += [
            WARD_BEDS.format(ward_id=ward_id)
            for ward_id in Ward.objects.values_list('id', flat=True)
        ]
        self._forget(*names)
        logger.info(f"Cleared {len(names)} master data cache keys")
        return len(names)

    def warm_up(self):
        """Reload every lookup; returns entry counts per key."""
        self.clear_all()
        Ward = apps.get_model('masterdata', 'Ward')

        warmed = {
            DEPARTMENTS_ACTIVE: len(self.get_departments(active_only=True)),
            DEPARTMENTS_ALL: len(self.get_departments(active_only=False)),
            TEST_CATALOGS: len(self.get_test_catalogs()),
            DRUG_FORMULARY: len(self.get_drug_formulary()),
            WARDS: len(self.get_wards()),
            BEDS: len(self.get_beds()),
        }
        for ward_id in Ward.objects.filter(is_active=True).values_list('id', flat=True):
            self.get_ward_beds(ward_id)
        self.get_stats()

        logger.info(f"Warmed master data cache: {warmed}")
        return warmed

    def status(self):
        """Which keys are currently cached."""
        names = [
            DEPARTMENTS_ALL, DEPARTMENTS_ACTIVE, TEST_CATALOGS,
            DRUG_FORMULARY, WARDS, BEDS, STATS,
        ]
        return {name: self.cache.get(self.key(name)) is not None for name in names}


master_data_cache = MasterDataCache()
