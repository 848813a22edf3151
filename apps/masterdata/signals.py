from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .cache import master_data_cache
from .models import Department, Ward, Bed, LabTest, LabTestCategory


@receiver([post_save, post_delete], sender=Department)
def invalidate_department_cache(sender, instance, **kwargs):
    master_data_cache.invalidate_departments()


@receiver([post_save, post_delete], sender=Ward)
def invalidate_ward_cache(sender, instance, **kwargs):
    master_data_cache.invalidate_wards()
    master_data_cache.invalidate_beds(ward_id=instance.pk)


@receiver([post_save, post_delete], sender=Bed)
def invalidate_bed_cache(sender, instance, **kwargs):
    master_data_cache.invalidate_beds(ward_id=instance.ward_id)


@receiver([post_save, post_delete], sender=LabTest)
@receiver([post_save, post_delete], sender=LabTestCategory)
def invalidate_test_catalog_cache(sender, instance, **kwargs):
    master_data_cache.invalidate_test_catalogs()


@receiver([post_save, post_delete], sender='pharmacy.DrugFormulary')
def invalidate_drug_formulary_cache(sender, instance, **kwargs):
    master_data_cache.invalidate_drug_formulary()
