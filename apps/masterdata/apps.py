from django.apps import AppConfig


class MasterDataConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.masterdata'
    verbose_name = 'Master Data'

    def ready(self):
        from . import signals  # noqa: F401
