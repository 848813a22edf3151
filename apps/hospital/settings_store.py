"""
Typed access to ``SystemSetting`` rows.

Reads go through the default cache; writes update the row and drop the
cached value so every worker sees the change on its next read.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.core.cache import cache

from .models import SystemSetting

logger = logging.getLogger(__name__)

CACHE_PREFIX = 'system_setting:'
_MISSING = object()


class SettingTypeError(ValueError):
    pass


def cast_value(value, value_type):
    if value is None:
        return None
    try:
        if value_type == 'int':
            return int(value)
        if value_type == 'decimal':
            return Decimal(str(value))
        if value_type == 'bool':
            if isinstance(value, str):
                return value.strip().lower() in ('1', 'true', 'yes', 'on')
            return bool(value)
        if value_type == 'str':
            return str(value)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise SettingTypeError(f"Cannot read {value!r} as {value_type}") from e
    return value


def _to_storage(value, value_type):
    """JSON-safe form of a typed value."""
    value = cast_value(value, value_type)
    if isinstance(value, Decimal):
        return str(value)
    return value


def get_setting(key, default=None):
    """Return the typed value of ``key`` or ``default`` when unset."""
    cached = cache.get(f'{CACHE_PREFIX}{key}', _MISSING)
    if cached is not _MISSING:
        return default if cached is None else cached

    setting = SystemSetting.objects.filter(key=key).first()
    value = cast_value(setting.value, setting.value_type) if setting else None
    cache.set(f'{CACHE_PREFIX}{key}', value)
    return default if value is None else value


def set_setting(key, value, value_type=None, user=None, description=None):
    """Create or update ``key``; the value is validated against its type."""
    setting = SystemSetting.objects.filter(key=key).first()
    if setting is None:
        setting = SystemSetting(key=key, value_type=value_type or 'str')
    elif value_type:
        setting.value_type = value_type

    setting.value = _to_storage(value, setting.value_type)
    if description is not None:
        setting.description = description
    if user is not None and user.is_authenticated:
        setting.updated_by = user
    setting.save()

    cache.delete(f'{CACHE_PREFIX}{key}')
    logger.info(f"Setting {key} updated")
    return setting


def delete_setting(key):
    deleted, _ = SystemSetting.objects.filter(key=key).delete()
    cache.delete(f'{CACHE_PREFIX}{key}')
    return bool(deleted)
