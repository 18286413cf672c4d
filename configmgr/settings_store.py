"""
settings_store.py
-----------------
Read shop rules from configmgr.SystemSetting, falling back to Django settings.

A row overrides the settings.py default with the same name. Missing rows,
blank values and values that fail to convert all fall back to the default.
"""

import logging

from django.conf import settings
from django.db import DatabaseError

from .models import SystemSetting

logger = logging.getLogger(__name__)


def get_setting(key: str, default=None):
    """
    Return the raw string stored for `key`, or settings.<key>, or `default`.
    """
    fallback = getattr(settings, key, default)
    try:
        row = SystemSetting.objects.filter(key=key).first()
    except DatabaseError:
        logger.exception("Could not read system setting %s; using default", key)
        return fallback
    if row is None or not (row.value or "").strip():
        return fallback
    return row.value.strip()


def get_int_setting(key: str, default: int, minimum: int = 1) -> int:
    """
    Integer variant of get_setting. Values below `minimum` are rejected.
    """
    fallback = getattr(settings, key, default)
    raw = get_setting(key, fallback)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer %s=%r", key, raw)
        return fallback
    if value < minimum:
        logger.warning("Ignoring out-of-range %s=%r", key, raw)
        return fallback
    return value
