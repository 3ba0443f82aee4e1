"""
Configuration management for the entity library.

Values come from runtime overrides, then the Django ``ENTITY_LIBRARY`` setting,
then ``LIBRARY_DEFAULTS``.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

from .defaults import LIBRARY_DEFAULTS, SETTINGS_NAME

# Runtime storage for settings overrides (avoids modifying Django settings)
_RUNTIME_SETTINGS: dict[str, Any] = {}


class SettingsProxy:
    """
    Proxy for accessing entity library settings with hierarchical resolution.

    Settings are resolved in the following order:
    1. Runtime overrides (via configure_settings)
    2. Django settings (ENTITY_LIBRARY)
    3. Library defaults (LIBRARY_DEFAULTS)
    """

    def __init__(self) -> None:
        self._cache: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Resolve ``key`` (e.g. ``"table_settings.default_page_size"``).

        The first source holding a non-None value wins; the result is cached
        until ``clear_cache``. ``default`` is returned when no source has it.
        """
        if key in self._cache:
            return self._cache[key]

        for source in (
            _RUNTIME_SETTINGS,
            getattr(settings, SETTINGS_NAME, None) or {},
            LIBRARY_DEFAULTS,
        ):
            value = self._get_nested_value(source, key)
            if value is not None:
                self._cache[key] = value
                return value

        return default

    def section(self, name: str) -> dict[str, Any]:
        """Return a merged copy of a whole settings section."""
        merged: dict[str, Any] = {}
        for source in (
            LIBRARY_DEFAULTS,
            getattr(settings, SETTINGS_NAME, None) or {},
            _RUNTIME_SETTINGS,
        ):
            block = source.get(name) if isinstance(source, dict) else None
            if isinstance(block, dict):
                merged.update(block)
        return merged

    def _get_nested_value(self, data: dict[str, Any], key: str) -> Any:
        if not isinstance(data, dict):
            return None

        current: Any = data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def clear_cache(self) -> None:
        self._cache.clear()


settings_proxy = SettingsProxy()


def get_setting(key: str, default: Any = None) -> Any:
    """Shortcut for ``settings_proxy.get``."""
    return settings_proxy.get(key, default)


def configure_settings(clear_existing: bool = False, **overrides: Any) -> None:
    """
    Configure runtime settings overrides.

    Keys may use double underscores for nesting, e.g.
    ``configure_settings(table_settings__default_page_size=25)``.
    """
    if clear_existing:
        _RUNTIME_SETTINGS.clear()

    for raw_key, value in overrides.items():
        parts = raw_key.split("__")
        current = _RUNTIME_SETTINGS
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = value

    _clear_all_caches()


def reset_runtime_settings() -> None:
    _RUNTIME_SETTINGS.clear()
    _clear_all_caches()


def _clear_all_caches() -> None:
    settings_proxy.clear_cache()
    # Typed snapshots are lru_cached in their feature modules.
    from .table.config import get_table_settings, get_column_visibility_settings
    from .form.resolver import get_dependent_field_settings
    from .form.wizard import get_form_settings

    get_table_settings.cache_clear()
    get_column_visibility_settings.cache_clear()
    get_dependent_field_settings.cache_clear()
    get_form_settings.cache_clear()


@receiver(setting_changed)
def _on_setting_changed(sender: Any, setting: str, **kwargs: Any) -> None:
    if setting == SETTINGS_NAME:
        _clear_all_caches()
