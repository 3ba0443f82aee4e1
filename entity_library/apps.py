"""
Django app configuration for the entity library.
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class EntityLibraryConfig(AppConfig):
    name = "entity_library"
    verbose_name = "Entity Library"
    label = "entity_library"

    def ready(self):
        """Connect the settings listener and check the configured sections."""
        from . import config_proxy  # noqa: F401  registers the setting_changed receiver

        self._validate_configuration()

    def _validate_configuration(self):
        """Reject a malformed ENTITY_LIBRARY setting early."""
        from django.conf import settings
        from django.core.exceptions import ImproperlyConfigured

        from .defaults import LIBRARY_DEFAULTS, SETTINGS_NAME

        configured = getattr(settings, SETTINGS_NAME, None) or {}
        if not isinstance(configured, dict):
            raise ImproperlyConfigured(f"{SETTINGS_NAME} must be a dict")
        unknown = sorted(set(configured) - set(LIBRARY_DEFAULTS))
        if unknown:
            logger.warning("Unknown %s sections ignored: %s", SETTINGS_NAME, ", ".join(unknown))
        logger.debug("Entity library configuration validated")
