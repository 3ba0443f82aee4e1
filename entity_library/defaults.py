"""
Default configuration for the entity library.

The goal of this module is to expose a single source of truth for every
setting that the library actually consumes. Each section mirrors one of the
frozen settings dataclasses built in ``entity_library.table.config`` and
``entity_library.form.wizard`` / ``entity_library.form.resolver``.
"""

from __future__ import annotations

from typing import Any

LIBRARY_VERSION = "0.1.0"
LIBRARY_NAME = "entity-library"

SETTINGS_NAME = "ENTITY_LIBRARY"


# --------------------------------------------------------------------------- #
# Library-wide defaults (grouped by feature area)
# --------------------------------------------------------------------------- #
LIBRARY_DEFAULTS: dict[str, Any] = {
    "table_settings": {
        "default_page_size": 10,
        "page_size_options": [10, 25, 50, 100],
        "max_page_size": 1000,
        "max_page_buttons": 5,
        "default_sort_direction": "asc",
        "status_field": "status",
        "default_status_tab": "all",
    },
    "column_visibility_settings": {
        "storage_cache_alias": "default",
        "storage_key_prefix": "entity_library:columns",
        "storage_timeout": None,
    },
    "form_settings": {
        "allow_back_navigation": True,
        "validate_on_submit": True,
    },
    "dependent_field_settings": {
        "debounce_ms": 300,
        "option_label_key": "name",
        "option_value_key": "id",
        "option_endpoint_prefix": "/api",
        "http_timeout_seconds": 10,
        "missing_dependency_message": "Select {dependency} first",
        "no_options_message": "No options available",
    },
}


def get_default(key: str, default: Any = None) -> Any:
    """Resolve a dot-notation key against ``LIBRARY_DEFAULTS``."""
    current: Any = LIBRARY_DEFAULTS
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current
