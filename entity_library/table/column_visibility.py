"""
Per-table column visibility with best-effort persistence.

The hidden map (``{field: True}`` means hidden) starts from the configured
``default_hidden`` columns and is overlaid with the JSON object stored under
the table's storage key. Storage problems never surface to the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional, Protocol

from django.core.cache import caches

from .config import (
    ColumnConfig,
    ColumnVisibilityConfig,
    get_column_visibility_settings,
)

logger = logging.getLogger(__name__)


class VisibilityStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class CacheStorage:
    """Stores visibility maps in a Django cache backend."""

    def __init__(
        self,
        alias: Optional[str] = None,
        *,
        key_prefix: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        visibility_settings = get_column_visibility_settings()
        self.alias = alias or visibility_settings.storage_cache_alias
        self.key_prefix = key_prefix or visibility_settings.storage_key_prefix
        self.timeout = timeout if timeout is not None else visibility_settings.storage_timeout

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def get(self, key: str) -> Optional[str]:
        return caches[self.alias].get(self._make_key(key))

    def set(self, key: str, value: str) -> None:
        caches[self.alias].set(self._make_key(key), value, timeout=self.timeout)


class MemoryStorage:
    """Dict-backed storage scoped to a single session."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class ColumnVisibilityStore:
    """Owns the hidden-column map of one table instance."""

    def __init__(
        self,
        config: Optional[ColumnVisibilityConfig] = None,
        *,
        storage: Optional[VisibilityStorage] = None,
    ) -> None:
        self.config = config or ColumnVisibilityConfig()
        self._storage = storage
        self._hidden: dict[str, bool] = {}

    @property
    def storage(self) -> VisibilityStorage:
        if self._storage is None:
            self._storage = CacheStorage()
        return self._storage

    @property
    def hidden(self) -> dict[str, bool]:
        return dict(self._hidden)

    def initialize(self, config: Optional[ColumnVisibilityConfig] = None) -> dict[str, bool]:
        if config is not None:
            self.config = config

        hidden = self._defaults()
        hidden.update(self._load())
        self._hidden = hidden
        return dict(hidden)

    def toggle(self, field: str) -> dict[str, bool]:
        if not self.config.user_configurable:
            return dict(self._hidden)
        return self.set_hidden(field, not self.is_hidden(field))

    def set_hidden(self, field: str, hidden: bool) -> dict[str, bool]:
        if not self.config.user_configurable:
            return dict(self._hidden)
        self._hidden[field] = bool(hidden)
        self.persist(self._hidden)
        return dict(self._hidden)

    def reset(self) -> dict[str, bool]:
        self._hidden = self._defaults()
        self.persist(self._hidden)
        return dict(self._hidden)

    def is_hidden(self, field: str) -> bool:
        return bool(self._hidden.get(field, False))

    def visible_columns(self, columns: Iterable[ColumnConfig]) -> list[ColumnConfig]:
        return [column for column in columns if not self.is_hidden(column.field)]

    def persist(self, hidden_map: dict[str, bool]) -> None:
        key = self.config.storage_key
        if not key:
            return
        try:
            self.storage.set(key, json.dumps(hidden_map, sort_keys=True))
        except Exception as exc:
            logger.debug("Could not persist column visibility for %s: %s", key, exc)

    def _defaults(self) -> dict[str, bool]:
        return {field: True for field in self.config.default_hidden}

    def _load(self) -> dict[str, bool]:
        key = self.config.storage_key
        if not key:
            return {}
        try:
            raw: Any = self.storage.get(key)
            if raw is None:
                return {}
            payload = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except Exception as exc:
            logger.debug("Ignoring stored column visibility for %s: %s", key, exc)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {
            str(field): value for field, value in payload.items() if isinstance(value, bool)
        }
