"""
Table configuration objects and settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Optional

from ..config_proxy import settings_proxy

STATUS_TABS = ("all", "active", "inactive", "archived")


@dataclass(frozen=True)
class TableSettings:
    default_page_size: int = 10
    page_size_options: tuple[int, ...] = (10, 25, 50, 100)
    max_page_size: int = 1000
    max_page_buttons: int = 5
    default_sort_direction: str = "asc"
    status_field: str = "status"
    default_status_tab: str = "all"


@dataclass(frozen=True)
class ColumnVisibilitySettings:
    storage_cache_alias: str = "default"
    storage_key_prefix: str = "entity_library:columns"
    storage_timeout: Optional[int] = None


@lru_cache(maxsize=1)
def get_table_settings() -> TableSettings:
    raw = settings_proxy.section("table_settings")
    direction = str(raw.get("default_sort_direction", "asc")).lower()
    return TableSettings(
        default_page_size=max(int(raw.get("default_page_size", 10)), 1),
        page_size_options=tuple(
            int(item) for item in raw.get("page_size_options") or (10, 25, 50, 100)
        ),
        max_page_size=max(int(raw.get("max_page_size", 1000)), 1),
        max_page_buttons=max(int(raw.get("max_page_buttons", 5)), 1),
        default_sort_direction=direction if direction in ("asc", "desc") else "asc",
        status_field=str(raw.get("status_field", "status")),
        default_status_tab=str(raw.get("default_status_tab", "all")),
    )


@lru_cache(maxsize=1)
def get_column_visibility_settings() -> ColumnVisibilitySettings:
    raw = settings_proxy.section("column_visibility_settings")
    timeout = raw.get("storage_timeout")
    return ColumnVisibilitySettings(
        storage_cache_alias=str(raw.get("storage_cache_alias", "default")),
        storage_key_prefix=str(raw.get("storage_key_prefix", "entity_library:columns")),
        storage_timeout=int(timeout) if timeout is not None else None,
    )


def default_row_id(row: Any) -> Any:
    if isinstance(row, dict):
        return row.get("id")
    return getattr(row, "id", None)


@dataclass(frozen=True)
class ColumnConfig:
    """A table column bound to an entity field."""

    field: str
    label: str = ""
    sortable: bool = True
    filterable: bool = True
    accessor: Optional[Callable[[Any], Any]] = None

    def value(self, row: Any) -> Any:
        if self.accessor is not None:
            return self.accessor(row)
        if isinstance(row, dict):
            return row.get(self.field)
        return getattr(row, self.field, None)


@dataclass(frozen=True)
class ColumnVisibilityConfig:
    default_hidden: tuple[str, ...] = ()
    storage_key: Optional[str] = None
    user_configurable: bool = True


@dataclass
class TableConfig:
    """Declarative description of one entity table."""

    entity_id: str
    columns: list[ColumnConfig]
    get_row_id: Callable[[Any], Any] = default_row_id
    column_visibility: ColumnVisibilityConfig = field(default_factory=ColumnVisibilityConfig)
    default_page_size: Optional[int] = None
    page_size_options: Optional[tuple[int, ...]] = None
    default_sort: Optional[tuple[str, str]] = None
    status_field: Optional[str] = None
    bulk_actions: list[Any] = field(default_factory=list)
    row_actions: list[Any] = field(default_factory=list)

    def column(self, name: str) -> Optional[ColumnConfig]:
        for column in self.columns:
            if column.field == name:
                return column
        return None

    @property
    def resolved_status_field(self) -> str:
        return self.status_field or get_table_settings().status_field

    @property
    def resolved_page_size(self) -> int:
        return self.default_page_size or get_table_settings().default_page_size

    @property
    def resolved_page_size_options(self) -> tuple[int, ...]:
        """Selectable page sizes; always includes the default page size."""
        options = self.page_size_options or get_table_settings().page_size_options
        return tuple(sorted({*options, self.resolved_page_size}))
