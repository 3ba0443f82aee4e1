"""
Query-parameter building and data source response normalization.

A page-object response (``{"content": [...], "totalElements": n}``) is treated
as authoritative server pagination. A bare list is a fully materialized data
set: filtering, sorting, and slicing then happen locally.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from .config import ColumnConfig
from .state import DESC, TableState

CONTAINS_SUFFIX = ".contains"
EQUALS_SUFFIX = ".equals"


@dataclass(frozen=True)
class PageResult:
    rows: list[Any]
    total_items: int
    server_paginated: bool


def build_query_params(
    state: TableState,
    *,
    status_field: str = "status",
    extra: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """
    Build the ``get_all`` parameters for a table state.

    ``page`` is zero-based on the wire. The status column is matched exactly
    (``status.equals``); every other filter is a substring match
    (``<field>.contains``).
    """
    params: dict[str, Any] = {
        "page": max(state.page - 1, 0),
        "size": state.page_size,
    }
    if state.sort is not None:
        params["sort"] = [state.sort.to_param()]

    for name, value in state.filters.items():
        if name == status_field:
            params[f"{name}{EQUALS_SUFFIX}"] = value
        else:
            params[f"{name}{CONTAINS_SUFFIX}"] = value

    if extra:
        params.update(extra)
    return params


def _cell_value(row: Any, name: str, columns: Mapping[str, ColumnConfig]) -> Any:
    column = columns.get(name)
    if column is not None:
        return column.value(row)
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _matches(row: Any, filters: Mapping[str, str], status_field: str, columns) -> bool:
    for name, needle in filters.items():
        value = _cell_value(row, name, columns)
        if name == status_field:
            if str(value if value is not None else "").lower() != needle.lower():
                return False
            continue
        if value is None or needle.lower() not in str(value).lower():
            return False
    return True


def _sort_key(value: Any) -> tuple[int, Any]:
    """Numbers order before text so mixed columns still sort."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value).lower())


def apply_client_pagination(
    rows: Sequence[Any],
    state: TableState,
    *,
    columns: Iterable[ColumnConfig] = (),
    status_field: str = "status",
) -> PageResult:
    by_name = {column.field: column for column in columns}
    filtered = [row for row in rows if _matches(row, state.filters, status_field, by_name)]

    if state.sort is not None:
        name = state.sort.field
        present = [row for row in filtered if _cell_value(row, name, by_name) is not None]
        missing = [row for row in filtered if _cell_value(row, name, by_name) is None]
        present.sort(
            key=lambda row: _sort_key(_cell_value(row, name, by_name)),
            reverse=state.sort.direction == DESC,
        )
        filtered = present + missing

    start = (state.page - 1) * state.page_size
    return PageResult(
        rows=list(filtered[start : start + state.page_size]),
        total_items=len(filtered),
        server_paginated=False,
    )


def normalize_response(
    response: Any,
    state: TableState,
    *,
    columns: Iterable[ColumnConfig] = (),
    status_field: str = "status",
) -> PageResult:
    if response is None:
        return PageResult(rows=[], total_items=0, server_paginated=False)

    if isinstance(response, Mapping):
        content = response.get("content")
        rows = list(content) if isinstance(content, (list, tuple)) else []
        total = response.get("totalElements", response.get("total_elements"))
        try:
            total_items = int(total) if total is not None else len(rows)
        except (TypeError, ValueError):
            total_items = len(rows)
        return PageResult(rows=rows, total_items=total_items, server_paginated=True)

    return apply_client_pagination(
        list(response), state, columns=columns, status_field=status_field
    )
