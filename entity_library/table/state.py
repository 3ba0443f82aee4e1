"""
Table state model: pagination, sorting, filtering and row selection.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .config import get_table_settings
from .pagination import page_count as compute_page_count

logger = logging.getLogger(__name__)

RowId = Union[str, int]
StateListener = Callable[["TableState", "TableState"], None]

ASC = "asc"
DESC = "desc"


@dataclass(frozen=True)
class SortDescriptor:
    field: str
    direction: str = ASC

    def __post_init__(self) -> None:
        direction = str(self.direction or ASC).lower()
        object.__setattr__(self, "direction", DESC if direction == DESC else ASC)

    def to_param(self) -> str:
        return f"{self.field},{self.direction}"

    def flipped(self) -> "SortDescriptor":
        return SortDescriptor(self.field, ASC if self.direction == DESC else DESC)


@dataclass(frozen=True)
class TableState:
    page: int = 1
    page_size: int = 10
    sort: Optional[SortDescriptor] = None
    filters: Mapping[str, str] = field(default_factory=dict)
    selected_ids: frozenset = frozenset()
    total_items: Optional[int] = None

    @property
    def page_count(self) -> Optional[int]:
        if self.total_items is None:
            return None
        return compute_page_count(self.total_items, self.page_size)

    @property
    def active_filter_count(self) -> int:
        return len(self.filters)


def clean_filters(filters: Optional[Mapping[str, Any]]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for name, value in (filters or {}).items():
        if value is None:
            continue
        text = str(value)
        if not text.strip():
            continue
        cleaned[str(name)] = text
    return cleaned


class TableStateModel:
    """
    Owns ``{page, page_size, sort, filters, selected_ids}`` for one table.

    Every mutator is synchronous and total: invalid input is clamped to the
    nearest valid value. Listeners registered through ``subscribe`` run after
    each change; a mutation issued from inside a listener is queued and
    applied once the current change has been fully delivered.
    """

    def __init__(
        self,
        *,
        page_size: Optional[int] = None,
        sort: Optional[SortDescriptor] = None,
        filters: Optional[Mapping[str, Any]] = None,
        max_page_size: Optional[int] = None,
    ) -> None:
        table_settings = get_table_settings()
        self.max_page_size = max_page_size or table_settings.max_page_size
        self._initial = TableState(
            page=1,
            page_size=self._clamp_page_size(page_size or table_settings.default_page_size),
            sort=sort,
            filters=clean_filters(filters),
        )
        self._state = self._initial
        self._listeners: list[StateListener] = []
        self._pending: deque[Callable[[TableState], TableState]] = deque()
        self._dispatching = False

    @property
    def state(self) -> TableState:
        return self._state

    @property
    def page(self) -> int:
        return self._state.page

    @property
    def page_size(self) -> int:
        return self._state.page_size

    @property
    def sort(self) -> Optional[SortDescriptor]:
        return self._state.sort

    @property
    def filters(self) -> Mapping[str, str]:
        return self._state.filters

    @property
    def selected_ids(self) -> frozenset:
        return self._state.selected_ids

    @property
    def page_count(self) -> Optional[int]:
        return self._state.page_count

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------ #
    # Pagination
    # ------------------------------------------------------------------ #
    def set_page(self, page: Any) -> None:
        """
        Move to ``page``.

        Args:
            page: Requested 1-based page. Values that are not integers fall
                back to page 1; out-of-range values are clamped to the known
                page count.
        """
        self._commit(lambda state: replace(state, page=self._clamp_page(page, state)))

    def set_page_size(self, page_size: Any) -> None:
        """
        Change the page size, returning to page 1 and clearing the selection.

        Args:
            page_size: Requested rows per page, clamped to
                ``[1, max_page_size]``
        """
        size = self._clamp_page_size(page_size)
        self._commit(
            lambda state: replace(state, page_size=size, page=1, selected_ids=frozenset())
        )

    def set_total(self, total_items: Any) -> None:
        """Record the data source total; shrinks the page if it fell off the end."""
        try:
            total = max(int(total_items), 0)
        except (TypeError, ValueError):
            total = 0

        def _apply(state: TableState) -> TableState:
            updated = replace(state, total_items=total)
            return replace(updated, page=self._clamp_page(updated.page, updated))

        self._commit(_apply)

    # ------------------------------------------------------------------ #
    # Sorting and filtering
    # ------------------------------------------------------------------ #
    def set_sort(self, sort: Optional[SortDescriptor]) -> None:
        self._commit(lambda state: replace(state, sort=sort, page=1))

    def toggle_sort(self, field_name: str) -> None:
        """Same column flips direction; a new column starts ascending."""
        def _apply(state: TableState) -> TableState:
            if state.sort is not None and state.sort.field == field_name:
                sort = state.sort.flipped()
            else:
                sort = SortDescriptor(field_name, get_table_settings().default_sort_direction)
            return replace(state, sort=sort, page=1)

        self._commit(_apply)

    def set_filters(self, filters: Optional[Mapping[str, Any]]) -> None:
        cleaned = clean_filters(filters)
        self._commit(lambda state: replace(state, filters=cleaned, page=1))

    def set_filter(self, field_name: str, value: Any) -> None:
        def _apply(state: TableState) -> TableState:
            merged = dict(state.filters)
            merged[field_name] = value
            return replace(state, filters=clean_filters(merged), page=1)

        self._commit(_apply)

    # ------------------------------------------------------------------ #
    # Selection
    # ------------------------------------------------------------------ #
    def toggle_selected(self, row_id: RowId) -> None:
        def _apply(state: TableState) -> TableState:
            selected = set(state.selected_ids)
            if row_id in selected:
                selected.remove(row_id)
            else:
                selected.add(row_id)
            return replace(state, selected_ids=frozenset(selected))

        self._commit(_apply)

    def toggle_all(self, visible_ids: Iterable[RowId]) -> None:
        """Select or deselect exactly the rows of the current page."""
        visible = frozenset(visible_ids)
        if not visible:
            return

        def _apply(state: TableState) -> TableState:
            if visible <= state.selected_ids:
                selected = state.selected_ids - visible
            else:
                selected = state.selected_ids | visible
            return replace(state, selected_ids=selected)

        self._commit(_apply)

    def clear_selection(self) -> None:
        self._commit(lambda state: replace(state, selected_ids=frozenset()))

    def retain_selection(self, row_ids: Iterable[RowId]) -> None:
        """Drop selected ids that are not part of the rendered row set."""
        rendered = frozenset(row_ids)
        self._commit(
            lambda state: replace(state, selected_ids=state.selected_ids & rendered)
        )

    def is_all_selected(self, visible_ids: Iterable[RowId]) -> bool:
        visible = frozenset(visible_ids)
        return bool(visible) and visible <= self._state.selected_ids

    def is_some_selected(self, visible_ids: Iterable[RowId]) -> bool:
        visible = frozenset(visible_ids)
        return bool(visible & self._state.selected_ids) and not self.is_all_selected(visible)

    def reset(self) -> None:
        self._commit(lambda state: replace(self._initial, total_items=state.total_items))

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _clamp_page(self, page: Any, state: TableState) -> int:
        try:
            value = int(page)
        except (TypeError, ValueError):
            value = 1
        value = max(value, 1)
        pages = state.page_count
        if pages is not None:
            value = min(value, pages)
        return value

    def _clamp_page_size(self, page_size: Any) -> int:
        try:
            value = int(page_size)
        except (TypeError, ValueError):
            value = get_table_settings().default_page_size
        return min(max(value, 1), self.max_page_size)

    def _commit(self, updater: Callable[[TableState], TableState]) -> None:
        self._pending.append(updater)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                previous = self._state
                self._state = self._pending.popleft()(previous)
                if self._state == previous:
                    continue
                for listener in list(self._listeners):
                    listener(self._state, previous)
        finally:
            self._pending.clear()
            self._dispatching = False
