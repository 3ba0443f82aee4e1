"""
EntityTablePage: binds the table state, column visibility, and action
executor of one entity table to its data source.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Optional

from django.utils.translation import gettext as _

from ..common.interfaces import EntityDataSourceProtocol
from ..errors import ErrorCode, describe_exception, to_error
from ..lifecycle import LivenessGuard
from ..notifications import ERROR, LoggingNotifier, Notifier
from .actions import (
    DEFAULT_STATUS_VALUES,
    ActionExecutor,
    ActionResult,
    BulkAction,
    RowAction,
)
from .column_visibility import ColumnVisibilityStore, VisibilityStorage
from .config import STATUS_TABS, ColumnConfig, TableConfig, get_table_settings
from .pagination import PageButton, get_page_numbers, item_range
from .query import PageResult, build_query_params, normalize_response
from .state import SortDescriptor, TableStateModel

logger = logging.getLogger(__name__)


class EntityTablePage:
    """One mounted entity table."""

    def __init__(
        self,
        config: TableConfig,
        data_source: EntityDataSourceProtocol,
        *,
        storage: Optional[VisibilityStorage] = None,
        notifier: Optional[Notifier] = None,
        status_values: Optional[dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.data_source = data_source
        self.guard = LivenessGuard()
        self.notify = notifier or LoggingNotifier()
        self.status_values = status_values or {}

        default_sort = SortDescriptor(*config.default_sort) if config.default_sort else None
        self.state = TableStateModel(page_size=config.resolved_page_size, sort=default_sort)
        self.columns = ColumnVisibilityStore(config.column_visibility, storage=storage)
        self.actions = ActionExecutor(
            invalidate=self.invalidate,
            on_success=self._on_action_success,
            notifier=self.notify,
            get_row_id=config.get_row_id,
            guard=self.guard,
        )

        self.rows: list[Any] = []
        self.is_loading = False
        self.error: Optional[Exception] = None
        self.server_paginated: Optional[bool] = None
        self.status_tab = get_table_settings().default_status_tab

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def mount(self) -> PageResult:
        self.columns.initialize()
        return await self.refresh()

    def close(self) -> None:
        self.guard.close()

    # ------------------------------------------------------------------ #
    # Data
    # ------------------------------------------------------------------ #
    @property
    def visible_ids(self) -> list[Any]:
        return [self.config.get_row_id(row) for row in self.rows]

    @property
    def selected_rows(self) -> list[Any]:
        selected = self.state.selected_ids
        return [row for row in self.rows if self.config.get_row_id(row) in selected]

    @property
    def page_size_options(self) -> tuple[int, ...]:
        return self.config.resolved_page_size_options

    @property
    def visible_columns(self) -> list[ColumnConfig]:
        return self.columns.visible_columns(self.config.columns)

    def query_params(self) -> dict[str, Any]:
        return build_query_params(
            self.state.state, status_field=self.config.resolved_status_field
        )

    def _current_result(self) -> PageResult:
        return PageResult(
            rows=list(self.rows),
            total_items=self.state.state.total_items or 0,
            server_paginated=bool(self.server_paginated),
        )

    async def refresh(self, *, prune_selection: bool = True) -> PageResult:
        """
        Load the rows for the current state.

        Selected ids that are not on the loaded page are dropped unless
        ``prune_selection`` is False (refetches after an action keep the
        selection so a failed action can be retried).
        """
        requested_page = self.state.page
        self.is_loading = True
        try:
            response = self.data_source.get_all(self.query_params())
            if inspect.isawaitable(response):
                response = await response
        except Exception as exc:
            if not self.guard.alive:
                return PageResult(rows=[], total_items=0, server_paginated=False)
            self.is_loading = False
            self.error = exc
            logger.error("Loading %s failed: %s", self.config.entity_id, exc)
            self.notify(
                ERROR,
                _("Unable to load data"),
                to_error(ErrorCode.UNKNOWN, describe_exception(exc), retryable=True),
            )
            return self._current_result()

        if not self.guard.alive:
            return PageResult(rows=[], total_items=0, server_paginated=False)

        result = normalize_response(
            response,
            self.state.state,
            columns=self.config.columns,
            status_field=self.config.resolved_status_field,
        )
        self.is_loading = False
        self.error = None
        self.server_paginated = result.server_paginated
        self.state.set_total(result.total_items)
        if self.state.page != requested_page:
            # The data set shrank below the requested page.
            self.state.clear_selection()
            return await self.refresh()

        self.rows = result.rows
        if prune_selection:
            self.state.retain_selection(self.visible_ids)
        return result

    async def invalidate(self) -> None:
        outcome = self.data_source.invalidate_queries()
        if inspect.isawaitable(outcome):
            await outcome
        await self.refresh(prune_selection=False)

    # ------------------------------------------------------------------ #
    # State changes that alter the rendered row set
    # ------------------------------------------------------------------ #
    async def set_page(self, page: int) -> PageResult:
        self.state.set_page(page)
        self.state.clear_selection()
        return await self.refresh()

    async def set_page_size(self, page_size: int) -> PageResult:
        """
        Switch to one of the configured page sizes and reload.

        Args:
            page_size: Requested rows per page

        Returns:
            The reloaded page, or the current one unchanged when
            ``page_size`` is not in ``page_size_options``.
        """
        if page_size not in self.page_size_options:
            logger.debug(
                "Ignoring page size %s for %s, allowed: %s",
                page_size,
                self.config.entity_id,
                self.page_size_options,
            )
            return self._current_result()
        self.state.set_page_size(page_size)
        return await self.refresh()

    async def toggle_sort(self, field_name: str) -> PageResult:
        column = self.config.column(field_name)
        if column is not None and not column.sortable:
            return self._current_result()
        self.state.toggle_sort(field_name)
        return await self.refresh()

    async def set_filter(self, field_name: str, value: Any) -> PageResult:
        self.state.set_filter(field_name, value)
        return await self.refresh()

    async def set_status_tab(self, tab: str) -> PageResult:
        tab = tab if tab in STATUS_TABS else "all"
        self.status_tab = tab
        status_field = self.config.resolved_status_field
        value = None if tab == "all" else self._status_value(tab)
        self.state.set_filter(status_field, value)
        return await self.refresh()

    async def reset(self) -> PageResult:
        self.state.reset()
        self.status_tab = get_table_settings().default_status_tab
        return await self.refresh()

    def _status_value(self, tab: str) -> Any:
        return {**DEFAULT_STATUS_VALUES, **self.status_values}.get(tab, tab.upper())

    # ------------------------------------------------------------------ #
    # Pagination control
    # ------------------------------------------------------------------ #
    @property
    def page_buttons(self) -> list[PageButton]:
        return get_page_numbers(
            self.state.page,
            self.state.page_count or 1,
            get_table_settings().max_page_buttons,
        )

    @property
    def item_range(self) -> tuple[int, int]:
        return item_range(
            self.state.page, self.state.page_size, self.state.state.total_items or 0
        )

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #
    def _find_action(self, actions: list[Any], action_id: str) -> Any:
        for action in actions:
            if action.id == action_id:
                return action
        raise KeyError(action_id)

    async def run_bulk_action(self, action_id: str) -> Optional[ActionResult]:
        action: BulkAction = self._find_action(self.config.bulk_actions, action_id)
        return await self.actions.request_bulk(action, self.selected_rows)

    async def run_row_action(self, action_id: str, row: Any) -> Optional[ActionResult]:
        action: RowAction = self._find_action(self.config.row_actions, action_id)
        return await self.actions.request_row(action, row)

    def _on_action_success(self, result: ActionResult) -> None:
        self.state.clear_selection()
