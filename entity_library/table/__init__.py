"""
Entity table extension package.
"""

from .actions import (
    ActionExecutor,
    ActionResult,
    ActionState,
    BulkAction,
    PendingAction,
    RowAction,
    default_bulk_actions,
    default_row_actions,
    row_status_change_action,
    status_change_action,
)
from .column_visibility import CacheStorage, ColumnVisibilityStore, MemoryStorage
from .config import ColumnConfig, ColumnVisibilityConfig, TableConfig, get_table_settings
from .page import EntityTablePage
from .pagination import ELLIPSIS_END, ELLIPSIS_START, get_page_numbers, item_range, page_count
from .state import SortDescriptor, TableState, TableStateModel

__all__ = [
    "ActionExecutor",
    "ActionResult",
    "ActionState",
    "BulkAction",
    "CacheStorage",
    "ColumnConfig",
    "ColumnVisibilityConfig",
    "ColumnVisibilityStore",
    "ELLIPSIS_END",
    "ELLIPSIS_START",
    "EntityTablePage",
    "MemoryStorage",
    "PendingAction",
    "RowAction",
    "SortDescriptor",
    "TableConfig",
    "TableState",
    "TableStateModel",
    "default_bulk_actions",
    "default_row_actions",
    "get_page_numbers",
    "get_table_settings",
    "item_range",
    "page_count",
    "row_status_change_action",
    "status_change_action",
]
