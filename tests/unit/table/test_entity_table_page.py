import asyncio

import pytest
from django.test import override_settings

from entity_library.errors import ActionExecutionError
from entity_library.notifications import ERROR
from entity_library.table.actions import default_bulk_actions
from entity_library.table.column_visibility import MemoryStorage
from entity_library.table.config import (
    ColumnConfig,
    ColumnVisibilityConfig,
    TableConfig,
    get_table_settings,
)
from entity_library.table.pagination import ELLIPSIS_END

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clear_table_settings_cache():
    get_table_settings.cache_clear()
    yield
    get_table_settings.cache_clear()


def _rows(count):
    return [
        {"id": index, "name": f"Warehouse {index:02d}", "status": "ACTIVE"}
        for index in range(1, count + 1)
    ]


class ListDataSource:
    """Returns the full data set; the table paginates locally."""

    def __init__(self, rows, fail_on=None):
        self.rows = rows
        self.fail_on = fail_on
        self.calls = []
        self.invalidations = 0

    async def get_all(self, params):
        self.calls.append(dict(params))
        return [dict(row) for row in self.rows]

    async def update(self, entity_id, data):
        if entity_id == self.fail_on:
            raise RuntimeError("locked")
        for row in self.rows:
            if row["id"] == entity_id:
                row.update(data)
        return data

    async def invalidate_queries(self):
        self.invalidations += 1


class PagedDataSource(ListDataSource):
    async def get_all(self, params):
        self.calls.append(dict(params))
        start = params["page"] * params["size"]
        return {
            "content": self.rows[start : start + params["size"]],
            "totalElements": len(self.rows),
        }


def _config(source, **kwargs):
    return TableConfig(
        entity_id="warehouses",
        columns=[ColumnConfig("name", "Name"), ColumnConfig("status", "Status", sortable=False)],
        column_visibility=ColumnVisibilityConfig(default_hidden=("status",), storage_key="wh"),
        bulk_actions=default_bulk_actions(source.update),
        **kwargs,
    )


def _page(source, **kwargs):
    from entity_library.table.page import EntityTablePage

    return EntityTablePage(
        _config(source, **kwargs),
        source,
        storage=MemoryStorage(),
        notifier=lambda *args: None,
    )


def test_mount_loads_first_page_and_columns():
    async def _inner():
        source = ListDataSource(_rows(25))
        page = _page(source)
        result = await page.mount()

        assert result.total_items == 25
        assert len(page.rows) == 10
        assert page.server_paginated is False
        assert [column.field for column in page.visible_columns] == ["name"]
        assert page.item_range == (1, 10)
        assert page.page_buttons == [1, 2, 3]
        assert source.calls[0] == {"page": 0, "size": 10}

    asyncio.run(_inner())


def test_server_pagination_uses_total_elements():
    async def _inner():
        source = PagedDataSource(_rows(95))
        page = _page(source)
        await page.mount()
        await page.set_page(4)

        assert page.server_paginated is True
        assert page.state.page_count == 10
        assert [row["id"] for row in page.rows][0] == 31
        assert page.page_buttons == [1, 2, 3, 4, 5, 6, ELLIPSIS_END, 10]

    asyncio.run(_inner())


def test_page_change_clears_selection():
    async def _inner():
        page = _page(ListDataSource(_rows(25)))
        await page.mount()
        page.state.toggle_all(page.visible_ids)
        await page.set_page(2)

        assert page.state.selected_ids == frozenset()
        assert page.rows[0]["id"] == 11

    asyncio.run(_inner())


def test_filter_resets_page_and_non_sortable_columns_are_ignored():
    async def _inner():
        source = ListDataSource(_rows(25))
        page = _page(source)
        await page.mount()
        await page.set_page(3)
        await page.set_filter("name", "warehouse 1")

        assert page.state.page == 1
        assert page.state.state.total_items == 10

        calls = len(source.calls)
        await page.toggle_sort("status")
        assert page.state.sort is None
        assert len(source.calls) == calls

    asyncio.run(_inner())


def test_status_tab_sets_status_filter():
    async def _inner():
        source = PagedDataSource(_rows(5))
        page = _page(source)
        await page.mount()
        await page.set_status_tab("archived")
        assert source.calls[-1]["status.equals"] == "ARCHIVED"

        await page.set_status_tab("all")
        assert "status.equals" not in source.calls[-1]

    asyncio.run(_inner())


def test_shrinking_data_moves_back_to_last_page():
    async def _inner():
        source = ListDataSource(_rows(25))
        page = _page(source)
        await page.mount()
        await page.set_page(3)
        source.rows = _rows(12)
        await page.refresh()

        assert page.state.page == 2
        assert [row["id"] for row in page.rows] == [11, 12]

    asyncio.run(_inner())


def test_successful_bulk_action_clears_selection_and_refetches():
    async def _inner():
        source = ListDataSource(_rows(3))
        page = _page(source)
        await page.mount()
        page.state.toggle_all(page.visible_ids)

        result = await page.run_bulk_action("set_inactive")

        assert result.affected_ids == [1, 2, 3]
        assert page.state.selected_ids == frozenset()
        assert source.invalidations == 1
        assert {row["status"] for row in page.rows} == {"INACTIVE"}

    asyncio.run(_inner())


def test_failed_archive_keeps_selection_and_reconciles():
    async def _inner():
        notifications = []
        source = ListDataSource(_rows(3), fail_on=2)
        from entity_library.table.page import EntityTablePage

        page = EntityTablePage(
            _config(source),
            source,
            storage=MemoryStorage(),
            notifier=lambda level, message, error=None: notifications.append(level),
        )
        await page.mount()
        page.state.toggle_all(page.visible_ids)

        assert await page.run_bulk_action("archive") is None
        with pytest.raises(ActionExecutionError):
            await page.actions.confirm()

        statuses = {row["id"]: row["status"] for row in page.rows}
        assert statuses == {1: "ARCHIVED", 2: "ACTIVE", 3: "ACTIVE"}
        assert page.state.selected_ids == {1, 2, 3}
        assert source.invalidations == 1
        assert notifications == [ERROR]

    asyncio.run(_inner())


def test_load_error_is_reported_not_raised():
    async def _inner():
        class Broken(ListDataSource):
            async def get_all(self, params):
                raise ConnectionError("down")

        page = _page(Broken([]))
        result = await page.mount()
        assert result.rows == []
        assert isinstance(page.error, ConnectionError)
        assert page.is_loading is False

    asyncio.run(_inner())


def test_unknown_action_raises_key_error():
    async def _inner():
        page = _page(ListDataSource(_rows(1)))
        with pytest.raises(KeyError):
            await page.run_bulk_action("explode")

    asyncio.run(_inner())


def test_page_size_is_limited_to_configured_options():
    async def _inner():
        source = ListDataSource(_rows(60))
        page = _page(source, default_page_size=20, page_size_options=(10, 50))
        await page.mount()
        assert page.page_size_options == (10, 20, 50)

        result = await page.set_page_size(33)
        assert page.state.page_size == 20
        assert len(result.rows) == 20
        assert len(source.calls) == 1

        result = await page.set_page_size(50)
        assert page.state.page_size == 50
        assert len(result.rows) == 50

    asyncio.run(_inner())


@override_settings(ENTITY_LIBRARY={"table_settings": {"page_size_options": [5, 15]}})
def test_page_size_options_come_from_settings():
    page = _page(ListDataSource(_rows(3)))
    assert page.page_size_options == (5, 10, 15)
