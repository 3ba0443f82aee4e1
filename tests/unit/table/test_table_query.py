import pytest

from entity_library.table.config import ColumnConfig
from entity_library.table.query import (
    apply_client_pagination,
    build_query_params,
    normalize_response,
)
from entity_library.table.state import DESC, SortDescriptor, TableState

pytestmark = pytest.mark.unit

ROWS = [
    {"id": 1, "name": "Alger Nord", "code": "W-01", "status": "ACTIVE", "capacity": 50},
    {"id": 2, "name": "Oran Port", "code": "W-02", "status": "INACTIVE", "capacity": 120},
    {"id": 3, "name": "Annaba", "code": "W-03", "status": "ACTIVE", "capacity": None},
    {"id": 4, "name": "Alger Sud", "code": "W-04", "status": "ARCHIVED", "capacity": 80},
]


def test_build_query_params():
    state = TableState(
        page=3,
        page_size=25,
        sort=SortDescriptor("name", DESC),
        filters={"name": "alger", "status": "ACTIVE"},
    )
    assert build_query_params(state) == {
        "page": 2,
        "size": 25,
        "sort": ["name,desc"],
        "name.contains": "alger",
        "status.equals": "ACTIVE",
    }


def test_build_query_params_without_sort():
    params = build_query_params(TableState(), extra={"tenant": "t1"})
    assert params == {"page": 0, "size": 10, "tenant": "t1"}


def test_page_object_is_authoritative():
    result = normalize_response({"content": ROWS[:2], "totalElements": 42}, TableState())
    assert result.server_paginated
    assert result.total_items == 42
    assert [row["id"] for row in result.rows] == [1, 2]


def test_bare_list_is_filtered_sorted_and_sliced_locally():
    state = TableState(
        page=1,
        page_size=1,
        sort=SortDescriptor("code", DESC),
        filters={"name": "ALGER"},
    )
    result = normalize_response(list(ROWS), state)

    assert not result.server_paginated
    assert result.total_items == 2
    assert [row["id"] for row in result.rows] == [4]


def test_status_filter_is_exact():
    state = TableState(filters={"status": "active"})
    result = apply_client_pagination(ROWS, state)
    assert [row["id"] for row in result.rows] == [1, 3]


def test_missing_values_sort_last():
    result = apply_client_pagination(ROWS, TableState(sort=SortDescriptor("capacity")))
    assert [row["id"] for row in result.rows] == [1, 4, 2, 3]

    result = apply_client_pagination(ROWS, TableState(sort=SortDescriptor("capacity", DESC)))
    assert [row["id"] for row in result.rows] == [2, 4, 1, 3]


def test_mixed_value_types_sort_numbers_before_text():
    rows = [
        {"id": 1, "code": "b"},
        {"id": 2, "code": 10},
        {"id": 3, "code": "A"},
        {"id": 4, "code": 2.5},
    ]
    result = apply_client_pagination(rows, TableState(sort=SortDescriptor("code")))
    assert [row["id"] for row in result.rows] == [4, 2, 3, 1]

    result = apply_client_pagination(rows, TableState(sort=SortDescriptor("code", DESC)))
    assert [row["id"] for row in result.rows] == [1, 3, 2, 4]


def test_column_accessor_is_used_for_filtering():
    columns = [ColumnConfig("label", accessor=lambda row: f"{row['code']} {row['name']}")]
    result = apply_client_pagination(ROWS, TableState(filters={"label": "w-02"}), columns=columns)
    assert [row["id"] for row in result.rows] == [2]


def test_none_response_is_empty():
    result = normalize_response(None, TableState())
    assert result.rows == []
    assert result.total_items == 0
