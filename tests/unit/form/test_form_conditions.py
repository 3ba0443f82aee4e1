import pytest

from entity_library.form.conditional import evaluate_condition, resolve_value
from entity_library.form.dependencies import find_cycle

pytestmark = pytest.mark.unit


def test_condition_kinds():
    values = {"type": "COLD", "capacity": 120, "tags": ["frozen"], "address": {"city": "Oran"}}

    assert evaluate_condition(None, values)
    assert evaluate_condition(lambda data: data["type"] == "COLD", values)
    assert evaluate_condition({"field": "capacity", "operator": "GT", "value": 100}, values)
    assert not evaluate_condition({"field": "capacity", "operator": "LT", "value": 100}, values)
    assert evaluate_condition({"field": "tags", "operator": "CONTAINS", "value": "frozen"}, values)
    assert evaluate_condition({"field": "address.city", "operator": "EQ", "value": "Oran"}, values)
    assert evaluate_condition({"field": "notes", "operator": "IS_EMPTY"}, values)


def test_condition_groups():
    values = {"type": "COLD", "capacity": 10}
    group = {
        "logic": "OR",
        "conditions": [
            {"field": "type", "operator": "EQ", "value": "DRY"},
            {"field": "capacity", "operator": "LTE", "value": 10},
        ],
    }
    assert evaluate_condition(group, values)
    assert not evaluate_condition({**group, "logic": "AND"}, values)


def test_unknown_operator_and_incomparable_values_are_false():
    assert not evaluate_condition({"field": "a", "operator": "SOUNDS_LIKE", "value": 1}, {"a": 1})
    assert not evaluate_condition({"field": "a", "operator": "GT", "value": 1}, {"a": "x"})


def test_resolve_value_handles_missing_paths():
    assert resolve_value({"a": {"b": 1}}, "a.b") == 1
    assert resolve_value({"a": 1}, "a.b") is None
    assert resolve_value({}, None) is None


def test_cycle_detection():
    assert find_cycle({"city": ["region"], "district": ["city"]}) is None
    assert find_cycle({"a": ["b"], "b": ["c"], "c": ["a"]}) == ["a", "b", "c", "a"]

