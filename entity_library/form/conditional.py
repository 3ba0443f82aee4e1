"""
Condition evaluation for wizard steps and form fields.

A condition is either a callable receiving the current form data, a rule
``{"field": ..., "operator": ..., "value": ...}``, or a group
``{"logic": "AND"|"OR", "conditions": [...]}``. ``None`` means "always".
"""

from __future__ import annotations

import logging
import operator
import re
from typing import Any, Callable, Mapping, Union

logger = logging.getLogger(__name__)

Condition = Union[None, bool, Callable[[Mapping[str, Any]], Any], Mapping[str, Any]]

EMPTY_VALUES = (None, "", [], {}, ())


def resolve_value(values: Mapping[str, Any], path: str | None) -> Any:
    if not path:
        return None
    cursor: Any = values
    for token in str(path).split("."):
        if not token:
            continue
        if not isinstance(cursor, Mapping):
            return None
        cursor = cursor.get(token)
    return cursor


def is_empty(value: Any) -> bool:
    return value in EMPTY_VALUES


def _as_collection(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def _inner(actual: Any, expected: Any) -> bool:
        if actual is None or expected is None:
            return False
        try:
            return bool(op(actual, expected))
        except TypeError:
            return False

    return _inner


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return str(expected or "") in actual
    if isinstance(actual, (list, tuple, set, frozenset)):
        return expected in actual
    return False


def _matches(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, str):
        return False
    try:
        return bool(re.search(str(expected or ""), actual))
    except re.error:
        return False


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "EQ": lambda actual, expected: actual == expected,
    "NEQ": lambda actual, expected: actual != expected,
    "GT": _compare(operator.gt),
    "GTE": _compare(operator.ge),
    "LT": _compare(operator.lt),
    "LTE": _compare(operator.le),
    "IN": lambda actual, expected: actual in _as_collection(expected),
    "NOT_IN": lambda actual, expected: actual not in _as_collection(expected),
    "CONTAINS": _contains,
    "STARTS_WITH": lambda actual, expected: isinstance(actual, str)
    and actual.startswith(str(expected or "")),
    "ENDS_WITH": lambda actual, expected: isinstance(actual, str)
    and actual.endswith(str(expected or "")),
    "IS_EMPTY": lambda actual, _expected: is_empty(actual),
    "IS_NOT_EMPTY": lambda actual, _expected: not is_empty(actual),
    "MATCHES": _matches,
}


def _evaluate_rule(rule: Mapping[str, Any], values: Mapping[str, Any]) -> bool:
    op_name = str(rule.get("operator", "EQ")).upper()
    handler = OPERATORS.get(op_name)
    if handler is None:
        logger.warning("Unknown condition operator %s", op_name)
        return False
    field = rule.get("field")
    actual = resolve_value(values, str(field)) if field else None
    return handler(actual, rule.get("value"))


def evaluate_condition(condition: Condition, values: Mapping[str, Any]) -> bool:
    if condition is None:
        return True
    if isinstance(condition, bool):
        return condition
    if callable(condition):
        return bool(condition(values))
    if not isinstance(condition, Mapping):
        return True

    conditions = condition.get("conditions")
    if isinstance(conditions, list):
        results = [
            evaluate_condition(item, values)
            for item in conditions
            if isinstance(item, Mapping) or callable(item)
        ]
        if not results:
            return True
        if str(condition.get("logic", "AND")).upper() == "OR":
            return any(results)
        return all(results)

    return _evaluate_rule(condition, values)
