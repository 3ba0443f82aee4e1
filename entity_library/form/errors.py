"""
Normalize validation errors to ``{field: [messages]}``.
"""

from __future__ import annotations

from typing import Any, Mapping

from django.core.exceptions import NON_FIELD_ERRORS, ValidationError

FormErrors = dict[str, list[str]]


def _append(errors: FormErrors, field: str, messages: Any) -> None:
    bucket = errors.setdefault(field, [])
    if isinstance(messages, ValidationError):
        bucket.extend(str(message) for message in messages.messages)
    elif isinstance(messages, (list, tuple)):
        for message in messages:
            _append(errors, field, message)
    else:
        bucket.append(str(messages))


def normalize_errors(value: Any) -> FormErrors:
    """Flatten a ``ValidationError``, a bound form's ``errors`` or a plain mapping."""
    errors: FormErrors = {}
    if value is None:
        return errors

    if isinstance(value, ValidationError):
        if hasattr(value, "error_dict"):
            for field, messages in value.message_dict.items():
                _append(errors, field, messages)
        else:
            _append(errors, NON_FIELD_ERRORS, value)
        return errors

    if isinstance(value, Mapping):
        for field, messages in value.items():
            if hasattr(messages, "as_data"):
                # ErrorList from a bound form
                for error in messages.as_data():
                    _append(errors, str(field), error)
            else:
                _append(errors, str(field), messages)
        return errors

    _append(errors, NON_FIELD_ERRORS, value)
    return errors


def merge_errors(*sources: Mapping[str, list[str]]) -> FormErrors:
    merged: FormErrors = {}
    for source in sources:
        for field, messages in source.items():
            merged.setdefault(field, []).extend(messages)
    return merged
