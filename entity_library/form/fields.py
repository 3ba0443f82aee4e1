"""
Form field kinds and their Django form field mapping.

``FieldKind`` is closed: ``FIELD_BUILDERS`` must cover every member, which is
checked when this module is imported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from django import forms
from django.core.exceptions import ImproperlyConfigured
from django.core.validators import RegexValidator

from .conditional import Condition, evaluate_condition

PHONE_PATTERN = r"^\+?[0-9 ()\-.]{6,20}$"


class FieldKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    EMAIL = "email"
    PASSWORD = "password"
    SELECT = "select"
    MULTISELECT = "multiselect"
    DEPENDENT_SELECT = "dependent-select"
    PHONE = "phone"
    DATE = "date"
    CHECKBOX = "checkbox"
    SWITCH = "switch"
    TEXTAREA = "textarea"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Option:
    label: str
    value: str
    data: Any = field(default=None, compare=False, repr=False)


OptionsSource = Union[Sequence[Option], Callable[[Mapping[str, Any]], Sequence[Option]], None]


@dataclass(frozen=True)
class OptionEndpoint:
    """Where and how a dependent select loads its options."""

    url: Optional[str] = None
    endpoint_name: Optional[str] = None
    label_key: Optional[str] = None
    value_key: Optional[str] = None
    content_path: Optional[str] = None
    static_params: Mapping[str, Any] = field(default_factory=dict)
    param_names: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldConfig:
    name: str
    kind: FieldKind = FieldKind.TEXT
    label: str = ""
    required: bool = False
    hidden: Condition = None
    disabled: bool = False
    help_text: str = ""
    placeholder: str = ""
    initial: Any = None
    options: OptionsSource = None
    validation: Mapping[str, Any] = field(default_factory=dict)
    validators: Sequence[Callable[[Any], None]] = ()
    form_field: Optional[forms.Field] = None

    # Dependent select configuration
    depends_on: tuple[str, ...] = ()
    endpoint: Optional[OptionEndpoint] = None
    fetch_options: Optional[Callable[[Mapping[str, Any]], Any]] = None
    transform_dependencies: Optional[
        Callable[[Mapping[str, Any]], Mapping[str, Any]]
    ] = None
    reset_on_change: bool = True
    auto_select_single_option: bool = False
    missing_dependency_message: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.depends_on, str):
            object.__setattr__(self, "depends_on", (self.depends_on,))
        else:
            object.__setattr__(self, "depends_on", tuple(self.depends_on))
        object.__setattr__(self, "kind", FieldKind(self.kind))

    @property
    def is_dependent(self) -> bool:
        return bool(self.depends_on)

    def is_hidden(self, values: Mapping[str, Any]) -> bool:
        if self.hidden is None:
            return False
        return evaluate_condition(self.hidden, values)

    def static_options(self, values: Mapping[str, Any]) -> Optional[list[Option]]:
        if self.options is None:
            return None
        if callable(self.options):
            return list(self.options(values))
        return list(self.options)


def _common_kwargs(config: FieldConfig) -> dict[str, Any]:
    return {
        "required": config.required,
        "label": config.label or config.name,
        "help_text": config.help_text,
        "disabled": config.disabled,
        "validators": list(config.validators),
    }


def _text_kwargs(config: FieldConfig) -> dict[str, Any]:
    kwargs = _common_kwargs(config)
    rules = config.validation
    if rules.get("min_length") is not None:
        kwargs["min_length"] = int(rules["min_length"])
    if rules.get("max_length") is not None:
        kwargs["max_length"] = int(rules["max_length"])
    if rules.get("pattern"):
        kwargs["validators"].append(
            RegexValidator(rules["pattern"], message=rules.get("pattern_message"))
        )
    return kwargs


def _choices(options: Optional[Iterable[Option]]) -> list[tuple[str, str]]:
    return [(str(option.value), option.label) for option in options or []]


def _build_text(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    return forms.CharField(**_text_kwargs(config))


def _build_textarea(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    return forms.CharField(widget=forms.Textarea, **_text_kwargs(config))


def _build_password(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    return forms.CharField(widget=forms.PasswordInput, **_text_kwargs(config))


def _build_email(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    return forms.EmailField(**_text_kwargs(config))


def _build_phone(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    kwargs = _text_kwargs(config)
    kwargs["validators"].append(RegexValidator(PHONE_PATTERN, message="Enter a valid phone number."))
    return forms.CharField(**kwargs)


def _build_number(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    kwargs = _common_kwargs(config)
    rules = config.validation
    if rules.get("min") is not None:
        kwargs["min_value"] = rules["min"]
    if rules.get("max") is not None:
        kwargs["max_value"] = rules["max"]
    if rules.get("integer"):
        return forms.IntegerField(**kwargs)
    return forms.FloatField(**kwargs)


def _build_date(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    return forms.DateField(**_common_kwargs(config))


def _build_boolean(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    return forms.BooleanField(**_common_kwargs(config))


def _build_select(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    if options is None:
        # Options not loaded yet: only presence can be checked.
        return forms.CharField(**_common_kwargs(config))
    return forms.ChoiceField(choices=_choices(options), **_common_kwargs(config))


def _build_multiselect(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    if options is None:
        return forms.Field(**_common_kwargs(config))
    return forms.MultipleChoiceField(choices=_choices(options), **_common_kwargs(config))


def _build_custom(config: FieldConfig, options: Optional[list[Option]]) -> forms.Field:
    if config.form_field is not None:
        return config.form_field
    return forms.Field(**_common_kwargs(config))


FIELD_BUILDERS: dict[FieldKind, Callable[[FieldConfig, Optional[list[Option]]], forms.Field]] = {
    FieldKind.TEXT: _build_text,
    FieldKind.NUMBER: _build_number,
    FieldKind.EMAIL: _build_email,
    FieldKind.PASSWORD: _build_password,
    FieldKind.SELECT: _build_select,
    FieldKind.MULTISELECT: _build_multiselect,
    FieldKind.DEPENDENT_SELECT: _build_select,
    FieldKind.PHONE: _build_phone,
    FieldKind.DATE: _build_date,
    FieldKind.CHECKBOX: _build_boolean,
    FieldKind.SWITCH: _build_boolean,
    FieldKind.TEXTAREA: _build_textarea,
    FieldKind.CUSTOM: _build_custom,
}

_missing_kinds = set(FieldKind) - set(FIELD_BUILDERS)
if _missing_kinds:
    raise ImproperlyConfigured(
        f"No form field builder for: {sorted(kind.value for kind in _missing_kinds)}"
    )


def build_form_field(config: FieldConfig, options: Optional[list[Option]] = None) -> forms.Field:
    return FIELD_BUILDERS[config.kind](config, options)


def build_form_class(
    name: str,
    fields: Iterable[FieldConfig],
    *,
    options: Optional[Mapping[str, Optional[list[Option]]]] = None,
    base: type[forms.Form] = forms.Form,
) -> type[forms.Form]:
    """Create a Django ``Form`` subclass validating the given fields."""
    options = options or {}
    attrs: dict[str, Any] = {}
    for config in fields:
        attrs[config.name] = build_form_field(config, options.get(config.name))
    return type(name, (base,), attrs)
