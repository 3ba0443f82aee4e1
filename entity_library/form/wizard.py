"""
Multi-step form wizard engine.

Steps are filtered by their condition against the current form data every
time the data changes, so the visible step set can shrink or grow; the
current index is clamped into the new bounds. Each step validates only its
own fields before the wizard moves forward, and submit validates every
visible step.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Sequence

from django import forms
from django.core.exceptions import NON_FIELD_ERRORS

from ..config_proxy import settings_proxy
from ..errors import WizardStateError
from ..lifecycle import LivenessGuard
from .conditional import Condition, evaluate_condition
from .errors import FormErrors, merge_errors, normalize_errors
from .fields import FieldConfig, Option, build_form_class

logger = logging.getLogger(__name__)

DataListener = Callable[[Mapping[str, Any]], None]


@dataclass(frozen=True)
class FormSettings:
    allow_back_navigation: bool = True
    validate_on_submit: bool = True


@lru_cache(maxsize=1)
def get_form_settings() -> FormSettings:
    raw = settings_proxy.section("form_settings")
    return FormSettings(
        allow_back_navigation=bool(raw.get("allow_back_navigation", True)),
        validate_on_submit=bool(raw.get("validate_on_submit", True)),
    )


@dataclass(frozen=True)
class WizardStep:
    id: str
    title: str = ""
    fields: Sequence[FieldConfig] = ()
    condition: Condition = None
    schema: Optional[type[forms.Form]] = None
    description: str = ""

    def is_visible(self, values: Mapping[str, Any]) -> bool:
        return evaluate_condition(self.condition, values)

    def field_names(self) -> list[str]:
        return [config.name for config in self.fields]


@dataclass
class StepValidation:
    ok: bool
    cleaned_data: dict[str, Any] = field(default_factory=dict)
    errors: FormErrors = field(default_factory=dict)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class FormWizardEngine:
    """
    Sequences wizard steps and gates forward navigation on validation.

    ``on_step_complete(step_id, data)`` runs after a step validates and before
    the index advances. ``on_submit(data)`` receives the cleaned data of every
    visible step once full-form validation passes.
    """

    def __init__(
        self,
        steps: Sequence[WizardStep],
        *,
        initial: Optional[Mapping[str, Any]] = None,
        on_step_complete: Optional[Callable[[str, dict[str, Any]], Any]] = None,
        on_submit: Optional[Callable[[dict[str, Any]], Any]] = None,
        allow_back_navigation: Optional[bool] = None,
        options_for: Optional[Callable[[FieldConfig], Optional[list[Option]]]] = None,
        guard: Optional[LivenessGuard] = None,
    ) -> None:
        self.steps = list(steps)
        self.data: dict[str, Any] = {}
        for step in self.steps:
            for config in step.fields:
                if config.initial is not None:
                    self.data[config.name] = config.initial
        self.data.update(initial or {})

        form_settings = get_form_settings()
        self.allow_back_navigation = (
            form_settings.allow_back_navigation
            if allow_back_navigation is None
            else allow_back_navigation
        )
        self.on_step_complete = on_step_complete
        self.on_submit = on_submit
        self._options_for = options_for
        self._guard = guard or LivenessGuard()

        self.errors: FormErrors = {}
        self.is_submitting = False
        self.completed_steps: set[str] = set()
        self._index = 0
        self._navigating = False
        self._listeners: list[DataListener] = []

    # ------------------------------------------------------------------ #
    # Derived state
    # ------------------------------------------------------------------ #
    @property
    def visible_steps(self) -> list[WizardStep]:
        return [step for step in self.steps if step.is_visible(self.data)]

    @property
    def step_count(self) -> int:
        return len(self.visible_steps)

    @property
    def step_index(self) -> int:
        self._index = self._clamp(self._index)
        return self._index

    @property
    def current_step(self) -> Optional[WizardStep]:
        visible = self.visible_steps
        if not visible:
            return None
        return visible[self.step_index]

    @property
    def is_first(self) -> bool:
        return self.step_index == 0

    @property
    def is_last(self) -> bool:
        return self.step_index >= self.step_count - 1

    @property
    def can_go_back(self) -> bool:
        return self.allow_back_navigation and not self.is_first

    @property
    def progress(self) -> int:
        count = self.step_count
        if count == 0:
            return 0
        return round((self.step_index + 1) * 100 / count)

    def _clamp(self, index: int) -> int:
        upper = max(self.step_count - 1, 0)
        return min(max(int(index), 0), upper)

    def visible_fields(self, step: WizardStep) -> list[FieldConfig]:
        return [config for config in step.fields if not config.is_hidden(self.data)]

    def field_config(self, name: str) -> Optional[FieldConfig]:
        for step in self.steps:
            for config in step.fields:
                if config.name == name:
                    return config
        return None

    # ------------------------------------------------------------------ #
    # Form data
    # ------------------------------------------------------------------ #
    def subscribe(self, listener: DataListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def set_value(self, name: str, value: Any) -> None:
        self.update({name: value})

    def update(self, values: Mapping[str, Any]) -> None:
        if not self._guard.alive:
            return
        changed = {
            name: value
            for name, value in values.items()
            if name not in self.data or self.data[name] != value
        }
        if not changed:
            return
        self.data.update(changed)
        for name in changed:
            self.errors.pop(name, None)
        self._index = self._clamp(self._index)
        for listener in list(self._listeners):
            listener(dict(self.data))

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #
    def _options(self, config: FieldConfig) -> Optional[list[Option]]:
        if self._options_for is not None:
            return self._options_for(config)
        return config.static_options(self.data)

    def step_form(self, step: WizardStep) -> forms.Form:
        schema = step.schema
        if schema is None:
            fields = self.visible_fields(step)
            schema = build_form_class(
                f"{step.id.title().replace('-', '').replace('_', '')}StepForm",
                fields,
                options={config.name: self._options(config) for config in fields},
            )
        return schema(data=self.data)

    def validate_step(self, step: WizardStep) -> StepValidation:
        form = self.step_form(step)
        if form.is_valid():
            return StepValidation(ok=True, cleaned_data=dict(form.cleaned_data))
        return StepValidation(ok=False, errors=normalize_errors(form.errors))

    def validate_all(self) -> StepValidation:
        cleaned: dict[str, Any] = {}
        errors: FormErrors = {}
        for step in self.visible_steps:
            result = self.validate_step(step)
            cleaned.update(result.cleaned_data)
            errors = merge_errors(errors, result.errors)
        return StepValidation(ok=not errors, cleaned_data=cleaned, errors=errors)

    def _attach_errors(self, step: WizardStep, errors: FormErrors) -> None:
        names = set(step.field_names()) | {NON_FIELD_ERRORS}
        if step.schema is not None:
            names.update(step.schema.base_fields)
        for name in names:
            self.errors.pop(name, None)
        self.errors.update(errors)

    # ------------------------------------------------------------------ #
    # Navigation
    # ------------------------------------------------------------------ #
    async def next(self) -> bool:
        """Validate the current step and advance; ``False`` when refused."""
        step = self.current_step
        if step is None or self._navigating:
            return False

        result = self.validate_step(step)
        self._attach_errors(step, result.errors)
        if not result.ok:
            logger.debug("Step %s failed validation: %s", step.id, sorted(result.errors))
            return False

        self._navigating = True
        try:
            if self.on_step_complete is not None:
                await _maybe_await(self.on_step_complete(step.id, dict(result.cleaned_data)))
        finally:
            self._navigating = False

        if not self._guard.alive:
            return False
        self.completed_steps.add(step.id)
        self._index = self._clamp(self.step_index + 1)
        return True

    def prev(self) -> bool:
        """
        Go back one visible step without validating.

        Returns:
            True if the index moved. Always False when back navigation is
            disabled or on the first step.
        """
        if not self.allow_back_navigation or self._navigating:
            return False
        before = self.step_index
        self._index = self._clamp(before - 1)
        return self._index != before

    def go_to(self, index: int) -> int:
        """Jump to ``index`` (clamped) without validating."""
        if not self._navigating:
            self._index = self._clamp(index)
        return self.step_index

    async def submit(self) -> Any:
        """
        Validate every visible step and hand the payload to ``on_submit``.

        Returns:
            The ``on_submit`` result, the payload itself when there is no
            handler, or ``None`` when validation failed (errors are then in
            ``self.errors`` and the step index is unchanged).

        Raises:
            WizardStateError: Not on the last step, or a submit is already
                running
        """
        if not self.is_last:
            raise WizardStateError("Submit is only available on the last step")
        if self.is_submitting:
            raise WizardStateError("The form is already being submitted")

        if get_form_settings().validate_on_submit:
            result = self.validate_all()
            self.errors = dict(result.errors)
            if not result.ok:
                logger.debug("Submit blocked by validation errors: %s", sorted(result.errors))
                return None
            payload = {**self.data, **result.cleaned_data}
        else:
            payload = dict(self.data)

        if self.on_submit is None:
            return payload

        self.is_submitting = True
        try:
            return await _maybe_await(self.on_submit(payload))
        finally:
            self.is_submitting = False
