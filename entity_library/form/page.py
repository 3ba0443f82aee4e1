"""
EntityFormPage: a create/edit wizard bound to an entity data source.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from django.utils.translation import gettext as _

from ..common.interfaces import EntityFormDataSourceProtocol, OptionFetcherProtocol
from ..errors import ErrorCode, MutationError, describe_exception, to_error
from ..lifecycle import LivenessGuard
from ..notifications import ERROR, SUCCESS, LoggingNotifier, Notifier
from .fields import FieldConfig
from .resolver import DependentFieldResolver
from .wizard import FormWizardEngine, WizardStep

logger = logging.getLogger(__name__)

CREATE = "create"
EDIT = "edit"


@dataclass(frozen=True)
class FormConfig:
    entity_id: str
    steps: Sequence[WizardStep]
    entity_label: str = ""
    endpoint_map: Mapping[str, str] = field(default_factory=dict)
    prepare_payload: Optional[Callable[[dict[str, Any]], Mapping[str, Any]]] = None
    allow_back_navigation: Optional[bool] = None

    @property
    def fields(self) -> list[FieldConfig]:
        return [config for step in self.steps for config in step.fields]

    @property
    def label(self) -> str:
        return self.entity_label or self.entity_id.replace("-", " ").replace("_", " ").title()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class EntityFormPage:
    """
    One mounted entity form.

    Passing ``entity_id`` puts the page in edit mode: ``load()`` seeds the
    wizard from ``get_by_id`` and ``submit()`` dispatches ``update``.
    Otherwise the page creates a new entity.
    """

    def __init__(
        self,
        config: FormConfig,
        data_source: EntityFormDataSourceProtocol,
        *,
        entity_id: Any = None,
        initial: Optional[Mapping[str, Any]] = None,
        notifier: Optional[Notifier] = None,
        fetcher: Optional[OptionFetcherProtocol] = None,
        debounce_ms: Optional[int] = None,
        on_success: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self.config = config
        self.data_source = data_source
        self.entity_id = entity_id
        self.mode = EDIT if entity_id is not None else CREATE
        self.notify = notifier or LoggingNotifier()
        self.on_success = on_success
        self.guard = LivenessGuard()

        self.entity: Optional[Mapping[str, Any]] = None
        self.is_loading = False
        self.load_error: Optional[Exception] = None

        self.wizard = FormWizardEngine(
            config.steps,
            initial=initial,
            on_submit=self._persist,
            allow_back_navigation=config.allow_back_navigation,
            options_for=lambda field_config: self.resolver.options_for(field_config),
            guard=self.guard,
        )
        self.resolver = DependentFieldResolver(
            config.fields,
            set_value=self.wizard.set_value,
            endpoint_map=config.endpoint_map,
            fetcher=fetcher,
            guard=self.guard,
            debounce_ms=debounce_ms,
        )
        self.wizard.subscribe(self.resolver.observe)

    @property
    def is_edit(self) -> bool:
        return self.mode == EDIT

    async def load(self) -> Optional[Mapping[str, Any]]:
        """Seed the form (edit mode) and take the dependent-field baseline."""
        if self.is_edit:
            self.is_loading = True
            try:
                entity = await _maybe_await(self.data_source.get_by_id(self.entity_id))
            except Exception as exc:
                self.is_loading = False
                self.load_error = exc
                if self.guard.alive:
                    logger.error(
                        "Loading %s %s failed: %s", self.config.entity_id, self.entity_id, exc
                    )
                    self.notify(
                        ERROR,
                        _("Unable to load %(entity)s") % {"entity": self.config.label},
                        to_error(ErrorCode.UNKNOWN, describe_exception(exc), retryable=True),
                    )
                raise
            if not self.guard.alive:
                return None
            self.is_loading = False
            self.entity = entity
            if entity:
                self.wizard.update(dict(entity))

        self.resolver.observe(self.wizard.data)
        return self.entity

    async def submit(self) -> Any:
        return await self.wizard.submit()

    async def _persist(self, payload: dict[str, Any]) -> Any:
        if self.config.prepare_payload is not None:
            payload = dict(self.config.prepare_payload(payload))
        try:
            if self.is_edit:
                result = await _maybe_await(self.data_source.update(self.entity_id, payload))
            else:
                result = await _maybe_await(self.data_source.create(payload))
        except Exception as exc:
            error = MutationError(
                describe_exception(exc, _("Unable to save")),
                details={"entityId": self.entity_id, "mode": self.mode},
            )
            logger.error("Saving %s failed: %s", self.config.entity_id, exc)
            if self.guard.alive:
                self.notify(ERROR, _("Unable to save %(entity)s") % {"entity": self.config.label}, error.to_error())
            raise error from exc

        await self._safe_invalidate()
        if not self.guard.alive:
            return result

        if self.is_edit:
            message = _("%(entity)s updated") % {"entity": self.config.label}
        else:
            message = _("%(entity)s created") % {"entity": self.config.label}
        self.notify(SUCCESS, message)
        if self.on_success is not None:
            await _maybe_await(self.on_success(result))
        return result

    async def _safe_invalidate(self) -> None:
        try:
            await _maybe_await(self.data_source.invalidate_queries())
        except Exception as exc:
            logger.warning(
                "Invalidating %s queries after save failed: %s", self.config.entity_id, exc
            )

    def close(self) -> None:
        self.resolver.close()
        self.guard.close()
