"""
Dependent select resolution.

The resolver watches form values and, for every field declaring
``depends_on``, resets the field and reloads its options when a prerequisite
changes. Loads are debounced per field and keyed by a hash of the dependency
values; a response whose key is no longer the latest one is discarded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping, Optional

from django.core.exceptions import ImproperlyConfigured

from ..common.interfaces import OptionFetcherProtocol
from ..config_proxy import settings_proxy
from ..lifecycle import KeyedDebouncedTask, LivenessGuard, snapshot_key
from .conditional import is_empty
from .dependencies import find_cycle
from .endpoints import RequestsOptionFetcher, coerce_options, parse_options, resolve_request
from .fields import FieldConfig, Option

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependentFieldSettings:
    debounce_ms: int = 300
    option_endpoint_prefix: str = "/api"
    missing_dependency_message: str = "Select {dependency} first"
    no_options_message: str = "No options available"


@lru_cache(maxsize=1)
def get_dependent_field_settings() -> DependentFieldSettings:
    raw = settings_proxy.section("dependent_field_settings")
    return DependentFieldSettings(
        debounce_ms=max(int(raw.get("debounce_ms", 300)), 0),
        option_endpoint_prefix=str(raw.get("option_endpoint_prefix", "/api")),
        missing_dependency_message=str(
            raw.get("missing_dependency_message", "Select {dependency} first")
        ),
        no_options_message=str(raw.get("no_options_message", "No options available")),
    )


@dataclass(frozen=True)
class FieldOptionsState:
    """Read-only view of one dependent field, as a select widget renders it."""

    options: tuple[Option, ...] = ()
    is_loading: bool = False
    awaiting_prerequisite: bool = False
    message: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DependencyEntry:
    config: FieldConfig
    task: KeyedDebouncedTask
    last_seen_values: Optional[dict[str, Any]] = None
    options: list[Option] = field(default_factory=list)
    loaded: bool = False
    is_loading: bool = False
    awaiting_prerequisite: bool = False
    message: Optional[str] = None
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def depends_on(self) -> tuple[str, ...]:
        return self.config.depends_on


def _topological(graph: Mapping[str, Iterable[str]]) -> list[str]:
    ordered: list[str] = []

    def _visit(node: str) -> None:
        if node in ordered:
            return
        for dep in graph.get(node, ()):
            if dep in graph:
                _visit(dep)
        ordered.append(node)

    for node in graph:
        _visit(node)
    return ordered


class DependentFieldResolver:
    """
    Keeps dependent select options in step with their prerequisites.

    ``set_value(name, value)`` is how the resolver writes back into the form
    (resets and auto-selection). Calls to ``observe`` made while a previous
    observation is still being processed are queued.
    """

    def __init__(
        self,
        fields: Iterable[FieldConfig],
        *,
        set_value: Callable[[str, Any], None],
        endpoint_map: Optional[Mapping[str, str]] = None,
        fetcher: Optional[OptionFetcherProtocol] = None,
        guard: Optional[LivenessGuard] = None,
        debounce_ms: Optional[int] = None,
    ) -> None:
        fields = list(fields)
        self._set_value = set_value
        self.endpoint_map = dict(endpoint_map or {})
        self._owns_fetcher = fetcher is None
        self._fetcher = fetcher
        self.guard = guard or LivenessGuard()
        self.settings = get_dependent_field_settings()
        delay = self.settings.debounce_ms if debounce_ms is None else debounce_ms

        self._labels = {config.name: config.label or config.name for config in fields}
        graph = {config.name: list(config.depends_on) for config in fields if config.is_dependent}
        cycle = find_cycle(graph)
        if cycle:
            raise ImproperlyConfigured(
                f"Circular field dependency: {' -> '.join(cycle)}"
            )

        by_name = {config.name: config for config in fields}
        self.entries: dict[str, DependencyEntry] = {
            name: DependencyEntry(
                config=by_name[name],
                task=KeyedDebouncedTask(f"options:{name}", delay_ms=delay, guard=self.guard),
            )
            for name in _topological(graph)
        }
        self.values: dict[str, Any] = {}
        self._queue: deque[dict[str, Any]] = deque()
        self._observing = False

    @property
    def fetcher(self) -> OptionFetcherProtocol:
        if self._fetcher is None:
            self._fetcher = RequestsOptionFetcher()
        return self._fetcher

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #
    def options(self, name: str) -> list[Option]:
        entry = self.entries.get(name)
        return list(entry.options) if entry else []

    def state(self, name: str) -> FieldOptionsState:
        entry = self.entries.get(name)
        if entry is None:
            return FieldOptionsState()
        message = entry.message
        if message is None and entry.loaded and not entry.options and not entry.is_loading:
            message = self.settings.no_options_message
        return FieldOptionsState(
            options=tuple(entry.options),
            is_loading=entry.is_loading,
            awaiting_prerequisite=entry.awaiting_prerequisite,
            message=message,
            error=entry.error,
        )

    def options_for(self, config: FieldConfig) -> Optional[list[Option]]:
        """Choices used for validation; ``None`` while a dependent field has no result yet."""
        entry = self.entries.get(config.name)
        if entry is None:
            return config.static_options(self.values)
        if entry.awaiting_prerequisite:
            return []
        if not entry.loaded:
            return None
        return list(entry.options)

    # ------------------------------------------------------------------ #
    # Observation
    # ------------------------------------------------------------------ #
    def observe(self, values: Mapping[str, Any]) -> None:
        """
        Process a snapshot of the form values.

        Safe to call from synchronous code: option loads scheduled without a
        running event loop stay in the loading state until ``resume()``,
        ``settle()`` or a later ``observe()`` runs inside a loop.

        Args:
            values: Current value of every form field, keyed by name
        """
        if not self.guard.alive:
            return
        self._queue.append(dict(values))
        if self._observing:
            return
        self._observing = True
        try:
            while self._queue:
                self._process(self._queue.popleft())
        finally:
            self._observing = False
        self.resume()

    def resume(self) -> None:
        """Start option loads deferred while no event loop was running."""
        if not self.guard.alive:
            return
        for entry in self.entries.values():
            entry.task.resume()

    def _process(self, values: dict[str, Any]) -> None:
        self.values = values
        for entry in self.entries.values():
            if not self.guard.alive:
                return
            current = {dep: values.get(dep) for dep in entry.depends_on}
            missing = [dep for dep in entry.depends_on if is_empty(current[dep])]

            if entry.last_seen_values is None:
                entry.last_seen_values = current
                if missing:
                    self._await_prerequisite(entry, missing[0])
                else:
                    self._schedule(entry, current)
                continue

            if current == entry.last_seen_values:
                continue
            entry.last_seen_values = current

            if entry.config.reset_on_change and not is_empty(values.get(entry.name)):
                values[entry.name] = None
                self._set_value(entry.name, None)

            if missing:
                self._await_prerequisite(entry, missing[0])
            else:
                self._schedule(entry, current)

    def _await_prerequisite(self, entry: DependencyEntry, dependency: str) -> None:
        entry.task.supersede()
        template = entry.config.missing_dependency_message or self.settings.missing_dependency_message
        entry.options = []
        entry.loaded = False
        entry.is_loading = False
        entry.awaiting_prerequisite = True
        entry.error = None
        entry.message = template.format(dependency=self._labels.get(dependency, dependency))

    def _schedule(self, entry: DependencyEntry, current: dict[str, Any]) -> None:
        key = snapshot_key({"field": entry.name, "values": current})
        entry.options = []
        entry.loaded = False
        entry.is_loading = True
        entry.awaiting_prerequisite = False
        entry.message = None
        entry.error = None
        entry.task.schedule(
            key,
            lambda: self._load(entry, dict(current)),
            lambda outcome: self._apply(entry, outcome),
        )

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    async def _fetch(self, entry: DependencyEntry, dependency_values: dict[str, Any]) -> list[Option]:
        config = entry.config
        if config.transform_dependencies is not None:
            dependency_values = dict(config.transform_dependencies(dependency_values))

        if config.fetch_options is not None:
            raw = config.fetch_options(dependency_values)
            if inspect.isawaitable(raw):
                raw = await raw
            return coerce_options(raw or [], config.endpoint)

        url, params = resolve_request(
            entry.name,
            config.endpoint,
            dependency_values,
            endpoint_map=self.endpoint_map,
            prefix=self.settings.option_endpoint_prefix,
        )
        payload = await self.fetcher.fetch(url, params)
        endpoint = config.endpoint
        return parse_options(
            payload,
            label_key=endpoint.label_key if endpoint else None,
            value_key=endpoint.value_key if endpoint else None,
            content_path=endpoint.content_path if endpoint else None,
        )

    async def _load(
        self, entry: DependencyEntry, dependency_values: dict[str, Any]
    ) -> tuple[list[Option], Optional[str]]:
        try:
            return await self._fetch(entry, dependency_values), None
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Failed to load options for %s: %s", entry.name, exc)
            return [], str(exc)

    def _apply(self, entry: DependencyEntry, outcome: tuple[list[Option], Optional[str]]) -> None:
        options, error = outcome
        entry.options = options
        entry.loaded = True
        entry.is_loading = False
        entry.error = error

        if (
            entry.config.auto_select_single_option
            and len(options) == 1
            and self.values.get(entry.name) != options[0].value
        ):
            self._set_value(entry.name, options[0].value)
            self.values[entry.name] = options[0].value

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    @property
    def pending(self) -> bool:
        return any(entry.task.pending for entry in self.entries.values())

    async def settle(self) -> None:
        """Wait until no option load is scheduled or in flight."""
        while self.guard.alive and self.pending:
            await asyncio.gather(*(entry.task.wait() for entry in self.entries.values()))

    def close(self) -> None:
        self.guard.close()
        for entry in self.entries.values():
            entry.task.cancel()
        self._queue.clear()
        if self._owns_fetcher and self._fetcher is not None:
            self._fetcher.close()
