"""
Bulk and row action execution.

Every action invocation walks one state machine::

    IDLE -> PENDING_CONFIRMATION -> EXECUTING -> IDLE
    IDLE -> EXECUTING -> IDLE

``EXECUTING -> IDLE`` is taken on success and on failure alike. Illegal
transitions raise ``ActionStateError``; there is no way to reach
``EXECUTING`` for a confirmation-gated action without ``confirm()``.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from django.utils.translation import gettext as _
from django.utils.translation import ngettext

from ..errors import (
    ActionExecutionError,
    ActionStateError,
    ErrorCode,
    describe_exception,
    to_error,
)
from ..lifecycle import LivenessGuard
from ..notifications import ERROR, SUCCESS, LoggingNotifier, Notifier
from .config import default_row_id

logger = logging.getLogger(__name__)

BulkMessage = Union[str, Callable[[int], str], None]
RowMessage = Union[str, Callable[[Any], str], None]
UpdateFn = Callable[[Any, dict[str, Any]], Awaitable[Any]]


class ActionState(str, Enum):
    IDLE = "idle"
    PENDING_CONFIRMATION = "pending_confirmation"
    EXECUTING = "executing"


_TRANSITIONS: dict[ActionState, frozenset[ActionState]] = {
    ActionState.IDLE: frozenset(
        {ActionState.PENDING_CONFIRMATION, ActionState.EXECUTING}
    ),
    ActionState.PENDING_CONFIRMATION: frozenset(
        {ActionState.EXECUTING, ActionState.IDLE}
    ),
    ActionState.EXECUTING: frozenset({ActionState.IDLE}),
}


@dataclass(frozen=True)
class BulkAction:
    """An operation applied to the current multi-row selection."""

    id: str
    label: str
    handler: Callable[[list[Any]], Any]
    requires_confirmation: bool = False
    confirmation_message: BulkMessage = None
    success_message: Optional[str] = None

    def resolve_message(self, targets: Sequence[Any]) -> str:
        message = self.confirmation_message
        if callable(message):
            message = message(len(targets))
        return str(message or "")


@dataclass(frozen=True)
class RowAction:
    """An operation applied to a single row."""

    id: str
    label: str
    handler: Callable[[Any], Any]
    requires_confirmation: bool = False
    confirmation_message: RowMessage = None
    success_message: Optional[str] = None

    def resolve_message(self, target: Any) -> str:
        message = self.confirmation_message
        if callable(message):
            message = message(target)
        return str(message or "")


@dataclass(frozen=True)
class PendingAction:
    action_id: str
    targets: Any
    requires_confirmation: bool
    message: str
    action: Union[BulkAction, RowAction] = field(repr=False, compare=False)

    @property
    def is_bulk(self) -> bool:
        return isinstance(self.action, BulkAction)


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    action_id: str
    affected_ids: list[Any]
    result: Any = None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ActionExecutor:
    """
    Confirmation -> execution -> invalidation for one table.

    ``invalidate`` refetches the backing data source after a mutation;
    ``on_success`` is where the owning table clears its selection. Failures
    are reported through ``notifier`` and re-raised as
    ``ActionExecutionError``; the selection is left untouched for a retry.
    """

    def __init__(
        self,
        *,
        invalidate: Optional[Callable[[], Any]] = None,
        on_success: Optional[Callable[[ActionResult], None]] = None,
        notifier: Optional[Notifier] = None,
        get_row_id: Callable[[Any], Any] = default_row_id,
        guard: Optional[LivenessGuard] = None,
    ) -> None:
        self._invalidate = invalidate
        self._on_success = on_success
        self._notify = notifier or LoggingNotifier()
        self._get_row_id = get_row_id
        self._guard = guard or LivenessGuard()
        self._state = ActionState.IDLE
        self._pending: Optional[PendingAction] = None
        self.last_error: Optional[ActionExecutionError] = None

    @property
    def state(self) -> ActionState:
        return self._state

    @property
    def pending(self) -> Optional[PendingAction]:
        return self._pending

    @property
    def is_executing(self) -> bool:
        return self._state is ActionState.EXECUTING

    def _transition(self, target: ActionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise ActionStateError(
                f"Cannot move action executor from {self._state.value} to {target.value}",
                details={"from": self._state.value, "to": target.value},
            )
        logger.debug("Action executor %s -> %s", self._state.value, target.value)
        self._state = target

    async def request_bulk(
        self, action: BulkAction, rows: Sequence[Any]
    ) -> Optional[ActionResult]:
        """
        Start ``action`` for the selected ``rows``.

        Returns ``None`` when the action now waits for confirmation, otherwise
        the result of the execution.
        """
        targets = list(rows)
        return await self._request(
            PendingAction(
                action_id=action.id,
                targets=targets,
                requires_confirmation=action.requires_confirmation,
                message=action.resolve_message(targets),
                action=action,
            )
        )

    async def request_row(self, action: RowAction, row: Any) -> Optional[ActionResult]:
        """
        Start ``action`` for a single row.

        Args:
            action: The row action to run
            row: The row the action applies to

        Returns:
            ``None`` while confirmation is pending, otherwise the result.

        Raises:
            ActionStateError: Another action is pending or executing
            ActionExecutionError: The handler failed
        """
        return await self._request(
            PendingAction(
                action_id=action.id,
                targets=row,
                requires_confirmation=action.requires_confirmation,
                message=action.resolve_message(row),
                action=action,
            )
        )

    async def confirm(self) -> ActionResult:
        """
        Execute the action awaiting confirmation.

        Returns:
            The result of the execution

        Raises:
            ActionStateError: No action is awaiting confirmation
            ActionExecutionError: The handler failed
        """
        if self._state is not ActionState.PENDING_CONFIRMATION or self._pending is None:
            raise ActionStateError("There is no action awaiting confirmation")
        return await self._execute(self._pending)

    def cancel(self) -> bool:
        """
        Drop the action awaiting confirmation.

        Returns:
            True if an action was pending, False otherwise
        """
        if self._state is not ActionState.PENDING_CONFIRMATION:
            return False
        self._transition(ActionState.IDLE)
        self._pending = None
        return True

    async def _request(self, pending: PendingAction) -> Optional[ActionResult]:
        if self._state is not ActionState.IDLE:
            raise ActionStateError(
                f"Cannot start '{pending.action_id}' while {self._state.value}"
            )
        if pending.requires_confirmation and pending.message:
            self._transition(ActionState.PENDING_CONFIRMATION)
            self._pending = pending
            return None
        return await self._execute(pending)

    async def _execute(self, pending: PendingAction) -> ActionResult:
        self._transition(ActionState.EXECUTING)
        self._pending = pending
        affected_ids = (
            [self._get_row_id(row) for row in pending.targets]
            if pending.is_bulk
            else [self._get_row_id(pending.targets)]
        )

        try:
            try:
                outcome = await _maybe_await(pending.action.handler(pending.targets))
            except Exception as exc:
                error = self._as_execution_error(pending, exc)
                self._finish()
                self.last_error = error
                logger.error(
                    "Action %s failed (row=%s): %s",
                    pending.action_id,
                    error.row_id,
                    describe_exception(exc),
                )
                self._notify(ERROR, error.message, error.to_error())
                # Partially applied bulk writes are reconciled by refetching.
                await self._safe_invalidate()
                raise error from exc

            await self._safe_invalidate()
        finally:
            # Cancellation also returns the executor to idle.
            self._finish()

        result = ActionResult(
            ok=True,
            action_id=pending.action_id,
            affected_ids=affected_ids,
            result=outcome,
        )
        self.last_error = None
        if self._guard.alive:
            if self._on_success is not None:
                self._on_success(result)
            self._notify(
                SUCCESS,
                pending.action.success_message
                or _("%(action)s completed") % {"action": pending.action.label},
            )
        return result

    def _finish(self) -> None:
        self._pending = None
        if self._state is ActionState.EXECUTING:
            self._transition(ActionState.IDLE)

    async def _safe_invalidate(self) -> None:
        if self._invalidate is None or not self._guard.alive:
            return
        try:
            await _maybe_await(self._invalidate())
        except Exception as exc:
            logger.warning("Invalidating table data failed: %s", exc)

    def _as_execution_error(
        self, pending: PendingAction, exc: Exception
    ) -> ActionExecutionError:
        if isinstance(exc, ActionExecutionError):
            return exc
        row_id = None if pending.is_bulk else self._get_row_id(pending.targets)
        return ActionExecutionError(
            _("%(action)s failed: %(error)s")
            % {"action": pending.action.label, "error": describe_exception(exc)},
            action_id=pending.action_id,
            row_id=row_id,
        )


# --------------------------------------------------------------------------- #
# Status-change actions
# --------------------------------------------------------------------------- #
def _row_payload(row: Any) -> dict[str, Any]:
    if isinstance(row, dict):
        return dict(row)
    if hasattr(row, "__dict__"):
        return {k: v for k, v in vars(row).items() if not k.startswith("_")}
    return {}


def status_change_action(
    action_id: str,
    label: str,
    status: Any,
    update: UpdateFn,
    *,
    status_field: str = "status",
    get_row_id: Callable[[Any], Any] = default_row_id,
    requires_confirmation: bool = False,
    confirmation_message: BulkMessage = None,
    success_message: Optional[str] = None,
) -> BulkAction:
    """
    Bulk action that writes ``status`` to every selected row, one at a time.

    Rows are updated sequentially in selection order. The first failing
    update stops the run: later rows are not attempted and earlier ones are
    not rolled back. The raised ``ActionExecutionError`` names the failing
    row and the ids already updated.
    """

    async def handler(rows: list[Any]) -> list[Any]:
        completed: list[Any] = []
        for row in rows:
            row_id = get_row_id(row)
            payload = {**_row_payload(row), status_field: status}
            try:
                await update(row_id, payload)
            except Exception as exc:
                raise ActionExecutionError(
                    _("%(action)s failed for %(row)s: %(error)s")
                    % {"action": label, "row": row_id, "error": describe_exception(exc)},
                    action_id=action_id,
                    row_id=row_id,
                    completed_ids=completed,
                ) from exc
            completed.append(row_id)
        return completed

    return BulkAction(
        id=action_id,
        label=label,
        handler=handler,
        requires_confirmation=requires_confirmation,
        confirmation_message=confirmation_message,
        success_message=success_message,
    )


def row_status_change_action(
    action_id: str,
    label: str,
    status: Any,
    update: UpdateFn,
    *,
    status_field: str = "status",
    get_row_id: Callable[[Any], Any] = default_row_id,
    requires_confirmation: bool = False,
    confirmation_message: RowMessage = None,
    success_message: Optional[str] = None,
) -> RowAction:
    async def handler(row: Any) -> Any:
        return await update(get_row_id(row), {**_row_payload(row), status_field: status})

    return RowAction(
        id=action_id,
        label=label,
        handler=handler,
        requires_confirmation=requires_confirmation,
        confirmation_message=confirmation_message,
        success_message=success_message,
    )


DEFAULT_STATUS_VALUES = {
    "active": "ACTIVE",
    "inactive": "INACTIVE",
    "archived": "ARCHIVED",
}


def _archive_bulk_message(count: int) -> str:
    return ngettext(
        "Archive %(count)d selected item?",
        "Archive %(count)d selected items?",
        count,
    ) % {"count": count}


def default_bulk_actions(
    update: UpdateFn,
    *,
    status_field: str = "status",
    status_values: Optional[dict[str, Any]] = None,
    get_row_id: Callable[[Any], Any] = default_row_id,
) -> list[BulkAction]:
    """Set active / set inactive / archive, the standard entity bulk actions."""
    values = {**DEFAULT_STATUS_VALUES, **(status_values or {})}
    options = {"status_field": status_field, "get_row_id": get_row_id}
    return [
        status_change_action("set_active", _("Set active"), values["active"], update, **options),
        status_change_action(
            "set_inactive", _("Set inactive"), values["inactive"], update, **options
        ),
        status_change_action(
            "archive",
            _("Archive"),
            values["archived"],
            update,
            requires_confirmation=True,
            confirmation_message=_archive_bulk_message,
            **options,
        ),
    ]


def default_row_actions(
    update: UpdateFn,
    *,
    status_field: str = "status",
    status_values: Optional[dict[str, Any]] = None,
    get_row_id: Callable[[Any], Any] = default_row_id,
) -> list[RowAction]:
    values = {**DEFAULT_STATUS_VALUES, **(status_values or {})}
    options = {"status_field": status_field, "get_row_id": get_row_id}
    return [
        row_status_change_action(
            "set_active", _("Set active"), values["active"], update, **options
        ),
        row_status_change_action(
            "set_inactive", _("Set inactive"), values["inactive"], update, **options
        ),
        row_status_change_action(
            "archive",
            _("Archive"),
            values["archived"],
            update,
            requires_confirmation=True,
            confirmation_message=lambda row: _("Archive %(row)s?")
            % {"row": get_row_id(row)},
            **options,
        ),
    ]
