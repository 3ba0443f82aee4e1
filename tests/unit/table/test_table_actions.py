import asyncio

import pytest

from entity_library.errors import ActionExecutionError, ActionStateError
from entity_library.lifecycle import LivenessGuard
from entity_library.notifications import ERROR, SUCCESS
from entity_library.table.actions import (
    ActionExecutor,
    ActionState,
    BulkAction,
    RowAction,
    default_bulk_actions,
    default_row_actions,
    status_change_action,
)

pytestmark = pytest.mark.unit

ROWS = [{"id": 1, "status": "ACTIVE"}, {"id": 2, "status": "ACTIVE"}, {"id": 3, "status": "ACTIVE"}]


class Recorder:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.updates = []
        self.invalidations = 0
        self.successes = []
        self.notifications = []

    async def update(self, row_id, data):
        if row_id == self.fail_on:
            raise RuntimeError("server refused")
        self.updates.append((row_id, data))
        return data

    async def invalidate(self):
        self.invalidations += 1

    def on_success(self, result):
        self.successes.append(result)

    def notify(self, level, message, error=None):
        self.notifications.append((level, message, error))

    def executor(self, **kwargs):
        return ActionExecutor(
            invalidate=self.invalidate,
            on_success=self.on_success,
            notifier=self.notify,
            **kwargs,
        )


def test_action_without_confirmation_executes_immediately():
    async def _inner():
        recorder = Recorder()
        executor = recorder.executor()
        action = status_change_action("set_inactive", "Set inactive", "INACTIVE", recorder.update)

        result = await executor.request_bulk(action, ROWS[:2])

        assert result.ok
        assert result.affected_ids == [1, 2]
        assert result.result == [1, 2]
        assert [data["status"] for _, data in recorder.updates] == ["INACTIVE", "INACTIVE"]
        assert recorder.invalidations == 1
        assert recorder.successes == [result]
        assert recorder.notifications[-1][0] == SUCCESS
        assert executor.state is ActionState.IDLE

    asyncio.run(_inner())


def test_confirmation_gates_execution():
    async def _inner():
        recorder = Recorder()
        executor = recorder.executor()
        archive = default_bulk_actions(recorder.update)[2]

        assert await executor.request_bulk(archive, ROWS) is None
        assert executor.state is ActionState.PENDING_CONFIRMATION
        assert executor.pending.message == "Archive 3 selected items?"
        assert recorder.updates == []

        result = await executor.confirm()
        assert result.affected_ids == [1, 2, 3]
        assert all(data["status"] == "ARCHIVED" for _, data in recorder.updates)
        assert executor.pending is None

    asyncio.run(_inner())


def test_cancel_has_no_side_effects():
    async def _inner():
        recorder = Recorder()
        executor = recorder.executor()
        archive = default_bulk_actions(recorder.update)[2]

        await executor.request_bulk(archive, ROWS)
        assert executor.cancel() is True
        assert executor.state is ActionState.IDLE
        assert executor.cancel() is False
        assert recorder.updates == []
        assert recorder.invalidations == 0

    asyncio.run(_inner())


def test_confirm_without_pending_action_is_an_error():
    async def _inner():
        with pytest.raises(ActionStateError):
            await Recorder().executor().confirm()

    asyncio.run(_inner())


def test_archive_stops_at_first_failure():
    async def _inner():
        recorder = Recorder(fail_on=2)
        executor = recorder.executor()
        archive = default_bulk_actions(recorder.update)[2]

        await executor.request_bulk(archive, ROWS)
        with pytest.raises(ActionExecutionError) as excinfo:
            await executor.confirm()

        assert [row_id for row_id, _ in recorder.updates] == [1]
        assert excinfo.value.row_id == 2
        assert excinfo.value.completed_ids == [1]
        assert excinfo.value.action_id == "archive"
        assert recorder.successes == []
        assert recorder.invalidations == 1
        level, _message, error = recorder.notifications[-1]
        assert level == ERROR
        assert error["code"] == "ENTITY_MUTATION"
        assert error["details"]["rowId"] == 2
        assert executor.state is ActionState.IDLE
        assert executor.last_error is excinfo.value

    asyncio.run(_inner())


def test_empty_confirmation_message_executes_immediately():
    async def _inner():
        recorder = Recorder()
        executor = recorder.executor()
        action = BulkAction(
            id="noop",
            label="Noop",
            handler=lambda rows: len(rows),
            requires_confirmation=True,
            confirmation_message=lambda count: "",
        )
        result = await executor.request_bulk(action, ROWS)
        assert result.result == 3

    asyncio.run(_inner())


def test_second_request_while_pending_is_rejected():
    async def _inner():
        recorder = Recorder()
        executor = recorder.executor()
        archive = default_bulk_actions(recorder.update)[2]
        await executor.request_bulk(archive, ROWS)

        with pytest.raises(ActionStateError):
            await executor.request_bulk(archive, ROWS)

    asyncio.run(_inner())


def test_request_while_executing_is_rejected():
    async def _inner():
        gate = asyncio.Event()
        recorder = Recorder()
        executor = recorder.executor()

        async def slow(rows):
            await gate.wait()
            return len(rows)

        action = BulkAction(id="slow", label="Slow", handler=slow)
        task = asyncio.create_task(executor.request_bulk(action, ROWS))
        await asyncio.sleep(0)
        assert executor.is_executing

        with pytest.raises(ActionStateError):
            await executor.request_bulk(action, ROWS)

        gate.set()
        assert (await task).result == 3

    asyncio.run(_inner())


def test_cancelled_action_returns_executor_to_idle():
    async def _inner():
        recorder = Recorder()
        executor = recorder.executor()

        async def slow(rows):
            await asyncio.sleep(1)
            return len(rows)

        action = BulkAction(id="slow", label="Slow", handler=slow)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(executor.request_bulk(action, ROWS), 0.01)

        assert executor.state is ActionState.IDLE
        assert executor.pending is None
        assert recorder.successes == []

        quick = BulkAction(id="ok", label="Ok", handler=lambda rows: len(rows))
        result = await executor.request_bulk(quick, ROWS)
        assert result.ok
        assert executor.state is ActionState.IDLE

    asyncio.run(_inner())


def test_row_action_confirmation_message_uses_row():
    async def _inner():
        recorder = Recorder()
        executor = recorder.executor()
        archive = default_row_actions(recorder.update)[2]

        await executor.request_row(archive, {"id": 7, "status": "ACTIVE"})
        assert executor.pending.message == "Archive 7?"

        result = await executor.confirm()
        assert result.affected_ids == [7]
        assert recorder.updates == [(7, {"id": 7, "status": "ARCHIVED"})]

    asyncio.run(_inner())


def test_row_action_failure_reports_row_id():
    async def _inner():
        recorder = Recorder(fail_on=5)
        executor = recorder.executor()
        action = RowAction(
            id="activate",
            label="Activate",
            handler=lambda row: recorder.update(row["id"], row),
        )
        with pytest.raises(ActionExecutionError) as excinfo:
            await executor.request_row(action, {"id": 5})
        assert excinfo.value.row_id == 5

    asyncio.run(_inner())


def test_closed_guard_suppresses_success_callbacks():
    async def _inner():
        recorder = Recorder()
        guard = LivenessGuard()
        executor = recorder.executor(guard=guard)

        async def handler(rows):
            guard.close()
            return len(rows)

        await executor.request_bulk(BulkAction(id="x", label="X", handler=handler), ROWS)
        assert recorder.successes == []
        assert recorder.notifications == []
        assert recorder.invalidations == 0

    asyncio.run(_inner())
