"""Tests for history correlation."""

from datetime import datetime, timedelta, timezone

import pytest

from hubscope.history import correlate_history, correlate_rows, duration_in_ms
from hubscope.models import HistoryEventRaw
from hubscope.query.streams import collect
from hubscope.stores import InMemoryInstanceStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def _row(seq, event_type, seconds=None, execution_id="e1", **kwargs) -> HistoryEventRaw:
    return HistoryEventRaw(
        instance_id=kwargs.pop("instance_id", "orch"),
        execution_id=execution_id,
        task_hub="hub",
        sequence_number=seq,
        event_type=event_type,
        timestamp=_at(seq if seconds is None else seconds),
        **kwargs,
    )


def _events(rows):
    return [event for _, event in correlate_rows(rows)]


def test_schedule_and_completion_fold_into_one_event():
    rows = [
        _row(0, "ExecutionStarted", name="Hello"),
        _row(3, "TaskScheduled", task_id=7, name="SayHello"),
        _row(5, "TimerCreated"),
        _row(9, "TaskCompleted", task_id=7, result='"Hello Tokyo"'),
    ]
    events = _events(rows)

    assert [e.event_type for e in events] == ["ExecutionStarted", "TaskCompleted", "TimerCreated"]
    task = events[1]
    assert task.event_id == 7
    assert task.name == "SayHello"
    assert task.timestamp == _at(9)
    assert task.scheduled_time == _at(3)
    assert task.result == '"Hello Tokyo"'
    assert task.duration_in_ms == 6000


def test_failed_task_keeps_failure_details():
    rows = [
        _row(1, "TaskScheduled", task_id=0, name="Flaky"),
        _row(2, "TaskFailed", task_id=0, details="boom"),
    ]
    (event,) = _events(rows)
    assert event.event_type == "TaskFailed"
    assert event.name == "Flaky"
    assert event.details == "boom"
    assert event.duration_in_ms == 1000


def test_pending_task_is_emitted_as_scheduled():
    rows = [_row(0, "ExecutionStarted"), _row(1, "TaskScheduled", task_id=0, name="Slow")]
    events = _events(rows)
    assert events[1].event_type == "TaskScheduled"
    assert events[1].scheduled_time is None
    assert events[1].duration_in_ms is None


def test_execution_completed_gets_start_time():
    rows = [
        _row(0, "ExecutionStarted", seconds=0),
        _row(1, "OrchestratorStarted", seconds=1),
        _row(2, "ExecutionCompleted", seconds=11, result="done"),
    ]
    events = _events(rows)
    assert [e.event_type for e in events] == ["ExecutionStarted", "ExecutionCompleted"]
    assert events[1].scheduled_time == _at(0)
    assert events[1].duration_in_ms == 11000


def test_execution_start_is_not_carried_across_executions():
    rows = [
        _row(0, "ExecutionStarted", execution_id="e1"),
        _row(1, "ExecutionCompleted", execution_id="e2"),
    ]
    events = _events(rows)
    assert events[1].scheduled_time is None
    assert events[1].duration_in_ms is None


def test_rows_of_other_executions_do_not_correlate():
    rows = [
        _row(0, "TaskScheduled", task_id=1, execution_id="e1"),
        _row(1, "TaskCompleted", task_id=1, execution_id="e2"),
    ]
    assert [e.event_type for e in _events(rows)] == ["TaskScheduled", "TaskCompleted"]


def test_rows_without_task_id_do_not_correlate():
    rows = [_row(0, "TaskScheduled"), _row(1, "TaskCompleted")]
    events = _events(rows)
    assert [e.event_type for e in events] == ["TaskScheduled", "TaskCompleted"]
    assert all(e.scheduled_time is None for e in events)


def test_unrecognized_rows_are_skipped():
    rows = [
        _row(0, "OrchestratorStarted"),
        _row(1, "GenericEvent"),
        _row(2, "HistoryState"),
        _row(3, "EventRaised", name="Approval"),
    ]
    events = _events(rows)
    assert [e.event_type for e in events] == ["EventRaised"]
    assert events[0].name == "Approval"


def test_clock_skew_gives_zero_duration():
    rows = [
        _row(0, "TaskScheduled", seconds=10, task_id=2),
        _row(1, "TaskCompleted", seconds=9, task_id=2),
    ]
    (event,) = _events(rows)
    assert event.duration_in_ms == 0
    assert duration_in_ms(_at(0), None) is None


def test_each_completion_is_used_once():
    rows = [
        _row(0, "TaskScheduled", task_id=1, name="A"),
        _row(1, "TaskScheduled", task_id=2, name="B"),
        _row(2, "TaskCompleted", task_id=2),
        _row(3, "TaskCompleted", task_id=1),
    ]
    events = _events(rows)
    assert [(e.name, e.event_type, e.timestamp) for e in events] == [
        ("A", "TaskCompleted", _at(3)),
        ("B", "TaskCompleted", _at(2)),
    ]


def test_consumed_completions_are_tracked_per_execution():
    rows = [
        _row(1, "TaskScheduled", task_id=1, execution_id="e1", name="A"),
        _row(2, "TaskCompleted", task_id=1, execution_id="e1"),
        _row(2, "TaskFailed", seconds=20, task_id=9, execution_id="e2", details="boom"),
    ]
    events = _events(rows)
    assert [(e.event_type, e.event_id) for e in events] == [
        ("TaskCompleted", 1),
        ("TaskFailed", 9),
    ]
    assert events[1].details == "boom"
    assert events[1].scheduled_time is None


class _FlakyStore(InMemoryInstanceStore):
    def __init__(self):
        super().__init__()
        self.fail_lookups = True

    async def find_sub_orchestration_id(self, instance_id, task_id):
        if self.fail_lookups:
            self.calls["find_sub_orchestration_id"] += 1
            raise RuntimeError("lookup failed")
        return await super().find_sub_orchestration_id(instance_id, task_id)


def _sub_orchestration_rows():
    return [
        _row(0, "ExecutionStarted"),
        _row(1, "SubOrchestrationInstanceCreated", task_id=4, name="Child"),
        _row(5, "SubOrchestrationInstanceCompleted", task_id=4, result="42"),
    ]


@pytest.mark.asyncio
async def test_sub_orchestration_id_is_resolved():
    store = InMemoryInstanceStore()
    store.add_history(
        "child-1",
        [_row(0, "ExecutionStarted", instance_id="child-1", task_id=4, parent_instance_id="orch")],
    )

    events = await collect(correlate_history(_sub_orchestration_rows(), store))
    assert [e.event_type for e in events] == [
        "ExecutionStarted",
        "SubOrchestrationInstanceCompleted",
    ]
    assert events[1].sub_orchestration_id == "child-1"
    assert events[1].name == "Child"
    assert events[1].duration_in_ms == 4000


@pytest.mark.asyncio
async def test_failed_sub_orchestration_lookup_is_not_fatal(caplog):
    store = _FlakyStore()
    store.add_history(
        "child-1",
        [_row(0, "ExecutionStarted", instance_id="child-1", task_id=4, parent_instance_id="orch")],
    )

    events = await collect(correlate_history(_sub_orchestration_rows(), store))
    assert events[1].sub_orchestration_id is None
    assert "lookup failed" in caplog.text

    # nothing is cached, the next load retries
    store.fail_lookups = False
    events = await collect(correlate_history(_sub_orchestration_rows(), store))
    assert events[1].sub_orchestration_id == "child-1"
    assert store.calls["find_sub_orchestration_id"] == 2


@pytest.mark.asyncio
async def test_correlation_without_store_skips_lookups():
    events = await collect(correlate_history(_sub_orchestration_rows()))
    assert events[1].sub_orchestration_id is None
