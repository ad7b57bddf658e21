"""Correlation of raw event-log rows into a display timeline.

A task's ``TaskScheduled`` row and its ``TaskCompleted``/``TaskFailed`` row
(likewise for sub-orchestrations) are folded into one event that carries
the scheduling time and the duration. ``ExecutionCompleted`` gets the time
of the preceding ``ExecutionStarted`` of the same execution.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Dict, Iterator, Optional, Sequence, Set, Tuple

from .models import DisplayHistoryEvent, HistoryEventRaw
from .query.streams import is_cancelled
from .stores.base import InstanceStore
from .utils.time import milliseconds_between

logger = logging.getLogger(__name__)

EXECUTION_STARTED = "ExecutionStarted"
EXECUTION_COMPLETED = "ExecutionCompleted"
SUB_ORCHESTRATION_CREATED = "SubOrchestrationInstanceCreated"

SCHEDULE_EVENT_TYPES = frozenset({"TaskScheduled", SUB_ORCHESTRATION_CREATED})

COMPLETION_EVENT_TYPES = frozenset(
    {
        "TaskCompleted",
        "TaskFailed",
        "SubOrchestrationInstanceCompleted",
        "SubOrchestrationInstanceFailed",
    }
)

RECOGNIZED_EVENT_TYPES = frozenset(
    {
        EXECUTION_STARTED,
        EXECUTION_COMPLETED,
        "ExecutionFailed",
        "ExecutionTerminated",
        "ContinueAsNew",
        "TimerCreated",
        "TimerFired",
        "EventRaised",
        "EventSent",
    }
    | SCHEDULE_EVENT_TYPES
    | COMPLETION_EVENT_TYPES
)

CorrelationKey = Tuple[str, str, str, int]


def correlation_key(row: HistoryEventRaw) -> Optional[CorrelationKey]:
    if row.task_id is None:
        return None
    return (row.instance_id, row.execution_id, row.task_hub, row.task_id)


def build_correlation_index(
    rows: Sequence[HistoryEventRaw],
) -> Dict[CorrelationKey, HistoryEventRaw]:
    """Index completion rows by correlation key. A later duplicate wins."""
    index: Dict[CorrelationKey, HistoryEventRaw] = {}
    for row in rows:
        if row.event_type not in COMPLETION_EVENT_TYPES:
            continue
        key = correlation_key(row)
        if key is not None:
            index[key] = row
    return index


def find_completion(
    row: HistoryEventRaw, index: Dict[CorrelationKey, HistoryEventRaw]
) -> Optional[HistoryEventRaw]:
    if row.event_type not in SCHEDULE_EVENT_TYPES:
        return None
    key = correlation_key(row)
    if key is None:
        return None
    match = index.get(key)
    if match is None or match.sequence_number == row.sequence_number:
        return None
    return match


def duration_in_ms(
    timestamp: datetime, scheduled_time: Optional[datetime]
) -> Optional[float]:
    """Milliseconds from scheduling to ``timestamp``, never negative."""
    if scheduled_time is None:
        return None
    return max(milliseconds_between(scheduled_time, timestamp), 0.0)


def _display_event(
    row: HistoryEventRaw,
    scheduled_time: Optional[datetime] = None,
    completion: Optional[HistoryEventRaw] = None,
) -> DisplayHistoryEvent:
    source = completion or row
    return DisplayHistoryEvent(
        timestamp=source.timestamp,
        event_type=source.event_type,
        event_id=row.task_id,
        name=row.name or source.name,
        scheduled_time=scheduled_time,
        result=source.result,
        details=source.details,
        duration_in_ms=duration_in_ms(source.timestamp, scheduled_time),
    )


def correlate_rows(
    rows: Sequence[HistoryEventRaw],
) -> Iterator[Tuple[HistoryEventRaw, DisplayHistoryEvent]]:
    """Yield ``(originating row, display event)`` pairs in sequence order.

    ``rows`` must already be ordered by sequence number. This is the pure
    part of the correlation; sub-orchestration ids are resolved by
    ``correlate_history``.
    """
    index = build_correlation_index(rows)

    # completion rows folded into their schedule row produce no event of their own
    consumed: Set[Tuple[str, int]] = set()
    for row in rows:
        completion = find_completion(row, index)
        if completion is not None:
            consumed.add((completion.execution_id, completion.sequence_number))

    execution_id: Optional[str] = None
    execution_started: Optional[datetime] = None

    for row in rows:
        if row.execution_id != execution_id:
            execution_id = row.execution_id
            execution_started = None

        if row.event_type not in RECOGNIZED_EVENT_TYPES:
            continue
        if (
            row.event_type in COMPLETION_EVENT_TYPES
            and (row.execution_id, row.sequence_number) in consumed
        ):
            continue

        completion = find_completion(row, index)
        if completion is not None:
            yield row, _display_event(row, row.timestamp, completion)
            continue

        scheduled_time = None
        if row.event_type == EXECUTION_STARTED:
            execution_started = row.timestamp
        elif row.event_type == EXECUTION_COMPLETED:
            scheduled_time = execution_started
        yield row, _display_event(row, scheduled_time)


async def _sub_orchestration_id(
    store: InstanceStore, row: HistoryEventRaw
) -> Optional[str]:
    try:
        return await store.find_sub_orchestration_id(row.instance_id, row.task_id)
    except Exception as e:
        logger.warning(
            f"Failed to resolve sub-orchestration of {row.instance_id} "
            f"(taskId={row.task_id}): {e}"
        )
        return None


async def correlate_history(
    rows: Sequence[HistoryEventRaw],
    store: Optional[InstanceStore] = None,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[DisplayHistoryEvent]:
    """Correlate ``rows`` and resolve sub-orchestration ids through ``store``.

    A failed lookup leaves ``sub_orchestration_id`` unset; nothing is cached,
    so the next load tries again.
    """
    for row, event in correlate_rows(rows):
        if is_cancelled(cancel):
            return
        if (
            store is not None
            and row.event_type == SUB_ORCHESTRATION_CREATED
            and row.task_id is not None
        ):
            event.sub_orchestration_id = await _sub_orchestration_id(store, row)
        yield event
