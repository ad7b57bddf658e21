"""In-memory implementation of the instance store."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Sequence

from ..errors import InstanceNotFoundError, StoreUnavailableError
from ..models import EntityMetadata, HistoryEventRaw, InstanceRecord, RuntimeStatus
from ..utils.time import as_utc
from .base import InstanceStore


def _in_range(
    value: Optional[datetime], time_from: Optional[datetime], time_till: Optional[datetime]
) -> bool:
    if value is None:
        return True
    value = as_utc(value)
    if time_from is not None and value < as_utc(time_from):
        return False
    if time_till is not None and value > as_utc(time_till):
        return False
    return True


class InMemoryInstanceStore(InstanceStore):
    """Keep task hub state in local memory.

    Useful for tests. Every call is counted in ``calls`` by method name.
    Setting ``available`` to ``False`` makes every call raise
    ``StoreUnavailableError``; ``supports_entities = False`` makes entity
    listing fail the way stores without entity support do.
    """

    def __init__(self, task_hub: str = "TestHubName") -> None:
        self.task_hub = task_hub
        self.available = True
        self.supports_entities = True
        self.calls: Counter = Counter()
        self._instances: Dict[str, InstanceRecord] = {}
        self._entities: Dict[str, EntityMetadata] = {}
        self._history: Dict[str, List[HistoryEventRaw]] = {}

    # ------------------------------------------------------------------
    # Test setup
    def add_instance(self, record: InstanceRecord) -> None:
        self._instances[record.instance_id] = record

    def add_entity(self, entity: EntityMetadata) -> None:
        self._entities[entity.instance_id] = entity

    def add_history(self, instance_id: str, rows: Sequence[HistoryEventRaw]) -> None:
        self._history.setdefault(instance_id, []).extend(rows)

    def _track(self, method: str) -> None:
        self.calls[method] += 1
        if not self.available:
            raise StoreUnavailableError(f"Task hub {self.task_hub} is not reachable")

    # ------------------------------------------------------------------
    # Store API
    async def list_instances(
        self,
        time_from: Optional[datetime],
        time_till: Optional[datetime],
        include_input_output: bool,
        statuses: Optional[Sequence[RuntimeStatus]],
    ) -> AsyncIterator[InstanceRecord]:
        self._track("list_instances")
        for record in list(self._instances.values()):
            if not _in_range(record.created_time, time_from, time_till):
                continue
            if statuses is not None and record.runtime_status not in statuses:
                continue
            # fresh copy per query, enrichment mutates it
            copy = record.model_copy(deep=True)
            if not include_input_output:
                copy.input = None
                copy.output = None
            yield copy

    async def list_entities(
        self, time_from: Optional[datetime], time_till: Optional[datetime]
    ) -> AsyncIterator[EntityMetadata]:
        self._track("list_entities")
        if not self.supports_entities:
            raise NotImplementedError("This store does not support entities")
        for entity in list(self._entities.values()):
            if _in_range(entity.last_modified_time, time_from, time_till):
                yield entity.model_copy(deep=True)

    async def get_history(self, instance_id: str) -> List[HistoryEventRaw]:
        self._track("get_history")
        rows = self._history.get(instance_id)
        if rows is None:
            if instance_id in self._instances:
                return []
            raise InstanceNotFoundError(instance_id)
        rows = sorted(rows, key=lambda r: r.sequence_number)
        current_execution = rows[-1].execution_id
        return [r for r in rows if r.execution_id == current_execution]

    async def get_parent_instance_id(self, instance_id: str) -> Optional[str]:
        self._track("get_parent_instance_id")
        for row in self._history.get(instance_id, []):
            if row.event_type == "ExecutionStarted" and row.parent_instance_id:
                return row.parent_instance_id
        return None

    async def find_sub_orchestration_id(
        self, instance_id: str, task_id: int
    ) -> Optional[str]:
        self._track("find_sub_orchestration_id")
        for child_id, rows in self._history.items():
            for row in rows:
                if (
                    row.event_type == "ExecutionStarted"
                    and row.parent_instance_id == instance_id
                    and row.task_id == task_id
                ):
                    return child_id
        return None
