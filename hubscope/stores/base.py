"""Store abstraction the query engine reads instance state from."""

from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator, List, Optional, Protocol, Sequence

from ..models import EntityMetadata, HistoryEventRaw, InstanceRecord, RuntimeStatus


class InstanceStore(Protocol):
    """Protocol for task hub storage backends.

    Stores are free to apply the time and status arguments as an
    optimization; the engine re-applies status and field filters itself.
    Errors reaching the backing storage propagate to the caller.
    """

    def list_instances(
        self,
        time_from: Optional[datetime],
        time_till: Optional[datetime],
        include_input_output: bool,
        statuses: Optional[Sequence[RuntimeStatus]],
    ) -> AsyncIterator[InstanceRecord]:
        """Stream orchestration instances created within the time range."""

    def list_entities(
        self, time_from: Optional[datetime], time_till: Optional[datetime]
    ) -> AsyncIterator[EntityMetadata]:
        """Stream entities last modified within the time range."""

    async def get_history(self, instance_id: str) -> List[HistoryEventRaw]:
        """Return the event-log rows of the instance's current execution,
        ordered by sequence number."""

    async def get_parent_instance_id(self, instance_id: str) -> Optional[str]:
        """Return the id of the orchestration that started this one, if any."""

    async def find_sub_orchestration_id(
        self, instance_id: str, task_id: int
    ) -> Optional[str]:
        """Return the id of the child instance started by ``instance_id`` with
        ``task_id``, if it exists."""
