"""Data models for instance-state records and event-log rows."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Entity instance ids look like '@<entity-name>@<entity-key>'
ENTITY_ID_REGEX = re.compile(r"@([\w-]+)@(.+)", re.IGNORECASE)

# Synthetic runtime status that selects entities in a status filter
DURABLE_ENTITIES_STATUS = "DurableEntities"


class RuntimeStatus(str, Enum):
    """Runtime status of an orchestration instance."""

    RUNNING = "Running"
    COMPLETED = "Completed"
    CONTINUED_AS_NEW = "ContinuedAsNew"
    FAILED = "Failed"
    TERMINATED = "Terminated"
    PENDING = "Pending"
    SUSPENDED = "Suspended"

    @classmethod
    def parse(cls, value: str) -> Optional["RuntimeStatus"]:
        """Case-insensitive lookup by name. Returns ``None`` for unknown names."""
        value = value.strip().strip("'").lower()
        for status in cls:
            if status.value.lower() == value:
                return status
        return None


class EntityType(str, Enum):
    ORCHESTRATION = "Orchestration"
    DURABLE_ENTITY = "DurableEntity"


class EntityId(BaseModel):
    """Name and key of an entity."""

    model_config = ConfigDict(frozen=True)

    name: str
    key: str

    def __str__(self) -> str:
        return f"@{self.name}@{self.key}"


def parse_entity_id(instance_id: str) -> Optional[EntityId]:
    """Return the entity id encoded in ``instance_id``, if it has the entity shape."""
    match = ENTITY_ID_REGEX.search(instance_id)
    if match is None:
        return None
    return EntityId(name=match.group(1), key=match.group(2))


class _CamelModel(BaseModel):
    """Models whose logical field names (filters, sorting, JSON) are camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InstanceRecord(_CamelModel):
    """One orchestration or entity instance as shown in a listing.

    ``parent_instance_id`` and ``last_event`` are only populated when the
    active filter asks for them.
    """

    instance_id: str
    name: str = ""
    created_time: Optional[datetime] = None
    last_updated_time: Optional[datetime] = None
    input: Any = None
    output: Any = None
    custom_status: Any = None
    runtime_status: RuntimeStatus = RuntimeStatus.PENDING
    entity_type: EntityType = EntityType.ORCHESTRATION
    entity_id: Optional[EntityId] = None
    parent_instance_id: Optional[str] = None
    last_event: Optional[str] = None
    duration: Optional[int] = None

    @property
    def is_entity(self) -> bool:
        return self.entity_type == EntityType.DURABLE_ENTITY


class EntityMetadata(_CamelModel):
    """Entity as returned by an entity listing."""

    instance_id: str
    last_modified_time: datetime
    state: Any = None
    includes_state: bool = True


class HistoryEventRaw(_CamelModel):
    """One row of an instance's event log.

    ``result`` and ``details`` hold payload text the store has already
    resolved. ``parent_instance_id`` is only set on the ``ExecutionStarted``
    row of a sub-orchestration.
    """

    instance_id: str
    execution_id: str
    task_hub: str = ""
    task_id: Optional[int] = None
    sequence_number: int
    event_type: str
    timestamp: datetime
    name: Optional[str] = None
    result: Optional[str] = None
    details: Optional[str] = None
    parent_instance_id: Optional[str] = None


class DisplayHistoryEvent(_CamelModel):
    """Correlated history event ready for display."""

    timestamp: datetime
    event_type: str
    event_id: Optional[int] = None
    name: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    result: Optional[str] = None
    details: Optional[str] = None
    sub_orchestration_id: Optional[str] = None
    duration_in_ms: Optional[float] = None
