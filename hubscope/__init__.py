"""hubscope: query and history correlation engine for durable workflow task hubs."""

from .engine import QueryEngine
from .history import correlate_history
from .models import (
    DisplayHistoryEvent,
    EntityId,
    EntityMetadata,
    EntityType,
    HistoryEventRaw,
    InstanceRecord,
    RuntimeStatus,
)
from .query import FilterClause, FilterOperator, parse_filter
from .stores import InMemoryInstanceStore, get_store

__version__ = "0.1.0"
__all__ = [
    "QueryEngine",
    "correlate_history",
    "DisplayHistoryEvent",
    "EntityId",
    "EntityMetadata",
    "EntityType",
    "HistoryEventRaw",
    "InstanceRecord",
    "RuntimeStatus",
    "FilterClause",
    "FilterOperator",
    "parse_filter",
    "InMemoryInstanceStore",
    "get_store",
]
