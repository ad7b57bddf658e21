"""Field lookup tables used by filtering and sorting.

Each record type has a closed table mapping its logical (camelCase) field
names to accessor functions. Names that are not in the table resolve to
``NO_FIELD``, which callers treat as "nothing to filter/sort by".
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from operator import attrgetter
from typing import Any, Callable, Dict, Iterable, NamedTuple, Optional

from ..utils.time import as_utc, format_timestamp, parse_timestamp


class FieldAccessor(NamedTuple):
    """Resolved field of a record type.

    ``native`` is ``True`` for strings, numbers and timestamps, which sort by
    their own ordering. Other fields sort by their string rendering.
    """

    name: str
    get: Callable[[Any], Any]
    native: bool = True


NO_FIELD = FieldAccessor("", lambda record: None, native=False)

FieldTable = Dict[str, FieldAccessor]


def _table(*fields: FieldAccessor) -> FieldTable:
    return {f.name: f for f in fields}


INSTANCE_FIELDS: FieldTable = _table(
    FieldAccessor("instanceId", attrgetter("instance_id")),
    FieldAccessor("name", attrgetter("name")),
    FieldAccessor("createdTime", attrgetter("created_time")),
    FieldAccessor("lastUpdatedTime", attrgetter("last_updated_time")),
    FieldAccessor("input", attrgetter("input"), native=False),
    FieldAccessor("output", attrgetter("output"), native=False),
    FieldAccessor("customStatus", attrgetter("custom_status"), native=False),
    FieldAccessor("runtimeStatus", attrgetter("runtime_status"), native=False),
    FieldAccessor("entityType", attrgetter("entity_type"), native=False),
    FieldAccessor("entityId", attrgetter("entity_id"), native=False),
    FieldAccessor("parentInstanceId", attrgetter("parent_instance_id")),
    FieldAccessor("lastEvent", attrgetter("last_event")),
    FieldAccessor("duration", attrgetter("duration")),
)

HISTORY_FIELDS: FieldTable = _table(
    FieldAccessor("timestamp", attrgetter("timestamp")),
    FieldAccessor("eventType", attrgetter("event_type")),
    FieldAccessor("eventId", attrgetter("event_id")),
    FieldAccessor("name", attrgetter("name")),
    FieldAccessor("scheduledTime", attrgetter("scheduled_time")),
    FieldAccessor("result", attrgetter("result")),
    FieldAccessor("details", attrgetter("details")),
    FieldAccessor("subOrchestrationId", attrgetter("sub_orchestration_id")),
    FieldAccessor("durationInMs", attrgetter("duration_in_ms")),
)


def _normalize(field_name: str) -> str:
    return field_name.replace("_", "").lower()


def canonical_field_name(field_names: Iterable[str], field_name: str) -> Optional[str]:
    """Match ``field_name`` against ``field_names`` ignoring case and underscores.

    ``RUNTIMESTATUS`` and ``runtime_status`` both resolve to ``runtimeStatus``.
    """
    wanted = _normalize(field_name)
    for name in field_names:
        if _normalize(name) == wanted:
            return name
    return None


def resolve_field(fields: FieldTable, field_name: Optional[str]) -> FieldAccessor:
    if not field_name:
        return NO_FIELD
    name = canonical_field_name(fields, field_name)
    if name is None:
        return NO_FIELD
    return fields[name]


def render_value(value: Any) -> str:
    """Render a field value as text for text operators and string sorting."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def compare_native(value: Any, text: str) -> Optional[bool]:
    """Compare a numeric or timestamp ``value`` with ``text`` parsed to its type.

    Returns ``None`` when ``value`` has no native comparison or ``text`` does
    not parse, so the caller falls back to comparing string renderings.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return value == float(text)
        except ValueError:
            return None
    if isinstance(value, datetime):
        parsed = parse_timestamp(text)
        if parsed is None:
            return None
        return as_utc(value) == parsed
    return None
