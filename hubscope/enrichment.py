"""Adds derived fields to instance records as they stream through a listing.

Entity detection and duration need no I/O and are always computed.
``parentInstanceId`` and ``lastEvent`` cost a store round-trip per record,
so they are only loaded when the active filter is on that field.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AbstractSet, AsyncIterator, Optional

from .config import DEFAULT_BATCH_SIZE
from .history import RECOGNIZED_EVENT_TYPES
from .models import EntityType, InstanceRecord, parse_entity_id
from .query.fields import INSTANCE_FIELDS, resolve_field
from .query.filters import FilterClause
from .query.streams import batched, is_cancelled
from .stores.base import InstanceStore
from .utils.time import milliseconds_between

logger = logging.getLogger(__name__)

PARENT_INSTANCE_ID_FIELD = "parentInstanceId"
LAST_EVENT_FIELD = "lastEvent"


def expand_record(record: InstanceRecord, hidden_columns: AbstractSet[str]) -> InstanceRecord:
    """Fill in entity type/id and duration, and blank hidden payload columns."""
    entity_id = parse_entity_id(record.instance_id)
    if entity_id is not None:
        record.entity_type = EntityType.DURABLE_ENTITY
        record.entity_id = entity_id

    if record.created_time is not None and record.last_updated_time is not None:
        record.duration = round(
            milliseconds_between(record.created_time, record.last_updated_time)
        )

    if "input" in hidden_columns:
        record.input = None
    if "output" in hidden_columns:
        record.output = None
    if "customStatus" in hidden_columns:
        record.custom_status = None
    return record


async def load_parent_instance_id(store: InstanceStore, record: InstanceRecord) -> None:
    try:
        record.parent_instance_id = await store.get_parent_instance_id(record.instance_id)
    except Exception as e:
        logger.warning(f"Failed to get parent instanceId for {record.instance_id}: {e}")


async def load_last_event(store: InstanceStore, record: InstanceRecord) -> None:
    try:
        history = await store.get_history(record.instance_id)
    except Exception as e:
        logger.warning(f"Failed to load history for {record.instance_id}: {e}")
        return
    record.last_event = next(
        (
            row.name
            for row in reversed(history)
            if row.name and row.event_type in RECOGNIZED_EVENT_TYPES
        ),
        None,
    )


async def expand_status(
    source: AsyncIterator[InstanceRecord],
    store: InstanceStore,
    filter_clause: FilterClause,
    hidden_columns: AbstractSet[str] = frozenset(),
    batch_size: int = DEFAULT_BATCH_SIZE,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[InstanceRecord]:
    """Enrich ``source`` in batches of ``batch_size``.

    Lookups for one batch run concurrently; the next batch is not read from
    ``source`` until the current one has been consumed. Output order is the
    input order.
    """
    field_name = resolve_field(INSTANCE_FIELDS, filter_clause.field_name).name
    load_parent = field_name == PARENT_INSTANCE_ID_FIELD
    load_last = field_name == LAST_EVENT_FIELD

    async for batch in batched(source, batch_size, cancel):
        lookups = []
        for record in batch:
            expand_record(record, hidden_columns)
            if record.is_entity:
                continue
            if load_parent:
                lookups.append(load_parent_instance_id(store, record))
            if load_last:
                lookups.append(load_last_event(store, record))

        if lookups:
            await asyncio.gather(*lookups)
        if is_cancelled(cancel):
            return

        for record in batch:
            yield record
            if is_cancelled(cancel):
                return
