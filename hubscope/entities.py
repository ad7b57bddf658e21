"""Appends entities to an instance listing."""

from __future__ import annotations

import asyncio
import logging
from typing import AbstractSet, AsyncIterator, Iterable, Optional

from .models import (
    DURABLE_ENTITIES_STATUS,
    EntityMetadata,
    EntityType,
    InstanceRecord,
    RuntimeStatus,
    parse_entity_id,
)
from .query.filters import FilterClause
from .query.streams import is_cancelled
from .stores.base import InstanceStore

logger = logging.getLogger(__name__)


def should_list_entities(runtime_statuses: Optional[Iterable[str]]) -> bool:
    """Entities are listed when no statuses were requested or 'DurableEntities' was."""
    statuses = list(runtime_statuses or [])
    if not statuses:
        return True
    return any(s.lower() == DURABLE_ENTITIES_STATUS.lower() for s in statuses)


def entity_to_record(
    entity: EntityMetadata, hidden_columns: AbstractSet[str] = frozenset()
) -> InstanceRecord:
    """Convert an entity into the instance listing shape. Entities are always Running."""
    show_state = entity.includes_state and "input" not in hidden_columns
    return InstanceRecord(
        instance_id=entity.instance_id,
        name=entity.instance_id,
        created_time=entity.last_modified_time,
        last_updated_time=entity.last_modified_time,
        runtime_status=RuntimeStatus.RUNNING,
        entity_type=EntityType.DURABLE_ENTITY,
        entity_id=parse_entity_id(entity.instance_id),
        input=entity.state if show_state else None,
        duration=0,
    )


async def merge_entities(
    source: AsyncIterator[InstanceRecord],
    store: InstanceStore,
    filter_clause: FilterClause,
    hidden_columns: AbstractSet[str] = frozenset(),
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[InstanceRecord]:
    """Yield ``source``, then the entities of the same time window.

    The entity listing is skipped entirely when the requested statuses rule
    entities out. A failing entity listing is logged and ends the stream
    instead of failing the query.
    """
    async for record in source:
        yield record
        if is_cancelled(cancel):
            return

    if not should_list_entities(filter_clause.runtime_statuses):
        return

    try:
        entities = store.list_entities(filter_clause.time_from, filter_clause.time_till).__aiter__()
    except Exception as e:
        logger.warning(f"Failed to list Durable Entities: {e}")
        return

    while not is_cancelled(cancel):
        try:
            entity = await entities.__anext__()
        except StopAsyncIteration:
            return
        except Exception as e:
            logger.warning(f"Failed to list Durable Entities: {e}")
            return
        yield entity_to_record(entity, hidden_columns)
