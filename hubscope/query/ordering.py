"""Sorting by a named field."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, List, Optional, Tuple, TypeVar

from ..utils.time import as_utc
from .fields import NO_FIELD, FieldAccessor, FieldTable, render_value, resolve_field
from .streams import collect, is_cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_order_by(clause: Optional[str]) -> Tuple[Optional[str], bool]:
    """Split an order-by clause like ``"createdTime desc"`` into ``(field, desc)``."""
    if not clause or not clause.strip():
        return None, False
    parts = clause.split()
    desc = len(parts) > 1 and parts[1].lower() == "desc"
    return parts[0], desc


def _sort_key(accessor: FieldAccessor, record: Any) -> tuple:
    value = accessor.get(record)
    if value is None:
        return (0, "")
    if not accessor.native:
        return (1, render_value(value))
    if isinstance(value, datetime):
        return (1, as_utc(value))
    return (1, value)


def sort_records(
    items: Iterable[T], field_name: Optional[str], desc: bool, fields: FieldTable
) -> List[T]:
    """Stable sort of ``items`` by ``field_name``.

    An unknown field leaves the order unchanged. Missing values come first
    in ascending order.
    """
    items = list(items)
    accessor = resolve_field(fields, field_name)
    if accessor is NO_FIELD:
        if field_name:
            logger.debug(f"Cannot order by {field_name!r}, leaving order unchanged")
        return items
    return sorted(items, key=lambda item: _sort_key(accessor, item), reverse=desc)


async def apply_order_by(
    source: AsyncIterator[T],
    field_name: Optional[str],
    desc: bool,
    fields: FieldTable,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[T]:
    """Sort ``source``. This is the only stage that materializes its input,
    and only when the field resolves."""
    if resolve_field(fields, field_name) is NO_FIELD:
        if field_name:
            logger.debug(f"Cannot order by {field_name!r}, leaving order unchanged")
        async for item in source:
            if is_cancelled(cancel):
                return
            yield item
        return

    items = await collect(source, cancel)
    for item in sort_records(items, field_name, desc, fields):
        if is_cancelled(cancel):
            return
        yield item
