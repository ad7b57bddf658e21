"""Evaluation of filter clauses against records."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Optional, TypeVar

from ..models import DURABLE_ENTITIES_STATUS, InstanceRecord, RuntimeStatus
from ..utils.time import as_utc
from .fields import NO_FIELD, FieldTable, compare_native, render_value, resolve_field
from .filters import NULL_LITERAL, FilterClause, FilterOperator
from .streams import is_cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _values(expected: Any) -> tuple:
    if isinstance(expected, tuple):
        return expected
    return (expected,)


def _equals(value: Any, expected: Any) -> bool:
    if isinstance(expected, tuple):
        return any(_equals(value, v) for v in expected)
    if expected == NULL_LITERAL:
        return render_value(value) == ""
    native = compare_native(value, expected)
    if native is not None:
        return native
    return render_value(value) == expected


def _starts_with(value: Any, expected: Any) -> bool:
    text = render_value(value)
    return any(text.startswith(v) for v in _values(expected))


def _contains(value: Any, expected: Any) -> bool:
    text = render_value(value)
    return any(v in text for v in _values(expected))


def _in(value: Any, expected: Any) -> bool:
    return any(_equals(value, v) for v in _values(expected))


_POSITIVE_OPERATORS: Dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQUALS: _equals,
    FilterOperator.STARTS_WITH: _starts_with,
    FilterOperator.CONTAINS: _contains,
    FilterOperator.IN: _in,
}


def evaluate(clause: FilterClause, value: Any) -> bool:
    """Apply ``clause`` to an already resolved field value.

    Negated operators are computed as ``not`` of their positive counterpart.
    """
    if clause.is_noop:
        return True
    result = _POSITIVE_OPERATORS[clause.operator.positive](value, clause.value)
    return not result if clause.operator.is_negated else result


def matches(clause: FilterClause, record: Any, fields: FieldTable) -> bool:
    """Apply ``clause`` to ``record``. Unresolvable fields match everything."""
    accessor = resolve_field(fields, clause.field_name)
    if accessor is NO_FIELD:
        return True
    return evaluate(clause, accessor.get(record))


async def apply_filter(
    source: AsyncIterator[T],
    clause: FilterClause,
    fields: FieldTable,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[T]:
    accessor = resolve_field(fields, clause.field_name)
    if accessor is NO_FIELD and not clause.is_noop:
        logger.debug(f"Field {clause.field_name!r} cannot be filtered on, ignoring filter")

    async for item in source:
        if is_cancelled(cancel):
            return
        if accessor is NO_FIELD or evaluate(clause, accessor.get(item)):
            yield item


def status_predicate(
    runtime_statuses: Optional[Iterable[str]],
) -> Callable[[InstanceRecord], bool]:
    """Build the runtime status check for a listing.

    With no statuses requested every record passes. Otherwise entities pass
    only when 'DurableEntities' was requested, and orchestrations pass when
    their status is one of the requested ones.
    """
    statuses = list(runtime_statuses or [])
    if not statuses:
        return lambda record: True

    include_entities = any(s.lower() == DURABLE_ENTITIES_STATUS.lower() for s in statuses)
    wanted = {RuntimeStatus.parse(s) for s in statuses} - {None}

    def _check(record: InstanceRecord) -> bool:
        if record.is_entity:
            return include_entities
        return record.runtime_status in wanted

    return _check


async def apply_runtime_status_filter(
    source: AsyncIterator[InstanceRecord],
    runtime_statuses: Optional[Iterable[str]],
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[InstanceRecord]:
    check = status_predicate(runtime_statuses)
    async for record in source:
        if is_cancelled(cancel):
            return
        if check(record):
            yield record


async def apply_time_range(
    source: AsyncIterator[T],
    get_time: Callable[[T], Optional[datetime]],
    time_from: Optional[datetime] = None,
    time_till: Optional[datetime] = None,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[T]:
    """Keep items whose time lies within ``[time_from, time_till]``."""
    lower = as_utc(time_from) if time_from else None
    upper = as_utc(time_till) if time_till else None
    async for item in source:
        if is_cancelled(cancel):
            return
        value = get_time(item)
        if value is not None:
            value = as_utc(value)
            if lower is not None and value < lower:
                continue
            if upper is not None and value > upper:
                continue
        yield item
