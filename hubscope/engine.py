"""Query engine for instance listings and correlated histories."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable, List, Optional, Union

from .config import QueryConfig
from .enrichment import expand_status
from .entities import merge_entities
from .history import correlate_history
from .models import DisplayHistoryEvent, InstanceRecord, RuntimeStatus
from .query.fields import HISTORY_FIELDS, INSTANCE_FIELDS
from .query.filters import FilterClause, parse_filter, parse_hidden_columns
from .query.ordering import apply_order_by, parse_order_by
from .query.paging import apply_skip_top
from .query.predicates import apply_filter, apply_runtime_status_filter, apply_time_range
from .query.streams import collect
from .stores import get_store
from .stores.base import InstanceStore

logger = logging.getLogger(__name__)

FilterInput = Union[FilterClause, str, None]


def _store_statuses(clause: FilterClause) -> Optional[List[RuntimeStatus]]:
    if not clause.runtime_statuses:
        return None
    statuses = [RuntimeStatus.parse(s) for s in clause.runtime_statuses]
    return [s for s in statuses if s is not None]


class QueryEngine:
    """Runs listing and history queries against an ``InstanceStore``.

    Each call builds its own pipeline; an engine can serve concurrent
    requests.
    """

    def __init__(
        self,
        store: InstanceStore | None = None,
        config: QueryConfig | None = None,
    ) -> None:
        self._store = store or get_store()
        self._config = config or QueryConfig()

    @property
    def store(self) -> InstanceStore:
        return self._store

    def _instance_clause(self, filter_clause: FilterInput) -> FilterClause:
        if isinstance(filter_clause, FilterClause):
            return filter_clause
        return parse_filter(filter_clause, known_fields=INSTANCE_FIELDS)

    async def query(
        self,
        filter_clause: FilterInput = None,
        order_by: Optional[str] = None,
        skip: Optional[int] = None,
        top: Optional[int] = None,
        hidden_columns: Union[str, Iterable[str], None] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[InstanceRecord]:
        """Stream one page of instances.

        Args:
            filter_clause: Parsed clause or raw filter text.
            order_by: Order-by clause such as ``"createdTime desc"``.
            skip: Number of records to skip.
            top: Maximum number of records to return. Defaults to
                ``QueryConfig.default_top``.
            hidden_columns: Columns not to return ('|'-separated or iterable).
                The filtered column is always returned.
            cancel: Stops the stream when set.
        """
        clause = self._instance_clause(filter_clause)
        hidden = parse_hidden_columns(hidden_columns, clause)
        order_field, desc = parse_order_by(order_by)
        if top is None:
            top = self._config.default_top

        logger.info(
            f"Listing instances: filter={clause.field_name or '-'} "
            f"orderby={order_field or '-'} skip={skip} top={top}"
        )

        records = self._store.list_instances(
            clause.time_from,
            clause.time_till,
            "input" not in hidden,
            _store_statuses(clause),
        )
        records = expand_status(
            records, self._store, clause, hidden, self._config.batch_size, cancel
        )
        records = merge_entities(records, self._store, clause, hidden, cancel)
        records = apply_runtime_status_filter(records, clause.runtime_statuses, cancel)
        records = apply_filter(records, clause, INSTANCE_FIELDS, cancel)
        records = apply_order_by(records, order_field, desc, INSTANCE_FIELDS, cancel)
        records = apply_skip_top(records, skip, top, cancel)

        async for record in records:
            yield record

    async def list_instances(
        self,
        filter_clause: FilterInput = None,
        order_by: Optional[str] = None,
        skip: Optional[int] = None,
        top: Optional[int] = None,
        hidden_columns: Union[str, Iterable[str], None] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> List[InstanceRecord]:
        """Same as ``query`` but collected into a list."""
        return await collect(
            self.query(filter_clause, order_by, skip, top, hidden_columns, cancel)
        )

    async def iter_correlated_history(
        self,
        instance_id: str,
        filter_clause: FilterInput = None,
        skip: Optional[int] = None,
        top: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[DisplayHistoryEvent]:
        if isinstance(filter_clause, FilterClause):
            clause = filter_clause
        else:
            clause = parse_filter(filter_clause, known_fields=HISTORY_FIELDS)

        rows = await self._store.get_history(instance_id)
        logger.info(f"Correlating {len(rows)} history rows of {instance_id}")

        events = correlate_history(rows, self._store, cancel)
        events = apply_time_range(
            events, lambda e: e.timestamp, clause.time_from, clause.time_till, cancel
        )
        events = apply_filter(events, clause, HISTORY_FIELDS, cancel)
        events = apply_skip_top(events, skip, top, cancel)

        async for event in events:
            yield event

    async def get_correlated_history(
        self,
        instance_id: str,
        filter_clause: FilterInput = None,
        skip: Optional[int] = None,
        top: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> List[DisplayHistoryEvent]:
        """Return one page of the correlated history of ``instance_id``."""
        return await collect(
            self.iter_correlated_history(instance_id, filter_clause, skip, top, cancel)
        )
