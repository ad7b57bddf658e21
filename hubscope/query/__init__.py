"""Filter, sort and page primitives shared by listings and history."""

from __future__ import annotations

from .fields import HISTORY_FIELDS, INSTANCE_FIELDS, NO_FIELD, FieldAccessor, resolve_field
from .filters import FilterClause, FilterOperator, parse_filter, parse_hidden_columns
from .ordering import apply_order_by, parse_order_by, sort_records
from .paging import apply_skip_top
from .predicates import (
    apply_filter,
    apply_runtime_status_filter,
    apply_time_range,
    evaluate,
    matches,
)
from .streams import batched, collect, is_cancelled, iterate, next_batch

__all__ = [
    "FieldAccessor",
    "HISTORY_FIELDS",
    "INSTANCE_FIELDS",
    "NO_FIELD",
    "resolve_field",
    "FilterClause",
    "FilterOperator",
    "parse_filter",
    "parse_hidden_columns",
    "apply_order_by",
    "parse_order_by",
    "sort_records",
    "apply_skip_top",
    "apply_filter",
    "apply_runtime_status_filter",
    "apply_time_range",
    "evaluate",
    "matches",
    "batched",
    "collect",
    "is_cancelled",
    "iterate",
    "next_batch",
]
