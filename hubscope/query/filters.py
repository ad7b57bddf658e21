"""Parsing of filter expressions into ``FilterClause`` objects.

Supported forms (keywords are case-insensitive)::

    name eq 'value'                    name ne 'value'
    startswith(name, 'value')          startswith(name, 'value') eq false
    contains(name, 'value')            contains(name, 'value') eq false
    name in ('a', 'b')                 name in ["a", "b"]
    name in ('a', 'b') eq false

Anything that does not parse yields a no-op clause rather than an error,
since filter text usually comes straight from a UI widget.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .fields import canonical_field_name

logger = logging.getLogger(__name__)

NULL_LITERAL = "null"


class FilterOperator(str, Enum):
    EQUALS = "Equals"
    NOT_EQUALS = "NotEquals"
    STARTS_WITH = "StartsWith"
    NOT_STARTS_WITH = "NotStartsWith"
    CONTAINS = "Contains"
    NOT_CONTAINS = "NotContains"
    IN = "In"
    NOT_IN = "NotIn"

    @property
    def is_negated(self) -> bool:
        return self in _NEGATED

    @property
    def positive(self) -> "FilterOperator":
        """The non-negated counterpart of this operator."""
        return _NEGATED.get(self, self)

    def negate(self) -> "FilterOperator":
        if self.is_negated:
            return self.positive
        return _POSITIVE_TO_NEGATED[self]


_NEGATED = {
    FilterOperator.NOT_EQUALS: FilterOperator.EQUALS,
    FilterOperator.NOT_STARTS_WITH: FilterOperator.STARTS_WITH,
    FilterOperator.NOT_CONTAINS: FilterOperator.CONTAINS,
    FilterOperator.NOT_IN: FilterOperator.IN,
}
_POSITIVE_TO_NEGATED = {v: k for k, v in _NEGATED.items()}


class FilterClause(BaseModel):
    """Parsed filter for one request.

    An empty ``field_name`` means there is no field predicate. The time range
    and runtime statuses are supplied by the caller alongside the filter text.
    """

    model_config = ConfigDict(frozen=True)

    field_name: str = ""
    operator: FilterOperator = FilterOperator.EQUALS
    value: Union[str, Tuple[str, ...]] = ""
    time_from: Optional[datetime] = None
    time_till: Optional[datetime] = None
    runtime_statuses: Optional[Tuple[str, ...]] = None

    @property
    def is_noop(self) -> bool:
        return not self.field_name

    def negate(self) -> "FilterClause":
        """Return the same clause with the opposite operator."""
        return self.model_copy(update={"operator": self.operator.negate()})


_FUNCTION_RE = re.compile(
    r"^\s*(startswith|contains)\s*\(\s*(\w+)\s*,\s*(.+?)\s*\)\s*(?:eq\s+(true|false))?\s*$",
    re.IGNORECASE,
)
_IN_RE = re.compile(
    r"^\s*(\w+)\s+in\s*(\(.*\)|\[.*\])\s*(?:eq\s+(true|false))?\s*$",
    re.IGNORECASE,
)
_COMPARISON_RE = re.compile(r"^\s*(\w+)\s+(eq|ne)\s+(.+?)\s*$", re.IGNORECASE)
_QUOTED_RE = re.compile(r"'(.*?)'")


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    return text


def _parse_in_values(body: str) -> Optional[Tuple[str, ...]]:
    if body.startswith("("):
        body = body[1:-1].strip()
    if body.startswith("["):
        try:
            items = json.loads(body)
        except ValueError:
            # not JSON, e.g. single-quoted values
            body = body[1:-1].strip()
        else:
            if not isinstance(items, list):
                return None
            return tuple(NULL_LITERAL if item is None else str(item) for item in items)
    if "'" in body:
        return tuple(_QUOTED_RE.findall(body))
    return tuple(v.strip() for v in body.split(",") if v.strip())


def _parse_predicate(
    text: str,
) -> Optional[Tuple[str, FilterOperator, Union[str, Tuple[str, ...]]]]:
    match = _FUNCTION_RE.match(text)
    if match:
        function, field, value, flag = match.groups()
        if function.lower() == "startswith":
            op = FilterOperator.STARTS_WITH
        else:
            op = FilterOperator.CONTAINS
        if flag and flag.lower() == "false":
            op = op.negate()
        return field, op, _unquote(value)

    match = _IN_RE.match(text)
    if match:
        field, body, flag = match.groups()
        values = _parse_in_values(body)
        if values is None:
            return None
        op = FilterOperator.IN
        if flag and flag.lower() == "false":
            op = op.negate()
        return field, op, values

    match = _COMPARISON_RE.match(text)
    if match:
        field, op_text, value = match.groups()
        op = FilterOperator.EQUALS
        if op_text.lower() == "ne":
            op = FilterOperator.NOT_EQUALS
        return field, op, _unquote(value)

    return None


def _normalize_statuses(
    runtime_statuses: Optional[Iterable[str]],
) -> Optional[Tuple[str, ...]]:
    if runtime_statuses is None:
        return None
    if isinstance(runtime_statuses, str):
        runtime_statuses = runtime_statuses.split(",")
    return tuple(s.strip(" '") for s in runtime_statuses if s.strip(" '"))


def parse_filter(
    text: Optional[str],
    *,
    time_from: Optional[datetime] = None,
    time_till: Optional[datetime] = None,
    runtime_statuses: Optional[Iterable[str]] = None,
    known_fields: Optional[Iterable[str]] = None,
) -> FilterClause:
    """Build a ``FilterClause`` from filter text and the caller's time/status inputs.

    When ``known_fields`` is given the field name is matched against it
    case-insensitively and replaced with the canonical name; an unknown field
    produces a no-op clause.
    """

    clause_args = dict(
        time_from=time_from,
        time_till=time_till,
        runtime_statuses=_normalize_statuses(runtime_statuses),
    )
    if not text or not text.strip():
        return FilterClause(**clause_args)

    parsed = _parse_predicate(text)
    if parsed is None:
        logger.debug(f"Ignoring unparsable filter expression: {text!r}")
        return FilterClause(**clause_args)

    field, op, value = parsed
    if known_fields is not None:
        canonical = canonical_field_name(known_fields, field)
        if canonical is None:
            logger.debug(f"Ignoring filter on unknown field {field!r}")
            return FilterClause(**clause_args)
        field = canonical

    return FilterClause(field_name=field, operator=op, value=value, **clause_args)


def parse_hidden_columns(
    text: Union[str, Iterable[str], None], filter_clause: Optional[FilterClause] = None
) -> Set[str]:
    """Parse a '|'-separated hidden column list.

    The column being filtered on is never hidden.
    """
    if text is None:
        columns: Set[str] = set()
    elif isinstance(text, str):
        columns = {c.strip() for c in text.split("|") if c.strip()}
    else:
        columns = set(text)
    if filter_clause is not None and filter_clause.field_name:
        filtered = canonical_field_name(columns, filter_clause.field_name)
        if filtered is not None:
            columns.discard(filtered)
    return columns
