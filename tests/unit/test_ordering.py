from datetime import datetime, timedelta, timezone

import pytest

from hubscope.models import InstanceRecord
from hubscope.query.fields import INSTANCE_FIELDS
from hubscope.query.ordering import apply_order_by, parse_order_by, sort_records
from hubscope.query.streams import collect, iterate

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _record(instance_id: str, minutes: int, **kwargs) -> InstanceRecord:
    return InstanceRecord(
        instance_id=instance_id, created_time=T0 + timedelta(minutes=minutes), **kwargs
    )


def _ids(records):
    return [r.instance_id for r in records]


def test_parse_order_by():
    assert parse_order_by("createdTime desc") == ("createdTime", True)
    assert parse_order_by("createdTime DESC") == ("createdTime", True)
    assert parse_order_by("createdTime asc") == ("createdTime", False)
    assert parse_order_by("name") == ("name", False)
    assert parse_order_by(None) == (None, False)
    assert parse_order_by("  ") == (None, False)


def test_desc_is_reverse_of_asc_without_ties():
    records = [_record("b", 2), _record("c", 3), _record("a", 1)]
    asc = sort_records(records, "createdTime", False, INSTANCE_FIELDS)
    desc = sort_records(records, "createdTime", True, INSTANCE_FIELDS)
    assert _ids(asc) == ["a", "b", "c"]
    assert _ids(desc) == list(reversed(_ids(asc)))


def test_sort_is_idempotent():
    records = [_record("b", 2, name="y"), _record("a", 1, name="x"), _record("c", 3, name="x")]
    once = sort_records(records, "name", False, INSTANCE_FIELDS)
    twice = sort_records(once, "name", False, INSTANCE_FIELDS)
    assert _ids(once) == _ids(twice)


def test_sort_is_stable_for_ties():
    records = [
        _record("first", 0, name="same"),
        _record("other", 0, name="another"),
        _record("second", 0, name="same"),
    ]
    assert _ids(sort_records(records, "name", False, INSTANCE_FIELDS)) == [
        "other",
        "first",
        "second",
    ]
    assert _ids(sort_records(records, "name", True, INSTANCE_FIELDS)) == [
        "first",
        "second",
        "other",
    ]


def test_unknown_field_keeps_input_order():
    records = [_record("b", 2), _record("a", 1)]
    assert _ids(sort_records(records, "bogus", False, INSTANCE_FIELDS)) == ["b", "a"]
    assert _ids(sort_records(records, None, True, INSTANCE_FIELDS)) == ["b", "a"]


def test_non_native_fields_sort_by_rendering():
    records = [
        _record("b", 0, input={"b": 1}),
        _record("a", 0, input={"a": 2}),
        _record("none", 0),
    ]
    assert _ids(sort_records(records, "input", False, INSTANCE_FIELDS)) == ["none", "a", "b"]


def test_missing_values_sort_first():
    records = [_record("child", 0, parent_instance_id="p"), _record("root", 0)]
    assert _ids(sort_records(records, "parentInstanceId", False, INSTANCE_FIELDS)) == [
        "root",
        "child",
    ]


def test_field_names_ignore_case():
    records = [_record("b", 2), _record("a", 1)]
    assert _ids(sort_records(records, "CREATEDTIME", False, INSTANCE_FIELDS)) == ["a", "b"]


@pytest.mark.asyncio
async def test_apply_order_by():
    records = [_record("b", 2), _record("c", 3), _record("a", 1)]

    result = await collect(apply_order_by(iterate(records), "createdTime", True, INSTANCE_FIELDS))
    assert _ids(result) == ["c", "b", "a"]

    result = await collect(apply_order_by(iterate(records), "bogus", True, INSTANCE_FIELDS))
    assert _ids(result) == ["b", "c", "a"]
