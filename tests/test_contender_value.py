from __future__ import annotations

import json

import pytest

from kvsync.core.errors import MalformedStateError
from kvsync.core.models import ContenderValue


def test_serialize_uses_limit_and_holders_document():
    value = ContenderValue(limit=2, holders=["a", "b"])
    assert json.loads(value.serialize()) == {"Limit": 2, "Holders": ["a", "b"]}


def test_parse_then_serialize_reproduces_value():
    value = ContenderValue(limit=3, holders=["s-2", "s-1"])
    raw = value.serialize()
    parsed = ContenderValue.parse(raw)
    assert parsed == value
    assert parsed.serialize() == raw


def test_parse_accepts_map_shaped_holders():
    parsed = ContenderValue.parse(b'{"Limit": 2, "Holders": {"a": true, "b": false}}')
    assert parsed.limit == 2
    assert parsed.holders == ["a"]


def test_parse_treats_null_holders_as_empty():
    assert ContenderValue.parse('{"Limit": 1, "Holders": null}').holders == []


@pytest.mark.parametrize(
    "raw",
    [b"", b"not json", b'{"Holders": []}', b'{"Limit": 0, "Holders": []}', b'{"Limit": 2, "Holders": 5}'],
)
def test_parse_rejects_undecodable_values(raw):
    with pytest.raises(MalformedStateError):
        ContenderValue.parse(raw)


def test_duplicate_holders_are_collapsed_in_order():
    value = ContenderValue(limit=3, holders=["a", "b", "a"])
    assert value.holders == ["a", "b"]


def test_with_and_without_holder_return_new_values():
    value = ContenderValue(limit=2, holders=["a"])
    grown = value.with_holder("b")
    assert grown.holders == ["a", "b"]
    assert value.holders == ["a"]
    assert grown.with_holder("b") is grown
    assert grown.without_holder("a").holders == ["b"]


def test_only_live_drops_adjacent_dead_holders():
    value = ContenderValue(limit=4, holders=["a", "b", "c", "d"])
    assert value.only_live({"a", "d"}).holders == ["a", "d"]


def test_is_full():
    assert ContenderValue(limit=1, holders=["a"]).is_full
    assert not ContenderValue(limit=2, holders=["a"]).is_full
