"""
Tests for tagged values and ValueMap accessors.
"""

import pytest
from datetime import datetime

from glassmem.core.errors import ValueTypeError
from glassmem.core.values import Value, ValueMap, ValueType


def test_value_of_tags_python_types():
    """Plain Python values map onto the expected variants."""
    assert Value.of("text").type == ValueType.STR
    assert Value.of(3).type == ValueType.I64
    assert Value.of(2.5).type == ValueType.F64
    assert Value.of([1, "a"]).type == ValueType.LIST
    assert Value.of({"a": 1}).type == ValueType.MAP


def test_bool_is_not_an_integer():
    value = Value.of(True)
    assert value.type == ValueType.BOOL
    assert value.as_int() is None


def test_datetime_is_stored_as_iso_string():
    moment = datetime(2024, 1, 1, 12, 30)
    assert Value.of(moment) == Value(ValueType.STR, "2024-01-01T12:30:00")


def test_unsupported_type_raises():
    with pytest.raises(ValueTypeError):
        Value.of(object())


def test_lenient_getters_fall_back_to_default():
    params = ValueMap({"limit": "7", "query": "coffee", "flag": "true", "ratio": 0.5})

    assert params.get_int("limit") == 7
    assert params.get_str("query") == "coffee"
    assert params.get_bool("flag") is True
    assert params.get_float("ratio") == 0.5
    assert params.get_int("missing", 5) == 5
    assert params.get_int("query", 3) == 3


def test_require_raises_on_missing_or_wrong_type():
    params = ValueMap(query="coffee", nested={"a": 1})

    with pytest.raises(KeyError):
        params.require_str("missing")
    with pytest.raises(ValueTypeError):
        params.require_int("query")
    # a ValueTypeError is still a TypeError
    with pytest.raises(TypeError):
        params.require_float("nested")


def test_value_map_compares_equal_to_plain_dict():
    params = ValueMap({"tool_name": "store_memory", "count": 2})
    assert params == {"tool_name": "store_memory", "count": 2}
    assert "tool_name" in params
    assert len(params) == 2


def test_nested_structures_round_trip_to_python():
    params = ValueMap({"tags": ["a", "b"], "extra": {"level": 2}})
    assert params.get_list("tags") == ["a", "b"]
    assert params.get_map("extra").get_int("level") == 2
    assert params.to_dict() == {"tags": ["a", "b"], "extra": {"level": 2}}


def test_with_updates_returns_new_map():
    original = ValueMap(a=1)
    updated = original.with_updates(b="two")

    assert "b" not in original
    assert updated == {"a": 1, "b": "two"}


def test_to_string_dict_flattens_values():
    params = ValueMap({"count": 3, "ok": False, "name": "x"})
    assert params.to_string_dict() == {"count": "3", "ok": "false", "name": "x"}
