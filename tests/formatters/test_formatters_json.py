"""Tests for formatters/_json.py - JSON formatters and value conversion."""

import datetime
import decimal
import uuid

import pyarrow as pa
import pytest

from qwery_mcp.formatters._json import (
    format_json_column,
    format_json_row,
    format_json_values,
    to_json_safe,
)


def test_format_json_row_basic():
    """Test basic json-row formatting."""
    table = pa.table({"id": [1, 2], "name": ["Alice", "Bob"]})

    result = format_json_row(table)

    assert result == [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]


def test_format_json_row_empty_table():
    """Test json-row formatting with empty table."""
    assert format_json_row(pa.table({"id": [], "name": []})) == []


def test_format_json_row_null_values():
    """Test json-row formatting with null values."""
    table = pa.table({"name": ["Alice", None], "value": [None, 2.5]})
    assert format_json_row(table) == [
        {"name": "Alice", "value": None},
        {"name": None, "value": 2.5},
    ]


def test_format_json_column_basic():
    """Test basic json-column formatting."""
    table = pa.table({"id": [1, 2, 3], "name": ["a", "b", None]})
    assert format_json_column(table) == {"id": [1, 2, 3], "name": ["a", "b", None]}


def test_format_json_values_keeps_column_order():
    """Test json-values formatting."""
    table = pa.table({"b": [1, 2], "a": ["x", "y"]})
    assert format_json_values(table) == [[1, "x"], [2, "y"]]
    assert format_json_values(pa.table({"a": []})) == []


def test_format_json_row_temporal_and_decimal_columns():
    """Test that Arrow temporal and decimal values come out JSON-safe."""
    table = pa.table(
        {
            "day": pa.array([datetime.date(2024, 1, 31)]),
            "ts": pa.array([datetime.datetime(2024, 1, 31, 12, 30)]),
            "price": pa.array([decimal.Decimal("12.50")], type=pa.decimal128(10, 2)),
        }
    )
    assert format_json_row(table) == [
        {"day": "2024-01-31", "ts": "2024-01-31T12:30:00", "price": 12.5}
    ]


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (True, True),
        ("text", "text"),
        (42, 42),
        (2**53 - 1, 2**53 - 1),
        (2**53, str(2**53)),
        (-(2**63), str(-(2**63))),
        (1.5, 1.5),
        (float("nan"), None),
        (float("inf"), None),
        (decimal.Decimal("1.10"), 1.1),
        (decimal.Decimal("12345678901234567890.123"), "12345678901234567890.123"),
        (datetime.time(8, 15), "08:15:00"),
        (datetime.timedelta(days=1, seconds=5), "1 day, 0:00:05"),
        (b"\x00\x01", "AAE="),
        (uuid.UUID(int=1), "00000000-0000-0000-0000-000000000001"),
        ({"k": [2**60]}, {"k": [str(2**60)]}),
        ((1, None), [1, None]),
    ],
)
def test_to_json_safe(value, expected):
    assert to_json_safe(value) == expected
