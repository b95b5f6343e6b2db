"""JSON formatters for PyArrow tables."""

import base64
import datetime
import decimal
import math
import uuid
from typing import Any

import pyarrow as pa

_MAX_SAFE_INTEGER = 2**53 - 1


def to_json_safe(value: Any) -> Any:
    """
    Convert a Python value produced by `to_pylist()` into a JSON-safe value.

    - Integers outside the IEEE-754 safe range become strings (HUGEINT, UBIGINT).
    - Decimals become floats, or strings if they do not fit a float exactly enough to
      round-trip.
    - Non-finite floats become None.
    - Dates, times and datetimes become ISO 8601 strings; intervals become strings.
    - Bytes become base64 strings; UUIDs become strings.
    - Lists and dicts are converted recursively.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value if abs(value) <= _MAX_SAFE_INTEGER else str(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, decimal.Decimal):
        as_float = float(value)
        return as_float if decimal.Decimal(repr(as_float)) == value else str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return str(value)


def format_json_row(arrow_table: pa.Table) -> list[dict]:
    """
    Format Arrow table as array of row objects.

    Args:
        arrow_table (pa.Table): PyArrow Table to format

    Returns:
        list[dict]: Array of objects, each representing a row.
                   Example: [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
    """
    return [
        {name: to_json_safe(value) for name, value in row.items()}
        for row in arrow_table.to_pylist()
    ]


def format_json_column(arrow_table: pa.Table) -> dict:
    """
    Format Arrow table as column-oriented object.

    Args:
        arrow_table (pa.Table): PyArrow Table to format

    Returns:
        dict: Object with column names as keys, arrays as values.
             Example: {"id": [1, 2], "name": ["Alice", "Bob"]}
    """
    return {
        name: [to_json_safe(value) for value in values]
        for name, values in arrow_table.to_pydict().items()
    }


def format_json_values(arrow_table: pa.Table) -> list[list]:
    """
    Format Arrow table as an array of value arrays, one per row, in column order.

    Args:
        arrow_table (pa.Table): PyArrow Table to format

    Returns:
        list[list]: Example: [[1, "Alice"], [2, "Bob"]]
    """
    columns = [arrow_table.column(i).to_pylist() for i in range(arrow_table.num_columns)]
    return [[to_json_safe(value) for value in row] for row in zip(*columns)]
