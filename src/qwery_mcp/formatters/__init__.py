"""
Formatters turning PyArrow result tables into JSON-friendly structures for MCP responses.

Supported formats:
    - "json-row": list of row objects (default)
    - "json-column": object of column arrays
    - "json-values": list of value arrays in column order (compact; pair with column names)
"""

from typing import Any, Callable

import pyarrow as pa

from qwery_mcp.formatters._json import (
    format_json_column,
    format_json_row,
    format_json_values,
    to_json_safe,
)

__all__ = [
    "FORMATTERS",
    "format_json_column",
    "format_json_row",
    "format_json_values",
    "format_table_data",
    "to_json_safe",
]

FORMATTERS: dict[str, Callable[[pa.Table], Any]] = {
    "json-row": format_json_row,
    "json-column": format_json_column,
    "json-values": format_json_values,
}
"""Mapping of format name to formatter function."""


def format_table_data(arrow_table: pa.Table, format_type: str) -> Any:
    """
    Format an Arrow table in the requested format.

    Args:
        arrow_table (pa.Table): The table to format.
        format_type (str): One of the keys of `FORMATTERS`.

    Returns:
        Any: The formatted data.

    Raises:
        ValueError: If `format_type` is not supported.
    """
    formatter = FORMATTERS.get(format_type)
    if formatter is None:
        raise ValueError(
            f"Unsupported format '{format_type}'. Supported formats: {', '.join(FORMATTERS)}"
        )
    return formatter(arrow_table)
