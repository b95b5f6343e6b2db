"""SQL text builders for ATTACH/DETACH and identifier/literal quoting."""

import re

import duckdb


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier, doubling embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote an SQL string literal, doubling embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


def build_attach_sql(
    target: str,
    database_name: str,
    attach_type: str | None = None,
    read_only: bool = False,
) -> str:
    """
    Build an ATTACH statement.

    Args:
        target (str): Connection string or file path (":memory:" for an in-memory database).
        database_name (str): Logical database name to attach under.
        attach_type (str | None): DuckDB ATTACH TYPE, e.g. "POSTGRES". None attaches a DuckDB database.
        read_only (bool): Whether to attach read-only.

    Returns:
        str: The statement.

    Example:
        >>> print(build_attach_sql("postgresql://h/db", "sales", "POSTGRES"))
        ATTACH 'postgresql://h/db' AS "sales" (TYPE POSTGRES)
    """
    options = []
    if attach_type:
        options.append(f"TYPE {attach_type}")
    if read_only:
        options.append("READ_ONLY")
    sql = f"ATTACH {quote_literal(target)} AS {quote_identifier(database_name)}"
    if options:
        sql += f" ({', '.join(options)})"
    return sql


def build_detach_sql(database_name: str) -> str:
    """Build an idempotent DETACH statement for a logical database."""
    return f"DETACH DATABASE IF EXISTS {quote_identifier(database_name)}"


def is_already_attached_error(error: BaseException, database_name: str) -> bool:
    """
    Return True if a DuckDB error reports that `database_name` itself is already attached.

    DuckDB also says "already attached" when a second alias points at a file another
    database holds open ("Unique file handle conflict"); that names the other alias and
    is a real failure.

    Args:
        error (BaseException): The error raised by ATTACH.
        database_name (str): The logical name the ATTACH requested.

    Returns:
        bool: True only for an already-attached error naming `database_name`.
    """
    if not isinstance(error, duckdb.Error):
        return False
    message = str(error).lower()
    if "already attached" not in message and "already exists" not in message:
        return False
    if "file handle conflict" in message:
        named = re.search(r'database "([^"]*)" is already attached', message)
        return named is not None and named.group(1) == database_name.lower()
    pattern = rf'(?<!\w)"?{re.escape(database_name.lower())}"?(?!\w)'
    return re.search(pattern, message) is not None
