"""
Provider-aware rewriting of generated SQL.

Some providers expose an attached database as a two-level namespace (`db.table`) while
SQL generators habitually address tables as `db.main.table`. For those providers the
rewriter collapses the extraneous `main` segment, anchored on the datasource's logical
database name:

    SELECT * FROM "db1".main.t   ->   SELECT * FROM "db1".t
    SELECT * FROM db1."main".t   ->   SELECT * FROM db1.t

This is a textual heuristic, not a parser. It is idempotent, leaves every other provider's
SQL untouched, and never rewrites references to a different database (`other.main.t`,
`xdb1.main.t`, `schema.db1.main.t`). Column-qualified references collapse too
(`db1.main.t.c` becomes `db1.t.c`). A `main` segment is collapsed only when an identifier
follows it, so `db1.main.main` (a table named "main") becomes `db1.main` and stays that way
on a second pass.
"""

__all__ = [
    "SCHEMA_COLLAPSING_PROVIDERS",
    "DEFAULT_SCHEMA",
    "rewrite_for_databases",
    "rewrite_query",
]

import re
from typing import Iterable

from qwery_mcp.providers import SUPPORTED_PROVIDERS, uses_two_part_naming

DEFAULT_SCHEMA = "main"
"""str: The schema segment collapsed by the rewriter."""

SCHEMA_COLLAPSING_PROVIDERS: frozenset[str] = frozenset(
    provider for provider in SUPPORTED_PROVIDERS if uses_two_part_naming(provider)
)
"""frozenset[str]: Providers whose queries are rewritten."""

# Identifier that must follow the collapsed segment: quoted or bare.
_TRAILING_IDENTIFIER = r'(?=(?:"(?:[^"]|"")+"|[A-Za-z_][A-Za-z0-9_]*\b))'


def _pattern(logical_database_name: str, schema: str) -> re.Pattern[str]:
    quoted_db = '"' + re.escape(logical_database_name.replace('"', '""')) + '"'
    bare_db = re.escape(logical_database_name) + r"\b"
    quoted_schema = '"' + re.escape(schema) + '"'
    bare_schema = re.escape(schema) + r"\b"
    # A table itself named like the schema is left alone when a column follows it, so
    # `db1.main.main.c` is not turned into `db1.main.c` and then into `db1.c`.
    return re.compile(
        rf'(?<![\w."])(?P<db>{quoted_db}|{bare_db})\s*\.\s*(?:{quoted_schema}|{bare_schema})\s*\.\s*'
        + _TRAILING_IDENTIFIER
        + rf"(?!(?:{quoted_schema}|{bare_schema})\s*\.)",
        re.IGNORECASE,
    )


def rewrite_query(
    sql: str,
    provider: str,
    logical_database_name: str,
    schema: str = DEFAULT_SCHEMA,
) -> str:
    """
    Collapse `<db>.main.` to `<db>.` for providers without a default schema.

    Args:
        sql (str): The SQL text to rewrite.
        provider (str): Provider of the database the query targets.
        logical_database_name (str): The database name anchoring the rewrite.
        schema (str): The schema segment to collapse.

    Returns:
        str: The rewritten SQL; unchanged for providers not subject to the quirk.

    Example:
        >>> rewrite_query('SELECT * FROM "db1".main.t', "gsheet-csv", "db1")
        'SELECT * FROM "db1".t'
        >>> rewrite_query('SELECT * FROM "db1".main.t', "postgresql", "db1")
        'SELECT * FROM "db1".main.t'
    """
    if not logical_database_name or not uses_two_part_naming(provider):
        return sql
    return _pattern(logical_database_name, schema).sub(r"\g<db>.", sql)


def rewrite_for_databases(sql: str, databases: Iterable[tuple[str, str]]) -> str:
    """
    Apply `rewrite_query` for every `(provider, logical_database_name)` pair.

    Each pass only touches references to its own database, so the order does not matter.
    """
    for provider, logical_database_name in databases:
        sql = rewrite_query(sql, provider, logical_database_name)
    return sql
