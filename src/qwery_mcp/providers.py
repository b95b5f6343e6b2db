"""
Registry of datasource providers known to the session manager.

Maps a datasource provider id (as stored in the catalog, e.g. "postgresql-neon") to a
`ProviderSpec` describing how the analytical engine reaches it:

- Foreign databases are attached natively by DuckDB (`ATTACH ... (TYPE POSTGRES)`),
  optionally after loading a scanner extension.
- DuckDB-native sources (CSV, JSON, Parquet) become views inside an in-memory database
  attached under the datasource's logical name.
- Google Sheets are materialized tab by tab into a persistent DuckDB file.

Provider ids are matched case-insensitively. All `postgresql-*` variants map to the
PostgreSQL scanner.
"""

__all__ = [
    "ProviderKind",
    "ProviderSpec",
    "SUPPORTED_PROVIDERS",
    "lookup_provider",
    "uses_two_part_naming",
]

import enum
import re
from dataclasses import dataclass


class ProviderKind(enum.Enum):
    """How a provider is made visible inside the engine."""

    FOREIGN_DATABASE = "foreign-database"
    DUCKDB_NATIVE = "duckdb-native"
    GSHEET = "gsheet"


@dataclass(frozen=True)
class ProviderSpec:
    """
    Static description of a datasource provider.

    Attributes:
        provider (str): Canonical provider id.
        kind (ProviderKind): Attachment strategy family.
        attach_type (str | None): DuckDB ATTACH TYPE (POSTGRES, MYSQL, SQLITE) or None for a plain ATTACH.
        extension (str | None): DuckDB extension that must be loaded before attaching.
        reader (str | None): Table function used by DuckDB-native providers.
        two_part_naming (bool): True when tables are addressed as `db.table` rather than
            `db.schema.table`; queries for such providers go through the query rewriter.
    """

    provider: str
    kind: ProviderKind
    attach_type: str | None = None
    extension: str | None = None
    reader: str | None = None
    two_part_naming: bool = False


_POSTGRES = ProviderSpec(
    "postgresql", ProviderKind.FOREIGN_DATABASE, attach_type="POSTGRES", extension="postgres"
)

_PROVIDERS: dict[str, ProviderSpec] = {
    "postgresql": _POSTGRES,
    "pglite": ProviderSpec(
        "pglite", ProviderKind.FOREIGN_DATABASE, attach_type="POSTGRES", extension="postgres"
    ),
    "mysql": ProviderSpec(
        "mysql", ProviderKind.FOREIGN_DATABASE, attach_type="MYSQL", extension="mysql"
    ),
    "sqlite": ProviderSpec(
        "sqlite", ProviderKind.FOREIGN_DATABASE, attach_type="SQLITE", extension="sqlite"
    ),
    "duckdb": ProviderSpec("duckdb", ProviderKind.FOREIGN_DATABASE),
    "csv": ProviderSpec("csv", ProviderKind.DUCKDB_NATIVE, reader="read_csv_auto"),
    "json-online": ProviderSpec(
        "json-online", ProviderKind.DUCKDB_NATIVE, reader="read_json_auto"
    ),
    "parquet-online": ProviderSpec(
        "parquet-online", ProviderKind.DUCKDB_NATIVE, reader="read_parquet"
    ),
    "gsheet-csv": ProviderSpec(
        "gsheet-csv", ProviderKind.GSHEET, reader="read_csv_auto", two_part_naming=True
    ),
}

_POSTGRES_VARIANT = re.compile(r"^postgresql(-.*)?$", re.IGNORECASE)

SUPPORTED_PROVIDERS: frozenset[str] = frozenset(_PROVIDERS)
"""frozenset[str]: Canonical provider ids (plus any `postgresql-*` variant)."""


def lookup_provider(provider: str) -> ProviderSpec | None:
    """
    Return the spec for a provider id, or None if the provider is not supported.

    Args:
        provider (str): Provider id, matched case-insensitively.

    Returns:
        ProviderSpec | None: The matching spec.
    """
    key = provider.strip().lower()
    spec = _PROVIDERS.get(key)
    if spec is not None:
        return spec
    if _POSTGRES_VARIANT.match(key):
        return _POSTGRES
    return None


def uses_two_part_naming(provider: str) -> bool:
    """Return True if the provider's tables are addressed without a schema segment."""
    spec = lookup_provider(provider)
    return spec is not None and spec.two_part_naming
