"""
Connection string builders for foreign databases.

A datasource's connection descriptor either carries a ready-made connection string
(`connectionUrl`, `connection_url`, `url` or `path`) or separate fields (`host`, `port`,
`user`/`username`, `password`, `database`, `sslmode`) from which one is built in the
format DuckDB's scanner extensions expect.
"""

import urllib.parse
from typing import Any

from qwery_mcp.providers import ProviderSpec

_URL_KEYS: tuple[str, ...] = ("connectionUrl", "connection_url", "url", "path")
_PATH_KEYS: tuple[str, ...] = ("path", "database", "connectionUrl", "connection_url")


def extract_first(config: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    """Return the first non-blank string value among `keys`, stripped."""
    for key in keys:
        value = config.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def build_postgres_connection_url(config: dict[str, Any]) -> str:
    """
    Build a PostgreSQL URL from separate fields.

    Defaults: host "localhost", port 5432, sslmode "prefer". User and password are
    percent-encoded.
    """
    host = config.get("host") or "localhost"
    port = config.get("port") or 5432
    user = config.get("username") or config.get("user") or ""
    password = config.get("password") or ""
    database = config.get("database") or ""
    sslmode = config.get("sslmode") or "prefer"

    url = "postgresql://"
    if user or password:
        url += urllib.parse.quote(str(user), safe="")
        if password:
            url += ":" + urllib.parse.quote(str(password), safe="")
        url += "@"
    url += f"{host}:{port}"
    if database:
        url += f"/{database}"
    if sslmode:
        url += f"?sslmode={sslmode}"
    return url


def clean_postgres_connection_url(connection_url: str) -> str:
    """
    Normalize a PostgreSQL URL for the DuckDB scanner.

    Drops `channel_binding` (unsupported by libpq in the scanner) and makes sure an
    `sslmode` is present, upgrading "disable" to "prefer".
    """
    parts = urllib.parse.urlsplit(connection_url)
    query = [
        (key, value)
        for key, value in urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
        if key != "channel_binding"
    ]
    params = dict(query)
    if params.get("sslmode") in (None, "disable"):
        query = [(k, v) for k, v in query if k != "sslmode"] + [("sslmode", "prefer")]
    return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))


def build_mysql_connection_string(config: dict[str, Any]) -> str:
    """Build the space-separated key/value string used by DuckDB's MySQL scanner."""
    host = config.get("host") or "localhost"
    port = config.get("port") or 3306
    user = config.get("username") or config.get("user") or "root"
    password = config.get("password") or ""
    database = config.get("database") or ""
    return f"host={host} port={port} user={user} password={password} database={database}"


def extract_connection_string(config: dict[str, Any], spec: ProviderSpec) -> str:
    """
    Extract or build the ATTACH target for a foreign database provider.

    Args:
        config (dict[str, Any]): The datasource's connection descriptor.
        spec (ProviderSpec): The provider spec.

    Returns:
        str: The connection string or file path.

    Raises:
        ValueError: If the descriptor lacks the fields required to connect.
    """
    if spec.attach_type in (None, "SQLITE"):
        path = extract_first(config, _PATH_KEYS)
        if not path:
            raise ValueError(
                f"{spec.provider} datasource requires path, database, or connectionUrl in config"
            )
        return path

    connection_url = extract_first(config, _URL_KEYS)
    if spec.attach_type == "POSTGRES":
        if connection_url:
            return clean_postgres_connection_url(connection_url)
        if not config.get("host"):
            raise ValueError(
                "PostgreSQL datasource requires connectionUrl or host in config"
            )
        return build_postgres_connection_url(config)

    if spec.attach_type == "MYSQL":
        if connection_url:
            return connection_url
        if not config.get("host"):
            raise ValueError("MySQL datasource requires connectionUrl or host in config")
        return build_mysql_connection_string(config)

    raise ValueError(f"Unsupported ATTACH type for provider {spec.provider}")
