"""
Tests for qwery_mcp.config._datasources.
"""

import pytest

from qwery_mcp.config import DatasourceConfigurationError, redact_datasource_config
from qwery_mcp.config._datasources import (
    validate_catalog_config,
    validate_datasources_config,
    validate_single_datasource_config,
)


def test_redact_datasource_config_masks_secrets():
    entry = {
        "provider": "postgresql",
        "name": "Sales",
        "config": {
            "host": "db",
            "password": "hunter2",
            "apiKey": "k",
            "connection_url": "postgresql://ro:hunter2@db:5432/sales",
            "connection_string": "host=db user=ro password=hunter2",
        },
    }
    redacted = redact_datasource_config(entry)
    config = redacted["config"]
    assert config["password"] == "[REDACTED]"
    assert config["apiKey"] == "[REDACTED]"
    assert config["connection_url"] == "postgresql://ro:[REDACTED]@db:5432/sales"
    assert config["connection_string"] == "host=db user=ro password=[REDACTED]"
    assert config["host"] == "db"
    # Original untouched
    assert entry["config"]["password"] == "hunter2"


def test_redact_datasource_config_accepts_bare_config():
    assert redact_datasource_config({"token": "t", "path": "/data.csv"}) == {
        "token": "[REDACTED]",
        "path": "/data.csv",
    }


def test_redact_datasource_config_leaves_empty_password():
    assert redact_datasource_config({"password": ""}) == {"password": ""}


def test_validate_datasources_config_valid():
    validate_datasources_config(None)
    validate_datasources_config(
        {
            "pg1": {"provider": "postgresql-neon", "name": "Neon", "config": {}},
            "f1": {"provider": "csv", "name": "File", "database_name": "sales_file"},
        }
    )


@pytest.mark.parametrize(
    "entry, match",
    [
        ("not a dict", "must be a dictionary"),
        ({"provider": "csv"}, "Missing required field 'name'"),
        ({"name": "x"}, "Missing required field 'provider'"),
        ({"provider": "csv", "name": "x", "extra": 1}, "Unknown field 'extra'"),
        ({"provider": "csv", "name": 3}, "must be of type str"),
        ({"provider": "csv", "name": "x", "config": []}, "must be of type dict"),
        ({"provider": "oracle", "name": "x"}, "Unsupported provider 'oracle'"),
        ({"provider": "csv", "name": "x", "database_name": "bad name"}, "plain identifier"),
    ],
)
def test_validate_single_datasource_config_invalid(entry, match):
    with pytest.raises(DatasourceConfigurationError, match=match):
        validate_single_datasource_config("ds", entry)


def test_validate_datasources_config_not_dict():
    with pytest.raises(DatasourceConfigurationError, match="must be a dictionary"):
        validate_datasources_config(["pg1"])


def test_validate_datasources_config_duplicate_database_name():
    with pytest.raises(DatasourceConfigurationError, match="share database_name"):
        validate_datasources_config(
            {
                "a": {"provider": "csv", "name": "A", "database_name": "sales"},
                "b": {"provider": "csv", "name": "B", "database_name": "SALES"},
            }
        )


def test_validate_catalog_config_valid():
    validate_catalog_config(None)
    validate_catalog_config({"type": "config"})
    validate_catalog_config(
        {"type": "http", "url": "https://catalog", "timeout_seconds": 5, "headers": {"a": "b"}}
    )


@pytest.mark.parametrize(
    "catalog_config, match",
    [
        ("http", "must be a dictionary"),
        ({"kind": "http"}, "Unknown field"),
        ({"type": "ldap"}, "must be one of"),
        ({"type": "http"}, "'catalog.url' is required"),
        ({"type": "http", "url": "https://c", "timeout_seconds": 0}, "must be positive"),
        ({"timeout_seconds": True}, "invalid type"),
    ],
)
def test_validate_catalog_config_invalid(catalog_config, match):
    with pytest.raises(DatasourceConfigurationError, match=match):
        validate_catalog_config(catalog_config)
