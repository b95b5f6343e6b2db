"""
Tests for qwery_mcp.config (ConfigManager, file loading, top-level validation, workspace resolution).
"""

import json
import os

import pytest

from qwery_mcp.config import (
    CONFIG_ENV_VAR,
    ConfigManager,
    McpConfigurationError,
    SessionConfigurationError,
    _load_config_from_file,
    _log_config_summary,
    get_config_path,
    load_and_validate_config,
    resolve_workspace,
    validate_config,
)


@pytest.fixture
def valid_config():
    return {
        "workspace": "/tmp/qwery-ws",
        "sessions": {"pool_size": 2, "query_timeout_seconds": 5},
        "datasources": {
            "pg1": {
                "provider": "postgresql",
                "name": "Sales DB",
                "config": {"host": "db", "user": "ro", "password": "secret"},
            },
            "sheet1": {
                "provider": "gsheet-csv",
                "name": "Budget",
                "config": {"sharedLink": "https://docs.google.com/spreadsheets/d/abc/edit"},
            },
        },
    }


@pytest.fixture
def config_file(tmp_path, valid_config):
    path = tmp_path / "qwery.json"
    path.write_text(json.dumps(valid_config))
    return path


def test_validate_config_accepts_empty():
    assert validate_config({}) == {}


def test_validate_config_accepts_full(valid_config):
    assert validate_config(valid_config) is valid_config


def test_validate_config_rejects_unknown_key():
    with pytest.raises(McpConfigurationError, match="Unknown top-level keys"):
        validate_config({"community": {}})


def test_validate_config_rejects_non_string_workspace():
    with pytest.raises(McpConfigurationError, match="'workspace' must be a string"):
        validate_config({"workspace": 42})


def test_validate_config_section_errors_are_mcp_configuration_errors():
    with pytest.raises(McpConfigurationError) as exc_info:
        validate_config({"sessions": {"pool_size": 0}})
    assert isinstance(exc_info.value, SessionConfigurationError)


def test_get_config_path(monkeypatch):
    monkeypatch.setenv(CONFIG_ENV_VAR, "/some/path.json")
    assert get_config_path() == "/some/path.json"
    monkeypatch.delenv(CONFIG_ENV_VAR)
    assert get_config_path() is None


@pytest.mark.asyncio
async def test_load_config_from_file(config_file, valid_config):
    assert await _load_config_from_file(str(config_file)) == valid_config


@pytest.mark.asyncio
async def test_load_config_from_file_missing(tmp_path):
    with pytest.raises(McpConfigurationError, match="not found"):
        await _load_config_from_file(str(tmp_path / "missing.json"))


@pytest.mark.asyncio
async def test_load_config_from_file_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(McpConfigurationError, match="Invalid JSON"):
        await _load_config_from_file(str(path))


@pytest.mark.asyncio
async def test_load_config_from_file_not_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")
    with pytest.raises(McpConfigurationError, match="JSON object"):
        await _load_config_from_file(str(path))


@pytest.mark.asyncio
async def test_load_and_validate_config_rejects_invalid(tmp_path):
    path = tmp_path / "invalid.json"
    path.write_text(json.dumps({"datasources": {"x": {"provider": "oracle", "name": "x"}}}))
    with pytest.raises(McpConfigurationError, match="Unsupported provider"):
        await load_and_validate_config(str(path))


@pytest.mark.asyncio
async def test_config_manager_loads_and_caches(monkeypatch, config_file, valid_config):
    monkeypatch.setenv(CONFIG_ENV_VAR, str(config_file))
    manager = ConfigManager()
    first = await manager.get_config()
    assert first == valid_config

    # Changes on disk are not visible until the cache is cleared
    config_file.write_text(json.dumps({"workspace": "/elsewhere"}))
    assert await manager.get_config() is first

    await manager.clear_config_cache()
    assert await manager.get_config() == {"workspace": "/elsewhere"}


@pytest.mark.asyncio
async def test_config_manager_without_env_var_uses_empty_config(monkeypatch, caplog):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    manager = ConfigManager()
    assert await manager.get_config() == {}
    assert any(CONFIG_ENV_VAR in r.message for r in caplog.records)


@pytest.mark.asyncio
async def test_config_manager_set_config_cache_validates():
    manager = ConfigManager()
    await manager._set_config_cache({"workspace": "/ws"})
    assert await manager.get_config() == {"workspace": "/ws"}
    with pytest.raises(McpConfigurationError):
        await manager._set_config_cache({"bogus": True})


def test_log_config_summary_redacts(caplog, valid_config):
    caplog.set_level("INFO")
    _log_config_summary(valid_config)
    text = "\n".join(r.message for r in caplog.records)
    assert "Datasource 'pg1'" in text
    assert "secret" not in text
    assert "[REDACTED]" in text


def test_resolve_workspace_prefers_config(monkeypatch):
    monkeypatch.setenv("WORKSPACE", "/from-env")
    assert resolve_workspace({"workspace": "/from-config"}) == os.path.abspath("/from-config")


def test_resolve_workspace_env_order(monkeypatch):
    monkeypatch.delenv("WORKSPACE", raising=False)
    monkeypatch.setenv("WORKING_DIR", "/working")
    assert resolve_workspace({}) == os.path.abspath("/working")
    monkeypatch.setenv("WORKSPACE", "/workspace")
    assert resolve_workspace({}) == os.path.abspath("/workspace")


def test_resolve_workspace_defaults_to_cwd(monkeypatch, tmp_path):
    monkeypatch.delenv("WORKSPACE", raising=False)
    monkeypatch.delenv("WORKING_DIR", raising=False)
    monkeypatch.chdir(tmp_path)
    assert resolve_workspace({}) == os.path.abspath(str(tmp_path))
