"""
Tests for qwery_mcp.mcp_server._tools.mcp_server.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import MockContext, create_mock_context, create_mock_session_manager

from qwery_mcp.catalog import ConfigDatasourceCatalog, HttpDatasourceCatalog
from qwery_mcp.mcp_server._tools import mcp_server as mcp_server_module
from qwery_mcp.mcp_server._tools.mcp_server import (
    _build_session_manager,
    app_lifespan,
    mcp_reload,
)
from qwery_mcp.session_manager import DatasourceSessionManager


@pytest.mark.asyncio
async def test_build_session_manager_uses_config():
    config_manager = MagicMock()
    config_manager.get_config = AsyncMock(
        return_value={
            "sessions": {"pool_size": 7, "idle_timeout_seconds": 0},
            "catalog": {"type": "http", "url": "http://catalog.local"},
        }
    )

    manager = await _build_session_manager(config_manager)
    try:
        assert isinstance(manager, DatasourceSessionManager)
        assert isinstance(manager.catalog, HttpDatasourceCatalog)
        assert manager.settings.pool_size == 7
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_app_lifespan_yields_context_and_closes_manager():
    config_manager = MagicMock()
    config_manager.get_config = AsyncMock(return_value={})
    server = MagicMock()
    server.name = "test-server"

    with patch.object(mcp_server_module, "ConfigManager", return_value=config_manager):
        async with app_lifespan(server) as context:
            session_manager = context["session_manager"]
            assert context["config_manager"] is config_manager
            assert isinstance(context["refresh_lock"], asyncio.Lock)
            assert isinstance(session_manager.catalog, ConfigDatasourceCatalog)
            assert not session_manager.closed

    assert session_manager.closed


@pytest.mark.asyncio
async def test_app_lifespan_config_failure():
    config_manager = MagicMock()
    config_manager.get_config = AsyncMock(side_effect=RuntimeError("bad config"))
    server = MagicMock()
    server.name = "test-server"

    with patch.object(mcp_server_module, "ConfigManager", return_value=config_manager):
        with pytest.raises(RuntimeError, match="bad config"):
            async with app_lifespan(server):
                pass  # pragma: no cover


@pytest.mark.asyncio
async def test_mcp_reload_swaps_session_manager():
    old_manager = create_mock_session_manager()
    new_manager = create_mock_session_manager()
    context = create_mock_context(old_manager)
    lifespan_context = context.request_context.lifespan_context

    with patch.object(
        mcp_server_module, "_build_session_manager", AsyncMock(return_value=new_manager)
    ) as build:
        result = await mcp_reload(context)

    assert result == {"success": True}
    lifespan_context["config_manager"].clear_config_cache.assert_awaited_once()
    build.assert_awaited_once_with(lifespan_context["config_manager"])
    assert lifespan_context["session_manager"] is new_manager
    old_manager.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_mcp_reload_failure_keeps_old_manager():
    old_manager = create_mock_session_manager()
    context = create_mock_context(old_manager)

    with patch.object(
        mcp_server_module,
        "_build_session_manager",
        AsyncMock(side_effect=RuntimeError("invalid configuration")),
    ):
        result = await mcp_reload(context)

    assert result == {"success": False, "error": "invalid configuration", "isError": True}
    assert context.request_context.lifespan_context["session_manager"] is old_manager
    old_manager.close.assert_not_awaited()


@pytest.mark.asyncio
async def test_mcp_reload_missing_context_keys():
    config_manager = MagicMock()
    config_manager.clear_config_cache = AsyncMock()
    context = MockContext({"config_manager": config_manager})

    result = await mcp_reload(context)

    assert result["success"] is False
    assert result["isError"] is True
    assert "refresh_lock" in result["error"]
