"""
Tests for qwery_mcp.mcp_server._tools.datasource.
"""

from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from conftest import create_mock_context, create_mock_session_manager

from qwery_mcp._exceptions import AttachmentError, SessionCreationError
from qwery_mcp.catalog import ConfigDatasourceCatalog, HttpDatasourceCatalog
from qwery_mcp.config import ConfigManager
from qwery_mcp.mcp_server._tools.datasource import (
    datasources_list,
    datasources_reset_sync_cache,
    datasources_sync,
)
from qwery_mcp.session_manager import SyncResult


@pytest_asyncio.fixture
async def config_manager():
    manager = ConfigManager()
    await manager._set_config_cache(
        {
            "datasources": {
                "pg1": {
                    "provider": "postgresql-neon",
                    "name": "Sales DB",
                    "config": {"connectionUrl": "postgresql://ro:secret@db/sales"},
                },
                "sheet1": {
                    "provider": "gsheet-csv",
                    "name": "Budget",
                    "database_name": "budget_2024",
                    "config": {"sharedLink": "https://docs.google.com/spreadsheets/d/abc/edit"},
                },
            }
        }
    )
    return manager


@pytest.mark.asyncio
async def test_datasources_list(config_manager):
    manager = create_mock_session_manager()
    manager.catalog = ConfigDatasourceCatalog(config_manager)

    result = await datasources_list(create_mock_context(manager))

    assert result["success"] is True
    assert "gsheet-csv" in result["supported_providers"]
    pg1, sheet1 = result["datasources"]
    assert pg1 == {
        "datasource_id": "pg1",
        "provider": "postgresql-neon",
        "name": "Sales DB",
        "database_name": "sales_db",
        "config": {"connectionUrl": "postgresql://ro:[REDACTED]@db/sales"},
    }
    assert sheet1["database_name"] == "budget_2024"


@pytest.mark.asyncio
async def test_datasources_list_http_catalog_is_empty():
    manager = create_mock_session_manager()
    manager.catalog = HttpDatasourceCatalog("http://catalog.local/datasources")

    result = await datasources_list(create_mock_context(manager))

    assert result["success"] is True
    assert result["datasources"] == []


@pytest.mark.asyncio
async def test_datasources_list_error():
    manager = create_mock_session_manager()
    manager.catalog = MagicMock(spec=ConfigDatasourceCatalog)
    manager.catalog.list_datasources.side_effect = RuntimeError("config unreadable")

    result = await datasources_list(create_mock_context(manager))

    assert result == {"success": False, "error": "config unreadable", "isError": True}


@pytest.mark.asyncio
async def test_datasources_sync_success():
    manager = create_mock_session_manager()
    manager.sync_datasources.return_value = SyncResult(
        generation=1,
        attached=["pg1"],
        failed=[AttachmentError("sheet1", "Failed to attach datasource 'sheet1': 403")],
    )

    result = await datasources_sync(
        create_mock_context(manager), "conv-1", ["pg1", "sheet1"], detach_unlisted=True
    )

    manager.sync_datasources.assert_awaited_once_with(
        "conv-1", "/ws", ["pg1", "sheet1"], detach_unlisted=True
    )
    assert result["success"] is True
    assert result["conversation_id"] == "conv-1"
    assert result["workspace"] == "/ws"
    assert result["generation"] == 1
    assert result["succeeded"] == ["pg1"]
    assert result["failed"] == [
        {
            "datasource_id": "sheet1",
            "operation": "attach",
            "error": "Failed to attach datasource 'sheet1': 403",
            "error_type": "AttachmentError",
        }
    ]


@pytest.mark.asyncio
async def test_datasources_sync_explicit_workspace():
    manager = create_mock_session_manager()
    manager.sync_datasources.return_value = SyncResult(generation=3, cached=True)

    result = await datasources_sync(
        create_mock_context(manager), "conv-1", ["pg1"], workspace="/other"
    )

    assert result["workspace"] == "/other"
    assert result["cached"] is True
    manager.sync_datasources.assert_awaited_once_with(
        "conv-1", "/other", ["pg1"], detach_unlisted=False
    )


@pytest.mark.asyncio
async def test_datasources_sync_session_failure():
    manager = create_mock_session_manager()
    manager.sync_datasources.side_effect = SessionCreationError("Failed to create session")

    result = await datasources_sync(create_mock_context(manager), "conv-1", ["pg1"])

    assert result == {"success": False, "error": "Failed to create session", "isError": True}


@pytest.mark.asyncio
@pytest.mark.parametrize("reset", [True, False])
async def test_datasources_reset_sync_cache(reset):
    manager = create_mock_session_manager()
    manager.reset_sync_cache.return_value = reset

    result = await datasources_reset_sync_cache(create_mock_context(manager), "conv-1")

    assert result == {"success": True, "reset": reset}
    manager.reset_sync_cache.assert_awaited_once_with("conv-1", "/ws")


@pytest.mark.asyncio
async def test_datasources_reset_sync_cache_error():
    manager = create_mock_session_manager()
    manager.reset_sync_cache.side_effect = RuntimeError("boom")

    result = await datasources_reset_sync_cache(create_mock_context(manager), "conv-1")

    assert result["success"] is False
    assert result["isError"] is True
