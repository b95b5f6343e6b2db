"""Shared test fixtures and helpers for mcp_server tool tests."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from qwery_mcp.session_manager import DatasourceSessionManager


class MockRequestContext:
    """Mock MCP request context for testing."""

    def __init__(self, lifespan_context):
        self.lifespan_context = lifespan_context


class MockContext:
    """Mock MCP context for testing."""

    def __init__(self, lifespan_context):
        self.request_context = MockRequestContext(lifespan_context)


def create_mock_session_manager():
    """Create a mock DatasourceSessionManager for tests."""
    manager = MagicMock(spec=DatasourceSessionManager)
    manager.sync_datasources = AsyncMock()
    manager.reset_sync_cache = AsyncMock(return_value=True)
    manager.run_query = AsyncMock()
    manager.close = AsyncMock()
    manager.get_attachment = MagicMock(return_value=None)
    manager.list_sessions = MagicMock(return_value=[])
    return manager


def create_mock_context(session_manager=None, config=None):
    """Create a MockContext with a config manager returning `config`."""
    config_manager = MagicMock()
    config_manager.get_config = AsyncMock(return_value=config or {"workspace": "/ws"})
    config_manager.clear_config_cache = AsyncMock()
    return MockContext(
        {
            "config_manager": config_manager,
            "session_manager": session_manager or create_mock_session_manager(),
            "refresh_lock": asyncio.Lock(),
        }
    )
