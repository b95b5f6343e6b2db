"""
Tests for qwery_mcp.mcp_server._tools.shared.
"""

import os
from unittest.mock import patch

import pytest
from conftest import create_mock_context, create_mock_session_manager

from qwery_mcp.mcp_server._tools.shared import (
    MAX_RESPONSE_SIZE,
    WARNING_SIZE,
    _check_response_size,
    _get_config_manager,
    _get_session_manager,
    _resolve_workspace,
)


def test_lifespan_accessors():
    manager = create_mock_session_manager()
    context = create_mock_context(manager)
    assert _get_session_manager(context) is manager
    assert _get_config_manager(context) is context.request_context.lifespan_context["config_manager"]


@pytest.mark.asyncio
async def test_resolve_workspace_explicit_wins():
    context = create_mock_context()
    assert await _resolve_workspace("t", context, "/explicit") == "/explicit"
    _get_config_manager(context).get_config.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_workspace_from_config():
    context = create_mock_context(config={"workspace": "/from/config"})
    assert await _resolve_workspace("t", context, None) == "/from/config"


@pytest.mark.asyncio
async def test_resolve_workspace_from_environment():
    context = create_mock_context(config={"datasources": {}})
    with patch.dict(os.environ, {"WORKSPACE": "/from/env"}, clear=False):
        assert await _resolve_workspace("t", context, None) == "/from/env"


def test_check_response_size_ok():
    assert _check_response_size("q", 1000) is None


def test_check_response_size_warns(caplog):
    assert _check_response_size("q", WARNING_SIZE + 1) is None
    assert "Large response" in caplog.text


def test_check_response_size_too_large():
    result = _check_response_size("q", MAX_RESPONSE_SIZE + 1)
    assert result["success"] is False
    assert result["isError"] is True
    assert "max 50MB" in result["error"]
