import sys
from unittest.mock import MagicMock, patch

import pytest


def _import_main():
    sys.modules.pop("qwery_mcp.mcp_server.main", None)
    import qwery_mcp.mcp_server.main as mod

    return mod


def test_import_sets_up_logging():
    with (
        patch("qwery_mcp._logging.setup_logging", MagicMock()) as setup_logging_mock,
        patch(
            "qwery_mcp._logging.setup_global_exception_logging", MagicMock()
        ) as setup_global_exception_logging_mock,
    ):
        _import_main()
    setup_logging_mock.assert_called_once()
    setup_global_exception_logging_mock.assert_called_once()


@pytest.mark.parametrize("transport", ["stdio", "sse", "streamable-http"])
def test_run_server(transport):
    with (
        patch("qwery_mcp._logging.setup_logging", MagicMock()),
        patch("qwery_mcp._logging.setup_global_exception_logging", MagicMock()),
    ):
        mod = _import_main()

    with (
        patch.object(mod, "_LOGGER", MagicMock()) as logger_mock,
        patch.object(mod, "mcp_server", MagicMock()) as mcp_server_mock,
    ):
        mcp_server_mock.name = "testserver"
        mod.run_server(transport)
        logger_mock.warning.assert_any_call(
            f"Starting MCP server 'testserver' with transport={transport}"
        )
        logger_mock.info.assert_any_call("MCP server 'testserver' stopped.")
        mcp_server_mock.run.assert_called_once_with(transport=transport)


def test_run_server_logs_stop_on_error():
    with (
        patch("qwery_mcp._logging.setup_logging", MagicMock()),
        patch("qwery_mcp._logging.setup_global_exception_logging", MagicMock()),
    ):
        mod = _import_main()

    with (
        patch.object(mod, "_LOGGER", MagicMock()) as logger_mock,
        patch.object(mod, "mcp_server", MagicMock()) as mcp_server_mock,
    ):
        mcp_server_mock.name = "testserver"
        mcp_server_mock.run.side_effect = RuntimeError("port in use")
        with pytest.raises(RuntimeError):
            mod.run_server("sse")
        logger_mock.info.assert_any_call("MCP server 'testserver' stopped.")


@pytest.mark.parametrize(
    "argv, expected",
    [
        (["qwery-mcp"], "stdio"),
        (["qwery-mcp", "-t", "sse"], "sse"),
        (["qwery-mcp", "--transport", "streamable-http"], "streamable-http"),
    ],
)
def test_main_parses_transport(argv, expected):
    with (
        patch("qwery_mcp._logging.setup_logging", MagicMock()),
        patch("qwery_mcp._logging.setup_global_exception_logging", MagicMock()),
    ):
        mod = _import_main()

    with (
        patch.object(sys, "argv", argv),
        patch.object(mod, "run_server", MagicMock()) as run_server_mock,
    ):
        mod.main()
    run_server_mock.assert_called_once_with(expected)


def test_main_rejects_unknown_transport():
    with (
        patch("qwery_mcp._logging.setup_logging", MagicMock()),
        patch("qwery_mcp._logging.setup_global_exception_logging", MagicMock()),
    ):
        mod = _import_main()

    with patch.object(sys, "argv", ["qwery-mcp", "-t", "carrier-pigeon"]):
        with pytest.raises(SystemExit):
            mod.main()
