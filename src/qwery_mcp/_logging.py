"""
Logging and global exception handling utilities for the Qwery MCP server.

This module provides functions to:
- Set up root logger configuration early in process startup (`setup_logging`).
- Ensure all unhandled synchronous and asynchronous exceptions are logged (`setup_global_exception_logging`).

Two output formats are supported, selected with the QWERY_MCP_LOG_FORMAT environment variable:
- "text" (default): `[timestamp] LEVEL: message` lines on stderr.
- "json": one structured JSON object per record on stderr, via python-json-logger.

Call `setup_logging()` before any other imports in your main entrypoint to ensure all loggers are configured correctly.
Call `setup_global_exception_logging()` once at process startup to guarantee robust error visibility.
"""

import asyncio
import logging
import os
import sys
from types import TracebackType
from typing import Any

from pythonjsonlogger import json as jsonlogger

LOG_FORMAT_ENV_VAR = "QWERY_MCP_LOG_FORMAT"
"""str: Name of the environment variable selecting the log format ("text" or "json")."""

_TEXT_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
_JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def _build_json_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            fmt=_JSON_FORMAT,
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    return handler


def setup_logging() -> None:
    """
    Set up logging configuration for the application.

    This function configures the root logger using the PYTHONLOGLEVEL environment variable to set the log level.
    When QWERY_MCP_LOG_FORMAT is "json", records are emitted as JSON objects using python-json-logger's
    JsonFormatter; any other value (or no value) keeps the plain text format.

    It should be called before any other imports in your main entrypoint to ensure that all loggers are set up correctly
    and that no other modules configure logging before this setup takes effect.
    """
    level = os.getenv("PYTHONLOGLEVEL", "INFO")
    if os.getenv(LOG_FORMAT_ENV_VAR, "text").lower() == "json":
        logging.basicConfig(
            level=level,
            handlers=[_build_json_handler()],
            force=True,
        )
        return

    logging.basicConfig(
        level=level,
        format=_TEXT_FORMAT,
        stream=sys.stderr,
        force=True,  # Ensure we override any existing logging configuration
    )


# Idempotency guard for global exception logging setup
_EXC_LOGGING_INSTALLED = False


def setup_global_exception_logging() -> None:
    """
    Set up global logging for all unhandled exceptions (synchronous and asynchronous) in the process.

    This function ensures that:
        - All uncaught exceptions in synchronous code are logged using the root logger.
        - All uncaught exceptions in asyncio event loops are logged, including loops created later
          (`asyncio.new_event_loop` is patched to install the handler).
        - The handler is also set on the current event loop, if one exists.

    Background tasks owned by the session manager (idle eviction) rely on this to make sure
    an unexpected failure is never silently dropped.

    Usage:
        Call this function once at process startup, before any event loops are created or server code is run.
    """
    global _EXC_LOGGING_INSTALLED
    if _EXC_LOGGING_INSTALLED:
        return
    _EXC_LOGGING_INSTALLED = True

    def _log_unhandled_exception(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_traceback: TracebackType | None,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            return
        logging.error(
            "UNHANDLED EXCEPTION", exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = _log_unhandled_exception

    def _asyncio_exception_handler(
        loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exception = context.get("exception")
        logging.error(
            f"UNHANDLED ASYNC EXCEPTION: {context.get('message')}",
            exc_info=(
                (type(exception), exception, exception.__traceback__)
                if exception
                else None
            ),
        )

    _orig_new_event_loop = asyncio.new_event_loop

    def _patched_new_event_loop(*args: Any, **kwargs: Any) -> asyncio.AbstractEventLoop:
        loop = _orig_new_event_loop(*args, **kwargs)
        loop.set_exception_handler(_asyncio_exception_handler)
        return loop

    asyncio.new_event_loop = _patched_new_event_loop

    try:
        asyncio.get_event_loop().set_exception_handler(_asyncio_exception_handler)
    except RuntimeError:
        # No event loop yet; the patched factory covers loops created later
        pass
