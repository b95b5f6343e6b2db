"""
Configuration handling for datasource sessions.

Validates the optional `sessions` section of the configuration and turns it into an
immutable `SessionSettings` value consumed by the session manager:

- `pool_size` (int > 0): Maximum number of engine connections per session.
- `acquire_timeout_seconds` (number > 0): How long `get_connection` waits for a free connection.
- `attach_timeout_seconds` / `detach_timeout_seconds` (number > 0): Per-datasource ATTACH/DETACH timeout.
- `query_timeout_seconds` (number > 0): Query execution timeout.
- `idle_timeout_seconds` (number >= 0): Idle time after which a session is evicted; 0 disables eviction.
- `eviction_interval_seconds` (number > 0): How often the idle sweep runs.
- `engine_settings` (dict): Extra DuckDB configuration options passed to `duckdb.connect`.

All validation errors raise `SessionConfigurationError`.
"""

__all__ = [
    "SessionSettings",
    "validate_sessions_config",
]

import logging
from dataclasses import dataclass, field
from typing import Any

from qwery_mcp.config.errors import SessionConfigurationError

_LOGGER = logging.getLogger(__name__)

_ALLOWED_SESSION_FIELDS: dict[str, type | tuple[type, ...]] = {
    "pool_size": int,
    "acquire_timeout_seconds": (int, float),
    "attach_timeout_seconds": (int, float),
    "detach_timeout_seconds": (int, float),
    "query_timeout_seconds": (int, float),
    "idle_timeout_seconds": (int, float),
    "eviction_interval_seconds": (int, float),
    "engine_settings": dict,
}
"""Dictionary of allowed `sessions` fields and their expected types."""

_POSITIVE_FIELDS: tuple[str, ...] = (
    "pool_size",
    "acquire_timeout_seconds",
    "attach_timeout_seconds",
    "detach_timeout_seconds",
    "query_timeout_seconds",
    "eviction_interval_seconds",
)


@dataclass(frozen=True)
class SessionSettings:
    """
    Immutable runtime settings for datasource sessions.

    Defaults mirror the 30 second timeout used for every external call and a
    conservative 30 minute idle eviction window.
    """

    pool_size: int = 4
    acquire_timeout_seconds: float = 30.0
    attach_timeout_seconds: float = 30.0
    detach_timeout_seconds: float = 30.0
    query_timeout_seconds: float = 30.0
    idle_timeout_seconds: float = 1800.0
    eviction_interval_seconds: float = 60.0
    engine_settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SessionSettings":
        """
        Build settings from a validated configuration dictionary.

        Args:
            config (dict[str, Any]): The full application configuration. Only the
                optional `sessions` section is read; missing fields keep their defaults.

        Returns:
            SessionSettings: The resulting settings.
        """
        section = config.get("sessions") or {}
        kwargs: dict[str, Any] = {}
        for name in _ALLOWED_SESSION_FIELDS:
            if name not in section:
                continue
            value = section[name]
            if name == "engine_settings":
                kwargs[name] = dict(value)
            elif name == "pool_size":
                kwargs[name] = int(value)
            else:
                kwargs[name] = float(value)
        return cls(**kwargs)


def validate_sessions_config(sessions_config: Any | None) -> None:
    """
    Validate the 'sessions' configuration section, if present.

    Args:
        sessions_config (dict[str, Any] | None): The `sessions` section, or None if absent.

    Raises:
        SessionConfigurationError: If the section is not a dict, contains unknown fields,
            has fields of the wrong type, or has out-of-range values.
    """
    if sessions_config is None:
        return

    if not isinstance(sessions_config, dict):
        _LOGGER.error(
            f"[config:validate_sessions_config] 'sessions' must be a dictionary, got {type(sessions_config).__name__}"
        )
        raise SessionConfigurationError("'sessions' must be a dictionary in configuration")

    for field_name, field_value in sessions_config.items():
        if field_name not in _ALLOWED_SESSION_FIELDS:
            raise SessionConfigurationError(
                f"Unknown field '{field_name}' in 'sessions' config"
            )
        allowed_types = _ALLOWED_SESSION_FIELDS[field_name]
        # bool is an int subclass; never accept it for numeric settings
        if isinstance(field_value, bool) or not isinstance(field_value, allowed_types):
            expected = (
                ", ".join(t.__name__ for t in allowed_types)
                if isinstance(allowed_types, tuple)
                else allowed_types.__name__
            )
            raise SessionConfigurationError(
                f"Field '{field_name}' in 'sessions' config must be of type ({expected}), got {type(field_value).__name__}"
            )

    for field_name in _POSITIVE_FIELDS:
        if field_name in sessions_config and sessions_config[field_name] <= 0:
            raise SessionConfigurationError(
                f"Field '{field_name}' in 'sessions' config must be positive, got {sessions_config[field_name]}"
            )

    idle_timeout = sessions_config.get("idle_timeout_seconds")
    if idle_timeout is not None and idle_timeout < 0:
        raise SessionConfigurationError(
            f"Field 'idle_timeout_seconds' in 'sessions' config must be non-negative, got {idle_timeout}"
        )

    engine_settings = sessions_config.get("engine_settings", {})
    for key in engine_settings:
        if not isinstance(key, str):
            raise SessionConfigurationError(
                "Keys of 'sessions.engine_settings' must be strings"
            )
