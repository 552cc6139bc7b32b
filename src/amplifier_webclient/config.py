"""Client configuration.

Settings can be given explicitly or read from ``AMPLIFIER_WEBCLIENT_*``
environment variables with :meth:`ClientConfig.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any

ENV_PREFIX = "AMPLIFIER_WEBCLIENT_"

TRANSPORT_MODES = ("auto", "persistent", "polling")

# Environment variable suffix -> (field name, parser, accepts "none")
_ENV_FIELDS: dict[str, tuple[str, Any, bool]] = {
    "WS_URL": ("websocket_url", str, False),
    "POLL_URL": ("poll_url", str, False),
    "TRANSPORT": ("transport", str, False),
    "POLL_TIMEOUT": ("poll_timeout", float, False),
    "CALL_TIMEOUT": ("call_timeout", float, True),
    "MAX_POLL_FAILURES": ("max_poll_failures", int, True),
}


@dataclass
class ClientConfig:
    """Configuration for a WebClient and its transport."""

    # Transport selection
    transport: str = "auto"  # "auto" | "persistent" | "polling"

    # Persistent (WebSocket) settings
    websocket_url: str | None = None
    ping_interval: float | None = 20.0
    ping_timeout: float | None = 20.0

    # Polling (long-poll over HTTP POST) settings
    poll_url: str = "http://localhost:4001/webclientdata"
    poll_timeout: float = 30.0
    handshake_timeout: float = 50.0
    max_poll_failures: int | None = 10

    # Correlation
    call_timeout: float | None = 60.0
    id_field: str = "id"

    def __post_init__(self) -> None:
        if self.transport not in TRANSPORT_MODES:
            raise ValueError(
                f"Unknown transport {self.transport!r}, "
                f"expected one of {', '.join(TRANSPORT_MODES)}"
            )
        if self.transport == "persistent" and not self.websocket_url:
            raise ValueError("transport='persistent' requires websocket_url")
        if self.poll_timeout <= 0 or self.handshake_timeout <= 0:
            raise ValueError("poll_timeout and handshake_timeout must be positive")
        if self.max_poll_failures is not None and self.max_poll_failures < 1:
            raise ValueError("max_poll_failures must be at least 1 (or None)")
        if self.call_timeout is not None and self.call_timeout <= 0:
            raise ValueError("call_timeout must be positive (or None)")
        if not self.id_field:
            raise ValueError("id_field must not be empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Build a config from environment variables.

        Keyword arguments override both the environment and the defaults;
        overrides whose value is None are ignored, so unset CLI options
        fall through to the environment.
        ``CALL_TIMEOUT`` and ``MAX_POLL_FAILURES`` accept ``none`` to
        disable the limit.
        """
        values: dict[str, Any] = {}
        for suffix, (name, parser, nullable) in _ENV_FIELDS.items():
            raw = os.environ.get(f"{ENV_PREFIX}{suffix}")
            if raw is None or raw == "":
                continue
            if nullable and raw.lower() == "none":
                values[name] = None
                continue
            try:
                values[name] = parser(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{suffix}: {raw!r}") from e

        known = {f.name for f in fields(cls)}
        values.update({k: v for k, v in overrides.items() if k in known and v is not None})
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown config option(s): {', '.join(sorted(unknown))}")
        return cls(**values)
