"""Reserved lifecycle command names.

Transports report their state changes to the client using these command
names, so listeners subscribe to them exactly like any server command.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from ..errors import ErrorCode


class LifecycleEvent(str, Enum):
    """Reserved inbound command names emitted by transports."""

    OPEN = "socket:open"
    CLOSE = "socket:close"
    ERROR = "socket:error"


def error_payload(message: str, code: ErrorCode) -> dict[str, Any]:
    """Build the payload carried by a ``socket:error`` event."""
    return {"error": message, "code": code.value}
