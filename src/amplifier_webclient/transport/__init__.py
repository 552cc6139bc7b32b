"""Client transports.

Two interchangeable variants present the same event surface:

- PersistentTransport: one WebSocket (preferred)
- PollingTransport: HTTP long-polling fallback

``select_transport`` picks one once, when the client is initialized.
"""

from __future__ import annotations

import importlib.util
import logging

from ..config import ClientConfig
from .base import BaseTransport, Transport, TransportFactory, TransportListener, TransportState
from .persistent import PersistentTransport
from .polling import PollingTransport

logger = logging.getLogger(__name__)


def websockets_available() -> bool:
    """Check whether the environment can open WebSockets."""
    return importlib.util.find_spec("websockets") is not None


def select_transport(config: ClientConfig) -> type[BaseTransport]:
    """Choose the transport class for ``config``.

    ``auto`` prefers the persistent transport when a WebSocket URL is
    configured and WebSocket support is installed, and falls back to
    polling otherwise.
    """
    if config.transport == "persistent":
        return PersistentTransport
    if config.transport == "polling":
        return PollingTransport

    if config.websocket_url and websockets_available():
        logger.debug("Selected persistent transport")
        return PersistentTransport
    logger.debug("Persistent transport unavailable, selected polling transport")
    return PollingTransport


__all__ = [
    "BaseTransport",
    "Transport",
    "TransportFactory",
    "TransportListener",
    "TransportState",
    "PersistentTransport",
    "PollingTransport",
    "select_transport",
    "websockets_available",
]
