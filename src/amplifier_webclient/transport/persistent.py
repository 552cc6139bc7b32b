"""Persistent transport over a single WebSocket.

The preferred transport: one long-lived full-duplex channel. Every frame
in either direction is one envelope in JSON array form.

State machine:
    connecting -> open -> closed            (server closed normally)
    connecting -> errored -> closed         (could not connect)
    open -> errored -> closed               (abnormal closure)

There is no automatic reconnect. Once closed, sends are dropped and
reported with socket:error.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from ..config import ClientConfig
from ..errors import TransportError
from .base import BaseTransport, TransportListener

logger = logging.getLogger(__name__)


class PersistentTransport(BaseTransport):
    """Transport over WebSocket for full-duplex communication.

    Wire format:
    - Outbound: one text frame per envelope
    - Inbound: one envelope per frame; binary frames are decoded as UTF-8
    """

    def __init__(self, config: ClientConfig, listener: TransportListener):
        if not config.websocket_url:
            raise ValueError("PersistentTransport requires config.websocket_url")
        super().__init__(config, listener)
        self._ws: Any = None  # websockets ClientConnection

    @property
    def url(self) -> str:
        return self.config.websocket_url or ""

    async def _do_connect(self) -> None:
        """Open the WebSocket."""
        try:
            import websockets
        except ImportError as e:
            raise ImportError(
                "websockets package required. Install with: pip install websockets"
            ) from e

        logger.debug(f"Opening WebSocket to {self.url}")
        self._ws = await websockets.connect(
            self.url,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
        )

    async def _do_disconnect(self) -> None:
        """Close the WebSocket."""
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

    async def _do_send(self, wire: str) -> None:
        """Send one text frame."""
        if self._ws is None:
            raise TransportError("WebSocket not connected")
        await self._ws.send(wire)

    async def _receive_messages(self) -> AsyncIterator[str]:
        """Yield frames until the server closes the connection.

        A normal close ends the iteration; an abnormal one raises
        ConnectionClosedError, which the base class reports as an error.
        """
        from websockets.exceptions import ConnectionClosedOK

        if self._ws is None:
            raise TransportError("WebSocket not connected")

        try:
            async for data in self._ws:
                if isinstance(data, bytes):
                    try:
                        data = data.decode("utf-8")
                    except UnicodeDecodeError:
                        logger.warning("Dropping binary frame that is not UTF-8")
                        continue
                if not data:
                    continue
                yield data
        except ConnectionClosedOK:
            return
