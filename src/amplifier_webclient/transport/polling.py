"""Polling transport: long-polling over HTTP POST ("comet").

Fallback for environments without WebSocket support. Emulates a duplex
channel with three kinds of POST to a single endpoint:

- ``{mode: "init"}``: handshake, answered with ``{"suid": "<token>"}``
- ``{mode: "receive", suid}``: held open by the server until it has data
  for this client or the poll times out
- ``{mode: "input", msg, suid}``: one outbound envelope, fire-and-forget

The session token ``suid`` lets the server tie the otherwise stateless
requests to one logical client. Outbound messages wait in the outbox
until the handshake has produced it.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx

from ..config import ClientConfig
from ..errors import ErrorCode, HandshakeFailure, TransportError
from .base import BaseTransport, TransportListener

logger = logging.getLogger(__name__)


class PollingTransport(BaseTransport):
    """Transport over repeated HTTP long-poll requests.

    A poll whose response times out (``httpx.ReadTimeout``) is the normal
    "no data yet" answer and is re-issued immediately. Network and HTTP
    errors, including connect and pool timeouts, are re-polled at once too;
    only ``config.max_poll_failures`` consecutive errors close the
    transport.
    """

    def __init__(
        self,
        config: ClientConfig,
        listener: TransportListener,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config, listener)
        self._http_transport = http_transport
        self._http_client: httpx.AsyncClient | None = None
        self._suid: str | None = None

    @property
    def suid(self) -> str | None:
        """Session token from the handshake, once received."""
        return self._suid

    async def _do_connect(self) -> None:
        """Handshake for a session token."""
        self._http_client = httpx.AsyncClient(
            transport=self._http_transport,
            headers={"Cache-Control": "no-cache"},
        )

        try:
            response = await self._http_client.post(
                self.config.poll_url,
                data={"mode": "init"},
                timeout=self.config.handshake_timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise HandshakeFailure(f"Handshake failed: {e}") from e

        suid = data.get("suid") if isinstance(data, dict) else None
        if not suid:
            raise HandshakeFailure("Handshake response carried no session token")

        self._suid = str(suid)
        logger.info(f"Polling session established (suid={self._suid})")

    async def _do_disconnect(self) -> None:
        """Tell the server the session is over and close the HTTP client."""
        client, self._http_client = self._http_client, None
        if client is None:
            return

        try:
            if self._suid is not None:
                await client.post(
                    self.config.poll_url,
                    data={"mode": "close", "suid": self._suid},
                    timeout=self.config.handshake_timeout,
                )
        except httpx.HTTPError as e:
            logger.debug(f"Close notification failed: {e}")
        finally:
            await client.aclose()

    async def _do_send(self, wire: str) -> None:
        """POST one envelope tagged with the session token."""
        if self._http_client is None or self._suid is None:
            raise TransportError("Polling session not established")

        response = await self._http_client.post(
            self.config.poll_url,
            data={"mode": "input", "msg": wire, "suid": self._suid},
            timeout=self.config.poll_timeout,
        )
        response.raise_for_status()

    async def _receive_messages(self) -> AsyncIterator[str]:
        """Poll forever, yielding each non-empty response body."""
        if self._http_client is None or self._suid is None:
            raise TransportError("Polling session not established")

        failures = 0
        limit = self.config.max_poll_failures
        while True:
            try:
                response = await self._http_client.post(
                    self.config.poll_url,
                    data={"mode": "receive", "suid": self._suid},
                    timeout=self.config.poll_timeout,
                )
                response.raise_for_status()
            except httpx.ReadTimeout:
                # Long-poll ran out with no data; poll again
                continue
            except httpx.HTTPError as e:
                failures += 1
                logger.warning(f"Poll failed ({failures} in a row): {e}")
                if limit is not None and failures >= limit:
                    raise TransportError(
                        f"Polling failed {failures} times in a row: {e}",
                        code=ErrorCode.POLL_FAILED,
                    ) from e
                continue

            failures = 0
            body = response.text
            if body.strip():
                yield body
