"""WebClient - the object applications talk to.

Owns one transport, one correlation table and one emitter. Outbound
commands go through ``send``; every inbound wire message comes back
through ``receive``, where replies to earlier requests are matched
before anything is broadcast.

Usage:
    client = WebClient(ClientConfig(websocket_url="ws://localhost:4002"))
    client.init()
    client.emitter.on("text", lambda payload: print(payload))
    client.send("who", {}, callback=lambda reply: print(reply["players"]))
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .config import ClientConfig
from .correlation import CorrelationTable
from .dispatcher import Dispatcher, Emitter
from .errors import ErrorCode, MalformedEnvelope
from .protocol.envelope import Envelope, decode
from .protocol.lifecycle import LifecycleEvent, error_payload
from .transport import Transport, TransportFactory, select_transport

logger = logging.getLogger(__name__)

# Reply callbacks are called with the reply payload
ReplyHandler = Callable[[dict[str, Any]], Any]


def _is_request_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class WebClient:
    """Transport-agnostic command client.

    All state lives on the instance, so independent clients can coexist
    in one process. Every method except ``close`` is synchronous and
    never blocks; network I/O happens in the transport's background
    tasks.
    """

    def __init__(self, config: ClientConfig | None = None):
        self.config = config or ClientConfig()
        self._pending = CorrelationTable(timeout=self.config.call_timeout)
        self._emitter: Emitter | None = None
        self._transport: Transport | None = None

    @property
    def emitter(self) -> Emitter:
        """The emitter receiving uncorrelated commands."""
        if self._emitter is None:
            raise RuntimeError("WebClient not initialized, call init() first")
        return self._emitter

    @property
    def transport(self) -> Transport | None:
        """The active transport, once initialized."""
        return self._transport

    @property
    def pending(self) -> CorrelationTable:
        """Callbacks still waiting for a reply."""
        return self._pending

    @property
    def is_initialized(self) -> bool:
        return self._transport is not None

    def init(
        self,
        connection: TransportFactory | None = None,
        emitter: Emitter | None = None,
    ) -> None:
        """Create the emitter and transport, and start connecting.

        Must be called with a running event loop.

        Args:
            connection: Transport factory called as ``connection(config, client)``.
                Defaults to the class chosen by ``select_transport``.
            emitter: Receiver of uncorrelated commands. Defaults to a new
                Dispatcher.
        """
        if self._transport is not None:
            logger.warning("WebClient already initialized, ignoring init()")
            return

        self._emitter = emitter if emitter is not None else Dispatcher()
        factory = connection if connection is not None else select_transport(self.config)
        self._transport = factory(self.config, self)
        logger.info(f"WebClient using {type(self._transport).__name__}")
        self._transport.connect()

    def send(
        self,
        command: str,
        payload: Mapping[str, Any] | None = None,
        callback: ReplyHandler | None = None,
    ) -> int | None:
        """Send a command to the server.

        Args:
            command: Command name
            payload: Command arguments. Not modified; the request id is
                added to a copy.
            callback: Called once with the reply payload, if the server
                answers this request

        Returns:
            The request id when a callback was given, otherwise None.
            Also None when the envelope could not be encoded.

        Raises:
            RuntimeError: If called before init()
        """
        if self._transport is None:
            raise RuntimeError("WebClient not initialized, call init() first")

        request_id: int | None = None
        try:
            envelope = Envelope.create(command, payload)
            if callback is not None:
                request_id = self._pending.register(lambda reply: callback(reply.payload))
                envelope = envelope.with_field(self.config.id_field, request_id)
            wire = envelope.to_wire()
        except MalformedEnvelope as e:
            logger.error(f"Cannot send {command!r}: {e}")
            if request_id is not None:
                self._pending.cancel(request_id)
            self.on_event(
                LifecycleEvent.ERROR.value,
                error_payload(str(e), ErrorCode.MALFORMED_ENVELOPE),
            )
            return None

        logger.debug(f"Sending {command} (id={request_id})")
        self._transport.send(wire)
        return request_id

    def receive(self, wire: str | bytes) -> None:
        """Handle one inbound wire message.

        Replies carrying a pending request id go to their callback only.
        Everything else is emitted.
        """
        try:
            envelope = decode(wire)
        except MalformedEnvelope as e:
            logger.warning(f"Dropping malformed message: {e}")
            return

        request_id = envelope.payload.get(self.config.id_field)
        if _is_request_id(request_id):
            try:
                if self._pending.resolve(request_id, envelope):
                    return
            except Exception:
                logger.exception(
                    f"Error in reply callback for {envelope.command} (id={request_id})"
                )
                return
            logger.debug(f"No pending request {request_id} for {envelope.command}, dispatching")

        self._dispatch(envelope.command, envelope.payload)

    # TransportListener
    def on_message(self, wire: str) -> None:
        self.receive(wire)

    def on_event(self, command: str, payload: dict[str, Any]) -> None:
        if command == LifecycleEvent.ERROR.value:
            logger.warning(f"Transport error: {payload.get('error')}")
        else:
            logger.debug(f"Transport event {command}")
        if command == LifecycleEvent.CLOSE.value:
            # No reply can arrive on a closed transport
            dropped = self._pending.clear()
            if dropped:
                logger.warning(f"Transport closed with {dropped} request(s) awaiting a reply")
        self._dispatch(command, payload)

    def _dispatch(self, command: str, payload: dict[str, Any]) -> None:
        if self._emitter is None:
            return
        try:
            self._emitter.emit(command, payload)
        except Exception:
            logger.exception(f"Error emitting {command}")

    async def close(self) -> None:
        """Close the transport and drop pending callbacks."""
        if self._transport is not None:
            await self._transport.close()
        dropped = self._pending.clear()
        if dropped:
            logger.debug(f"Dropped {dropped} pending request(s) on close")

    async def __aenter__(self) -> WebClient:
        if not self.is_initialized:
            self.init()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def create_client(
    config: ClientConfig | None = None,
    connection: TransportFactory | None = None,
    emitter: Emitter | None = None,
    **options: Any,
) -> WebClient:
    """Create and initialize a client.

    Without an explicit config, settings come from the environment with
    ``options`` as overrides.

    Args:
        config: Complete configuration
        connection: Transport factory override
        emitter: Emitter override
        **options: ClientConfig fields, used when config is not given

    Returns:
        An initialized WebClient (requires a running event loop)
    """
    client = WebClient(config or ClientConfig.from_env(**options))
    client.init(connection=connection, emitter=emitter)
    return client
