"""Transport abstraction shared by the persistent and polling variants.

Architecture:
- Transport is the PROTOCOL every variant satisfies
- BaseTransport owns the state machine, the outbox and lifecycle events
- Subclasses only implement the channel: connect, send one message,
  yield inbound messages, release

Both variants present the same event surface to the owning client:
inbound wire text goes to ``listener.on_message`` and state changes go to
``listener.on_event`` as ``socket:open`` / ``socket:error`` /
``socket:close``. Nothing raised inside the channel reaches the caller of
``send``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from ..config import ClientConfig
from ..errors import ErrorCode, TransportError
from ..protocol.lifecycle import LifecycleEvent, error_payload

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    """Connection state machine."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"


@runtime_checkable
class TransportListener(Protocol):
    """The side of the client a transport reports to."""

    def on_message(self, wire: str) -> None:
        """Handle one inbound wire message."""
        ...

    def on_event(self, command: str, payload: dict[str, Any]) -> None:
        """Handle a lifecycle event."""
        ...


@runtime_checkable
class Transport(Protocol):
    """Protocol for client transports.

    All transports must implement:
    - connect: Start establishing the channel (non-blocking)
    - send: Queue or transmit one encoded envelope (never raises)
    - close: Tear the channel down
    - state: Current connection state
    """

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        ...

    def connect(self) -> None:
        """Start establishing the channel in the background."""
        ...

    def send(self, wire: str) -> None:
        """Queue one wire message for delivery."""
        ...

    async def close(self) -> None:
        """Close the channel and stop background work."""
        ...


# Factory signature accepted by WebClient.init(connection=...)
TransportFactory = Callable[[ClientConfig, TransportListener], Transport]


class BaseTransport(ABC):
    """Base class for transports with common functionality.

    Provides:
    - State management and lifecycle events
    - An outbox that holds messages until the channel is open
    - Background reader and writer task management
    """

    def __init__(self, config: ClientConfig, listener: TransportListener):
        self.config = config
        self._listener = listener
        self._state = TransportState.CONNECTING
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._run_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._close_emitted = False

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def is_open(self) -> bool:
        """Check if the channel is open."""
        return self._state == TransportState.OPEN

    @property
    def is_closed(self) -> bool:
        """Check if the transport has shut down, normally or not."""
        return self._state in (TransportState.CLOSED, TransportState.ERRORED)

    def connect(self) -> None:
        """Start the background task that opens and reads the channel."""
        if self._run_task is not None or self.is_closed:
            return
        self._state = TransportState.CONNECTING
        self._run_task = asyncio.create_task(self._run())

    def send(self, wire: str) -> None:
        """Queue a message. Dropped with a socket:error once closed."""
        if self.is_closed:
            logger.warning(f"{self.__class__.__name__} is closed, dropping outbound message")
            self._emit_error("Transport is closed", ErrorCode.TRANSPORT_CLOSED)
            return
        self._outbox.put_nowait(wire)

    async def close(self) -> None:
        """Close the channel."""
        run_task, self._run_task = self._run_task, None
        if run_task is not None and not run_task.done():
            run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await run_task
        await self._stop_writer()

        if self._state != TransportState.CLOSED:
            await self._release()
            self._mark_closed()

    async def _run(self) -> None:
        """Open the channel, pump inbound messages, then settle the state."""
        try:
            await self._do_connect()
        except Exception as e:
            logger.error(f"{self.__class__.__name__} failed to connect: {e}")
            await self._release()
            self._fail(e)
            return

        self._state = TransportState.OPEN
        logger.info(f"{self.__class__.__name__} connected")
        self._listener.on_event(LifecycleEvent.OPEN.value, {})
        self._writer_task = asyncio.create_task(self._write_loop())

        try:
            async for wire in self._receive_messages():
                self._deliver(wire)
        except Exception as e:
            logger.error(f"{self.__class__.__name__} receive error: {e}")
            await self._stop_writer()
            await self._release()
            self._fail(e)
            return

        logger.info(f"{self.__class__.__name__} closed by remote")
        await self._stop_writer()
        await self._release()
        self._mark_closed()

    def _deliver(self, wire: str) -> None:
        try:
            self._listener.on_message(wire)
        except Exception:
            logger.exception("Error handling inbound message")

    async def _write_loop(self) -> None:
        """Drain the outbox in order for as long as the channel is open."""
        while True:
            wire = await self._outbox.get()
            try:
                await self._do_send(wire)
            except Exception as e:
                logger.warning(f"{self.__class__.__name__} send failed: {e}")
                self._emit_error(f"Send failed: {e}", ErrorCode.SEND_FAILED)

    async def _stop_writer(self) -> None:
        writer, self._writer_task = self._writer_task, None
        if writer is None:
            return
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer

    async def _release(self) -> None:
        try:
            await self._do_disconnect()
        except Exception as e:
            logger.debug(f"Error releasing {self.__class__.__name__}: {e}")

    def _fail(self, exc: BaseException) -> None:
        self._state = TransportState.ERRORED
        code = exc.code if isinstance(exc, TransportError) else ErrorCode.TRANSPORT_ERROR
        self._emit_error(str(exc) or exc.__class__.__name__, code)
        self._mark_closed()

    def _mark_closed(self) -> None:
        self._state = TransportState.CLOSED
        self._discard_outbox()
        if self._close_emitted:
            return
        self._close_emitted = True
        self._listener.on_event(LifecycleEvent.CLOSE.value, {})

    def _discard_outbox(self) -> None:
        dropped = 0
        while not self._outbox.empty():
            self._outbox.get_nowait()
            dropped += 1
        if dropped:
            logger.warning(f"{self.__class__.__name__} closed with {dropped} unsent message(s)")

    def _emit_error(self, message: str, code: ErrorCode) -> None:
        self._listener.on_event(LifecycleEvent.ERROR.value, error_payload(message, code))

    # Abstract methods for subclasses
    @abstractmethod
    async def _do_connect(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_disconnect(self) -> None:
        """Implementation-specific release logic. Must be safe to repeat."""
        ...

    @abstractmethod
    async def _do_send(self, wire: str) -> None:
        """Implementation-specific send logic."""
        ...

    @abstractmethod
    def _receive_messages(self) -> AsyncIterator[str]:
        """Implementation-specific receive logic. Must be an async generator."""
        ...

    async def __aenter__(self) -> BaseTransport:
        self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
