"""Request/reply correlation.

Commands sent with a callback get a fresh integer id which the server
echoes back in its reply payload. The table maps those ids to the
waiting callbacks and resolves each one at most once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .protocol.envelope import Envelope

logger = logging.getLogger(__name__)

ReplyCallback = Callable[[Envelope], Any]

# Sentinel so register() can tell "use the table default" from "no timeout"
_DEFAULT: Any = object()


@dataclass
class PendingCall:
    """A callback waiting for the reply to one request."""

    id: int
    callback: ReplyCallback
    timer: asyncio.TimerHandle | None = None


class CorrelationTable:
    """Pending request callbacks keyed by request id.

    Ids start at 1 and only ever increase, so an id is never handed out
    twice within one table. Calls that never get a reply expire after
    ``timeout`` seconds when a timeout is configured.
    """

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout
        self._next_id = 1
        self._pending: dict[int, PendingCall] = {}

    def register(self, callback: ReplyCallback, timeout: float | None = _DEFAULT) -> int:
        """Store ``callback`` and return the id to embed in the request.

        Args:
            callback: Called with the reply envelope
            timeout: Seconds before the call expires. Defaults to the table
                timeout; None keeps the call until resolved or cancelled.
                Expiry needs a running event loop.
        """
        if timeout is _DEFAULT:
            timeout = self._timeout

        request_id = self._next_id
        self._next_id += 1

        call = PendingCall(id=request_id, callback=callback)
        if timeout is not None:
            loop = asyncio.get_running_loop()
            call.timer = loop.call_later(timeout, self._expire, request_id)
        self._pending[request_id] = call
        return request_id

    def resolve(self, request_id: int, envelope: Envelope) -> bool:
        """Invoke and remove the callback for ``request_id``.

        The entry is removed before the callback runs, so a callback that
        raises still leaves the id resolved.

        Returns:
            True if a pending call was resolved, False otherwise
        """
        call = self._pending.pop(request_id, None)
        if call is None:
            return False
        if call.timer is not None:
            call.timer.cancel()
        call.callback(envelope)
        return True

    def cancel(self, request_id: int) -> bool:
        """Forget a pending call without invoking it."""
        call = self._pending.pop(request_id, None)
        if call is None:
            return False
        if call.timer is not None:
            call.timer.cancel()
        return True

    def clear(self) -> int:
        """Forget all pending calls. Returns how many were dropped."""
        count = len(self._pending)
        for call in self._pending.values():
            if call.timer is not None:
                call.timer.cancel()
        self._pending.clear()
        return count

    def _expire(self, request_id: int) -> None:
        if self._pending.pop(request_id, None) is not None:
            logger.warning(f"Request {request_id} got no reply in time, dropping its callback")

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
