"""Publish/subscribe dispatch of inbound server commands.

The client hands every inbound envelope that is not a correlated reply
to an emitter. The default :class:`Dispatcher` keeps one listener per
command name; any object with an ``emit(command, payload)`` method can be
passed to ``WebClient.init`` instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Listeners are called with the command's payload
Listener = Callable[[dict[str, Any]], Any]


@runtime_checkable
class Emitter(Protocol):
    """Anything that can receive uncorrelated inbound commands."""

    def emit(self, command: str, payload: dict[str, Any]) -> Any:
        """Deliver one inbound command."""
        ...


class Dispatcher:
    """Single-slot listener registry.

    Each command name has at most one listener. Registering a second
    listener for the same name replaces the first. Commands nobody
    listens to are dropped without error or buffering.

    Usage:
        dispatcher = Dispatcher()
        dispatcher.on("text", lambda payload: print(payload["text"]))
        dispatcher.emit("text", {"text": "Hello"})
    """

    def __init__(self) -> None:
        self._listeners: dict[str, Listener] = {}

    def on(self, command: str, listener: Listener) -> None:
        """Bind ``listener`` to ``command``, replacing any existing one.

        Raises:
            TypeError: If listener is not callable
        """
        if not callable(listener):
            raise TypeError(
                f"Listener for {command!r} must be callable, got {type(listener).__name__}"
            )
        if command in self._listeners:
            logger.debug(f"Replacing listener for {command}")
        self._listeners[command] = listener

    def off(self, command: str) -> None:
        """Remove the listener for ``command``, if any."""
        self._listeners.pop(command, None)

    def emit(self, command: str, payload: dict[str, Any]) -> bool:
        """Call the listener for ``command`` synchronously.

        Returns:
            True if a listener ran, False if the command was dropped
        """
        listener = self._listeners.get(command)
        if listener is None:
            logger.debug(f"No listener for {command}, dropping")
            return False

        try:
            listener(payload)
        except Exception:
            logger.exception(f"Error in listener for {command}")
        return True

    def listener_for(self, command: str) -> Listener | None:
        """Get the listener bound to ``command``."""
        return self._listeners.get(command)

    def __contains__(self, command: object) -> bool:
        return command in self._listeners

    def __len__(self) -> int:
        return len(self._listeners)
