"""Amplifier webclient - command transport for talking to a game server.

Sends ``[command, payload]`` envelopes over a WebSocket, or over HTTP
long-polling where WebSockets are unavailable, and routes inbound
commands either to the callback waiting for that reply or to a
publish/subscribe emitter.
"""

from .client import WebClient, create_client
from .config import ClientConfig
from .correlation import CorrelationTable, PendingCall
from .dispatcher import Dispatcher, Emitter
from .errors import ErrorCode, HandshakeFailure, MalformedEnvelope, TransportError, WebClientError
from .protocol import Envelope, LifecycleEvent, decode, encode
from .transport import (
    PersistentTransport,
    PollingTransport,
    Transport,
    TransportState,
    select_transport,
)

__all__ = [
    # Client
    "WebClient",
    "create_client",
    "ClientConfig",
    # Routing
    "CorrelationTable",
    "PendingCall",
    "Dispatcher",
    "Emitter",
    # Protocol
    "Envelope",
    "LifecycleEvent",
    "encode",
    "decode",
    # Transports
    "Transport",
    "TransportState",
    "PersistentTransport",
    "PollingTransport",
    "select_transport",
    # Errors
    "WebClientError",
    "MalformedEnvelope",
    "TransportError",
    "HandshakeFailure",
    "ErrorCode",
]
