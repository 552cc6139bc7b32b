"""Exception types and error codes for the webclient.

Only codec and configuration problems surface as exceptions. Channel
failures are turned into ``socket:error`` events by the transports and
never reach application code as raised exceptions.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Values of the ``code`` field in ``socket:error`` payloads."""

    TRANSPORT_ERROR = "transport_error"
    TRANSPORT_CLOSED = "transport_closed"
    SEND_FAILED = "send_failed"
    HANDSHAKE_FAILURE = "handshake_failure"
    POLL_FAILED = "poll_failed"
    MALFORMED_ENVELOPE = "malformed_envelope"


class WebClientError(Exception):
    """Base class for all webclient errors."""


class MalformedEnvelope(WebClientError, ValueError):
    """Wire data or outbound arguments do not form a valid envelope."""


class TransportError(WebClientError, ConnectionError):
    """Channel-level failure.

    Carries an error ``code`` that is copied into the ``socket:error``
    payload so listeners can tell failures apart.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.TRANSPORT_ERROR):
        super().__init__(message)
        self.code = code


class HandshakeFailure(TransportError):
    """Polling transport could not obtain a session token."""

    def __init__(self, message: str):
        super().__init__(message, code=ErrorCode.HANDSHAKE_FAILURE)
