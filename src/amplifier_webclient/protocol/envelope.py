"""Envelope codec.

Every message on the wire, in both directions and on either transport,
is a JSON array of exactly this shape::

    ["command_name", {"key": "value", ...}]

The first element names the command, the second is its argument object.
Extra trailing elements are tolerated on input and ignored.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import MalformedEnvelope


class Envelope(BaseModel):
    """A ``(command, payload)`` pair.

    The model is frozen, so fields cannot be reassigned, but ``payload``
    is an ordinary dict and freezing does not reach inside it. ``create``
    takes a deep copy, so later changes to the caller's data never show up
    in the envelope. Use :meth:`with_field` to derive a new envelope rather
    than mutating ``payload`` in place. The client hands each decoded
    payload to exactly one callback or listener, which then owns it.
    """

    model_config = ConfigDict(frozen=True)

    command: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(cls, command: str, payload: Mapping[str, Any] | None = None) -> Envelope:
        """Validate arguments and build an envelope.

        Raises:
            MalformedEnvelope: If command is empty or not a string, or
                payload is not a mapping.
        """
        if payload is None:
            payload = {}
        elif isinstance(payload, Mapping):
            try:
                payload = copy.deepcopy(dict(payload))
            except TypeError as e:
                raise MalformedEnvelope(f"Payload for {command!r} cannot be copied: {e}") from e
        try:
            return cls(command=command, payload=payload)
        except ValidationError as e:
            raise MalformedEnvelope(f"Invalid envelope for {command!r}: {e}") from e

    def with_field(self, name: str, value: Any) -> Envelope:
        """Return a copy whose payload has ``name`` set to ``value``."""
        return Envelope(command=self.command, payload={**self.payload, name: value})

    def to_wire(self) -> str:
        """Serialize to the JSON array wire form."""
        try:
            return json.dumps([self.command, self.payload], allow_nan=False)
        except (TypeError, ValueError) as e:
            raise MalformedEnvelope(
                f"Payload for {self.command!r} is not JSON serializable: {e}"
            ) from e


def encode(command: str, payload: Mapping[str, Any] | None = None) -> str:
    """Encode a command and its payload as wire text."""
    return Envelope.create(command, payload).to_wire()


def decode(wire: str | bytes) -> Envelope:
    """Decode wire text into an envelope.

    Raises:
        MalformedEnvelope: If the data is not JSON, not an array of at
            least two elements, or the elements have the wrong types.
    """
    if isinstance(wire, bytes):
        try:
            wire = wire.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEnvelope(f"Wire data is not UTF-8: {e}") from e

    try:
        data = json.loads(wire)
    except json.JSONDecodeError as e:
        raise MalformedEnvelope(f"Wire data is not JSON: {e}") from e

    if not isinstance(data, list):
        raise MalformedEnvelope(f"Expected a JSON array, got {type(data).__name__}")
    if len(data) < 2:
        raise MalformedEnvelope(f"Expected [command, payload], got {len(data)} element(s)")
    if not isinstance(data[1], dict):
        raise MalformedEnvelope(f"Payload must be a JSON object, got {type(data[1]).__name__}")

    return Envelope.create(data[0], data[1])
