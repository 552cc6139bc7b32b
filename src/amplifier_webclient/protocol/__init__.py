"""Wire protocol: the envelope codec and reserved lifecycle commands.

All traffic is a JSON array ``[command, payload]``. A payload that
expects a reply carries a request id under a reserved key; payloads
without it are fire-and-forget.
"""

from .envelope import Envelope, decode, encode
from .lifecycle import LifecycleEvent, error_payload

__all__ = [
    "Envelope",
    "encode",
    "decode",
    "LifecycleEvent",
    "error_payload",
]
