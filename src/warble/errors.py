"""Warble exception hierarchy.

Shared by the transport, the streaming core and the client so every
module raises and catches the same types. Cancellation is not an error:
it is reported as a ``Cancelled`` stream outcome.
"""

import json
from dataclasses import dataclass


class WarbleError(Exception):
    """Base for all warble-specific errors."""


class RequestError(WarbleError):
    """Raised when a request cannot be built from the caller's input."""


class ValidationError(RequestError):
    """A required request field is missing or empty.

    Always raised before any network I/O takes place.
    """


class TransportError(WarbleError):
    """The underlying connection failed (DNS, TCP, TLS, read, timeout).

    The originating ``httpx`` exception is chained as ``__cause__``.
    """


@dataclass(frozen=True, slots=True)
class ResponseError(WarbleError):
    """The server answered with a non-success status, or sent an error
    record in the middle of a stream.
    """

    status: int
    message: str = ""

    def __str__(self) -> str:
        return f"status {self.status}: {self.message}"


@dataclass(frozen=True, slots=True)
class DecodeError(WarbleError):
    """Bytes from the response body could not be decoded into the
    expected JSON shape.

    ``data`` carries the offending bytes; ``position`` is the 1-based
    record number when the failure happened inside a stream.
    """

    message: str
    data: bytes = b""
    position: int | None = None

    def __str__(self) -> str:
        if self.position is not None:
            return f"record {self.position}: {self.message}"
        return self.message


def response_error(status: int, body: bytes) -> ResponseError:
    """Build a ``ResponseError`` from an error response body.

    Prefers the ``error`` field of a JSON object body and falls back to
    the raw body text.
    """
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(body)
    except ValueError:
        return ResponseError(status=status, message=text)
    if isinstance(payload, dict):
        message = payload.get("error")
        if isinstance(message, str) and message:
            return ResponseError(status=status, message=message)
    return ResponseError(status=status, message=text)
