"""StreamSession — lifecycle of one streaming request.

A session runs as its own asyncio task and feeds an ``EventStream``:

    IDLE -> REQUESTING -> VALIDATING -> STREAMING -> COMPLETED
                                                  -> FAILED
                                                  -> CANCELLED

1. **IDLE -> REQUESTING**: required fields are checked. A missing one
   fails the session with ``ValidationError`` before any network I/O.
2. **REQUESTING -> VALIDATING**: the request is sent. A non-2xx
   response has its body read and turned into a ``ResponseError``.
3. **VALIDATING -> STREAMING**: the ``Content-Type`` selects NDJSON or
   JSON framing; any other type is a ``ResponseError``.
4. **STREAMING**: each record is mapped into the endpoint's event type
   and published before the next record is read. A done event ends the
   stream; so does the end of the body (without error).

Cancellation (caller or deadline) interrupts whichever await the session
is parked on. The response body is closed exactly once on every path.

Free-threading safety:
    - One session per request; the response body and decoder state are
      never shared
    - The transport's connection pool is shared but only read
"""

import asyncio
import contextlib
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from warble._mapping import from_dict
from warble.errors import DecodeError, ResponseError, ValidationError, response_error
from warble.streaming.decoder import Framing, RawRecord, iter_records, select_framing
from warble.streaming.sink import Cancelled, Completed, EventStream, Failed, StreamOutcome
from warble.transport import Transport

logger = logging.getLogger("warble.stream")


class SessionState(enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    VALIDATING = "validating"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _is_done(event: Any) -> bool:
    return bool(getattr(event, "done", False))


def check_required(fields: tuple[tuple[str, str], ...]) -> None:
    """Raise ``ValidationError`` for the first empty ``(label, value)`` pair."""
    for label, value in fields:
        if not value:
            msg = f"{label} is required"
            raise ValidationError(msg)


@dataclass(frozen=True, slots=True)
class StreamRequest[E]:
    """Immutable description of one streaming call.

    ``required`` pairs a human label with the value that must be
    non-empty (e.g. ``("model", request.model)``).
    """

    method: str
    path: str
    body: bytes | None
    event_type: type[E]
    required: tuple[tuple[str, str], ...] = ()
    is_terminal: Callable[[E], bool] = _is_done


class StreamSession[E]:
    """Drives one ``StreamRequest`` into an ``EventStream``.

    Usage::

        session = StreamSession(transport, request)
        stream = session.start()
        async for event in stream:
            ...
    """

    __slots__ = ("_events", "_max_record_bytes", "_request", "_state", "_timeout", "_transport", "stream")

    def __init__(
        self,
        transport: Transport,
        request: StreamRequest[E],
        *,
        timeout: float | None = None,
        max_record_bytes: int | None = None,
    ) -> None:
        self._transport = transport
        self._request = request
        self._timeout = timeout
        self._max_record_bytes = max_record_bytes or transport.config.max_record_bytes
        self._state = SessionState.IDLE
        self._events = 0
        self.stream: EventStream[E] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    def start(self) -> EventStream[E]:
        """Launch the session task and return the caller's stream.

        Must be called with a running event loop. Calling it twice is a
        programming error.
        """
        if self.stream is not None:
            msg = "StreamSession.start() called twice"
            raise RuntimeError(msg)
        self.stream = EventStream()
        task = asyncio.get_running_loop().create_task(
            self._run(), name=f"warble-stream {self._request.path}"
        )
        self.stream.attach(task)
        return self.stream

    # -- Lifecycle --

    async def _run(self) -> None:
        assert self.stream is not None
        outcome: StreamOutcome
        try:
            async with asyncio.timeout(self._timeout):
                terminated = await self._stream()
        except TimeoutError:
            self._state = SessionState.CANCELLED
            outcome = Cancelled(reason="deadline", events=self._events)
        except asyncio.CancelledError:
            self._state = SessionState.CANCELLED
            self.stream.close(Cancelled(reason="cancelled", events=self._events))
            raise
        except Exception as exc:
            self._state = SessionState.FAILED
            outcome = Failed(exc, events=self._events)
        else:
            self._state = SessionState.COMPLETED
            outcome = Completed(events=self._events, terminated=terminated)
        self.stream.close(outcome)

    async def _stream(self) -> bool:
        """Run the request to its end. Returns ``True`` if a done event was seen."""
        check_required(self._request.required)

        request = self._request
        self._state = SessionState.REQUESTING
        response = await self._transport.open_stream(request.method, request.path, request.body)
        try:
            self._state = SessionState.VALIDATING
            if not response.is_success:
                body = await self._transport.read_body(response)
                raise response_error(response.status_code, body)

            framing = select_framing(
                response.headers.get("content-type"), status=response.status_code
            )
            logger.debug("%s %s: %s framing", request.method, request.path, framing.name)

            self._state = SessionState.STREAMING
            return await self._pump(response, framing)
        finally:
            await response.aclose()

    async def _pump(self, response: httpx.Response, framing: Framing) -> bool:
        assert self.stream is not None
        records = iter_records(
            self._transport.iter_body(response),
            framing,
            max_record_bytes=self._max_record_bytes,
        )
        async with contextlib.aclosing(records):
            async for record in records:
                event = self._map(record, response.status_code)
                await self.stream.publish(event)
                self._events += 1
                if self._request.is_terminal(event):
                    return True
        return False

    def _map(self, record: RawRecord, status: int) -> E:
        """Turn one record into the endpoint's event type."""
        value = record.value
        if not isinstance(value, dict):
            msg = f"expected JSON object, got {type(value).__name__}"
            raise DecodeError(msg, data=record.data, position=record.position)

        error = value.get("error")
        if isinstance(error, str) and error:
            raise ResponseError(status=status, message=error)

        try:
            return from_dict(self._request.event_type, value)
        except TypeError as exc:
            raise DecodeError(str(exc), data=record.data, position=record.position) from exc
