"""EventStream — the caller's end of a streaming session.

Events flow through a one-slot ``asyncio.Queue``: the session publishes
an event and then suspends until the caller has taken the previous one,
so a slow reader never makes the client buffer a whole response.

The terminal signal is a separate one-shot future holding a
``StreamOutcome``. It is published exactly once, after the last event,
and is the same for every failure kind, including a request that was
rejected before any network I/O.

Usage::

    async with client.chat_stream(request) as stream:
        async for part in stream:
            print(part.message.content, end="")
    outcome = await stream.wait()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger("warble.stream")


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Completed:
    """The stream ended normally.

    ``terminated`` is ``True`` when a done event was seen and ``False``
    when the body simply ran out. Both count as success; the flag lets
    callers treat a missing terminator as suspicious if they want to.
    """

    events: int
    terminated: bool = True


@dataclass(frozen=True, slots=True)
class Failed:
    """The stream ended with an error. Events published before it stand."""

    error: Exception
    events: int = 0

    @property
    def kind(self) -> str:
        return type(self.error).__name__

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(frozen=True, slots=True)
class Cancelled:
    """The caller cancelled the stream, or its deadline expired."""

    reason: Literal["cancelled", "deadline"] = "cancelled"
    events: int = 0


type StreamOutcome = Completed | Failed | Cancelled


# =============================================================================
# EventStream
# =============================================================================


class EventStream[E]:
    """Ordered, cancellable async iterator of events plus a terminal outcome.

    Iteration yields events in body order. When the stream ends,
    iteration stops for ``Completed`` and ``Cancelled`` and raises the
    error for ``Failed``. ``wait()`` returns the outcome without raising.
    """

    __slots__ = ("_cancelled", "_outcome", "_published", "_queue", "_task")

    def __init__(self) -> None:
        loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[E] = asyncio.Queue(maxsize=1)
        self._outcome: asyncio.Future[StreamOutcome] = loop.create_future()
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self._published = 0

    # -- Producer side (used by StreamSession) --

    def attach(self, task: asyncio.Task[None]) -> None:
        """Bind the session task that feeds this stream."""
        self._task = task
        task.add_done_callback(self._on_task_done)

    @property
    def published(self) -> int:
        """Number of events the session has handed over so far."""
        return self._published

    async def publish(self, event: E) -> None:
        """Hand one event to the caller; suspends while the slot is full."""
        await self._queue.put(event)
        self._published += 1

    def close(self, outcome: StreamOutcome) -> bool:
        """Publish the terminal outcome. Returns ``False`` if one already exists.

        A ``Cancelled`` outcome discards any event still in the slot: the
        caller must not see events after it asked to stop.
        """
        if self._outcome.done():
            return False
        if isinstance(outcome, Cancelled):
            self._drain()
        self._outcome.set_result(outcome)
        logger.debug("stream outcome: %s", outcome)
        return True

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        # Safety net: the session normally closes the stream itself, but a
        # task cancelled before its first step never runs its handlers.
        if self._outcome.done():
            return
        if task.cancelled():
            self.close(Cancelled(events=self._published))
        elif (exc := task.exception()) is not None:
            self.close(Failed(exc, events=self._published))
        else:
            self.close(Completed(events=self._published, terminated=False))

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    # -- Consumer side --

    @property
    def outcome(self) -> StreamOutcome | None:
        """The terminal outcome, or ``None`` while the stream is running."""
        return self._outcome.result() if self._outcome.done() else None

    @property
    def done(self) -> bool:
        return self._outcome.done()

    def cancel(self) -> None:
        """Stop the stream. Idempotent.

        No event is yielded after this call. If the session already
        finished, its outcome is kept.
        """
        self._cancelled = True
        self._drain()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> StreamOutcome:
        """Wait for the terminal outcome. Never raises for ``Failed``."""
        # Shield so that cancelling the waiter does not cancel the outcome.
        return await asyncio.shield(self._outcome)

    async def aclose(self) -> None:
        """Cancel if still running and wait until the session has released
        its resources.
        """
        if not self._outcome.done():
            self.cancel()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def collect(self) -> list[E]:
        """Drain the stream into a list. Raises like iteration does."""
        return [event async for event in self]

    def __aiter__(self) -> EventStream[E]:
        return self

    async def __anext__(self) -> E:
        while True:
            if self._cancelled:
                raise StopAsyncIteration
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._outcome.done():
                return self._finish()

            getter = asyncio.ensure_future(self._queue.get())
            try:
                await asyncio.wait({getter, self._outcome}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not getter.done():
                    getter.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await getter

            if getter.done() and not getter.cancelled():
                event = getter.result()
                if self._cancelled:
                    raise StopAsyncIteration
                return event

    def _finish(self) -> E:
        outcome = self._outcome.result()
        if isinstance(outcome, Failed):
            raise outcome.error
        raise StopAsyncIteration

    async def __aenter__(self) -> EventStream[E]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
