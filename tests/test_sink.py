"""Tests for warble.streaming.sink — EventStream ordering, outcomes and cancel."""

import asyncio

import pytest

from warble.errors import ResponseError
from warble.streaming.sink import Cancelled, Completed, EventStream, Failed, StreamOutcome


async def _produce(stream: EventStream[int], items: list[int], outcome: StreamOutcome) -> None:
    for item in items:
        await stream.publish(item)
    stream.close(outcome)


def _start(items: list[int], outcome: StreamOutcome) -> EventStream[int]:
    stream: EventStream[int] = EventStream()
    stream.attach(asyncio.create_task(_produce(stream, items, outcome)))
    return stream


async def _forever(stream: EventStream[int]) -> None:
    n = 0
    while True:
        await stream.publish(n)
        n += 1


class TestOutcomes:
    def test_failed_exposes_kind_and_message(self) -> None:
        outcome = Failed(ResponseError(status=404, message="model not found"), events=0)
        assert outcome.kind == "ResponseError"
        assert outcome.message == "status 404: model not found"

    def test_completed_defaults(self) -> None:
        assert Completed(events=3).terminated is True

    def test_cancelled_defaults(self) -> None:
        assert Cancelled().reason == "cancelled"


class TestIteration:
    @pytest.mark.asyncio
    async def test_events_in_order_then_completed(self) -> None:
        stream = _start([1, 2, 3], Completed(events=3))

        assert [e async for e in stream] == [1, 2, 3]
        assert await stream.wait() == Completed(events=3)
        assert stream.done is True

    @pytest.mark.asyncio
    async def test_nothing_after_end(self) -> None:
        stream = _start([1], Completed(events=1))
        await stream.collect()

        with pytest.raises(StopAsyncIteration):
            await anext(stream)

    @pytest.mark.asyncio
    async def test_failed_raises_after_published_events(self) -> None:
        error = ResponseError(status=500, message="boom")
        stream = _start([1, 2], Failed(error, events=2))
        seen: list[int] = []

        with pytest.raises(ResponseError) as exc_info:
            async for event in stream:
                seen.append(event)

        assert seen == [1, 2]
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_wait_does_not_raise_for_failed(self) -> None:
        error = ResponseError(status=500, message="boom")
        stream = _start([], Failed(error))

        outcome = await stream.wait()

        assert isinstance(outcome, Failed)
        assert outcome.error is error

    @pytest.mark.asyncio
    async def test_outcome_none_while_running(self) -> None:
        stream: EventStream[int] = EventStream()
        assert stream.outcome is None
        assert stream.done is False
        stream.close(Completed(events=0))
        assert stream.outcome == Completed(events=0)

    @pytest.mark.asyncio
    async def test_outcome_published_once(self) -> None:
        stream: EventStream[int] = EventStream()

        assert stream.close(Completed(events=0)) is True
        assert stream.close(Failed(RuntimeError("late"))) is False
        assert await stream.wait() == Completed(events=0)


class TestBackpressure:
    @pytest.mark.asyncio
    async def test_producer_waits_for_reader(self) -> None:
        stream = _start([1, 2, 3], Completed(events=3))
        for _ in range(5):
            await asyncio.sleep(0)

        # One event fits in the slot; the second put is still pending.
        assert stream.published == 1

        assert await anext(stream) == 1
        for _ in range(5):
            await asyncio.sleep(0)
        assert stream.published == 2

        await stream.aclose()


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_after_m_events(self) -> None:
        stream: EventStream[int] = EventStream()
        task = asyncio.create_task(_forever(stream))
        stream.attach(task)

        seen = [await anext(stream), await anext(stream)]
        stream.cancel()

        assert seen == [0, 1]
        with pytest.raises(StopAsyncIteration):
            await anext(stream)
        outcome = await stream.wait()
        assert isinstance(outcome, Cancelled)
        assert outcome.reason == "cancelled"
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self) -> None:
        stream: EventStream[int] = EventStream()
        stream.attach(asyncio.create_task(_forever(stream)))

        stream.cancel()
        stream.cancel()

        assert isinstance(await stream.wait(), Cancelled)

    @pytest.mark.asyncio
    async def test_cancel_after_outcome_keeps_outcome(self) -> None:
        # The single event still sits in the slot when the outcome lands.
        stream = _start([1], Completed(events=1))
        await stream.wait()

        stream.cancel()

        assert await stream.wait() == Completed(events=1)
        assert [e async for e in stream] == []

    @pytest.mark.asyncio
    async def test_cancelled_close_discards_buffered_event(self) -> None:
        stream: EventStream[int] = EventStream()
        await stream.publish(7)

        stream.close(Cancelled(events=1))

        assert await stream.collect() == []

    @pytest.mark.asyncio
    async def test_context_manager_cancels_and_waits(self) -> None:
        stream: EventStream[int] = EventStream()
        task = asyncio.create_task(_forever(stream))
        stream.attach(task)

        async with stream:
            assert await anext(stream) == 0

        assert task.done()
        assert isinstance(stream.outcome, Cancelled)


class TestTaskSafetyNet:
    @pytest.mark.asyncio
    async def test_task_cancelled_before_start(self) -> None:
        stream: EventStream[int] = EventStream()
        task = asyncio.create_task(asyncio.sleep(10))
        stream.attach(task)
        task.cancel()

        assert isinstance(await stream.wait(), Cancelled)

    @pytest.mark.asyncio
    async def test_task_crash_becomes_failed(self) -> None:
        async def crash() -> None:
            raise RuntimeError("bug")

        stream: EventStream[int] = EventStream()
        stream.attach(asyncio.create_task(crash()))

        outcome = await stream.wait()

        assert isinstance(outcome, Failed)
        assert outcome.kind == "RuntimeError"
        with pytest.raises(RuntimeError, match="bug"):
            await anext(stream)
