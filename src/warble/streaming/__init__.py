"""Streaming response pipeline.

Body bytes -> ``decoder`` (records) -> ``session`` (typed events) ->
``sink`` (the caller's ``EventStream`` and its terminal outcome).
"""

from warble.streaming.decoder import Framing, RawRecord, iter_records, select_framing
from warble.streaming.session import SessionState, StreamRequest, StreamSession
from warble.streaming.sink import Cancelled, Completed, EventStream, Failed, StreamOutcome

__all__ = [
    "Cancelled",
    "Completed",
    "EventStream",
    "Failed",
    "Framing",
    "RawRecord",
    "SessionState",
    "StreamOutcome",
    "StreamRequest",
    "StreamSession",
    "iter_records",
    "select_framing",
]
