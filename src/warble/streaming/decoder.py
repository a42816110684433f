"""Envelope decoding — response body bytes to JSON records.

A streamed response body arrives as byte chunks of arbitrary size. The
decoder turns those chunks into a lazy sequence of ``RawRecord`` values,
one per JSON document, in body order.

Two framings, selected once per stream from the response content type:

- ``Framing.NDJSON`` (``application/x-ndjson``): one JSON value per
  ``\\n``-terminated line. Blank lines are skipped; a trailing ``\\r`` is
  dropped; a final line without a newline still counts.
- ``Framing.JSON`` (``application/json``): successive whole JSON values
  with no required separator. A small scanner tracks strings, escapes
  and bracket depth to find where each top-level value ends.

Malformed input raises ``DecodeError`` with the offending bytes and ends
the sequence. There is no resynchronisation.
"""

import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from warble.errors import DecodeError, ResponseError

_WHITESPACE = frozenset(b" \t\r\n")
_OPEN = frozenset(b"{[")
_CLOSE = frozenset(b"}]")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
# A bare scalar (number, true, false, null) ends at whitespace or at the
# start of the next value.
_SCALAR_END = _WHITESPACE | _OPEN | {_QUOTE}


class Framing(Enum):
    NDJSON = "application/x-ndjson"
    JSON = "application/json"


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One JSON document cut from the body.

    ``position`` is 1-based and counts records only (blank lines are not
    records). ``data`` holds the exact bytes of the record.
    """

    position: int
    data: bytes
    value: Any


def select_framing(content_type: str | None, *, status: int = 200) -> Framing:
    """Pick the framing for a response ``Content-Type`` header.

    Media type parameters (``; charset=utf-8``) are ignored. Anything
    other than NDJSON or JSON is a ``ResponseError``.
    """
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    for framing in Framing:
        if media_type == framing.value:
            return framing
    raise ResponseError(status=status, message=f"unexpected content type: {content_type or '(none)'}")


def _too_large(data: bytes | bytearray, position: int, limit: int) -> DecodeError:
    return DecodeError(
        f"record exceeds {limit} bytes",
        data=bytes(data[:256]),
        position=position,
    )


def _parse(data: bytes, position: int, limit: int) -> RawRecord:
    if len(data) > limit:
        raise _too_large(data, position, limit)
    try:
        value = json.loads(data)
    except ValueError as exc:
        raise DecodeError(f"malformed JSON: {exc}", data=data, position=position) from exc
    return RawRecord(position=position, data=data, value=value)


async def _ndjson_records(
    chunks: AsyncIterable[bytes], max_record_bytes: int
) -> AsyncIterator[RawRecord]:
    buffer = bytearray()
    position = 0
    # Bytes of ``buffer`` already searched for a newline.
    searched = 0

    async for chunk in chunks:
        buffer += chunk
        start = 0
        while (newline := buffer.find(b"\n", searched)) != -1:
            line = bytes(buffer[start:newline]).rstrip(b"\r")
            start = searched = newline + 1
            if not line.strip():
                continue
            position += 1
            yield _parse(line, position, max_record_bytes)
        if start:
            del buffer[:start]
        searched = len(buffer)
        if len(buffer) > max_record_bytes:
            raise _too_large(buffer, position + 1, max_record_bytes)

    tail = bytes(buffer).rstrip(b"\r")
    if tail.strip():
        yield _parse(tail, position + 1, max_record_bytes)


class ValueScanner:
    """Incremental splitter for a stream of concatenated JSON values.

    ``feed()`` returns every value completed by the new bytes; ``finish()``
    returns whatever is left when the body ends (an incomplete value, or
    a bare scalar that had no terminator).
    """

    __slots__ = ("_buffer", "_depth", "_escape", "_in_string", "_kind", "_pos", "_start")

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._pos = 0
        self._start = 0
        self._depth = 0
        self._in_string = False
        self._escape = False
        self._kind: str | None = None  # "container", "string", "scalar" or None between values

    @property
    def pending(self) -> int:
        """Bytes held for a value that is not complete yet."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        self._buffer += chunk
        values: list[bytes] = []
        buf = self._buffer
        while self._pos < len(buf):
            byte = buf[self._pos]

            if self._kind is None:
                if byte not in _WHITESPACE:
                    self._start = self._pos
                    if byte in _OPEN:
                        self._kind, self._depth = "container", 1
                    elif byte == _QUOTE:
                        self._kind, self._in_string = "string", True
                    else:
                        self._kind = "scalar"
                self._pos += 1
                continue

            if self._kind == "scalar":
                if byte in _SCALAR_END:
                    values.append(self._cut())
                    continue
                self._pos += 1
                continue

            # Inside a container or a top-level string.
            self._pos += 1
            if self._in_string:
                if self._escape:
                    self._escape = False
                elif byte == _BACKSLASH:
                    self._escape = True
                elif byte == _QUOTE:
                    self._in_string = False
                    if self._kind == "string":
                        values.append(self._cut())
                continue
            if byte == _QUOTE:
                self._in_string = True
            elif byte in _OPEN:
                self._depth += 1
            elif byte in _CLOSE:
                self._depth -= 1
                if self._depth == 0:
                    values.append(self._cut())

        # Drop everything before the value in progress in one step.
        consumed = self._pos if self._kind is None else self._start
        if consumed:
            del buf[:consumed]
            self._pos -= consumed
            self._start = 0
        return values

    def finish(self) -> bytes:
        rest = bytes(self._buffer).strip()
        self._buffer.clear()
        self._pos = self._start = 0
        self._reset()
        return rest

    def _cut(self) -> bytes:
        value = bytes(self._buffer[self._start : self._pos])
        self._reset()
        return value

    def _reset(self) -> None:
        self._depth = 0
        self._in_string = False
        self._escape = False
        self._kind = None


async def _json_records(
    chunks: AsyncIterable[bytes], max_record_bytes: int
) -> AsyncIterator[RawRecord]:
    scanner = ValueScanner()
    position = 0

    async for chunk in chunks:
        for data in scanner.feed(chunk):
            position += 1
            yield _parse(data, position, max_record_bytes)
        if scanner.pending > max_record_bytes:
            raise _too_large(scanner.finish(), position + 1, max_record_bytes)

    tail = scanner.finish()
    if tail:
        # Either a bare scalar without a terminator or a truncated value;
        # json.loads tells the two apart.
        yield _parse(tail, position + 1, max_record_bytes)


def iter_records(
    chunks: AsyncIterable[bytes],
    framing: Framing,
    *,
    max_record_bytes: int = 16 * 1024 * 1024,
) -> AsyncIterator[RawRecord]:
    """Decode ``chunks`` into records using ``framing``.

    The returned async generator is single-pass; close it (``aclose()``)
    to stop early.
    """
    if framing is Framing.NDJSON:
        return _ndjson_records(chunks, max_record_bytes)
    return _json_records(chunks, max_record_bytes)
