"""Test utilities for code built on warble.

An in-memory Ollama server driven through ``httpx.MockTransport``: no
sockets, but the client runs its real transport, decoder and session
code. Bodies are delivered in caller-chosen chunks and count how often
they are closed, so tests can assert that a stream released its
response exactly once.

Usage::

    server = MockServer()
    server.stream("POST", "/api/generate", ndjson(
        {"response": "Hel", "done": False},
        {"response": "lo", "done": True},
    ), chunk_size=5)

    async with server.client() as client:
        stream = client.generate_stream(GenerateRequest("m", prompt="hi"))
        parts = await stream.collect()

    assert server.bodies[-1].close_count == 1
"""

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from warble.client import AsyncClient
from warble.config import ClientConfig

NDJSON = "application/x-ndjson"
JSON = "application/json"


def ndjson(*records: Any) -> bytes:
    """Encode ``records`` as newline-delimited JSON."""
    return b"".join(json.dumps(r).encode("utf-8") + b"\n" for r in records)


def json_stream(*records: Any) -> bytes:
    """Encode ``records`` as back-to-back JSON values with no separator."""
    return b"".join(json.dumps(r).encode("utf-8") for r in records)


def split(data: bytes, size: int) -> list[bytes]:
    """Cut ``data`` into chunks of ``size`` bytes (the last may be shorter)."""
    return [data[i : i + size] for i in range(0, len(data), size)] or [b""]


class ChunkedBody(httpx.AsyncByteStream):
    """Response body that yields fixed chunks and records ``aclose()`` calls.

    With ``hang=True`` the body never ends on its own: after the last
    chunk it blocks until the reader is cancelled.
    """

    def __init__(self, chunks: list[bytes], *, hang: bool = False) -> None:
        self._chunks = chunks
        self._hang = hang
        self.close_count = 0
        self.yielded = 0

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            self.yielded += 1
            yield chunk
            # Let other tasks observe each chunk separately.
            await asyncio.sleep(0)
        if self._hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.close_count += 1


@dataclass(slots=True)
class _Route:
    status: int
    content_type: str
    chunks: list[bytes]
    hang: bool


@dataclass(slots=True)
class MockServer:
    """Canned responses keyed by ``(method, path)``.

    Unknown routes answer 404 ``{"error": "not found"}``. Every request
    is kept in ``requests`` and every body handed out in ``bodies``.
    """

    routes: dict[tuple[str, str], _Route] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)
    bodies: list[ChunkedBody] = field(default_factory=list)

    def reply(self, method: str, path: str, payload: Any = None, *, status: int = 200) -> None:
        """Answer with one JSON document (or an empty body for ``None``)."""
        data = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.routes[(method, path)] = _Route(status, JSON, [data], hang=False)

    def stream(
        self,
        method: str,
        path: str,
        body: bytes,
        *,
        status: int = 200,
        content_type: str = NDJSON,
        chunk_size: int | None = None,
        hang: bool = False,
    ) -> None:
        """Answer with ``body``, optionally cut into ``chunk_size`` pieces."""
        chunks = split(body, chunk_size) if chunk_size else [body]
        self.routes[(method, path)] = _Route(status, content_type, chunks, hang)

    def fail(self, method: str, path: str, error: str, *, status: int) -> None:
        """Answer with a non-success status and ``{"error": error}``."""
        self.reply(method, path, {"error": error}, status=status)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def payload(self, index: int = -1) -> Any:
        """The decoded JSON body of a recorded request."""
        content = self.requests[index].content
        return json.loads(content) if content else None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            route = _Route(404, JSON, [b'{"error": "not found"}'], hang=False)
        body = ChunkedBody(list(route.chunks), hang=route.hang)
        self.bodies.append(body)
        return httpx.Response(
            route.status,
            headers={"Content-Type": route.content_type},
            stream=body,
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self, config: ClientConfig | None = None) -> AsyncClient:
        """An ``AsyncClient`` wired to this server."""
        return AsyncClient(config=config or ClientConfig(), transport=self.transport())
