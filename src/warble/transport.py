"""HTTP transport over a shared ``httpx.AsyncClient``.

One ``Transport`` per ``AsyncClient``. The underlying connection pool is
shared read-only by every request and stream session; response bodies
are owned by whoever opened them.

httpx failures are translated into ``TransportError`` with the httpx
exception chained, so callers only ever see warble's error hierarchy.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from warble.config import ClientConfig
from warble.errors import DecodeError, RequestError, TransportError, response_error

logger = logging.getLogger("warble.client")


def encode_body(payload: dict[str, Any] | None) -> bytes | None:
    """Serialize a request payload to JSON bytes."""
    if payload is None:
        return None
    try:
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as exc:
        msg = f"marshaling request body: {exc}"
        raise RequestError(msg) from exc


class Transport:
    """Sends requests to one server using the client's configuration."""

    __slots__ = ("_client", "_owns_client", "config")

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        if http_client is not None:
            self._client = http_client
            self._owns_client = False
        else:
            self._client = httpx.AsyncClient(
                base_url=config.base_url,
                headers=config.request_headers(),
                timeout=httpx.Timeout(config.timeout),
                transport=transport,
            )
            self._owns_client = True

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _build(self, method: str, path: str, body: bytes | None) -> httpx.Request:
        return self._client.build_request(method, path, content=body)

    async def open_stream(self, method: str, path: str, body: bytes | None) -> httpx.Response:
        """Send a request and return the response with its body unread.

        The caller owns the response and must ``aclose()`` it.
        """
        request = self._build(method, path, body)
        logger.debug("%s %s (stream)", method, request.url)
        try:
            return await self._client.send(request, stream=True)
        except httpx.TransportError as exc:
            msg = f"making request: {exc}"
            raise TransportError(msg) from exc

    async def read_body(self, response: httpx.Response) -> bytes:
        """Read the whole remaining body of a streamed response."""
        try:
            return await response.aread()
        except httpx.TransportError as exc:
            msg = f"reading response: {exc}"
            raise TransportError(msg) from exc

    async def iter_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        """Yield raw body chunks as they arrive."""
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TransportError as exc:
            msg = f"reading response: {exc}"
            raise TransportError(msg) from exc

    async def request_json(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        """Non-streaming round-trip: send JSON, decode one JSON value.

        Returns ``None`` for an empty success body. Raises ``ResponseError``
        on a non-2xx status and ``DecodeError`` when the body is not JSON.
        """
        body = encode_body(payload)
        response = await self.open_stream(method, path, body)
        try:
            data = await self.read_body(response)
        finally:
            await response.aclose()

        if not response.is_success:
            raise response_error(response.status_code, data)

        if not data.strip():
            return None
        try:
            return json.loads(data)
        except ValueError as exc:
            msg = f"decoding response: {exc}"
            raise DecodeError(msg, data=data) from exc
