"""AsyncClient — typed async access to an Ollama server.

Request dataclass in, typed result out. Every streaming endpoint also
has a ``*_stream`` variant returning an ``EventStream``.

Basic usage::

    from warble import AsyncClient, ChatRequest, GenerateRequest, Message

    async with AsyncClient() as client:
        reply = await client.chat(
            ChatRequest("llama3.2", messages=(Message("user", "Hi!"),))
        )

        request = GenerateRequest("llama3.2", prompt="Tell me a story")
        async with client.generate_stream(request, timeout=60) as stream:
            async for part in stream:
                print(part.response, end="")

Non-streaming calls raise ``ValidationError``, ``TransportError``,
``ResponseError`` or ``DecodeError`` directly. Streaming calls report the
same errors through the stream (raised at the end of iteration, or
returned as ``Failed`` by ``stream.wait()``).

Free-threading safety:
    - AsyncClient is effectively immutable after construction
    - The httpx connection pool is shared by all calls; everything else
      is per-request
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any

import httpx

from warble._mapping import from_dict, to_dict
from warble.config import ClientConfig
from warble.errors import DecodeError, RequestError, ValidationError
from warble.models import (
    ChatRequest,
    ChatResponse,
    CopyModelRequest,
    CreateModelRequest,
    DeleteModelRequest,
    EmbeddingsRequest,
    EmbeddingsResponse,
    GenerateRequest,
    GenerateResponse,
    ListModelsResponse,
    ProgressResponse,
    PullModelRequest,
    PushModelRequest,
    ShowModelRequest,
    ShowModelResponse,
    StatusResponse,
)
from warble.streaming.session import StreamRequest, StreamSession, check_required
from warble.streaming.sink import EventStream, Failed
from warble.transport import Transport, encode_body


def _require(*fields: tuple[str, str]) -> None:
    check_required(fields)


def _decode[T](cls: type[T], data: Any) -> T:
    """Map a decoded JSON body to ``cls``. An empty body maps to defaults."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"decoding response: expected JSON object, got {type(data).__name__}"
        raise DecodeError(msg)
    try:
        return from_dict(cls, data)
    except TypeError as exc:
        raise DecodeError(f"decoding response: {exc}") from exc


def _rejected[E](error: Exception) -> EventStream[E]:
    """A stream that fails before any session is started."""
    stream: EventStream[E] = EventStream()
    stream.close(Failed(error))
    return stream


def _load_modelfile(request: CreateModelRequest) -> CreateModelRequest:
    """Fill ``modelfile`` from ``path`` when only the path was given."""
    if request.modelfile or not request.path or not request.model:
        return request
    try:
        text = Path(request.path).read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"reading Modelfile {request.path}: {exc}"
        raise RequestError(msg) from exc
    return replace(request, modelfile=text)


class AsyncClient:
    """Async client for the Ollama HTTP API.

    The base URL comes from, in order: the ``base_url`` argument, the
    ``config`` argument, the ``OLLAMA_HOST`` environment variable, and
    finally ``http://127.0.0.1:11434``.

    ``transport`` swaps the httpx transport (``httpx.MockTransport`` in
    tests); ``http_client`` shares an existing ``httpx.AsyncClient``,
    which is then left open by ``aclose()``.
    """

    __slots__ = ("_config", "_transport")

    def __init__(
        self,
        base_url: str | None = None,
        /,
        *,
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        config = config or ClientConfig.from_env()
        if base_url is not None:
            config = config.with_base_url(base_url)
        self._config = config
        self._transport = Transport(config, transport=transport, http_client=http_client)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> AsyncClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Generate / chat --

    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        """Generate a complete response for a prompt."""
        _require(("model", request.model))
        data = await self._post("/api/generate", replace(request, stream=False))
        return _decode(GenerateResponse, data)

    def generate_stream(
        self, request: GenerateRequest, *, timeout: float | None = None
    ) -> EventStream[GenerateResponse]:
        """Stream a generation fragment by fragment."""
        return self._open_stream(
            "POST",
            "/api/generate",
            replace(request, stream=True),
            GenerateResponse,
            required=(("model", request.model),),
            timeout=timeout,
        )

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Generate the next message of a chat."""
        _require(("model", request.model))
        data = await self._post("/api/chat", replace(request, stream=False))
        return _decode(ChatResponse, data)

    def chat_stream(
        self, request: ChatRequest, *, timeout: float | None = None
    ) -> EventStream[ChatResponse]:
        """Stream the next message of a chat fragment by fragment."""
        return self._open_stream(
            "POST",
            "/api/chat",
            replace(request, stream=True),
            ChatResponse,
            required=(("model", request.model),),
            timeout=timeout,
        )

    async def embeddings(self, request: EmbeddingsRequest) -> EmbeddingsResponse:
        _require(("model", request.model))
        data = await self._post("/api/embeddings", request)
        return _decode(EmbeddingsResponse, data)

    # -- Model management --

    async def create_model(self, request: CreateModelRequest) -> ProgressResponse:
        """Create a model from a Modelfile and wait for the final status."""
        _require(("model name", request.model))
        request = _load_modelfile(request)
        data = await self._post("/api/create", replace(request, stream=False))
        return _decode(ProgressResponse, data)

    def create_model_stream(
        self, request: CreateModelRequest, *, timeout: float | None = None
    ) -> EventStream[ProgressResponse]:
        try:
            request = _load_modelfile(request)
        except RequestError as exc:
            return _rejected(exc)
        return self._open_stream(
            "POST",
            "/api/create",
            replace(request, stream=True),
            ProgressResponse,
            required=(("model name", request.model),),
            timeout=timeout,
        )

    async def pull_model(self, request: PullModelRequest) -> ProgressResponse:
        """Download a model and wait for the final status."""
        _require(("model name", request.model))
        data = await self._post("/api/pull", replace(request, stream=False))
        return _decode(ProgressResponse, data)

    def pull_model_stream(
        self, request: PullModelRequest, *, timeout: float | None = None
    ) -> EventStream[ProgressResponse]:
        """Download a model, streaming progress updates."""
        return self._open_stream(
            "POST",
            "/api/pull",
            replace(request, stream=True),
            ProgressResponse,
            required=(("model name", request.model),),
            timeout=timeout,
        )

    async def push_model(self, request: PushModelRequest) -> ProgressResponse:
        """Upload a model and wait for the final status."""
        _require(("model name", request.model))
        data = await self._post("/api/push", replace(request, stream=False))
        return _decode(ProgressResponse, data)

    def push_model_stream(
        self, request: PushModelRequest, *, timeout: float | None = None
    ) -> EventStream[ProgressResponse]:
        """Upload a model, streaming progress updates."""
        return self._open_stream(
            "POST",
            "/api/push",
            replace(request, stream=True),
            ProgressResponse,
            required=(("model name", request.model),),
            timeout=timeout,
        )

    async def list_models(self) -> ListModelsResponse:
        """List the models available on the server."""
        data = await self._transport.request_json("GET", "/api/tags")
        return _decode(ListModelsResponse, data)

    async def show_model(self, request: ShowModelRequest) -> ShowModelResponse:
        _require(("model name", request.model))
        data = await self._post("/api/show", request)
        return _decode(ShowModelResponse, data)

    async def copy_model(self, request: CopyModelRequest) -> StatusResponse:
        if not request.source or not request.destination:
            msg = "source and destination are required"
            raise ValidationError(msg)
        data = await self._post("/api/copy", request)
        return _decode(StatusResponse, data or {"status": "success"})

    async def delete_model(self, request: DeleteModelRequest) -> StatusResponse:
        _require(("model name", request.model))
        data = await self._transport.request_json("DELETE", "/api/delete", to_dict(request))
        return _decode(StatusResponse, data or {"status": "success"})

    # -- Internal dispatch --

    async def _post(self, path: str, request: Any) -> Any:
        return await self._transport.request_json("POST", path, to_dict(request))

    def _open_stream[E](
        self,
        method: str,
        path: str,
        request: Any,
        event_type: type[E],
        *,
        required: tuple[tuple[str, str], ...],
        timeout: float | None,
    ) -> EventStream[E]:
        try:
            body = encode_body(to_dict(request))
        except RequestError as exc:
            return _rejected(exc)

        stream_request = StreamRequest(
            method=method,
            path=path,
            body=body,
            event_type=event_type,
            required=required,
        )
        session = StreamSession(
            self._transport,
            stream_request,
            timeout=timeout if timeout is not None else self._config.stream_timeout,
        )
        return session.start()
