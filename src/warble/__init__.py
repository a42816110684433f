"""Warble — a typed async client for the Ollama HTTP API.

Generation, chat, embeddings and model management, with streaming
responses delivered as ordered, cancellable async iterators.

Basic usage::

    from warble import AsyncClient, GenerateRequest

    async with AsyncClient() as client:
        reply = await client.generate(GenerateRequest("llama3.2", prompt="Hi"))
        print(reply.response)

        async with client.generate_stream(GenerateRequest("llama3.2", prompt="Hi")) as stream:
            async for part in stream:
                print(part.response, end="")
        print(await stream.wait())

The server address comes from ``OLLAMA_HOST`` (default
``http://127.0.0.1:11434``).
"""

import importlib

__version__ = "0.1.0"

# Public name -> defining module. Resolved on first attribute access so
# ``import warble`` stays cheap (httpx is only imported when needed).
_LAZY_IMPORTS: dict[str, str] = {
    # Client
    "AsyncClient": "warble.client",
    "ClientConfig": "warble.config",
    "parse_host": "warble.config",
    # Errors
    "DecodeError": "warble.errors",
    "RequestError": "warble.errors",
    "ResponseError": "warble.errors",
    "TransportError": "warble.errors",
    "ValidationError": "warble.errors",
    "WarbleError": "warble.errors",
    # Streaming
    "Cancelled": "warble.streaming.sink",
    "Completed": "warble.streaming.sink",
    "EventStream": "warble.streaming.sink",
    "Failed": "warble.streaming.sink",
    "StreamOutcome": "warble.streaming.sink",
    # Models
    "ChatRequest": "warble.models",
    "ChatResponse": "warble.models",
    "CopyModelRequest": "warble.models",
    "CreateModelRequest": "warble.models",
    "DeleteModelRequest": "warble.models",
    "EmbeddingsRequest": "warble.models",
    "EmbeddingsResponse": "warble.models",
    "Function": "warble.models",
    "FunctionCall": "warble.models",
    "GenerateRequest": "warble.models",
    "GenerateResponse": "warble.models",
    "ListModelsResponse": "warble.models",
    "Message": "warble.models",
    "ModelDetails": "warble.models",
    "ModelInfo": "warble.models",
    "Options": "warble.models",
    "ProgressResponse": "warble.models",
    "PullModelRequest": "warble.models",
    "PushModelRequest": "warble.models",
    "ShowModelRequest": "warble.models",
    "ShowModelResponse": "warble.models",
    "StatusResponse": "warble.models",
    "Tool": "warble.models",
    "ToolCall": "warble.models",
}

__all__ = sorted(_LAZY_IMPORTS)


def __getattr__(name: str) -> object:
    """Lazy imports for the public API."""
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    return getattr(importlib.import_module(module_name), name)
