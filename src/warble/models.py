"""Request and response shapes for the Ollama HTTP API.

Frozen dataclasses whose field names match the JSON keys on the wire.
Requests are serialized with ``warble._mapping.to_dict`` (unset fields
are omitted); responses and stream events are built with
``warble._mapping.from_dict``.

The three streaming event types are ``GenerateResponse``,
``ChatResponse`` and ``ProgressResponse``. Each exposes a single
``done`` flag that marks the terminal event of a stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Options:
    """Model parameters and runtime knobs. Unset knobs use the server default."""

    num_keep: int | None = None
    seed: int | None = None
    num_predict: int | None = None
    top_k: int | None = None
    top_p: float | None = None
    tfs_z: float | None = None
    typical_p: float | None = None
    repeat_last_n: int | None = None
    temperature: float | None = None
    repeat_penalty: float | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    mirostat: int | None = None
    mirostat_tau: float | None = None
    mirostat_eta: float | None = None
    penalize_newline: bool | None = None
    stop: tuple[str, ...] = ()
    num_gpu: int | None = None
    num_thread: int | None = None
    num_ctx: int | None = None
    logits_all: bool | None = None
    embedding_only: bool | None = None
    f16_kv: bool | None = None


# =============================================================================
# Chat messages and tools
# =============================================================================


@dataclass(frozen=True, slots=True)
class FunctionCall:
    name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A function call requested by the model."""

    function: FunctionCall = field(default_factory=FunctionCall)
    id: str = ""
    type: str = ""


@dataclass(frozen=True, slots=True)
class Function:
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Tool:
    """A tool the model may call. ``parameters`` is a JSON schema."""

    function: Function
    type: str = "function"


@dataclass(frozen=True, slots=True)
class Message:
    """A chat message.

    ``images`` holds base64-encoded image data for multimodal models.
    """

    role: str = ""
    content: str = ""
    images: tuple[str, ...] = ()
    tool_calls: tuple[ToolCall, ...] = ()
    name: str = ""


# =============================================================================
# Generate / chat
# =============================================================================


@dataclass(frozen=True, slots=True)
class GenerateRequest:
    model: str
    prompt: str = ""
    system: str = ""
    template: str = ""
    context: tuple[int, ...] = ()
    stream: bool = False
    raw: bool = False
    format: str | dict[str, Any] = ""
    images: tuple[str, ...] = ()
    options: Options | None = None
    keep_alive: str = ""


@dataclass(frozen=True, slots=True)
class GenerateResponse:
    """A complete generation, or one fragment of a streamed one."""

    model: str = ""
    created_at: str = ""
    response: str = ""
    done: bool = False
    done_reason: str = ""
    context: tuple[int, ...] = ()
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    prompt_eval_duration: int = 0
    eval_count: int = 0
    eval_duration: int = 0


@dataclass(frozen=True, slots=True)
class ChatRequest:
    model: str
    messages: tuple[Message, ...] = ()
    format: str | dict[str, Any] = ""
    stream: bool = False
    tools: tuple[Tool, ...] = ()
    options: Options | None = None
    keep_alive: str = ""


@dataclass(frozen=True, slots=True)
class ChatResponse:
    """A complete chat reply, or one fragment of a streamed one."""

    model: str = ""
    created_at: str = ""
    message: Message = field(default_factory=Message)
    done: bool = False
    done_reason: str = ""
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    prompt_eval_duration: int = 0
    eval_count: int = 0
    eval_duration: int = 0


# =============================================================================
# Embeddings
# =============================================================================


@dataclass(frozen=True, slots=True)
class EmbeddingsRequest:
    model: str
    prompt: str = ""
    options: Options | None = None
    keep_alive: str = ""


@dataclass(frozen=True, slots=True)
class EmbeddingsResponse:
    embedding: tuple[float, ...] = ()


# =============================================================================
# Model management
# =============================================================================


@dataclass(frozen=True, slots=True)
class CreateModelRequest:
    """Create a model from a Modelfile.

    ``path`` is local only: when ``modelfile`` is empty the client reads
    the Modelfile from it. It is never sent to the server.
    """

    model: str
    modelfile: str = ""
    path: str | None = field(default=None, metadata={"local": True})
    stream: bool = False


@dataclass(frozen=True, slots=True)
class PullModelRequest:
    model: str
    insecure: bool = False
    stream: bool = False


@dataclass(frozen=True, slots=True)
class PushModelRequest:
    model: str
    insecure: bool = False
    stream: bool = False


@dataclass(frozen=True, slots=True)
class ProgressResponse:
    """Status update from a create, pull or push.

    The server reports ``status="success"`` on the last update.
    """

    status: str = ""
    digest: str = ""
    total: int = 0
    completed: int = 0
    error: str = ""

    @property
    def done(self) -> bool:
        return self.status == "success"

    @property
    def fraction(self) -> float | None:
        """Completed share of ``total``, or ``None`` when no total is known."""
        if self.total <= 0:
            return None
        return min(self.completed / self.total, 1.0)


@dataclass(frozen=True, slots=True)
class ModelDetails:
    format: str = ""
    family: str = ""
    families: tuple[str, ...] = ()
    parameter_size: str = ""
    quantization_level: str = ""


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """One entry of ``/api/tags``. ``modified_at`` is the server's ISO-8601 string."""

    name: str = ""
    model: str = ""
    modified_at: str = ""
    digest: str = ""
    size: int = 0
    details: ModelDetails = field(default_factory=ModelDetails)


@dataclass(frozen=True, slots=True)
class ListModelsResponse:
    models: tuple[ModelInfo, ...] = ()


@dataclass(frozen=True, slots=True)
class ShowModelRequest:
    model: str


@dataclass(frozen=True, slots=True)
class ShowModelResponse:
    modelfile: str = ""
    template: str = ""
    system: str = ""
    parameters: str = ""
    license: str = ""
    details: ModelDetails = field(default_factory=ModelDetails)
    model_info: dict[str, Any] = field(default_factory=dict)
    modified_at: str = ""


@dataclass(frozen=True, slots=True)
class CopyModelRequest:
    source: str
    destination: str


@dataclass(frozen=True, slots=True)
class DeleteModelRequest:
    model: str


@dataclass(frozen=True, slots=True)
class StatusResponse:
    status: str = ""
