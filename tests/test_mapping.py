"""Tests for warble._mapping — JSON objects to frozen dataclasses and back."""

import re
from dataclasses import dataclass, field

import pytest

from warble._mapping import from_dict, to_dict
from warble.models import (
    ChatRequest,
    ChatResponse,
    CreateModelRequest,
    EmbeddingsResponse,
    Function,
    GenerateRequest,
    GenerateResponse,
    ListModelsResponse,
    Message,
    Options,
    ProgressResponse,
    Tool,
)


@dataclass(frozen=True, slots=True)
class Point:
    x: int
    y: int = 0
    label: str = ""
    tags: tuple[str, ...] = ()
    weight: float | None = None


@dataclass(frozen=True, slots=True)
class Shape:
    points: tuple[Point, ...] = ()
    origin: Point = field(default_factory=lambda: Point(0))


class TestFromDict:
    def test_basic(self) -> None:
        p = from_dict(Point, {"x": 1, "y": 2, "label": "a"})
        assert p == Point(1, 2, "a")

    def test_missing_keys_use_defaults(self) -> None:
        assert from_dict(Point, {"x": 5}) == Point(5)

    def test_unknown_keys_ignored(self) -> None:
        assert from_dict(Point, {"x": 1, "z": 9}) == Point(1)

    def test_missing_required_field(self) -> None:
        with pytest.raises(TypeError):
            from_dict(Point, {"y": 1})

    def test_list_becomes_tuple(self) -> None:
        p = from_dict(Point, {"x": 1, "tags": ["a", "b"]})
        assert p.tags == ("a", "b")

    def test_int_accepted_for_float(self) -> None:
        p = from_dict(Point, {"x": 1, "weight": 2})
        assert p.weight == 2.0
        assert isinstance(p.weight, float)

    def test_nested(self) -> None:
        shape = from_dict(Shape, {"points": [{"x": 1}, {"x": 2, "y": 3}], "origin": {"x": 7}})
        assert shape.points == (Point(1), Point(2, 3))
        assert shape.origin == Point(7)

    @pytest.mark.parametrize(
        ("data", "where"),
        [
            ({"x": "1"}, "x"),
            ({"x": True}, "x"),
            ({"x": 1.5}, "x"),
            ({"x": 1, "label": 3}, "label"),
            ({"x": 1, "tags": "a"}, "tags"),
            ({"x": 1, "tags": [1]}, "tags[0]"),
        ],
    )
    def test_wrong_json_type(self, data: dict, where: str) -> None:
        with pytest.raises(TypeError, match=rf"^{re.escape(where)}:"):
            from_dict(Point, data)

    def test_nested_error_path(self) -> None:
        with pytest.raises(TypeError, match=r"points\[1\]\.x"):
            from_dict(Shape, {"points": [{"x": 1}, {"x": "two"}]})

    def test_null_uses_default(self) -> None:
        p = from_dict(Point, {"x": 1, "y": None, "label": None, "tags": None})
        assert p == Point(1)

    def test_null_kept_for_optional(self) -> None:
        p = from_dict(Point, {"x": 1, "weight": None})
        assert p.weight is None

    def test_null_required_field(self) -> None:
        with pytest.raises(TypeError):
            from_dict(Point, {"x": None})

    def test_null_array_item(self) -> None:
        with pytest.raises(TypeError, match=r"^tags\[1\]: expected str, got null"):
            from_dict(Point, {"x": 1, "tags": ["a", None]})

    def test_not_a_dataclass(self) -> None:
        with pytest.raises(TypeError, match="not a dataclass"):
            from_dict(dict, {})  # type: ignore[arg-type]


class TestModels:
    def test_generate_response_null_fields(self) -> None:
        resp = from_dict(GenerateResponse, {"model": "m", "response": None, "done": None})
        assert resp.response == ""
        assert resp.done is False

    def test_embeddings_null_item(self) -> None:
        with pytest.raises(TypeError, match=r"embedding\[0\]"):
            from_dict(EmbeddingsResponse, {"embedding": [None]})

    def test_chat_response(self) -> None:
        reply = from_dict(
            ChatResponse,
            {
                "model": "llama3.2",
                "created_at": "2024-07-01T12:00:00Z",
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [{"function": {"name": "weather", "arguments": {"city": "Oslo"}}}],
                },
                "done": True,
                "eval_count": 12,
            },
        )
        assert reply.done is True
        assert reply.message.role == "assistant"
        assert reply.message.tool_calls[0].function.arguments == {"city": "Oslo"}

    def test_list_models(self) -> None:
        listing = from_dict(
            ListModelsResponse,
            {"models": [{"name": "llama3.2:latest", "size": 2019393189, "details": {"family": "llama"}}]},
        )
        assert listing.models[0].name == "llama3.2:latest"
        assert listing.models[0].details.family == "llama"

    def test_progress_done_is_derived(self) -> None:
        assert from_dict(ProgressResponse, {"status": "success"}).done is True
        assert from_dict(ProgressResponse, {"status": "pulling manifest"}).done is False

    def test_progress_fraction(self) -> None:
        update = ProgressResponse(status="downloading", total=200, completed=50)
        assert update.fraction == 0.25
        assert ProgressResponse(status="verifying").fraction is None


class TestToDict:
    def test_omits_empty(self) -> None:
        assert to_dict(GenerateRequest("llama3.2")) == {
            "model": "llama3.2",
            "stream": False,
            "raw": False,
        }

    def test_keeps_set_fields(self) -> None:
        data = to_dict(GenerateRequest("m", prompt="hi", context=(1, 2), stream=True))
        assert data["prompt"] == "hi"
        assert data["context"] == [1, 2]
        assert data["stream"] is True

    def test_empty_options_omitted(self) -> None:
        assert "options" not in to_dict(GenerateRequest("m", options=Options()))

    def test_options_keep_zero_and_false(self) -> None:
        data = to_dict(GenerateRequest("m", options=Options(temperature=0.0, penalize_newline=False)))
        assert data["options"] == {"temperature": 0.0, "penalize_newline": False}

    def test_nested_messages_and_tools(self) -> None:
        request = ChatRequest(
            "m",
            messages=(Message("user", "hi"),),
            tools=(Tool(Function("weather", parameters={"type": "object"})),),
        )
        data = to_dict(request)
        assert data["messages"] == [{"role": "user", "content": "hi"}]
        assert data["tools"] == [
            {"function": {"name": "weather", "parameters": {"type": "object"}}, "type": "function"}
        ]

    def test_format_schema(self) -> None:
        data = to_dict(GenerateRequest("m", format={"type": "object"}))
        assert data["format"] == {"type": "object"}

    def test_local_fields_skipped(self) -> None:
        data = to_dict(CreateModelRequest("m", modelfile="FROM llama3.2", path="/tmp/Modelfile"))
        assert "path" not in data
        assert data["modelfile"] == "FROM llama3.2"
