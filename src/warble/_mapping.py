"""JSON-to-dataclass mapping with type checking.

Converts decoded JSON objects into typed frozen dataclasses and back.
Uses dataclass field introspection, no metaclass magic.

Decoding is strict about JSON types: a field annotated ``int`` accepts a
JSON number without a fraction, ``float`` accepts any JSON number, and
``str``/``bool`` accept only their own type. Nested dataclasses and
``tuple[X, ...]`` fields are mapped recursively. Unknown keys are ignored;
missing keys, and null in a field not annotated ``X | None``, fall back
to the field default.

Encoding drops ``None`` and empty strings/containers so requests only
carry what the caller set. Fields marked ``metadata={"local": True}``
are never sent.
"""

import dataclasses
import types
from functools import cache
from typing import Any, Union, get_args, get_origin, get_type_hints

_MISMATCH = object()

# Scalar types and the JSON values each accepts.
_SCALARS: dict[type, Any] = {
    str: lambda v: v if isinstance(v, str) else _MISMATCH,
    bool: lambda v: v if isinstance(v, bool) else _MISMATCH,
    int: lambda v: v if isinstance(v, int) and not isinstance(v, bool) else _MISMATCH,
    float: lambda v: float(v) if isinstance(v, int | float) and not isinstance(v, bool) else _MISMATCH,
}


@cache
def _field_types(cls: type) -> dict[str, Any]:
    """Build a {field_name: annotation} map with string annotations resolved."""
    hints = get_type_hints(cls)
    return {f.name: hints[f.name] for f in dataclasses.fields(cls)}


def _unwrap_optional(annotation: Any) -> Any:
    """``X | None`` -> ``X``; other annotations are returned unchanged."""
    if get_origin(annotation) in (types.UnionType, Union):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _accepts_null(annotation: Any) -> bool:
    if annotation is Any:
        return True
    return get_origin(annotation) in (types.UnionType, Union) and type(None) in get_args(annotation)


def _type_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", None) or str(annotation)


def _convert(value: Any, annotation: Any, path: str) -> Any:
    """Convert one JSON value to ``annotation``, raising ``TypeError`` on mismatch."""
    if value is None:
        if _accepts_null(annotation):
            return None
        msg = f"{path}: expected {_type_name(annotation)}, got null"
        raise TypeError(msg)

    annotation = _unwrap_optional(annotation)

    if annotation is Any:
        return value

    if dataclasses.is_dataclass(annotation):
        if not isinstance(value, dict):
            msg = f"{path}: expected object, got {type(value).__name__}"
            raise TypeError(msg)
        return from_dict(annotation, value, _path=path)

    if annotation in _SCALARS:
        converted = _SCALARS[annotation](value)
        if converted is _MISMATCH:
            msg = f"{path}: expected {_type_name(annotation)}, got {type(value).__name__}"
            raise TypeError(msg)
        return converted

    origin = get_origin(annotation)
    if origin in (tuple, list):
        if not isinstance(value, list):
            msg = f"{path}: expected array, got {type(value).__name__}"
            raise TypeError(msg)
        args = get_args(annotation)
        item_type = args[0] if args else Any
        items = [_convert(v, item_type, f"{path}[{i}]") for i, v in enumerate(value)]
        return tuple(items) if origin is tuple else items

    if origin is dict or annotation is dict:
        if not isinstance(value, dict):
            msg = f"{path}: expected object, got {type(value).__name__}"
            raise TypeError(msg)
        return value

    # Unknown annotation: pass the JSON value through untouched.
    return value


def from_dict[T](cls: type[T], data: dict[str, Any], *, _path: str = "") -> T:
    """Map a decoded JSON object to a frozen dataclass instance.

    Only keys that match dataclass fields are used. Raises ``TypeError``
    when a value has the wrong JSON type or a required field is missing.
    """
    if not dataclasses.is_dataclass(cls):
        msg = f"{cls.__name__} is not a dataclass"
        raise TypeError(msg)

    field_types = _field_types(cls)
    kwargs = {
        name: _convert(value, field_types[name], f"{_path}.{name}" if _path else name)
        for name, value in data.items()
        # null in a field that cannot hold it falls back to the default.
        if name in field_types and (value is not None or _accepts_null(field_types[name]))
    }
    return cls(**kwargs)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool | int | float):
        return False
    return isinstance(value, str | tuple | list | dict) and len(value) == 0


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_dict(value)
    if isinstance(value, tuple | list):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


def to_dict(obj: Any) -> dict[str, Any]:
    """Convert a dataclass instance to a JSON-ready dict.

    ``None``, ``""`` and empty containers are omitted; so are nested
    dataclasses that encode to nothing (e.g. ``Options()`` with no knob set).
    """
    result: dict[str, Any] = {}
    for f in dataclasses.fields(obj):
        if f.metadata.get("local"):
            continue
        encoded = _encode(getattr(obj, f.name))
        if _is_empty(encoded):
            continue
        result[f.name] = encoded
    return result
