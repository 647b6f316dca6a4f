"""Small shared helpers: key conversion, type naming, URI checks."""

from __future__ import annotations

import types
import typing
from typing import Any
from urllib.parse import urlsplit

MAX_PORT = 65535


def safe_dict(value: Any) -> dict[str, Any]:
    """Return the value when dict-like, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0 and not name[i - 1].isupper():
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def convert_keys(data: Any, *, preserve: frozenset[str] = frozenset()) -> Any:
    """Convert camelCase keys to snake_case recursively.

    Values under keys listed in ``preserve`` keep their own keys (endpoint
    names, field names of data contracts).
    """
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = camel_to_snake(k) if isinstance(k, str) else k
            if new_k in preserve and isinstance(v, dict):
                result[new_k] = {ek: convert_keys(ev, preserve=preserve) for ek, ev in v.items()}
            else:
                result[new_k] = convert_keys(v, preserve=preserve)
        return result
    if isinstance(data, list):
        return [convert_keys(item, preserve=preserve) for item in data]
    return data


def convert_to_camel(data: Any, *, preserve: frozenset[str] = frozenset()) -> Any:
    """Convert snake_case keys to camelCase recursively."""
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = snake_to_camel(k) if isinstance(k, str) else k
            if k in preserve and isinstance(v, dict):
                result[new_k] = {ek: convert_to_camel(ev, preserve=preserve) for ek, ev in v.items()}
            else:
                result[new_k] = convert_to_camel(v, preserve=preserve)
        return result
    if isinstance(data, list):
        return [convert_to_camel(item, preserve=preserve) for item in data]
    return data


def full_name(cls: type) -> str:
    """Dotted module path plus qualified name of a class."""
    module = getattr(cls, "__module__", None)
    qualname = getattr(cls, "__qualname__", getattr(cls, "__name__", repr(cls)))
    if not module or module == "builtins":
        return qualname
    return f"{module}.{qualname}"


def type_name(value: Any) -> str:
    """Render a type (or type expression string) the way metadata spells it."""
    if isinstance(value, str):
        return "".join(value.split())
    if value is None or value is type(None):
        return "None"
    if value is Any:
        return "Any"
    origin = typing.get_origin(value)
    if origin is not None:
        args = typing.get_args(value)
        if origin in (typing.Union, types.UnionType):
            return "|".join(type_name(arg) for arg in args)
        base = getattr(origin, "__name__", str(origin))
        return f"{base}[{','.join(type_name(arg) for arg in args)}]"
    return getattr(value, "__name__", str(value))


def is_absolute_uri(value: str) -> bool:
    """True for a well-formed absolute URI (scheme plus authority or path)."""
    if not isinstance(value, str) or not value or value != value.strip():
        return False
    try:
        parts = urlsplit(value)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return False
    if not parts.scheme or not parts.scheme[0].isalpha():
        return False
    return bool(parts.netloc) or (parts.scheme == "file" and bool(parts.path))


def normalize_address(value: str | None) -> str:
    return value.lower() if value else ""
