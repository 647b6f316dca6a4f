"""Per-client credentials and per-operation serializer behavior."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel, TypeAdapter

from dynclient.utils.exceptions import ChannelFaultError

DEFAULT_MAX_ITEMS_IN_OBJECT_GRAPH = 65536
TYPE_HINT_KEY = "$type"


@dataclass(slots=True)
class ClientCredentials:
    """Credentials copied into the headers of every outgoing request."""

    user_name: str | None = None
    password: str | None = None
    token: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def to_headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        elif self.user_name:
            raw = f"{self.user_name}:{self.password or ''}".encode()
            headers["Authorization"] = f"Basic {base64.b64encode(raw).decode()}"
        return headers


def count_items(value: Any) -> int:
    """Number of objects in a decoded payload graph."""
    if isinstance(value, dict):
        return 1 + sum(count_items(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return 1 + sum(count_items(v) for v in value)
    return 1


def _drop_extension_data(value: Any) -> None:
    if isinstance(value, BaseModel):
        if value.__pydantic_extra__:
            value.__pydantic_extra__.clear()
        for field_name in type(value).model_fields:
            _drop_extension_data(getattr(value, field_name))
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            _drop_extension_data(item)
    elif isinstance(value, dict):
        for item in value.values():
            _drop_extension_data(item)


@dataclass(slots=True)
class SerializerOperationBehavior:
    """How one operation's reply payload is turned back into Python objects.

    ``data_contract_resolver`` maps a ``$type`` name found in a payload to the
    class that should be used instead of the declared result type.
    """

    max_items_in_object_graph: int = DEFAULT_MAX_ITEMS_IN_OBJECT_GRAPH
    ignore_extension_data: bool = False
    known_types: list[type] = field(default_factory=list)
    data_contract_resolver: Callable[[str], type | None] | None = None

    def resolve_type(self, raw: Any, declared: Any) -> Any:
        if not isinstance(raw, dict) or TYPE_HINT_KEY not in raw:
            return declared
        name = str(raw[TYPE_HINT_KEY])
        if self.data_contract_resolver is not None:
            resolved = self.data_contract_resolver(name)
            if resolved is not None:
                return resolved
        for known in self.known_types:
            if known.__name__ == name:
                return known
        return declared

    def read(self, raw: Any, declared: Any, *, address: str | None = None) -> Any:
        items = count_items(raw)
        if items > self.max_items_in_object_graph:
            raise ChannelFaultError(
                f"Maximum number of items that can be serialized or deserialized in an object graph is "
                f"{self.max_items_in_object_graph}; reply contains {items}",
                address,
                code="QUOTA_EXCEEDED",
            )
        target = self.resolve_type(raw, declared)
        if isinstance(raw, dict) and TYPE_HINT_KEY in raw:
            raw = {k: v for k, v in raw.items() if k != TYPE_HINT_KEY}
        if target is Any or target is None:
            return raw
        value = TypeAdapter(target).validate_python(raw)
        if self.ignore_extension_data:
            _drop_extension_data(value)
        return value
