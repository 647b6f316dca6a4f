"""Wire message models shared by channels, inspectors and hosts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class MessageFault:
    """Normalized fault payload carried by a fault reply."""

    code: str
    reason: str
    detail: Any = None


@dataclass(slots=True)
class Message:
    """One request or reply frame.

    ``body`` holds the operation payload: parameter values keyed by parameter
    name for requests, ``{"result": value}`` for replies.
    """

    action: str
    body: dict[str, Any] | None = None
    message_id: str | None = None
    relates_to: str | None = None
    headers: dict[str, Any] = field(default_factory=dict)
    fault: MessageFault | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def is_fault(self) -> bool:
        return self.fault is not None

    @property
    def is_empty(self) -> bool:
        return self.body is None and self.fault is None

    @classmethod
    def create_fault(cls, action: str, code: str, reason: str, *, detail: Any = None, relates_to: str | None = None) -> Message:
        return cls(action=action, fault=MessageFault(code=code, reason=reason, detail=detail), relates_to=relates_to)
