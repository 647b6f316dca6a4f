"""Subscriber lists and event payloads for the interception pipeline."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from dynclient.client.behaviors import ClientCredentials
from dynclient.core.description import ServiceEndpoint
from dynclient.core.protocol import Message

Handler = Callable[[Any, Any], None]


class EventHook:
    """Ordered subscriber list.

    ``fire`` iterates over a snapshot, so handlers added or removed while an
    event is being delivered only affect later events.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._handlers: list[Handler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler) -> Handler:
        with self._lock:
            self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Handler) -> bool:
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                return False
        return True

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def fire(self, sender: Any, args: Any) -> None:
        with self._lock:
            handlers = tuple(self._handlers)
        for handler in handlers:
            handler(sender, args)


@dataclass(slots=True)
class MessageInspectorEventArgs:
    message: Message | None
    message_id: uuid.UUID
    is_one_way: bool
    validation_error: str | None = None
    endpoint: ServiceEndpoint | None = None
    client_credentials: ClientCredentials | None = None
    service_host: Any = None


@dataclass(slots=True)
class ErrorEventArgs:
    exception: BaseException
    operation: str | None = None
    endpoint: ServiceEndpoint | None = None


@dataclass(slots=True)
class CorrelationState:
    """Per-exchange token threaded from request to reply."""

    message_id: uuid.UUID
    is_one_way: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class InspectorEvents:
    sending_request: EventHook = field(default_factory=lambda: EventHook("sending_request"))
    receiving_reply: EventHook = field(default_factory=lambda: EventHook("receiving_reply"))
    receiving_request: EventHook = field(default_factory=lambda: EventHook("receiving_request"))
    sending_reply: EventHook = field(default_factory=lambda: EventHook("sending_reply"))
    error_occurred: EventHook = field(default_factory=lambda: EventHook("error_occurred"))
