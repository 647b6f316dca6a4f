"""In-process channel and the process-local listener table it routes through."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from dynclient.core.protocol import Message
from dynclient.core.serialization import clone_message
from dynclient.utils.exceptions import ChannelFaultError
from dynclient.utils.helpers import normalize_address

if TYPE_CHECKING:
    from dynclient.bindings import LoopbackBinding


class Listener(Protocol):
    def dispatch(self, message: Message) -> Message | None:
        ...


_lock = threading.Lock()
_listeners: dict[str, Listener] = {}


def register_listener(address: str, listener: Listener) -> None:
    key = normalize_address(address)
    with _lock:
        if key in _listeners and _listeners[key] is not listener:
            raise ChannelFaultError(f"Address already in use: {address}", address, code="ADDRESS_IN_USE")
        _listeners[key] = listener
    logger.debug(f"Loopback listener registered at {address}")


def unregister_listener(address: str) -> None:
    with _lock:
        _listeners.pop(normalize_address(address), None)


def get_listener(address: str) -> Listener | None:
    with _lock:
        return _listeners.get(normalize_address(address))


class LoopbackChannel:
    """Dispatches frames synchronously to the listener registered at ``address``.

    Messages cross the channel as copies of their wire form. The calling thread
    runs the dispatch, so binding timeouts are not enforced here.
    """

    def __init__(self, address: str, binding: LoopbackBinding):
        self.address = address
        self._binding = binding
        self._listener: Listener | None = None

    @property
    def is_open(self) -> bool:
        return self._listener is not None

    def open(self, timeout: float) -> None:
        listener = get_listener(self.address)
        if listener is None:
            raise ChannelFaultError(
                f"There was no endpoint listening at {self.address}",
                self.address,
                code="ENDPOINT_NOT_LISTENING",
            )
        self._listener = listener

    def close(self, timeout: float) -> None:
        self._listener = None

    def abort(self) -> None:
        self._listener = None

    def request(self, message: Message, timeout: float) -> Message:
        reply = self._require_listener().dispatch(clone_message(message))
        if reply is None:
            raise ChannelFaultError(f"No reply received from {self.address} for {message.action}", self.address)
        return clone_message(reply)

    def send(self, message: Message, timeout: float) -> None:
        self._require_listener().dispatch(clone_message(message))

    def _require_listener(self) -> Listener:
        if self._listener is None:
            raise ChannelFaultError(f"Channel to {self.address} is not open", self.address)
        if get_listener(self.address) is not self._listener:
            self._listener = None
            raise ChannelFaultError(f"Endpoint at {self.address} stopped listening", self.address)
        return self._listener
