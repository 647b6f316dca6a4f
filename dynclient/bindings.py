"""Binding descriptors and the binding registry.

A binding is the transport configuration used to reach an endpoint. Every
binding carries open/close/send/receive timeouts that must stay finite and
positive; the registry constructs bindings with the configured presets.
"""

from __future__ import annotations

import math
import threading
from typing import Any, ClassVar
from urllib.parse import urlsplit

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from dynclient.channels.http import HttpChannel
from dynclient.channels.loopback import LoopbackChannel
from dynclient.config.schema import DEFAULT_TIMEOUT_SECONDS, MAX_MESSAGE_SIZE, BindingDefaults
from dynclient.core.contracts import Channel
from dynclient.utils.exceptions import ArgumentError
from dynclient.utils.helpers import full_name

TIMEOUT_FIELDS = ("open_timeout", "close_timeout", "send_timeout", "receive_timeout")


class Binding(BaseModel):
    """Base transport configuration."""

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    scheme: ClassVar[str] = ""

    name: str = ""
    open_timeout: float = DEFAULT_TIMEOUT_SECONDS
    close_timeout: float = DEFAULT_TIMEOUT_SECONDS
    send_timeout: float = DEFAULT_TIMEOUT_SECONDS
    receive_timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_received_message_size: int = Field(default=MAX_MESSAGE_SIZE, gt=0)

    @field_validator(*TIMEOUT_FIELDS)
    @classmethod
    def _finite_timeout(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"timeout must be a finite number of seconds greater than zero, got {value!r}")
        return value

    def create_channel(self, address: str) -> Channel:
        raise NotImplementedError(f"{type(self).__name__} cannot create channels")


class HttpBinding(Binding):
    """JSON frames over HTTP POST."""

    scheme: ClassVar[str] = "http"

    headers: dict[str, str] = Field(default_factory=dict)
    # Injectable httpx transport (e.g. httpx.MockTransport); never serialized.
    transport: Any = Field(default=None, exclude=True)

    def create_channel(self, address: str) -> Channel:
        return HttpChannel(address, self)


class SecureHttpBinding(HttpBinding):
    scheme: ClassVar[str] = "https"

    verify: bool = True


class LoopbackBinding(Binding):
    """In-process transport to a ServiceHost listening in this interpreter."""

    scheme: ClassVar[str] = "loopback"

    def create_channel(self, address: str) -> Channel:
        return LoopbackChannel(address, self)


def check_binding_type(binding_type: Any) -> type[Binding]:
    """Raise ArgumentError unless ``binding_type`` is a Binding subclass."""
    if not isinstance(binding_type, type) or not issubclass(binding_type, Binding):
        raise ArgumentError(
            f"Binding type {binding_type!r} is not a subclass of {full_name(Binding)}",
            param="binding_type",
        )
    return binding_type


class BindingRegistry:
    """Maps binding type names to binding classes and builds preset instances."""

    def __init__(self, defaults: BindingDefaults | None = None):
        self._defaults = defaults
        self._types: dict[str, type[Binding]] = {}
        self._lock = threading.Lock()
        self.register("http", HttpBinding)
        self.register("https", SecureHttpBinding)
        self.register("loopback", LoopbackBinding)

    @property
    def defaults(self) -> BindingDefaults:
        if self._defaults is None:
            from dynclient.config.access import get_config

            return get_config().bindings
        return self._defaults

    def register(self, name: str, binding_type: type[Binding]) -> None:
        check_binding_type(binding_type)
        with self._lock:
            self._types[name.lower()] = binding_type

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._types)

    def lookup(self, name: str) -> type[Binding] | None:
        """Find a binding class by registered name, class name or full name."""
        key = name.lower()
        with self._lock:
            found = self._types.get(key)
            if found is not None:
                return found
            for binding_type in self._types.values():
                if key in (binding_type.__name__.lower(), full_name(binding_type).lower()):
                    return binding_type
        return None

    def resolve(self, binding_type_or_name: Binding | type[Binding] | str, **overrides: Any) -> Binding:
        """Return a binding instance with preset timeouts.

        A binding instance is returned unchanged; a class or registered name is
        constructed with the configured defaults, then ``overrides``.
        """
        if isinstance(binding_type_or_name, Binding):
            return binding_type_or_name
        if isinstance(binding_type_or_name, str):
            binding_type = self.lookup(binding_type_or_name)
            if binding_type is None:
                raise ArgumentError(f"Unknown binding type: {binding_type_or_name}", param="binding")
        else:
            binding_type = check_binding_type(binding_type_or_name)
        defaults = self.defaults
        values: dict[str, Any] = {field: defaults.default_timeout_seconds for field in TIMEOUT_FIELDS}
        values["max_received_message_size"] = defaults.max_received_message_size
        values.update(overrides)
        binding = binding_type(**values)
        logger.debug(f"Resolved binding {binding_type.__name__} (send_timeout={binding.send_timeout}s)")
        return binding

    def type_for_address(self, address: str) -> type[Binding]:
        """Binding class matching an address scheme; plain HTTP when unknown."""
        scheme = urlsplit(address).scheme.lower()
        with self._lock:
            for binding_type in self._types.values():
                if binding_type.scheme == scheme:
                    return binding_type
        return HttpBinding


default_registry = BindingRegistry()
