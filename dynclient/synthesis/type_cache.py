"""Process-wide cache of typed proxy classes.

One class is built per ``(contract interface, strategy)`` pair and reused for
the life of the process. The built class derives from the lifecycle-manager
flavor of the strategy (or ``ClientBase``) and from the contract interface,
with one forwarding method per operation.
"""

from __future__ import annotations

import inspect
import threading
from enum import Enum
from typing import Any, Callable

from loguru import logger

from dynclient.client.contract import is_contract_type, operations_of
from dynclient.client.registry import OperationEntry
from dynclient.utils.exceptions import ArgumentError, log_fatal
from dynclient.utils.helpers import full_name


class ProxyStrategy(str, Enum):
    CLIENT_BASE = "client_base"
    PER_SESSION_THROWABLE = "per_session_throwable"
    PER_SESSION_UNTHROWABLE = "per_session_unthrowable"
    PER_CALL_THROWABLE = "per_call_throwable"
    PER_CALL_UNTHROWABLE = "per_call_unthrowable"


def base_class_for(strategy: ProxyStrategy) -> type:
    from dynclient.client.base import ClientBase
    from dynclient.proxy import strategies

    return {
        ProxyStrategy.CLIENT_BASE: ClientBase,
        ProxyStrategy.PER_SESSION_THROWABLE: strategies.PerSessionThrowableProxy,
        ProxyStrategy.PER_SESSION_UNTHROWABLE: strategies.PerSessionUnthrowableProxy,
        ProxyStrategy.PER_CALL_THROWABLE: strategies.PerCallThrowableProxy,
        ProxyStrategy.PER_CALL_UNTHROWABLE: strategies.PerCallUnthrowableProxy,
    }[ProxyStrategy(strategy)]


def _forwarder(class_name: str, entry: OperationEntry, signature: inspect.Signature, via_manager: bool) -> Callable[..., Any]:
    def method(self: Any, *args: Any, **kwargs: Any) -> Any:
        bound = signature.bind(self, *args, **kwargs)
        values = tuple(bound.arguments.values())[1:]
        if via_manager:
            return self.call_operation(entry, *values)
        return self._invoke(entry.attribute, values)

    method.__name__ = entry.attribute
    method.__qualname__ = f"{class_name}.{entry.attribute}"
    method.__signature__ = signature
    method.__doc__ = f"Invoke {entry.name}."
    return method


class ClientTypeCache:
    """Get-or-build store; concurrent misses for the same key build once."""

    def __init__(self) -> None:
        self._types: dict[tuple[type, ProxyStrategy], type] = {}
        self._lock = threading.Lock()
        self.builds = 0

    def get_or_build(self, contract_type: type, strategy: ProxyStrategy | str) -> type:
        key = (contract_type, ProxyStrategy(strategy))
        built = self._types.get(key)
        if built is not None:
            return built
        with self._lock:
            built = self._types.get(key)
            if built is None:
                built = self._build(*key)
                self._types[key] = built
                self.builds += 1
        return built

    def peek(self, contract_type: type, strategy: ProxyStrategy | str) -> type | None:
        return self._types.get((contract_type, ProxyStrategy(strategy)))

    def __len__(self) -> int:
        return len(self._types)

    def _build(self, contract_type: type, strategy: ProxyStrategy) -> type:
        if not is_contract_type(contract_type):
            raise ArgumentError(f"{full_name(contract_type)} is not a service contract", param="contract_type")
        base = base_class_for(strategy)
        name = f"{contract_type.__name__}{''.join(p.title() for p in strategy.value.split('_'))}Proxy"
        namespace: dict[str, Any] = {"__module__": __name__, "__qualname__": name}
        for entry in operations_of(contract_type):
            if hasattr(base, entry.attribute):
                raise log_fatal(
                    ArgumentError(f"Operation {entry.name} collides with member {base.__name__}.{entry.attribute}"),
                    "Proxy type build failed",
                )
            signature = inspect.signature(getattr(contract_type, entry.attribute))
            namespace[entry.attribute] = _forwarder(name, entry, signature, strategy != ProxyStrategy.CLIENT_BASE)
        built = type(name, (base, contract_type), namespace)
        logger.debug(f"Built proxy type {name} for {full_name(contract_type)}")
        return built


default_type_cache = ClientTypeCache()
