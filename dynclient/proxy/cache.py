"""Process-wide sharing of client instances and lifecycle managers.

Instances are keyed by their construction arguments inside one store per
``(owner, strategy)``; each store has its own lock. ``ClientProxy`` is the
typed facade that validates arguments, builds the key and constructs on a
miss.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from dynclient.bindings import Binding, BindingRegistry, check_binding_type, default_registry
from dynclient.client.base import ClientBase, CommunicationState
from dynclient.client.contract import is_contract_type
from dynclient.synthesis.type_cache import ClientTypeCache, ProxyStrategy, default_type_cache
from dynclient.utils.exceptions import ArgumentError, OutOfRangeError, UriFormatError
from dynclient.utils.helpers import MAX_PORT, full_name, is_absolute_uri

if TYPE_CHECKING:
    from dynclient.config.schema import Settings

CACHE_KEY_FORMAT = "[Key1][{0}][Key2][{1}]"


def build_cache_key(first: str | None, second: str | None) -> str:
    return CACHE_KEY_FORMAT.format(first or "", (second or "").lower())


def check_uri(address: str | None) -> None:
    if address and not is_absolute_uri(address):
        raise UriFormatError(address)


def check_port(port: int) -> None:
    if not isinstance(port, int) or isinstance(port, bool) or port < 0 or port > MAX_PORT:
        raise OutOfRangeError("port", port, 0, MAX_PORT)


def build_address(contract_type: type, host: str, port: int, path: str | None = None) -> str:
    """``http://host:port/<contract full name>[/path]``."""
    if not host or not host.strip():
        raise ArgumentError("Host must not be empty", param="host")
    check_port(port)
    suffix = f"/{path.strip('/')}" if path and path.strip() else ""
    return f"http://{host.strip()}:{port}/{full_name(contract_type)}{suffix}"


def _is_stale(instance: Any) -> bool:
    if getattr(instance, "is_disposed", False):
        return True
    if isinstance(instance, ClientBase):
        return instance.state in (CommunicationState.CLOSED, CommunicationState.FAULTED)
    return False


class ProxyInstanceCache:
    """Stores keyed by ``(owner, strategy)`` with one lock each."""

    def __init__(self) -> None:
        self._stores: dict[tuple[Any, ProxyStrategy], tuple[dict[str, Any], threading.Lock]] = {}
        self._stores_lock = threading.Lock()

    def _store(self, owner: Any, strategy: ProxyStrategy) -> tuple[dict[str, Any], threading.Lock]:
        key = (owner, ProxyStrategy(strategy))
        store = self._stores.get(key)
        if store is None:
            with self._stores_lock:
                store = self._stores.setdefault(key, ({}, threading.Lock()))
        return store

    def get(
        self,
        owner: Any,
        strategy: ProxyStrategy,
        key: str,
        factory: Callable[[], Any],
        *,
        from_cache: bool = True,
    ) -> Any:
        """Cached instance for ``key``, built once by ``factory`` on a miss.

        With ``from_cache=False`` the store is neither read nor written.
        """
        if not from_cache:
            return factory()
        instances, lock = self._store(owner, strategy)
        instance = instances.get(key)
        if instance is not None and not _is_stale(instance):
            return instance
        with lock:
            instance = instances.get(key)
            if instance is None or _is_stale(instance):
                instance = factory()
                instances[key] = instance
                logger.debug(f"Cached {type(instance).__name__} under {key}")
        return instance

    def peek(self, owner: Any, strategy: ProxyStrategy, key: str) -> Any | None:
        store = self._stores.get((owner, ProxyStrategy(strategy)))
        return store[0].get(key) if store is not None else None

    def values(self, owner: Any, strategy: ProxyStrategy) -> list[Any]:
        store = self._stores.get((owner, ProxyStrategy(strategy)))
        if store is None:
            return []
        with store[1]:
            return list(store[0].values())

    def clear(self, owner: Any = None) -> None:
        with self._stores_lock:
            keys = [k for k in self._stores if owner is None or k[0] is owner]
            for key in keys:
                instances, lock = self._stores.pop(key)
                with lock:
                    instances.clear()


default_instance_cache = ProxyInstanceCache()


class ClientProxy:
    """Typed entry point: ``ClientProxy(ICalculator).get_per_session_throwable_instance(...)``."""

    def __init__(
        self,
        contract_type: type,
        *,
        instance_cache: ProxyInstanceCache | None = None,
        type_cache: ClientTypeCache | None = None,
        binding_registry: BindingRegistry | None = None,
        settings: Settings | None = None,
    ):
        if not is_contract_type(contract_type):
            raise ArgumentError(f"{full_name(contract_type)} is not a service contract", param="contract_type")
        self.contract_type = contract_type
        self.instance_cache = instance_cache or default_instance_cache
        self.type_cache = type_cache or default_type_cache
        self.binding_registry = binding_registry or default_registry
        self.settings = settings

    def build_address(self, host: str, port: int, path: str | None = None) -> str:
        return build_address(self.contract_type, host, port, path)

    def get_instance(
        self,
        strategy: ProxyStrategy | str,
        *,
        configuration_name: str | None = None,
        address: str | None = None,
        host: str | None = None,
        port: int | None = None,
        path: str | None = None,
        binding: Binding | None = None,
        binding_type: type[Binding] | None = None,
        from_cache: bool = True,
    ) -> Any:
        strategy = ProxyStrategy(strategy)
        if host is not None or port is not None:
            if address is not None:
                raise ArgumentError("Pass either address or host and port, not both", param="address")
            if host is None or port is None:
                raise ArgumentError("host and port must be given together", param="host" if host is None else "port")
            address = self.build_address(host, port, path)
        check_uri(address)
        if binding is not None and binding_type is not None:
            raise ArgumentError("Pass either a binding or a binding type, not both", param="binding")
        if binding_type is not None:
            check_binding_type(binding_type)

        if binding is not None:
            if not isinstance(binding, Binding):
                raise ArgumentError(f"{binding!r} is not a {full_name(Binding)} instance", param="binding")
            if address is None:
                raise ArgumentError("An address is required when a binding is supplied", param="address")
            return self._construct(strategy, None, address, binding)

        if binding_type is not None:
            if address is None:
                raise ArgumentError("An address is required when a binding type is supplied", param="address")
            key = build_cache_key(full_name(binding_type), address)
            factory = lambda: self._construct(strategy, None, address, self.binding_registry.resolve(binding_type))
        elif configuration_name is None and address is not None:
            key = build_cache_key(None, address)
            factory = lambda: self._construct(
                strategy, None, address, self.binding_registry.resolve(self.binding_registry.type_for_address(address))
            )
        else:
            key = build_cache_key(configuration_name, address)
            factory = lambda: self._construct(strategy, configuration_name, address, None)
        return self.instance_cache.get(self.contract_type, strategy, key, factory, from_cache=from_cache)

    def _construct(self, strategy: ProxyStrategy, configuration_name: str | None, address: str | None, binding: Binding | None) -> Any:
        proxy_type = self.type_cache.get_or_build(self.contract_type, strategy)
        if strategy == ProxyStrategy.CLIENT_BASE:
            return proxy_type(configuration_name, address, binding, settings=self.settings)
        return proxy_type(
            endpoint_configuration_name=configuration_name,
            address=address,
            binding=binding,
            settings=self.settings,
            type_cache=self.type_cache,
        )

    def get_client_base_instance(self, **kwargs: Any) -> Any:
        return self.get_instance(ProxyStrategy.CLIENT_BASE, **kwargs)

    def get_per_session_throwable_instance(self, **kwargs: Any) -> Any:
        return self.get_instance(ProxyStrategy.PER_SESSION_THROWABLE, **kwargs)

    def get_per_session_unthrowable_instance(self, **kwargs: Any) -> Any:
        return self.get_instance(ProxyStrategy.PER_SESSION_UNTHROWABLE, **kwargs)

    def get_per_call_throwable_instance(self, **kwargs: Any) -> Any:
        return self.get_instance(ProxyStrategy.PER_CALL_THROWABLE, **kwargs)

    def get_per_call_unthrowable_instance(self, **kwargs: Any) -> Any:
        return self.get_instance(ProxyStrategy.PER_CALL_UNTHROWABLE, **kwargs)
