"""ProxyLifecycleManager: owns one client instance and its lifecycle.

The manager creates the underlying client lazily, initializes it right after
construction (credential, binding and resolver callbacks, the message
inspector behavior, serializer settings) and dispatches late-bound calls
through the contract's operation registry. What happens when a call fails and
how long an instance lives are decided by the flavors in ``strategies``.
"""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Any, Callable, Sequence

from loguru import logger

from dynclient.bindings import Binding
from dynclient.client.base import ClientBase, CommunicationState
from dynclient.client.behaviors import ClientCredentials, SerializerOperationBehavior
from dynclient.client.contract import contract_type_of, is_contract_type, operations_of
from dynclient.client.registry import OperationEntry, OperationRegistry
from dynclient.config.access import get_config
from dynclient.core.description import EndpointAddress, ServiceEndpoint
from dynclient.inspection.behavior import MessageInspectorEndpointBehavior
from dynclient.inspection.events import ErrorEventArgs, EventHook
from dynclient.synthesis.type_cache import ClientTypeCache, ProxyStrategy, default_type_cache
from dynclient.utils.exceptions import (
    ArgumentError,
    ArgumentMismatchError,
    InvocationError,
    ObjectDisposedError,
    classify_exception,
    sanitize_error_message,
)
from dynclient.utils.helpers import full_name

if TYPE_CHECKING:
    from dynclient.config.schema import Settings


class ProxyLifecycleManager:
    """Uniform invocation surface over one lazily created client instance.

    Not safe for concurrent ``open``/``close``/``call`` from several threads;
    only instance creation is serialized.
    """

    def __init__(
        self,
        target: type | None = None,
        *,
        endpoint_configuration_name: str | None = None,
        address: str | EndpointAddress | None = None,
        binding: Binding | None = None,
        settings: Settings | None = None,
        type_cache: ClientTypeCache | None = None,
    ):
        target = target or contract_type_of(type(self))
        if target is None:
            raise ArgumentError(f"{full_name(type(self))} needs a contract or client type", param="target")
        if isinstance(target, type) and issubclass(target, ClientBase):
            client_type = target
        elif is_contract_type(target):
            client_type = (type_cache or default_type_cache).get_or_build(target, ProxyStrategy.CLIENT_BASE)
        else:
            raise ArgumentError(f"{full_name(target)} is not a service contract or client type", param="target")

        self._client_type = client_type
        self._operations: OperationRegistry = operations_of(client_type)
        self._endpoint_configuration_name = endpoint_configuration_name
        self._address = address
        self._binding = binding
        self._settings = settings

        self._proxy: ClientBase | None = None
        self._proxy_lock = threading.Lock()
        self._disposed = False
        self._is_aborted = False
        self._last_state = CommunicationState.CREATED
        self._last_endpoint: ServiceEndpoint | None = None
        self._tag: Any = None

        inspection = (settings or get_config()).inspection
        self._ignore_message_inspect = inspection.ignore_message_inspect
        self._ignore_message_validate = inspection.ignore_message_validate

        self._set_client_credentials_action: Callable[[ClientCredentials], None] | None = None
        self._set_binding_action: Callable[[Binding], None] | None = None
        self._set_serializer_resolver_action: Callable[[SerializerOperationBehavior], None] | None = None
        self._credentials_dirty = False
        self._binding_dirty = False
        self._resolver_dirty = False

        self._sending_request = EventHook("sending_request")
        self._receiving_reply = EventHook("receiving_reply")
        self._error_occurred = EventHook("error_occurred")

    # Events

    @property
    def sending_request(self) -> EventHook:
        return self._sending_request

    @property
    def receiving_reply(self) -> EventHook:
        return self._receiving_reply

    @property
    def error_occurred(self) -> EventHook:
        return self._error_occurred

    # Configuration callbacks

    @property
    def set_client_credentials_action(self) -> Callable[[ClientCredentials], None] | None:
        return self._set_client_credentials_action

    @set_client_credentials_action.setter
    def set_client_credentials_action(self, action: Callable[[ClientCredentials], None] | None) -> None:
        self._set_client_credentials_action = action
        self._credentials_dirty = True

    @property
    def set_binding_action(self) -> Callable[[Binding], None] | None:
        return self._set_binding_action

    @set_binding_action.setter
    def set_binding_action(self, action: Callable[[Binding], None] | None) -> None:
        self._set_binding_action = action
        self._binding_dirty = True

    @property
    def set_serializer_resolver_action(self) -> Callable[[SerializerOperationBehavior], None] | None:
        return self._set_serializer_resolver_action

    @set_serializer_resolver_action.setter
    def set_serializer_resolver_action(self, action: Callable[[SerializerOperationBehavior], None] | None) -> None:
        self._set_serializer_resolver_action = action
        self._resolver_dirty = True

    @property
    def ignore_message_inspect(self) -> bool:
        return self._ignore_message_inspect

    @ignore_message_inspect.setter
    def ignore_message_inspect(self, value: bool) -> None:
        self._ignore_message_inspect = value
        behavior = self._current_behavior()
        if behavior is not None:
            behavior.ignore_message_inspect = value

    @property
    def ignore_message_validate(self) -> bool:
        return self._ignore_message_validate

    @ignore_message_validate.setter
    def ignore_message_validate(self, value: bool) -> None:
        self._ignore_message_validate = value
        behavior = self._current_behavior()
        if behavior is not None:
            behavior.ignore_message_validate = value

    # State

    @property
    def tag(self) -> Any:
        return self._tag

    @tag.setter
    def tag(self, value: Any) -> None:
        self._tag = value

    @property
    def is_aborted(self) -> bool:
        return self._is_aborted

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def client_type(self) -> type:
        return self._client_type

    @property
    def operations(self) -> OperationRegistry:
        return self._operations

    @property
    def state(self) -> CommunicationState:
        proxy = self._proxy
        return proxy.state if proxy is not None else self._last_state

    @property
    def endpoint(self) -> ServiceEndpoint:
        """Endpoint of the owned instance; creates the instance when needed."""
        self._check_disposed()
        return self._get_proxy().endpoint

    @property
    def current_endpoint(self) -> ServiceEndpoint | None:
        proxy = self._proxy
        return proxy.endpoint if proxy is not None else self._last_endpoint

    @property
    def client_credentials(self) -> ClientCredentials:
        self._check_disposed()
        return self._get_proxy().client_credentials

    def get_property(self, name: str) -> Any:
        self._check_disposed()
        proxy = self._get_proxy()
        if not hasattr(proxy, name):
            raise AttributeError(f"{type(proxy).__name__} has no property {name!r}")
        return getattr(proxy, name)

    def set_property(self, name: str, value: Any) -> None:
        self._check_disposed()
        proxy = self._get_proxy()
        if not hasattr(proxy, name):
            raise AttributeError(f"{type(proxy).__name__} has no property {name!r}")
        setattr(proxy, name, value)

    # Lifecycle

    def open(self) -> None:
        """Open the owned instance; on failure the instance is closed and the fault re-raised."""
        self._check_disposed()
        proxy = self._get_proxy()
        try:
            proxy.open()
        except Exception:
            self._close_proxy()
            raise
        self._is_aborted = False

    def close(self) -> None:
        """Graceful close; falls back to abort and never raises for channel errors."""
        self._close_proxy()

    def abort(self) -> None:
        with self._proxy_lock:
            proxy, self._proxy = self._proxy, None
        if proxy is not None:
            self._record_teardown(proxy)
            try:
                proxy.abort()
            except Exception as e:
                logger.debug(f"Ignoring error while aborting {type(proxy).__name__}: {e}")
        self._last_state = CommunicationState.CLOSED
        self._is_aborted = True

    def dispose(self) -> None:
        if self._disposed:
            return
        try:
            self._close_proxy()
        finally:
            self._disposed = True

    def __enter__(self) -> ProxyLifecycleManager:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.dispose()

    # Calls

    def call(self, name: str, *args: Any) -> Any:
        self._check_disposed()
        return self._call(self._operations.resolve(name), args)

    def call_with_types(self, name: str, param_types: Sequence[Any], args: Sequence[Any]) -> Any:
        self._check_disposed()
        if len(param_types) != len(args):
            raise ArgumentMismatchError(len(param_types), len(args))
        return self._call(self._operations.resolve_signature(name, param_types), tuple(args))

    def call_operation(self, operation: Any, *args: Any) -> Any:
        self._check_disposed()
        return self._call(self._operations.resolve_operation(operation), args)

    def _call(self, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        expected = len(entry.description.parameters)
        if len(args) != expected:
            raise ArgumentError(f"{entry.name} takes {expected} argument(s), {len(args)} given", param="args")
        return self._invoke(entry, args)

    def _invoke(self, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not define an invocation policy")

    def _dispatch(self, proxy: ClientBase, entry: OperationEntry, args: tuple[Any, ...]) -> Any:
        """Late-bound call; any failure comes back wrapped in InvocationError."""
        try:
            return getattr(proxy, entry.attribute)(*args)
        except Exception as e:
            raise InvocationError(entry.name, e) from e

    def _report_fault(self, exc: BaseException, entry: OperationEntry | None = None) -> None:
        code, _, _ = classify_exception(exc)
        operation = entry.name if entry is not None else None
        logger.warning(
            f"{type(self).__name__} call {operation or '<open>'} failed [{code}]: {sanitize_error_message(str(exc))}"
        )
        self._error_occurred.fire(self, ErrorEventArgs(exc, operation=operation, endpoint=self.current_endpoint))

    # Instance management

    def _check_disposed(self) -> None:
        if self._disposed:
            raise ObjectDisposedError(type(self).__name__)

    def _create_instance(self) -> ClientBase:
        instance = self._client_type(
            self._endpoint_configuration_name,
            self._address,
            self._binding,
            settings=self._settings,
        )
        self._init_proxy_instance(instance)
        self._last_endpoint = instance.endpoint
        return instance

    def _get_proxy(self) -> ClientBase:
        proxy = self._proxy
        if proxy is None:
            with self._proxy_lock:
                if self._proxy is None:
                    self._proxy = self._create_instance()
                    self._is_aborted = False
                    return self._proxy
                proxy = self._proxy
        if self._credentials_dirty or self._binding_dirty or self._resolver_dirty:
            self._init_proxy_instance(proxy, only_dirty=True)
        return proxy

    def _init_proxy_instance(self, instance: ClientBase, only_dirty: bool = False) -> None:
        if self._set_client_credentials_action is not None and (not only_dirty or self._credentials_dirty):
            self._set_client_credentials_action(instance.client_credentials)
        if self._set_binding_action is not None and (not only_dirty or self._binding_dirty):
            self._set_binding_action(instance.endpoint.binding)

        endpoint = instance.endpoint
        if endpoint.find_behavior(MessageInspectorEndpointBehavior) is None:
            behavior = MessageInspectorEndpointBehavior(
                ignore_message_inspect=self._ignore_message_inspect,
                ignore_message_validate=self._ignore_message_validate,
            )
            self._forward_events(behavior)
            endpoint.behaviors.append(behavior)

        apply_resolver = self._set_serializer_resolver_action is not None and (not only_dirty or self._resolver_dirty)
        for operation in endpoint.contract.operations:
            serializer = operation.find_behavior(SerializerOperationBehavior)
            if serializer is None:
                serializer = SerializerOperationBehavior()
                operation.behaviors.append(serializer)
            serializer.max_items_in_object_graph = sys.maxsize
            serializer.ignore_extension_data = True
            if apply_resolver:
                self._set_serializer_resolver_action(serializer)

        self._credentials_dirty = False
        self._binding_dirty = False
        self._resolver_dirty = False

    def _forward_events(self, behavior: MessageInspectorEndpointBehavior) -> None:
        behavior.events.sending_request.subscribe(lambda sender, args: self._sending_request.fire(self, args))
        behavior.events.receiving_reply.subscribe(lambda sender, args: self._receiving_reply.fire(self, args))
        behavior.events.error_occurred.subscribe(lambda sender, args: self._error_occurred.fire(self, args))

    def _current_behavior(self) -> MessageInspectorEndpointBehavior | None:
        proxy = self._proxy
        if proxy is None:
            return None
        return proxy.endpoint.find_behavior(MessageInspectorEndpointBehavior)

    def _record_teardown(self, proxy: ClientBase) -> None:
        self._last_endpoint = proxy.endpoint
        self._last_state = (
            CommunicationState.FAULTED if proxy.state == CommunicationState.FAULTED else CommunicationState.CLOSED
        )

    def _close_proxy_instance(self, proxy: ClientBase) -> None:
        """Close one instance, aborting it when close fails. Never raises."""
        self._record_teardown(proxy)
        try:
            proxy.close()
        except Exception as e:
            logger.warning(f"Close of {type(proxy).__name__} failed, aborting: {sanitize_error_message(str(e))}")
            try:
                proxy.abort()
            except Exception as abort_error:
                logger.debug(f"Ignoring error while aborting {type(proxy).__name__}: {abort_error}")
            self._is_aborted = True

    def _close_proxy(self) -> None:
        with self._proxy_lock:
            proxy, self._proxy = self._proxy, None
        if proxy is not None:
            self._close_proxy_instance(proxy)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._client_type.__name__} {self.state.value}>"
