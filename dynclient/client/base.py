"""ClientBase: the base class of every synthesized client type.

A client owns one endpoint (a private copy of the contract description, the
binding and the address), one channel and a small communication state
machine. Generated operation methods call ``_invoke``.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from dynclient.bindings import Binding, default_registry
from dynclient.client.behaviors import ClientCredentials, SerializerOperationBehavior
from dynclient.client.contract import contract_type_of, operation_hints
from dynclient.client.registry import OperationRegistry
from dynclient.core.description import EndpointAddress, ServiceEndpoint
from dynclient.core.protocol import Message
from dynclient.core.serialization import to_wire
from dynclient.utils.exceptions import (
    ArgumentError,
    ChannelFaultError,
    EndpointNotFoundError,
    ObjectDisposedError,
    RemoteFaultError,
    UriFormatError,
)
from dynclient.utils.helpers import full_name, is_absolute_uri

if TYPE_CHECKING:
    from dynclient.config.schema import Settings
    from dynclient.core.contracts import Channel


class CommunicationState(str, Enum):
    CREATED = "created"
    OPENING = "opening"
    OPENED = "opened"
    CLOSING = "closing"
    CLOSED = "closed"
    FAULTED = "faulted"


@dataclass(slots=True)
class ClientRuntime:
    """What endpoint behaviors may extend when a client opens."""

    client_credentials: ClientCredentials
    message_inspectors: list[Any] = field(default_factory=list)


class ClientBase:
    def __init__(
        self,
        endpoint_configuration_name: str | None = None,
        address: str | EndpointAddress | None = None,
        binding: Binding | None = None,
        *,
        settings: Settings | None = None,
    ):
        contract_type = contract_type_of(type(self))
        if contract_type is None:
            raise ArgumentError(f"{full_name(type(self))} does not implement a service contract")
        self._contract_type = contract_type
        contract = contract_type.__contract__
        configuration_name: str | None = None

        if binding is None and endpoint_configuration_name is None and address is not None:
            uri = address.uri if isinstance(address, EndpointAddress) else str(address)
            if not is_absolute_uri(uri):
                raise UriFormatError(uri)
            binding = default_registry.resolve(default_registry.type_for_address(uri))
        elif binding is None:
            if settings is None:
                from dynclient.config.access import get_config

                settings = get_config()
            if endpoint_configuration_name is not None:
                entry = settings.endpoints.get(endpoint_configuration_name)
                if entry is None:
                    raise EndpointNotFoundError(endpoint_configuration_name, contract.namespace)
                configuration_name = endpoint_configuration_name
            else:
                found = settings.find_endpoint_config(contract.name)
                if found is None:
                    raise EndpointNotFoundError(contract.name, contract.namespace)
                configuration_name, entry = found
            binding = default_registry.resolve(entry.binding)
            if address is None:
                address = entry.address
        elif address is None:
            raise ArgumentError("An address is required when a binding is supplied", param="address")

        uri = address.uri if isinstance(address, EndpointAddress) else str(address)
        if not is_absolute_uri(uri):
            raise UriFormatError(uri)

        self.endpoint = ServiceEndpoint(
            contract=contract.copy(),
            binding=binding,
            address=EndpointAddress(uri),
            configuration_name=configuration_name,
            contract_type=contract_type,
        )
        self.client_credentials = ClientCredentials()
        self.state = CommunicationState.CREATED
        self._channel: Channel | None = None
        self._runtime = ClientRuntime(self.client_credentials)
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    @property
    def operations(self) -> OperationRegistry:
        return self._contract_type.__operations__

    @property
    def inner_channel(self) -> Channel | None:
        return self._channel

    def open(self) -> None:
        if self.state == CommunicationState.OPENED:
            return
        self._ensure_usable()
        self.state = CommunicationState.OPENING
        try:
            runtime = ClientRuntime(self.client_credentials)
            for behavior in list(self.endpoint.behaviors):
                apply = getattr(behavior, "apply_client_behavior", None)
                if apply is not None:
                    apply(self.endpoint, runtime)
            channel = self.endpoint.binding.create_channel(self.endpoint.address.uri)
            channel.open(self.endpoint.binding.open_timeout)
        except Exception:
            self.state = CommunicationState.FAULTED
            raise
        self._runtime = runtime
        self._channel = channel
        self.state = CommunicationState.OPENED
        logger.debug(f"Opened {type(self).__name__} to {self.endpoint.address}")

    def close(self) -> None:
        """Graceful close; a faulted client must be aborted instead."""
        if self.state == CommunicationState.CLOSED:
            return
        if self.state == CommunicationState.FAULTED:
            raise ChannelFaultError(
                f"{type(self).__name__} is in the Faulted state and cannot be closed",
                self.endpoint.address.uri,
                code="COMMUNICATION_OBJECT_FAULTED",
            )
        channel, self._channel = self._channel, None
        self.state = CommunicationState.CLOSING
        try:
            if channel is not None:
                channel.close(self.endpoint.binding.close_timeout)
        except Exception:
            self.state = CommunicationState.FAULTED
            self._channel = channel
            raise
        finally:
            self._shutdown_executor()
        self.state = CommunicationState.CLOSED

    def abort(self) -> None:
        channel, self._channel = self._channel, None
        try:
            if channel is not None:
                channel.abort()
        except Exception as exc:
            logger.debug(f"Ignoring error while aborting {type(self).__name__}: {exc}")
        finally:
            self._shutdown_executor()
            self.state = CommunicationState.CLOSED

    def __enter__(self) -> ClientBase:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self.state == CommunicationState.FAULTED:
            self.abort()
        else:
            self.close()

    def _ensure_usable(self) -> None:
        if self.state in (CommunicationState.CLOSING, CommunicationState.CLOSED):
            raise ObjectDisposedError(type(self).__name__)
        if self.state == CommunicationState.FAULTED:
            raise ChannelFaultError(
                f"{type(self).__name__} cannot be used for communication because it is in the Faulted state",
                self.endpoint.address.uri,
                code="COMMUNICATION_OBJECT_FAULTED",
            )

    def _invoke(self, attribute: str, args: tuple[Any, ...]) -> Any:
        entry = self.operations.resolve(attribute)
        operation = self.endpoint.contract.find_operation(entry.name) or entry.description
        if len(args) != len(operation.parameters):
            raise ArgumentError(
                f"{entry.name} takes {len(operation.parameters)} argument(s), {len(args)} given",
                param="args",
            )
        if self.state == CommunicationState.CREATED:
            self.open()
        self._ensure_usable()
        channel = self._channel

        request = Message(
            action=operation.action,
            body={p.name: to_wire(v) for p, v in zip(operation.parameters, args)},
            message_id=f"urn:uuid:{uuid.uuid4()}",
            headers=self.client_credentials.to_headers(),
        )
        correlations = [(inspector, inspector.before_send_request(request, channel)) for inspector in self._runtime.message_inspectors]
        binding = self.endpoint.binding
        try:
            if operation.is_one_way:
                channel.send(request, binding.send_timeout)
                return None
            reply = channel.request(request, binding.send_timeout)
        except ChannelFaultError:
            self.state = CommunicationState.FAULTED
            raise
        for inspector, correlation_state in reversed(correlations):
            inspector.after_receive_reply(reply, correlation_state)

        if reply.is_fault:
            fault = reply.fault
            raise RemoteFaultError(fault.code, fault.reason, self.endpoint.address.uri, fault.detail)
        raw = (reply.body or {}).get("result")
        _, return_hint = operation_hints(self._contract_type, entry.attribute)
        serializer = operation.find_behavior(SerializerOperationBehavior) or SerializerOperationBehavior()
        return serializer.read(raw, return_hint, address=self.endpoint.address.uri)

    def _invoke_async(self, attribute: str, args: tuple[Any, ...]) -> Future:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dynclient-async")
            executor = self._executor
        return executor.submit(self._invoke, attribute, args)

    def _shutdown_executor(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.state.value} {self.endpoint.address}>"
