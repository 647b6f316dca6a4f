"""In-process service host for the loopback transport.

The host routes request frames to an implementation object, runs the serving
side of the message inspector around every exchange and publishes its
contract as metadata fragments.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from dynclient.bindings import Binding, LoopbackBinding, default_registry
from dynclient.channels.loopback import register_listener, unregister_listener
from dynclient.client.contract import contract_of, is_contract_type, operation_hints, operations_of
from dynclient.core.description import WILDCARD_ACTION, EndpointAddress, OperationDescription, ServiceEndpoint
from dynclient.core.protocol import Message
from dynclient.core.serialization import to_wire
from dynclient.inspection.behavior import MessageInspectorEndpointBehavior
from dynclient.inspection.events import InspectorEvents
from dynclient.utils.exceptions import ArgumentError, sanitize_error_message
from dynclient.utils.helpers import full_name, is_absolute_uri, snake_to_camel


@dataclass(slots=True)
class DispatchRuntime:
    message_inspectors: list[Any] = field(default_factory=list)


class ServiceHost:
    """Serves one contract implementation at a ``loopback://`` address."""

    def __init__(
        self,
        contract_type: type,
        implementation: Any,
        address: str,
        *,
        binding: Binding | None = None,
        ignore_message_inspect: bool = False,
        ignore_message_validate: bool = False,
    ):
        if not is_contract_type(contract_type):
            raise ArgumentError(f"{full_name(contract_type)} is not a service contract", param="contract_type")
        if not is_absolute_uri(address):
            raise ArgumentError(f"Invalid host address: {address!r}", param="address")
        binding = binding or default_registry.resolve(LoopbackBinding)
        if not isinstance(binding, LoopbackBinding):
            raise ArgumentError(f"Only loopback bindings can be hosted, got {type(binding).__name__}", param="binding")

        self.contract_type = contract_type
        self.implementation = implementation
        self.endpoint = ServiceEndpoint(
            contract=contract_of(contract_type).copy(),
            binding=binding,
            address=EndpointAddress(address),
            contract_type=contract_type,
        )
        self.behavior = MessageInspectorEndpointBehavior(
            ignore_message_inspect=ignore_message_inspect,
            ignore_message_validate=ignore_message_validate,
        )
        self.endpoint.behaviors.append(self.behavior)
        self._runtime = DispatchRuntime()
        self._routes: dict[str, OperationDescription] = {}
        self._fallback: OperationDescription | None = None
        for operation in self.endpoint.contract.operations:
            if operation.is_wildcard:
                self._fallback = self._fallback or operation
            else:
                self._routes[operation.effective_action] = operation
        self._lock = threading.Lock()
        self.is_open = False

    @property
    def address(self) -> str:
        return self.endpoint.address.uri

    @property
    def events(self) -> InspectorEvents:
        return self.behavior.events

    def open(self) -> None:
        with self._lock:
            if self.is_open:
                return
            runtime = DispatchRuntime()
            self.behavior.apply_dispatch_behavior(self.endpoint, runtime, self)
            register_listener(self.address, self)
            self._runtime = runtime
            self.is_open = True
        logger.info(f"Service host for {self.endpoint.contract.name} listening at {self.address}")

    def close(self) -> None:
        with self._lock:
            if not self.is_open:
                return
            unregister_listener(self.address)
            self.is_open = False
        logger.info(f"Service host at {self.address} closed")

    def __enter__(self) -> ServiceHost:
        self.open()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def route(self, action: str) -> OperationDescription | None:
        return self._routes.get(action) or self._fallback

    def dispatch(self, message: Message) -> Message | None:
        """Handle one request frame; returns the reply, or None for one-way operations.

        Correlation states live in this call only, so concurrent exchanges
        never share them.
        """
        inspectors = list(self._runtime.message_inspectors)
        states = [(inspector, inspector.after_receive_request(message, None, self)) for inspector in inspectors]
        operation = self.route(message.action)
        reply: Message | None
        if operation is None:
            logger.warning(f"No operation of {self.endpoint.contract.name} handles action {message.action!r}")
            reply = Message.create_fault(
                message.action,
                "ActionNotSupported",
                f"The action {message.action!r} is not supported by {self.endpoint.contract.name}",
                relates_to=message.message_id,
            )
        else:
            reply = self._invoke(operation, message)
        for inspector, state in reversed(states):
            inspector.before_send_reply(reply, state)
        return reply

    def _invoke(self, operation: OperationDescription, message: Message) -> Message | None:
        entry = operations_of(self.contract_type).resolve(operation.name)
        param_hints, _ = operation_hints(self.contract_type, entry.attribute)
        body = message.body or {}
        try:
            args = [
                TypeAdapter(hint).validate_python(body.get(param.name))
                for param, hint in zip(operation.parameters, param_hints)
            ]
            result = getattr(self.implementation, entry.attribute)(*args)
        except ValidationError as e:
            logger.warning(f"Rejected {operation.name} request: {sanitize_error_message(str(e))}")
            fault = ("InvalidMessage", str(e))
        except Exception as e:
            logger.warning(
                f"{full_name(type(self.implementation))}.{entry.attribute} raised "
                f"{type(e).__name__}: {sanitize_error_message(str(e))}"
            )
            fault = (type(e).__name__, str(e))
        else:
            if operation.is_one_way:
                return None
            reply_action = operation.reply_action
            if not reply_action or reply_action == WILDCARD_ACTION:
                reply_action = f"{message.action}Response" if message.action else ""
            return Message(action=reply_action, body={"result": to_wire(result)}, relates_to=message.message_id)
        if operation.is_one_way:
            return None
        return Message.create_fault(message.action, fault[0], fault[1], relates_to=message.message_id)

    def export_metadata(self) -> list[dict[str, Any]]:
        """Metadata fragments describing this endpoint (camelCase keys)."""
        contract = contract_of(self.contract_type)
        binding = self.endpoint.binding
        fragments: list[dict[str, Any]] = [
            {"kind": "dataContract", "name": dc.name, "namespace": dc.namespace, "fields": dict(dc.fields)}
            for dc in contract.data_contracts
        ]
        fragments.append(
            {
                "kind": "contract",
                "name": contract.name,
                "namespace": contract.namespace,
                "operations": [
                    {
                        "name": op.name,
                        "parameters": [{"name": p.name, "type": p.type_name} for p in op.parameters],
                        "returnType": op.return_type,
                        "isOneWay": op.is_one_way,
                        "action": op.action,
                        "replyAction": op.reply_action,
                    }
                    for op in contract.operations
                ],
            }
        )
        binding_name = binding.name or f"{contract.name}Binding"
        binding_fragment: dict[str, Any] = {"kind": "binding", "name": binding_name, "type": binding.scheme}
        for key in ("open_timeout", "close_timeout", "send_timeout", "receive_timeout", "max_received_message_size"):
            binding_fragment[snake_to_camel(key)] = getattr(binding, key)
        fragments.append(binding_fragment)
        fragments.append(
            {
                "kind": "endpoint",
                "name": f"{contract.name}Endpoint",
                "contract": contract.name,
                "contractNamespace": contract.namespace,
                "binding": binding_name,
                "address": self.address,
            }
        )
        return fragments
