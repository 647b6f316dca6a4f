"""Message inspector for both the calling and the serving side of an endpoint."""

from __future__ import annotations

import uuid
from typing import Any

from loguru import logger

from dynclient.client.behaviors import ClientCredentials
from dynclient.core.description import ServiceEndpoint
from dynclient.core.protocol import Message
from dynclient.inspection.events import (
    CorrelationState,
    ErrorEventArgs,
    EventHook,
    InspectorEvents,
    MessageInspectorEventArgs,
)
from dynclient.inspection.schema import SchemaSet, schema_set_for
from dynclient.utils.exceptions import SchemaValidationError


class MessageInspector:
    """Observes every exchange of one endpoint.

    The one-way action set and the schema set are computed here, once per
    endpoint, and reused for every message.
    """

    def __init__(
        self,
        endpoint: ServiceEndpoint,
        *,
        events: InspectorEvents | None = None,
        client_credentials: ClientCredentials | None = None,
        service_host: Any = None,
        ignore_message_inspect: bool = False,
        ignore_message_validate: bool = False,
    ):
        self.endpoint = endpoint
        self.events = events or InspectorEvents()
        self.client_credentials = client_credentials
        self.service_host = service_host
        self.ignore_message_inspect = ignore_message_inspect
        self.ignore_message_validate = ignore_message_validate
        # Raw actions: a one-way wildcard operation is sent with action "*".
        self.one_way_actions = frozenset(op.action for op in endpoint.contract.operations if op.is_one_way)
        self.schema_set: SchemaSet = schema_set_for(endpoint.contract, endpoint.contract_type)

    def is_one_way(self, message: Message) -> bool:
        return message.action in self.one_way_actions

    def before_send_request(self, request: Message, channel: Any = None) -> uuid.UUID:
        message_id = uuid.uuid4()
        if self.ignore_message_inspect:
            return message_id
        is_one_way = self.is_one_way(request)
        validation_error = self.validate_message(request, message_id)
        logger.debug(f"Sending request {message_id} action={request.action} one_way={is_one_way}")
        self._raise(self.events.sending_request, request, message_id, is_one_way, validation_error)
        if is_one_way:
            self._raise(self.events.receiving_reply, None, message_id, True, None)
        return message_id

    def after_receive_reply(self, reply: Message, correlation_state: uuid.UUID) -> None:
        if self.ignore_message_inspect:
            return
        validation_error = self.validate_message(reply, correlation_state)
        logger.debug(f"Received reply {correlation_state} action={reply.action}")
        self._raise(self.events.receiving_reply, reply, correlation_state, False, validation_error)

    def after_receive_request(self, request: Message, channel: Any = None, instance_context: Any = None) -> CorrelationState:
        message_id = uuid.uuid4()
        is_one_way = self.is_one_way(request)
        state = CorrelationState(message_id, is_one_way)
        if self.ignore_message_inspect:
            return state
        validation_error = self.validate_message(request, message_id)
        logger.debug(f"Received request {message_id} action={request.action} one_way={is_one_way}")
        self._raise(self.events.receiving_request, request, message_id, is_one_way, validation_error)
        return state

    def before_send_reply(self, reply: Message | None, correlation_state: CorrelationState) -> None:
        if self.ignore_message_inspect:
            return
        is_one_way = reply is None or correlation_state.is_one_way
        validation_error = self.validate_message(reply, correlation_state.message_id)
        self._raise(self.events.sending_reply, reply, correlation_state.message_id, is_one_way, validation_error)

    def validate_message(self, message: Message | None, message_id: uuid.UUID) -> str | None:
        """Validation error text, or None.

        Failures are also published through ``error_occurred``; they never stop
        the message.
        """
        if self.ignore_message_validate or message is None or message.is_fault or message.is_empty:
            return None
        try:
            error = self.schema_set.validate(message.action, message.body)
        except Exception as e:
            logger.debug(f"Schema validation of {message.action} raised {type(e).__name__}: {e}")
            error = f"{type(e).__name__}: {e}"
        if error is not None:
            exc = SchemaValidationError(error, str(message_id), message.action)
            self.events.error_occurred.fire(self, ErrorEventArgs(exc, endpoint=self.endpoint))
        return error

    def _raise(
        self,
        hook: EventHook,
        message: Message | None,
        message_id: uuid.UUID,
        is_one_way: bool,
        validation_error: str | None,
    ) -> None:
        hook.fire(
            self,
            MessageInspectorEventArgs(
                message=message,
                message_id=message_id,
                is_one_way=is_one_way,
                validation_error=validation_error,
                endpoint=self.endpoint,
                client_credentials=self.client_credentials,
                service_host=self.service_host,
            ),
        )
