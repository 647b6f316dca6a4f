"""Endpoint behavior that installs the message inspector."""

from __future__ import annotations

from typing import Any

from dynclient.core.description import ServiceEndpoint
from dynclient.inspection.events import InspectorEvents
from dynclient.inspection.inspector import MessageInspector


class MessageInspectorEndpointBehavior:
    """Attached at most once per endpoint; owns the events its inspectors raise."""

    def __init__(self, *, ignore_message_inspect: bool = False, ignore_message_validate: bool = False):
        self.events = InspectorEvents()
        self.inspector: MessageInspector | None = None
        self._ignore_message_inspect = ignore_message_inspect
        self._ignore_message_validate = ignore_message_validate

    @property
    def ignore_message_inspect(self) -> bool:
        return self._ignore_message_inspect

    @ignore_message_inspect.setter
    def ignore_message_inspect(self, value: bool) -> None:
        self._ignore_message_inspect = value
        if self.inspector is not None:
            self.inspector.ignore_message_inspect = value

    @property
    def ignore_message_validate(self) -> bool:
        return self._ignore_message_validate

    @ignore_message_validate.setter
    def ignore_message_validate(self, value: bool) -> None:
        self._ignore_message_validate = value
        if self.inspector is not None:
            self.inspector.ignore_message_validate = value

    def _create_inspector(self, endpoint: ServiceEndpoint, **context: Any) -> MessageInspector:
        self.inspector = MessageInspector(
            endpoint,
            events=self.events,
            ignore_message_inspect=self._ignore_message_inspect,
            ignore_message_validate=self._ignore_message_validate,
            **context,
        )
        return self.inspector

    def apply_client_behavior(self, endpoint: ServiceEndpoint, runtime: Any) -> None:
        runtime.message_inspectors.append(
            self._create_inspector(endpoint, client_credentials=runtime.client_credentials)
        )

    def apply_dispatch_behavior(self, endpoint: ServiceEndpoint, runtime: Any, service_host: Any = None) -> None:
        runtime.message_inspectors.append(self._create_inspector(endpoint, service_host=service_host))
