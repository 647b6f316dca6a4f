"""Message interception pipeline."""

from .behavior import MessageInspectorEndpointBehavior
from .events import (
    CorrelationState,
    ErrorEventArgs,
    EventHook,
    InspectorEvents,
    MessageInspectorEventArgs,
)
from .inspector import MessageInspector
from .schema import SchemaSet, export_schema_set, schema_set_for

__all__ = [
    "MessageInspectorEndpointBehavior",
    "CorrelationState",
    "ErrorEventArgs",
    "EventHook",
    "InspectorEvents",
    "MessageInspectorEventArgs",
    "MessageInspector",
    "SchemaSet",
    "export_schema_set",
    "schema_set_for",
]
