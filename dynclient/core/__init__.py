"""Shared description, message and collaborator types."""

from .contracts import Channel, ClientBuilder, MetadataSource
from .description import (
    DEFAULT_NAMESPACE,
    Diagnostic,
    WILDCARD_ACTION,
    ContractDescription,
    DataContractDescription,
    EndpointAddress,
    OperationDescription,
    ParameterDescription,
    ServiceEndpoint,
)
from .protocol import Message, MessageFault
from .serialization import clone_message, decode_message, encode_message, to_wire

__all__ = [
    "Channel",
    "ClientBuilder",
    "MetadataSource",
    "DEFAULT_NAMESPACE",
    "WILDCARD_ACTION",
    "Diagnostic",
    "ContractDescription",
    "DataContractDescription",
    "EndpointAddress",
    "OperationDescription",
    "ParameterDescription",
    "ServiceEndpoint",
    "Message",
    "MessageFault",
    "clone_message",
    "decode_message",
    "encode_message",
    "to_wire",
]
