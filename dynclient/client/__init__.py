"""Client-side runtime: contract declarations, operation registry and ClientBase."""

from .base import ClientBase, ClientRuntime, CommunicationState
from .behaviors import ClientCredentials, SerializerOperationBehavior
from .contract import (
    contract_of,
    contract_type_of,
    is_contract_type,
    operation_contract,
    operations_of,
    service_contract,
)
from .registry import OperationEntry, OperationRegistry

__all__ = [
    "ClientBase",
    "ClientRuntime",
    "CommunicationState",
    "ClientCredentials",
    "SerializerOperationBehavior",
    "contract_of",
    "contract_type_of",
    "is_contract_type",
    "operation_contract",
    "operations_of",
    "service_contract",
    "OperationEntry",
    "OperationRegistry",
]
