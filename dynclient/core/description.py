"""Normalized service description model.

A contract is a named operation set identified by ``(name, namespace)``. An
endpoint ties a contract to a binding and an address. These objects are what
the metadata catalog produces and what every synthesized client carries.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dynclient.utils.helpers import full_name, normalize_address, type_name

if TYPE_CHECKING:
    from dynclient.bindings import Binding

DEFAULT_NAMESPACE = "http://tempuri.org/"
WILDCARD_ACTION = "*"


@dataclass(slots=True)
class Diagnostic:
    """Metadata import or code generation problem; errors have ``is_warning=False``."""

    message: str
    is_warning: bool = True

    def __str__(self) -> str:
        return f"{'warning' if self.is_warning else 'error'}: {self.message}"


def default_action(namespace: str, contract_name: str, operation_name: str) -> str:
    separator = "" if namespace.endswith("/") else "/"
    return f"{namespace}{separator}{contract_name}/{operation_name}"


@dataclass(slots=True)
class ParameterDescription:
    name: str
    type_name: str = "Any"


@dataclass(slots=True)
class OperationDescription:
    """One operation of a contract."""

    name: str
    parameters: list[ParameterDescription] = field(default_factory=list)
    return_type: str = "None"
    is_one_way: bool = False
    action: str = ""
    reply_action: str = ""
    behaviors: list[Any] = field(default_factory=list)

    @property
    def is_wildcard(self) -> bool:
        return self.action == WILDCARD_ACTION

    @property
    def effective_action(self) -> str:
        """Action used for routing and validation; a wildcard becomes empty."""
        return "" if self.is_wildcard else self.action

    @property
    def signature(self) -> tuple[str, ...]:
        return tuple(type_name(p.type_name) for p in self.parameters)

    def find_behavior(self, behavior_type: type) -> Any | None:
        for behavior in self.behaviors:
            if isinstance(behavior, behavior_type):
                return behavior
        return None


@dataclass(slots=True)
class DataContractDescription:
    """Record type referenced by operation parameters or results."""

    name: str
    namespace: str = DEFAULT_NAMESPACE
    fields: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ContractDescription:
    name: str
    namespace: str = DEFAULT_NAMESPACE
    operations: list[OperationDescription] = field(default_factory=list)
    data_contracts: list[DataContractDescription] = field(default_factory=list)

    @property
    def identity(self) -> tuple[str, str]:
        return (self.name, self.namespace)

    def matches(self, name: str, namespace: str | None = None) -> bool:
        """Case-insensitive identity match; namespace ignored when not given."""
        if self.name.lower() != name.lower():
            return False
        return namespace is None or self.namespace.lower() == namespace.lower()

    def find_operation(self, name: str) -> OperationDescription | None:
        for operation in self.operations:
            if operation.name == name:
                return operation
        return None

    def copy(self) -> ContractDescription:
        """Independent copy; behaviors attached to the copy never leak back."""
        return copy.deepcopy(self)


@dataclass(slots=True)
class EndpointAddress:
    uri: str

    @property
    def normalized(self) -> str:
        return normalize_address(self.uri)

    def __str__(self) -> str:
        return self.uri


@dataclass(slots=True, eq=False)
class ServiceEndpoint:
    """(contract, binding, address) triple plus the behaviors applied to it."""

    contract: ContractDescription
    binding: Binding
    address: EndpointAddress
    name: str | None = None
    configuration_name: str | None = None
    behaviors: list[Any] = field(default_factory=list)
    contract_type: type | None = None

    @property
    def cache_identity(self) -> tuple[tuple[str, str], str, str, str | None]:
        return (
            self.contract.identity,
            full_name(type(self.binding)),
            self.address.normalized,
            self.configuration_name,
        )

    def find_behavior(self, behavior_type: type) -> Any | None:
        for behavior in self.behaviors:
            if isinstance(behavior, behavior_type):
                return behavior
        return None

    def __repr__(self) -> str:
        return f"ServiceEndpoint({self.contract.name!r}, {type(self.binding).__name__}, {self.address.uri!r})"
