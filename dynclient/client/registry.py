"""Operation registry used for late-bound dispatch.

Built once when a contract type is declared; maps an operation name, a
``(name, parameter signature)`` pair or an operation descriptor to the client
attribute implementing it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from dynclient.core.description import ContractDescription, OperationDescription
from dynclient.utils.exceptions import MethodNotFoundError
from dynclient.utils.helpers import type_name


@dataclass(frozen=True, slots=True, eq=False)
class OperationEntry:
    name: str
    attribute: str
    signature: tuple[str, ...]
    description: OperationDescription


class OperationRegistry:
    def __init__(self, contract: ContractDescription, attributes: dict[str, str] | None = None):
        attributes = attributes or {}
        self.contract_name = contract.name
        self._by_name: dict[str, OperationEntry] = {}
        self._by_attribute: dict[str, OperationEntry] = {}
        self._by_signature: dict[tuple[str, tuple[str, ...]], OperationEntry] = {}
        for operation in contract.operations:
            entry = OperationEntry(
                name=operation.name,
                attribute=attributes.get(operation.name, operation.name),
                signature=operation.signature,
                description=operation,
            )
            self._by_name[entry.name] = entry
            self._by_attribute[entry.attribute] = entry
            self._by_signature[(entry.name, entry.signature)] = entry

    def __iter__(self) -> Iterator[OperationEntry]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name or name in self._by_attribute

    def names(self) -> list[str]:
        return list(self._by_name)

    def resolve(self, name: str) -> OperationEntry:
        """Entry for an operation name (or the attribute implementing it)."""
        entry = self._by_name.get(name) or self._by_attribute.get(name)
        if entry is None:
            raise MethodNotFoundError(name)
        return entry

    def resolve_signature(self, name: str, param_types: Sequence[Any]) -> OperationEntry:
        """Entry whose parameter types match ``param_types`` exactly."""
        signature = tuple(type_name(t) for t in param_types)
        base = self._by_name.get(name) or self._by_attribute.get(name)
        entry = self._by_signature.get((base.name, signature)) if base is not None else None
        if entry is None:
            raise MethodNotFoundError(name, signature)
        return entry

    def resolve_operation(self, operation: Any) -> OperationEntry:
        """Entry for an OperationDescription, an entry, or a contract method."""
        if isinstance(operation, OperationEntry):
            operation = operation.name
        elif isinstance(operation, OperationDescription):
            operation = operation.name
        elif callable(operation):
            options = getattr(operation, "__operation_contract__", None)
            operation = options.name if options is not None else getattr(operation, "__name__", repr(operation))
        return self.resolve(str(operation))
