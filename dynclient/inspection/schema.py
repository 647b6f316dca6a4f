"""Per-endpoint message schemas.

The contract is exported to one pydantic model per message action (request
parameters keyed by name, reply ``result``). Wildcard actions are stripped
before export and so never get a schema; the export works on a private copy of
the contract, which keeps the stripped form invisible to every other reader.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from dynclient.client.contract import contract_type_of, operation_hints, operations_of
from dynclient.core.description import WILDCARD_ACTION, ContractDescription, OperationDescription
from dynclient.core.typeexpr import evaluate_type_expression

_MESSAGE_CONFIG = ConfigDict(extra="forbid", populate_by_name=False, arbitrary_types_allowed=True)


@dataclass(slots=True)
class SchemaSet:
    models: dict[str, type[BaseModel]] = field(default_factory=dict)

    def __contains__(self, action: object) -> bool:
        return action in self.models

    def actions(self) -> list[str]:
        return list(self.models)

    def validate(self, action: str, body: dict[str, Any] | None) -> str | None:
        """Validation error text for ``body``, or None when valid or unschematized."""
        model = self.models.get(action)
        if model is None:
            return None
        try:
            model.model_validate(body or {})
        except ValidationError as e:
            return str(e)
        return None


def _strip_wildcard_actions(contract: ContractDescription) -> ContractDescription:
    working = contract.copy()
    for operation in working.operations:
        if operation.action == WILDCARD_ACTION:
            operation.action = ""
        if operation.reply_action == WILDCARD_ACTION:
            operation.reply_action = ""
    return working


def _declared_types(operation: OperationDescription, contract_type: type | None) -> tuple[list[Any], Any]:
    if contract_type is not None:
        entry = operations_of(contract_type).resolve(operation.name)
        params, result = operation_hints(contract_type, entry.attribute)
        return list(params), result

    def resolve(expr: str) -> Any:
        try:
            return evaluate_type_expression(expr)
        except ValueError:
            return Any

    return [resolve(p.type_name) for p in operation.parameters], resolve(operation.return_type)


def export_schema_set(contract: ContractDescription, contract_type: type | None = None) -> SchemaSet:
    working = _strip_wildcard_actions(contract)
    models: dict[str, type[BaseModel]] = {}
    for operation in working.operations:
        if not operation.action:
            continue
        params, result = _declared_types(operation, contract_type)
        request_fields: dict[str, Any] = {
            f"p{i}": (annotation, Field(..., alias=param.name))
            for i, (param, annotation) in enumerate(zip(operation.parameters, params))
        }
        models[operation.action] = create_model(
            f"{operation.name}Request",
            __config__=_MESSAGE_CONFIG,
            **request_fields,
        )
        if not operation.is_one_way and operation.reply_action:
            models[operation.reply_action] = create_model(
                f"{operation.name}Response",
                __config__=_MESSAGE_CONFIG,
                result=(result, ...),
            )
    return SchemaSet(models)


@functools.lru_cache(maxsize=256)
def _schema_set_for_type(contract_type: type) -> SchemaSet:
    return export_schema_set(contract_type.__contract__, contract_type)


def schema_set_for(contract: ContractDescription, contract_type: type | None = None) -> SchemaSet:
    """Schema set for an endpoint; computed once per contract type."""
    if contract_type is not None and contract_type_of(contract_type) is contract_type:
        return _schema_set_for_type(contract_type)
    return export_schema_set(contract, contract_type)
