"""Contract declaration decorators.

``@service_contract`` marks a class as a contract interface and records its
ContractDescription plus an OperationRegistry on the class. Each contract
method carries ``@operation_contract``.
"""

from __future__ import annotations

import functools
import inspect
import typing
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from loguru import logger
from pydantic import BaseModel

from dynclient.client.registry import OperationRegistry
from dynclient.core.description import (
    DEFAULT_NAMESPACE,
    WILDCARD_ACTION,
    ContractDescription,
    DataContractDescription,
    OperationDescription,
    ParameterDescription,
    default_action,
)
from dynclient.utils.exceptions import ArgumentError
from dynclient.utils.helpers import full_name, type_name

CONTRACT_ATTR = "__contract__"
OPERATIONS_ATTR = "__operations__"
KNOWN_TYPES_ATTR = "__known_types__"


@dataclass(frozen=True, slots=True)
class OperationOptions:
    name: str
    action: str | None = None
    reply_action: str | None = None
    is_one_way: bool = False


def operation_contract(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    action: str | None = None,
    reply_action: str | None = None,
    is_one_way: bool = False,
) -> Any:
    """Mark a contract method as a service operation."""

    def decorate(f: Callable[..., Any]) -> Callable[..., Any]:
        f.__operation_contract__ = OperationOptions(
            name=name or f.__name__,
            action=action,
            reply_action=reply_action,
            is_one_way=is_one_way,
        )
        return f

    return decorate(func) if func is not None else decorate


def describe_data_contract(model: type[BaseModel], namespace: str = DEFAULT_NAMESPACE) -> DataContractDescription:
    extra = model.model_config.get("json_schema_extra")
    if isinstance(extra, dict) and isinstance(extra.get("namespace"), str):
        namespace = extra["namespace"]
    fields = {field: type_name(info.annotation) for field, info in model.model_fields.items()}
    return DataContractDescription(name=model.__name__, namespace=namespace, fields=fields)


def _annotation_name(annotation: Any, default: str) -> str:
    if annotation is inspect.Parameter.empty:
        return default
    return type_name(annotation)


def _describe_operation(func: Callable[..., Any], options: OperationOptions, contract_name: str, namespace: str) -> OperationDescription:
    signature = inspect.signature(func)
    params = list(signature.parameters.values())[1:]
    parameters = []
    for param in params:
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            raise ArgumentError(f"Operation {contract_name}.{options.name} cannot take *args or **kwargs", param=param.name)
        parameters.append(ParameterDescription(param.name, _annotation_name(param.annotation, "Any")))
    return_type = _annotation_name(signature.return_annotation, "None" if options.is_one_way else "Any")
    if options.is_one_way and return_type != "None":
        raise ArgumentError(f"One-way operation {contract_name}.{options.name} must return None, not {return_type}")
    action = options.action or default_action(namespace, contract_name, options.name)
    if options.reply_action is not None:
        reply_action = options.reply_action
    elif options.is_one_way:
        reply_action = ""
    elif action == WILDCARD_ACTION:
        reply_action = WILDCARD_ACTION
    else:
        reply_action = f"{action}Response"
    return OperationDescription(
        name=options.name,
        parameters=parameters,
        return_type=return_type,
        is_one_way=options.is_one_way,
        action=action,
        reply_action=reply_action,
    )


def service_contract(
    cls: type | None = None,
    *,
    name: str | None = None,
    namespace: str = DEFAULT_NAMESPACE,
    known_types: Sequence[type[BaseModel]] = (),
) -> Any:
    """Declare a contract interface class."""

    def decorate(cls: type) -> type:
        contract_name = name or cls.__name__
        operations: list[OperationDescription] = []
        attributes: dict[str, str] = {}
        for attribute, member in cls.__dict__.items():
            options = getattr(member, "__operation_contract__", None)
            if options is None:
                continue
            operation = _describe_operation(member, options, contract_name, namespace)
            if operation.name in attributes:
                raise ArgumentError(f"Duplicate operation {operation.name!r} in contract {contract_name}")
            operations.append(operation)
            attributes[operation.name] = attribute
        contract = ContractDescription(
            name=contract_name,
            namespace=namespace,
            operations=operations,
            data_contracts=[describe_data_contract(t, namespace) for t in known_types],
        )
        setattr(cls, CONTRACT_ATTR, contract)
        setattr(cls, OPERATIONS_ATTR, OperationRegistry(contract, attributes))
        setattr(cls, KNOWN_TYPES_ATTR, tuple(known_types))
        return cls

    return decorate(cls) if cls is not None else decorate


def is_contract_type(cls: Any) -> bool:
    return isinstance(cls, type) and CONTRACT_ATTR in cls.__dict__


def contract_type_of(cls: type) -> type | None:
    """Nearest contract interface in the MRO of ``cls``."""
    for base in cls.__mro__:
        if is_contract_type(base):
            return base
    return None


def contract_of(cls: type) -> ContractDescription:
    contract_type = contract_type_of(cls)
    if contract_type is None:
        raise ArgumentError(f"{full_name(cls)} does not implement a service contract", param="contract_type")
    return getattr(contract_type, CONTRACT_ATTR)


def operations_of(cls: type) -> OperationRegistry:
    contract_type = contract_type_of(cls)
    if contract_type is None:
        raise ArgumentError(f"{full_name(cls)} does not implement a service contract", param="contract_type")
    return getattr(contract_type, OPERATIONS_ATTR)


@functools.lru_cache(maxsize=None)
def operation_hints(contract_type: type, attribute: str) -> tuple[tuple[Any, ...], Any]:
    """Resolved parameter and return annotations of a contract method."""
    method = getattr(contract_type, attribute)
    params = list(inspect.signature(method).parameters)[1:]
    try:
        hints = typing.get_type_hints(method)
    except (NameError, TypeError) as e:
        logger.warning(f"Could not resolve annotations of {full_name(contract_type)}.{attribute}: {e}")
        hints = {}
    return tuple(hints.get(p, Any) for p in params), hints.get("return", Any)
