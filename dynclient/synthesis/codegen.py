"""Client source generation.

For every contract the generator emits one contract interface class and one
client class deriving from ``ClientBase`` and the interface. Data contracts
become pydantic models. Any error-level diagnostic aborts generation with a
CodeGenerationError carrying the full diagnostic list.
"""

from __future__ import annotations

import keyword
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from loguru import logger

from dynclient.core.description import ContractDescription, DataContractDescription, Diagnostic
from dynclient.core.typeexpr import (
    BUILTIN_TYPES,
    VOCABULARY_IMPORTS,
    canonical_type_expression,
    check_type_expression,
    referenced_names,
)
from dynclient.utils.exceptions import CodeGenerationError, log_fatal

ASYNC_SUFFIX = "_async"


@dataclass(slots=True)
class GenerationResult:
    source: str
    warnings: list[Diagnostic] = field(default_factory=list)


def client_class_name(contract_name: str) -> str:
    """``ICalculator`` -> ``CalculatorClient``."""
    base = contract_name[1:] if len(contract_name) > 1 and contract_name[0] == "I" and contract_name[1].isupper() else contract_name
    return f"{base}Client"


def reserved_member_names() -> frozenset[str]:
    """Names operations may not take: members of the client and proxy base classes."""
    from dynclient.client.base import ClientBase
    from dynclient.proxy.base import ProxyLifecycleManager

    return frozenset(n for cls in (ClientBase, ProxyLifecycleManager) for n in dir(cls) if not n.startswith("__"))


def _is_identifier(name: object) -> bool:
    return isinstance(name, str) and name.isidentifier() and not keyword.iskeyword(name)


def collect_data_contracts(contracts: Iterable[ContractDescription], diagnostics: list[Diagnostic]) -> dict[str, DataContractDescription]:
    """Data contracts of all contracts by name; conflicting redefinitions are errors."""
    found: dict[str, DataContractDescription] = {}
    for contract in contracts:
        for data_contract in contract.data_contracts:
            existing = found.get(data_contract.name)
            if existing is None:
                found[data_contract.name] = data_contract
            elif existing.fields != data_contract.fields:
                diagnostics.append(Diagnostic(f"conflicting definitions of data contract {data_contract.name!r}", False))
    return found


def referenced_data_contracts(contract: ContractDescription, data_contracts: dict[str, DataContractDescription]) -> list[str]:
    """Data contract names used by a contract, following field references."""
    pending = [dc.name for dc in contract.data_contracts]
    for operation in contract.operations:
        for expr in [p.type_name for p in operation.parameters] + [operation.return_type]:
            pending.extend(referenced_names(expr))
    seen: list[str] = []
    while pending:
        name = pending.pop(0)
        if name in seen or name not in data_contracts:
            continue
        seen.append(name)
        for expr in data_contracts[name].fields.values():
            pending.extend(referenced_names(expr))
    return seen


def check_contracts(contracts: Sequence[ContractDescription], *, generate_async: bool = False) -> list[Diagnostic]:
    """Every problem that would make the generated module wrong or unloadable."""
    diagnostics: list[Diagnostic] = []

    def error(message: str) -> None:
        diagnostics.append(Diagnostic(message, False))

    if not contracts:
        diagnostics.append(Diagnostic("no contracts to generate"))
    data_contracts = collect_data_contracts(contracts, diagnostics)
    known = set(data_contracts)
    reserved = reserved_member_names()
    class_names: set[str] = set()

    for name, data_contract in data_contracts.items():
        if not _is_identifier(name) or name in BUILTIN_TYPES:
            error(f"invalid data contract name {name!r}")
        class_names.add(name)
        for field_name, expr in data_contract.fields.items():
            if not _is_identifier(field_name) or field_name.startswith(("_", "model_")):
                error(f"invalid field name {field_name!r} in data contract {name}")
            for problem in check_type_expression(expr, known):
                error(f"{name}.{field_name}: {problem}")

    for contract in contracts:
        for cls_name in (contract.name, client_class_name(contract.name)):
            if not _is_identifier(cls_name):
                error(f"invalid contract name {contract.name!r}")
                break
            if cls_name in class_names:
                error(f"duplicate class name {cls_name!r} generated for contract {contract.name}")
            class_names.add(cls_name)
        op_names = {op.name for op in contract.operations}
        seen_ops: set[str] = set()
        for operation in contract.operations:
            where = f"{contract.name}.{operation.name}"
            if not _is_identifier(operation.name) or operation.name.startswith("_"):
                error(f"invalid operation name {operation.name!r} in contract {contract.name}")
            elif operation.name in reserved:
                error(f"operation name {where} collides with a client member")
            if operation.name in seen_ops:
                error(f"duplicate operation {where}")
            seen_ops.add(operation.name)
            if generate_async and f"{operation.name}{ASYNC_SUFFIX}" in op_names:
                error(f"operation {where}{ASYNC_SUFFIX} collides with the async variant of {where}")
            param_names: set[str] = set()
            for param in operation.parameters:
                if not _is_identifier(param.name) or param.name == "self":
                    error(f"invalid parameter name {param.name!r} in {where}")
                if param.name in param_names:
                    error(f"duplicate parameter {param.name!r} in {where}")
                param_names.add(param.name)
                for problem in check_type_expression(param.type_name, known):
                    error(f"{where}({param.name}): {problem}")
            for problem in check_type_expression(operation.return_type, known):
                error(f"{where} result: {problem}")
            if operation.is_one_way and operation.return_type.strip() != "None":
                error(f"one-way operation {where} must return None")
            if not operation.action:
                diagnostics.append(Diagnostic(f"operation {where} has no action; the default action is used"))
    return diagnostics


class _Writer:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def line(self, text: str = "", indent: int = 0) -> None:
        self.lines.append(("    " * indent + text) if text else "")

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"


class SourceGenerator:
    """Generates the source text of a client module."""

    def __init__(self, *, generate_async: bool = False, code_modifier: Callable[[str], str] | None = None):
        self.generate_async = generate_async
        self.code_modifier = code_modifier

    def generate(self, contracts: Sequence[ContractDescription]) -> GenerationResult:
        diagnostics = check_contracts(contracts, generate_async=self.generate_async)
        if any(not d.is_warning for d in diagnostics):
            raise log_fatal(CodeGenerationError(diagnostics), "Client code generation failed")
        source = self._render(contracts)
        if self.code_modifier is not None:
            source = self.code_modifier(source)
        logger.info(f"Generated client source for {len(contracts)} contract(s)")
        return GenerationResult(source, diagnostics)

    def _render(self, contracts: Sequence[ContractDescription]) -> str:
        w = _Writer()
        w.line('"""Client types generated by dynclient. Do not edit."""')
        w.line()
        w.line("from __future__ import annotations")
        w.line()
        w.line("from concurrent.futures import Future")
        for line in VOCABULARY_IMPORTS:
            w.line(line)
        w.line()
        w.line("from pydantic import BaseModel, ConfigDict")
        w.line()
        w.line("from dynclient.client.base import ClientBase")
        w.line("from dynclient.client.contract import operation_contract, service_contract")

        data_contracts = collect_data_contracts(contracts, [])
        for data_contract in data_contracts.values():
            self._render_data_contract(w, data_contract)
        for contract in contracts:
            self._render_contract(w, contract, referenced_data_contracts(contract, data_contracts))
            self._render_client(w, contract)
        if data_contracts:
            w.line()
            w.line()
            for name in data_contracts:
                w.line(f"{name}.model_rebuild()")
        return w.text()

    def _render_data_contract(self, w: _Writer, data_contract: DataContractDescription) -> None:
        w.line()
        w.line()
        w.line(f"class {data_contract.name}(BaseModel):")
        w.line(f'model_config = ConfigDict(extra="allow", json_schema_extra={{"namespace": {data_contract.namespace!r}}})', 1)
        if data_contract.fields:
            w.line()
        for field_name, expr in data_contract.fields.items():
            w.line(f"{field_name}: {canonical_type_expression(expr)}", 1)

    def _render_contract(self, w: _Writer, contract: ContractDescription, known_types: list[str]) -> None:
        known = f"({', '.join(known_types)},)" if known_types else "()"
        w.line()
        w.line()
        w.line(f"@service_contract(name={contract.name!r}, namespace={contract.namespace!r}, known_types={known})")
        w.line(f"class {contract.name}:")
        w.line(repr(f"Service contract {contract.namespace}{contract.name}."), 1)
        for operation in contract.operations:
            w.line()
            options = [f"name={operation.name!r}"]
            if operation.action:
                options.append(f"action={operation.action!r}")
            if operation.reply_action:
                options.append(f"reply_action={operation.reply_action!r}")
            if operation.is_one_way:
                options.append("is_one_way=True")
            w.line(f"@operation_contract({', '.join(options)})", 1)
            w.line(f"def {operation.name}({self._params(operation)}) -> {canonical_type_expression(operation.return_type)}:", 1)
            w.line("raise NotImplementedError", 2)

    def _render_client(self, w: _Writer, contract: ContractDescription) -> None:
        w.line()
        w.line()
        w.line(f"class {client_class_name(contract.name)}(ClientBase, {contract.name}):")
        w.line(f'"""Client for {contract.name}."""', 1)
        for operation in contract.operations:
            names = [p.name for p in operation.parameters]
            args = f"({', '.join(names)}{',' if len(names) == 1 else ''})"
            w.line()
            w.line(f"def {operation.name}({self._params(operation)}) -> {canonical_type_expression(operation.return_type)}:", 1)
            w.line(f"return self._invoke({operation.name!r}, {args})", 2)
            if self.generate_async:
                w.line()
                w.line(f"def {operation.name}{ASYNC_SUFFIX}({self._params(operation)}) -> Future:", 1)
                w.line(f"return self._invoke_async({operation.name!r}, {args})", 2)

    @staticmethod
    def _params(operation) -> str:
        return ", ".join(["self"] + [f"{p.name}: {canonical_type_expression(p.type_name)}" for p in operation.parameters])
