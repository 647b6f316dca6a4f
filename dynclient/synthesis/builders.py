"""Client builders and type resolution over a loaded module.

Two builders produce the same shape of module (contract interfaces, clients,
data contract models). ``SourceClientBuilder`` generates and compiles source;
``DynamicClientBuilder`` assembles the classes directly and never produces
source text.
"""

from __future__ import annotations

import inspect
import sys
import types
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, create_model

from dynclient.client.base import ClientBase
from dynclient.client.contract import contract_of, is_contract_type, operation_contract, service_contract
from dynclient.core.description import ContractDescription, DataContractDescription, OperationDescription
from dynclient.core.typeexpr import BUILTIN_TYPES, evaluate_type_expression
from dynclient.synthesis.codegen import (
    ASYNC_SUFFIX,
    SourceGenerator,
    check_contracts,
    client_class_name,
    collect_data_contracts,
    referenced_data_contracts,
)
from dynclient.synthesis.compiler import LoadedModule, ModuleCompiler, _new_module_name, inspect_module
from dynclient.utils.exceptions import CodeGenerationError, ProxyTypeNotFoundError, UnknownContractError, log_fatal
from dynclient.utils.helpers import full_name


class SourceClientBuilder:
    def __init__(
        self,
        *,
        generate_async: bool = False,
        code_modifier: Callable[[str], str] | None = None,
        output_path: Path | str | None = None,
        overwrite: bool = True,
        compiler: ModuleCompiler | None = None,
    ):
        self.generator = SourceGenerator(generate_async=generate_async, code_modifier=code_modifier)
        self.compiler = compiler or ModuleCompiler()
        self.output_path = output_path
        self.overwrite = overwrite

    def build(self, contracts: Sequence[ContractDescription]) -> LoadedModule:
        result = self.generator.generate(contracts)
        for warning in result.warnings:
            logger.warning(f"Code generation {warning}")
        return self.compiler.compile(result.source, output_path=self.output_path, overwrite=self.overwrite)


class DynamicClientBuilder:
    """Builds contract and client classes with ``type()`` instead of source."""

    def __init__(self, *, generate_async: bool = False):
        self.generate_async = generate_async

    def build(self, contracts: Sequence[ContractDescription]) -> LoadedModule:
        diagnostics = check_contracts(contracts, generate_async=self.generate_async)
        if any(not d.is_warning for d in diagnostics):
            raise log_fatal(CodeGenerationError(diagnostics), "Dynamic client build failed")
        module = types.ModuleType(_new_module_name("dynamic"))
        sys.modules[module.__name__] = module
        try:
            data_contracts = collect_data_contracts(contracts, [])
            models = self._build_models(module, data_contracts.values())
            for contract in contracts:
                known_types = [models[name] for name in referenced_data_contracts(contract, data_contracts)]
                interface = self._build_interface(module, contract, models, known_types)
                client = self._build_client(module, contract, interface)
                setattr(module, interface.__name__, interface)
                setattr(module, client.__name__, client)
        finally:
            sys.modules.pop(module.__name__, None)
        logger.info(f"Built {len(contracts)} dynamic client type(s) in {module.__name__}")
        return inspect_module(module)

    def _build_models(self, module: types.ModuleType, data_contracts: Iterable[DataContractDescription]) -> dict[str, type[BaseModel]]:
        models: dict[str, type[BaseModel]] = {}
        for data_contract in data_contracts:
            config = ConfigDict(extra="allow", json_schema_extra={"namespace": data_contract.namespace})
            fields = {name: (expr.strip(), ...) for name, expr in data_contract.fields.items()}
            model = create_model(data_contract.name, __config__=config, __module__=module.__name__, **fields)
            models[data_contract.name] = model
            setattr(module, data_contract.name, model)
        namespace = {**BUILTIN_TYPES, **models}
        for model in models.values():
            model.model_rebuild(_types_namespace=namespace)
        return models

    def _build_interface(
        self,
        module: types.ModuleType,
        contract: ContractDescription,
        models: dict[str, type[BaseModel]],
        known_types: list[type[BaseModel]],
    ) -> type:
        namespace: dict[str, Any] = {
            "__module__": module.__name__,
            "__doc__": f"Service contract {contract.namespace}{contract.name}.",
        }
        for operation in contract.operations:
            stub = _operation_stub(operation, models)
            namespace[operation.name] = operation_contract(
                stub,
                name=operation.name,
                action=operation.action or None,
                reply_action=operation.reply_action or None,
                is_one_way=operation.is_one_way,
            )
        interface = type(contract.name, (), namespace)
        return service_contract(interface, name=contract.name, namespace=contract.namespace, known_types=known_types)

    def _build_client(self, module: types.ModuleType, contract: ContractDescription, interface: type) -> type:
        name = client_class_name(contract.name)
        namespace: dict[str, Any] = {"__module__": module.__name__, "__doc__": f"Client for {contract.name}."}
        for operation in contract.operations:
            signature = inspect.signature(getattr(interface, operation.name))
            namespace[operation.name] = _client_method(name, operation.name, signature, "_invoke")
            if self.generate_async:
                namespace[f"{operation.name}{ASYNC_SUFFIX}"] = _client_method(
                    name, operation.name, signature, "_invoke_async", suffix=ASYNC_SUFFIX
                )
        return type(name, (ClientBase, interface), namespace)


def _operation_stub(operation: OperationDescription, models: dict[str, type[BaseModel]]) -> Callable[..., Any]:
    params = [inspect.Parameter("self", inspect.Parameter.POSITIONAL_OR_KEYWORD)]
    annotations: dict[str, Any] = {}
    for param in operation.parameters:
        annotation = evaluate_type_expression(param.type_name, models)
        params.append(inspect.Parameter(param.name, inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=annotation))
        annotations[param.name] = annotation
    result = evaluate_type_expression(operation.return_type, models)
    annotations["return"] = result

    def stub(self: Any, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError

    stub.__name__ = operation.name
    stub.__qualname__ = operation.name
    stub.__annotations__ = annotations
    stub.__signature__ = inspect.Signature(params, return_annotation=result)
    return stub


def _client_method(class_name: str, operation_name: str, signature: inspect.Signature, invoker: str, suffix: str = "") -> Callable[..., Any]:
    def method(self: Any, *args: Any, **kwargs: Any) -> Any:
        bound = signature.bind(self, *args, **kwargs)
        return getattr(self, invoker)(operation_name, tuple(bound.arguments.values())[1:])

    method.__name__ = f"{operation_name}{suffix}"
    method.__qualname__ = f"{class_name}.{operation_name}{suffix}"
    method.__signature__ = signature
    return method


def create_builder(kind: str = "source", **options: Any) -> SourceClientBuilder | DynamicClientBuilder:
    if kind == "source":
        return SourceClientBuilder(**options)
    if kind == "dynamic":
        return DynamicClientBuilder(generate_async=bool(options.get("generate_async", False)))
    raise ValueError(f"Unknown client builder: {kind}")


def _types_of(source: LoadedModule | Iterable[type]) -> list[type]:
    return list(source.types) if isinstance(source, LoadedModule) else list(source)


def get_contract_type(source: LoadedModule | Iterable[type], name: str, namespace: str | None = None) -> type:
    """Contract interface whose declared identity matches (case-insensitive)."""
    for candidate in _types_of(source):
        if is_contract_type(candidate) and contract_of(candidate).matches(name, namespace):
            return candidate
    raise log_fatal(UnknownContractError(name, namespace), "Contract type resolution failed")


def get_proxy_type(source: LoadedModule | Iterable[type], contract_type: type) -> type:
    """Concrete client class implementing ``contract_type`` on top of ClientBase."""
    for candidate in _types_of(source):
        if (
            candidate is not contract_type
            and issubclass(candidate, contract_type)
            and issubclass(candidate, ClientBase)
        ):
            return candidate
    raise log_fatal(ProxyTypeNotFoundError(full_name(contract_type)), "Proxy type resolution failed")
