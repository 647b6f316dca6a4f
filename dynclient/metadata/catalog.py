"""ContractCatalog: metadata fragments to normalized descriptions.

Fragments are JSON-like mappings with a ``kind`` of ``contract``,
``dataContract``, ``binding`` or ``endpoint``; keys may be camelCase or
snake_case. Problems a caller can live with become warnings; problems that
leave the catalog ambiguous raise MetadataResolutionError with every
diagnostic collected so far.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from dynclient.bindings import TIMEOUT_FIELDS, Binding, BindingRegistry, default_registry
from dynclient.core.description import (
    DEFAULT_NAMESPACE,
    WILDCARD_ACTION,
    ContractDescription,
    DataContractDescription,
    Diagnostic,
    EndpointAddress,
    OperationDescription,
    ParameterDescription,
    ServiceEndpoint,
    default_action,
)
from dynclient.core.typeexpr import check_type_expression
from dynclient.synthesis.codegen import referenced_data_contracts
from dynclient.utils.exceptions import EndpointNotFoundError, MetadataResolutionError, log_fatal
from dynclient.utils.helpers import convert_keys, is_absolute_uri, safe_dict

MetadataWarning = Diagnostic

FRAGMENT_KINDS = ("dataContract", "contract", "binding", "endpoint")
_PRESERVED_KEYS = frozenset({"fields"})
_FLAG = TypeAdapter(bool)


@dataclass(slots=True)
class CatalogResolution:
    contracts: list[ContractDescription] = field(default_factory=list)
    bindings: dict[str, Binding] = field(default_factory=dict)
    endpoints: list[ServiceEndpoint] = field(default_factory=list)
    warnings: list[Diagnostic] = field(default_factory=list)


class ContractCatalog:
    """Resolves fragments; performs no I/O."""

    def __init__(self, binding_registry: BindingRegistry | None = None):
        self.binding_registry = binding_registry or default_registry
        self.resolution = CatalogResolution()

    @property
    def contracts(self) -> list[ContractDescription]:
        return self.resolution.contracts

    @property
    def endpoints(self) -> list[ServiceEndpoint]:
        return self.resolution.endpoints

    @property
    def warnings(self) -> list[Diagnostic]:
        return self.resolution.warnings

    def resolve(self, fragments: Iterable[dict[str, Any]]) -> CatalogResolution:
        diagnostics: list[Diagnostic] = []
        grouped: dict[str, list[dict[str, Any]]] = {kind: [] for kind in FRAGMENT_KINDS}
        for raw in fragments:
            fragment = convert_keys(safe_dict(raw), preserve=_PRESERVED_KEYS)
            kind = raw.get("kind") if isinstance(raw, dict) else None
            if kind == "data_contract":
                kind = "dataContract"
            if kind not in grouped:
                diagnostics.append(Diagnostic(f"ignoring metadata fragment of unknown kind {kind!r}"))
                continue
            grouped[kind].append(fragment)

        data_contracts = self._read_data_contracts(grouped["dataContract"], diagnostics)
        contracts = self._read_contracts(grouped["contract"], data_contracts, diagnostics)
        bindings = self._read_bindings(grouped["binding"], diagnostics)
        endpoints = self._read_endpoints(grouped["endpoint"], contracts, bindings, diagnostics)

        self.resolution = CatalogResolution(contracts, bindings, endpoints, diagnostics)
        for warning in diagnostics:
            logger.debug(f"Metadata {warning}")
        logger.info(
            f"Resolved metadata: {len(contracts)} contract(s), {len(endpoints)} endpoint(s), "
            f"{len(diagnostics)} warning(s)"
        )
        return self.resolution

    def _fail(self, message: str, diagnostics: list[Diagnostic]) -> MetadataResolutionError:
        diagnostics.append(Diagnostic(message, False))
        return log_fatal(MetadataResolutionError(message, diagnostics), "Metadata resolution failed")

    def _type_expr(self, value: Any, known: set[str], where: str, diagnostics: list[Diagnostic], default: str) -> str:
        expr = str(value).strip() if value not in (None, "") else default
        problems = check_type_expression(expr, known)
        if problems:
            diagnostics.append(Diagnostic(f"{where}: {'; '.join(problems)}; using Any"))
            return "Any"
        return expr

    def _read_data_contracts(self, fragments: list[dict[str, Any]], diagnostics: list[Diagnostic]) -> dict[str, DataContractDescription]:
        found: dict[str, DataContractDescription] = {}
        for fragment in fragments:
            name = str(fragment.get("name") or "").strip()
            if not name:
                raise self._fail("data contract without a name", diagnostics)
            if name in found:
                diagnostics.append(Diagnostic(f"duplicate data contract {name!r} ignored"))
                continue
            found[name] = DataContractDescription(
                name=name,
                namespace=str(fragment.get("namespace") or DEFAULT_NAMESPACE),
                fields={str(k): str(v) for k, v in safe_dict(fragment.get("fields")).items()},
            )
        known = set(found)
        for data_contract in found.values():
            data_contract.fields = {
                name: self._type_expr(expr, known, f"{data_contract.name}.{name}", diagnostics, "Any")
                for name, expr in data_contract.fields.items()
            }
        return found

    def _read_contracts(
        self,
        fragments: list[dict[str, Any]],
        data_contracts: dict[str, DataContractDescription],
        diagnostics: list[Diagnostic],
    ) -> list[ContractDescription]:
        contracts: list[ContractDescription] = []
        identities: set[tuple[str, str]] = set()
        known = set(data_contracts)
        for fragment in fragments:
            name = str(fragment.get("name") or "").strip()
            if not name:
                raise self._fail("contract without a name", diagnostics)
            namespace = str(fragment.get("namespace") or DEFAULT_NAMESPACE)
            identity = (name.lower(), namespace.lower())
            if identity in identities:
                raise self._fail(f"duplicate contract {namespace}{name}", diagnostics)
            identities.add(identity)

            contract = ContractDescription(name=name, namespace=namespace)
            for raw_op in fragment.get("operations") or []:
                contract.operations.append(self._read_operation(contract, safe_dict(raw_op), known, diagnostics))
            contract.data_contracts = [
                data_contracts[n] for n in referenced_data_contracts(contract, data_contracts)
            ]
            contracts.append(contract)
        return contracts

    def _read_operation(
        self,
        contract: ContractDescription,
        fragment: dict[str, Any],
        known: set[str],
        diagnostics: list[Diagnostic],
    ) -> OperationDescription:
        op_name = str(fragment.get("name") or "").strip()
        if not op_name:
            raise self._fail(f"operation without a name in contract {contract.name}", diagnostics)
        if contract.find_operation(op_name) is not None:
            raise self._fail(f"duplicate operation {contract.name}.{op_name}", diagnostics)
        where = f"{contract.name}.{op_name}"
        raw_one_way = fragment.get("is_one_way") or False
        try:
            is_one_way = _FLAG.validate_python(raw_one_way)
        except ValidationError:
            diagnostics.append(Diagnostic(f"{where}: isOneWay {raw_one_way!r} is not a boolean; treating as two-way"))
            is_one_way = False

        parameters = []
        for raw_param in fragment.get("parameters") or []:
            param = safe_dict(raw_param)
            param_name = str(param.get("name") or "").strip()
            if not param_name:
                raise self._fail(f"parameter without a name in {where}", diagnostics)
            type_expr = self._type_expr(param.get("type"), known, f"{where}({param_name})", diagnostics, "Any")
            parameters.append(ParameterDescription(param_name, type_expr))

        return_type = self._type_expr(
            fragment.get("return_type"), known, f"{where} result", diagnostics, "None" if is_one_way else "Any"
        )
        if is_one_way and return_type != "None":
            raise self._fail(f"one-way operation {where} declares result type {return_type}", diagnostics)

        action = str(fragment.get("action") or default_action(contract.namespace, contract.name, op_name))
        reply_action = fragment.get("reply_action")
        if reply_action is None:
            if is_one_way:
                reply_action = ""
            elif action == WILDCARD_ACTION:
                reply_action = WILDCARD_ACTION
            else:
                reply_action = f"{action}Response"
        return OperationDescription(
            name=op_name,
            parameters=parameters,
            return_type=return_type,
            is_one_way=is_one_way,
            action=action,
            reply_action=str(reply_action),
        )

    def _read_bindings(self, fragments: list[dict[str, Any]], diagnostics: list[Diagnostic]) -> dict[str, Binding]:
        bindings: dict[str, Binding] = {}
        for fragment in fragments:
            name = str(fragment.get("name") or "").strip()
            type_name = str(fragment.get("type") or name)
            binding_type = self.binding_registry.lookup(type_name)
            if binding_type is None:
                diagnostics.append(Diagnostic(f"binding {name!r} has unknown type {type_name!r}"))
                continue
            overrides = {k: fragment[k] for k in (*TIMEOUT_FIELDS, "max_received_message_size") if k in fragment}
            try:
                binding = self.binding_registry.resolve(binding_type, name=name, **overrides)
            except (ValidationError, ValueError) as e:
                diagnostics.append(Diagnostic(f"binding {name!r} has invalid settings ({e}); using presets"))
                binding = self.binding_registry.resolve(binding_type, name=name)
            bindings[name or type_name] = binding
        return bindings

    def _read_endpoints(
        self,
        fragments: list[dict[str, Any]],
        contracts: list[ContractDescription],
        bindings: dict[str, Binding],
        diagnostics: list[Diagnostic],
    ) -> list[ServiceEndpoint]:
        endpoints: list[ServiceEndpoint] = []
        for fragment in fragments:
            name = str(fragment.get("name") or "").strip() or None
            contract_name = str(fragment.get("contract") or "")
            contract_ns = fragment.get("contract_namespace")
            contract = next((c for c in contracts if c.matches(contract_name, contract_ns)), None)
            if contract is None:
                diagnostics.append(Diagnostic(f"endpoint {name!r} references unknown contract {contract_name!r}"))
                continue
            address = str(fragment.get("address") or "")
            if not is_absolute_uri(address):
                diagnostics.append(Diagnostic(f"endpoint {name!r} has invalid address {address!r}"))
                continue
            binding_name = str(fragment.get("binding") or "")
            binding = bindings.get(binding_name)
            if binding is None:
                binding_type = (
                    self.binding_registry.lookup(binding_name)
                    if binding_name
                    else self.binding_registry.type_for_address(address)
                )
                if binding_type is None:
                    diagnostics.append(Diagnostic(f"endpoint {name!r} references unknown binding {binding_name!r}"))
                    continue
                binding = self.binding_registry.resolve(binding_type)
            endpoints.append(
                ServiceEndpoint(contract=contract, binding=binding, address=EndpointAddress(address), name=name)
            )
        return endpoints

    def find_contract(self, name: str, namespace: str | None = None) -> ContractDescription | None:
        return next((c for c in self.contracts if c.matches(name, namespace)), None)

    def find_endpoint(self, contract_name: str, contract_namespace: str | None = None) -> ServiceEndpoint:
        """First endpoint whose contract matches; the namespace is checked only when given."""
        for endpoint in self.endpoints:
            if endpoint.contract.matches(contract_name, contract_namespace):
                return endpoint
        raise log_fatal(EndpointNotFoundError(contract_name, contract_namespace), "Endpoint lookup failed")
