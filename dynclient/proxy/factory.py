"""End-to-end entry point: metadata address (or a materialized module) to proxies."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import urlsplit

from loguru import logger

from dynclient.bindings import Binding
from dynclient.client.contract import contract_of
from dynclient.config.access import get_config
from dynclient.core.contracts import ClientBuilder, MetadataSource
from dynclient.core.description import ContractDescription, Diagnostic, ServiceEndpoint
from dynclient.metadata.catalog import ContractCatalog
from dynclient.metadata.sources import HttpMetadataSource, LoopbackMetadataSource
from dynclient.synthesis.builders import create_builder, get_contract_type, get_proxy_type
from dynclient.synthesis.compiler import LoadedModule, ModuleCompiler
from dynclient.synthesis.type_cache import ProxyStrategy, base_class_for
from dynclient.utils.exceptions import ArgumentError, UnknownContractError, log_fatal

if TYPE_CHECKING:
    from dynclient.config.schema import Settings


def default_metadata_source(address: str, settings: Settings) -> MetadataSource:
    if urlsplit(address).scheme.lower() == "loopback":
        return LoopbackMetadataSource()
    return HttpMetadataSource(timeout=settings.metadata.timeout_seconds, query=settings.metadata.query)


class DynamicClientProxyFactory:
    """Fetch, resolve and synthesize once; hand out proxies for any resolved contract.

    Either ``metadata_address`` is fetched through ``source`` (HTTP by default,
    loopback for ``loopback://`` addresses) or an already loaded module is
    supplied, see ``load``.
    """

    def __init__(
        self,
        metadata_address: str | None = None,
        *,
        source: MetadataSource | None = None,
        builder: ClientBuilder | None = None,
        catalog: ContractCatalog | None = None,
        settings: Settings | None = None,
        output_path: Path | str | None = None,
        overwrite: bool = True,
        code_modifier: Callable[[str], str] | None = None,
        loaded: LoadedModule | None = None,
    ):
        self.settings = settings or get_config()
        self.metadata_address = metadata_address
        self.catalog = catalog or ContractCatalog()

        if loaded is None:
            if metadata_address is None:
                raise ArgumentError("A metadata address or a loaded client module is required", param="metadata_address")
            source = source or default_metadata_source(metadata_address, self.settings)
            self.catalog.resolve(source.fetch(metadata_address))
            synthesis = self.settings.synthesis
            if builder is None:
                options: dict[str, Any] = {"generate_async": synthesis.generate_async}
                if synthesis.builder == "source":
                    if output_path is None and synthesis.output_dir:
                        output_path = Path(synthesis.output_dir).expanduser() / f"{self._module_stem(metadata_address)}.py"
                    options.update(code_modifier=code_modifier, output_path=output_path, overwrite=overwrite)
                builder = create_builder(synthesis.builder, **options)
            loaded = builder.build(self.catalog.contracts)
        self._loaded = loaded
        logger.info(
            f"Client factory ready: {len(loaded.contract_types)} contract type(s) in {loaded.module.__name__}"
        )

    @classmethod
    def load(cls, module: bytes | Path | str, *, settings: Settings | None = None) -> DynamicClientProxyFactory:
        """Factory over a previously materialized client module; no metadata is fetched."""
        return cls(loaded=ModuleCompiler().load_from_module(module), settings=settings)

    @staticmethod
    def _module_stem(address: str) -> str:
        parts = urlsplit(address)
        raw = f"{parts.hostname or ''}_{parts.path}"
        return "".join(c if c.isalnum() else "_" for c in raw).strip("_") or "client"

    @property
    def loaded(self) -> LoadedModule:
        return self._loaded

    @property
    def types(self) -> list[type]:
        return list(self._loaded.types)

    @property
    def namespaces(self) -> list[str]:
        return list(self._loaded.namespaces)

    @property
    def contracts(self) -> list[ContractDescription]:
        if self.catalog.contracts:
            return list(self.catalog.contracts)
        return [contract_of(t) for t in self._loaded.contract_types]

    @property
    def bindings(self) -> dict[str, Binding]:
        return dict(self.catalog.resolution.bindings)

    @property
    def endpoints(self) -> list[ServiceEndpoint]:
        return list(self.catalog.endpoints)

    @property
    def warnings(self) -> list[Diagnostic]:
        return list(self.catalog.warnings)

    def get_endpoint(self, contract_name: str, namespace: str | None = None) -> ServiceEndpoint:
        return self.catalog.find_endpoint(contract_name, namespace)

    def _contract_name(self, contract_name: str | None) -> str:
        if contract_name is not None:
            return contract_name
        contracts = self.contracts
        if not contracts:
            raise log_fatal(UnknownContractError("<any>", None), "Contract type resolution failed")
        return contracts[0].name

    def get_contract_type(self, contract_name: str | None = None, namespace: str | None = None) -> type:
        return get_contract_type(self._loaded, self._contract_name(contract_name), namespace)

    def get_proxy_type(self, contract_name: str | None = None, namespace: str | None = None) -> type:
        return get_proxy_type(self._loaded, self.get_contract_type(contract_name, namespace))

    def get_proxy(
        self,
        contract_name: str | None = None,
        namespace: str | None = None,
        *,
        strategy: ProxyStrategy | str = ProxyStrategy.PER_SESSION_THROWABLE,
        address: str | None = None,
        binding: Binding | None = None,
        configuration_name: str | None = None,
    ) -> Any:
        """Client (``CLIENT_BASE``) or lifecycle manager for one contract.

        Without an explicit address, binding or configuration name the first
        resolved endpoint of the contract is used.
        """
        name = self._contract_name(contract_name)
        client_type = self.get_proxy_type(name, namespace)
        if address is None and binding is None and configuration_name is None:
            endpoint = self.get_endpoint(name, namespace)
            address = endpoint.address.uri
            binding = endpoint.binding.model_copy()
        strategy = ProxyStrategy(strategy)
        if strategy == ProxyStrategy.CLIENT_BASE:
            return client_type(configuration_name, address, binding, settings=self.settings)
        manager_type = base_class_for(strategy)
        return manager_type(
            client_type,
            endpoint_configuration_name=configuration_name,
            address=address,
            binding=binding,
            settings=self.settings,
        )
