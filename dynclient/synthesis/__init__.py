"""Client type synthesis: source generation, compilation, builders and the type cache."""

from .builders import (
    DynamicClientBuilder,
    SourceClientBuilder,
    create_builder,
    get_contract_type,
    get_proxy_type,
)
from .codegen import GenerationResult, SourceGenerator, check_contracts, client_class_name
from .compiler import LoadedModule, ModuleCompiler
from .type_cache import ClientTypeCache, ProxyStrategy, default_type_cache

__all__ = [
    "DynamicClientBuilder",
    "SourceClientBuilder",
    "create_builder",
    "get_contract_type",
    "get_proxy_type",
    "GenerationResult",
    "SourceGenerator",
    "check_contracts",
    "client_class_name",
    "LoadedModule",
    "ModuleCompiler",
    "ClientTypeCache",
    "ProxyStrategy",
    "default_type_cache",
]
