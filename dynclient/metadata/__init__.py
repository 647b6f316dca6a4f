"""Metadata resolution: fragment sources and the contract catalog."""

from .catalog import CatalogResolution, ContractCatalog, MetadataWarning
from .sources import HttpMetadataSource, LoopbackMetadataSource, StaticMetadataSource

__all__ = [
    "CatalogResolution",
    "ContractCatalog",
    "MetadataWarning",
    "HttpMetadataSource",
    "LoopbackMetadataSource",
    "StaticMetadataSource",
]
