"""Runtime contracts for pluggable collaborators (channels, metadata sources, builders)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Sequence, runtime_checkable

from .protocol import Message

if TYPE_CHECKING:
    from dynclient.core.description import ContractDescription
    from dynclient.synthesis.compiler import LoadedModule


@runtime_checkable
class Channel(Protocol):
    """Transport channel created by a binding for one client instance."""

    address: str

    def open(self, timeout: float) -> None:
        ...

    def close(self, timeout: float) -> None:
        ...

    def abort(self) -> None:
        ...

    def request(self, message: Message, timeout: float) -> Message:
        ...

    def send(self, message: Message, timeout: float) -> None:
        ...


@runtime_checkable
class MetadataSource(Protocol):
    """Supplies raw metadata fragments for a discovery address."""

    def fetch(self, address: str) -> list[dict[str, Any]]:
        ...


@runtime_checkable
class ClientBuilder(Protocol):
    """Turns resolved contracts into a module of contract and client types."""

    def build(self, contracts: Sequence[ContractDescription]) -> LoadedModule:
        ...
