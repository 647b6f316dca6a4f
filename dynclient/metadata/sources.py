"""Metadata sources: where fragments for a discovery address come from."""

from __future__ import annotations

from typing import Any, Iterable

import httpx
from loguru import logger

from dynclient.channels.loopback import get_listener
from dynclient.utils.exceptions import MetadataResolutionError, log_fatal


def _fragment_list(body: Any, address: str) -> list[dict[str, Any]]:
    if isinstance(body, dict) and isinstance(body.get("fragments"), list):
        body = body["fragments"]
    if not isinstance(body, list) or not all(isinstance(item, dict) for item in body):
        raise log_fatal(
            MetadataResolutionError(f"Metadata from {address} is not a list of fragments"),
            "Metadata fetch failed",
        )
    return body


class StaticMetadataSource:
    """Fragments fetched ahead of time, returned for any address."""

    def __init__(self, fragments: Iterable[dict[str, Any]]):
        self.fragments = [dict(f) for f in fragments]

    def fetch(self, address: str) -> list[dict[str, Any]]:
        return [dict(f) for f in self.fragments]


class LoopbackMetadataSource:
    """Reads the metadata published by a ServiceHost in this process."""

    def fetch(self, address: str) -> list[dict[str, Any]]:
        listener = get_listener(address)
        export = getattr(listener, "export_metadata", None)
        if export is None:
            raise log_fatal(
                MetadataResolutionError(f"No service publishing metadata at {address}"),
                "Metadata fetch failed",
            )
        return _fragment_list(export(), address)


class HttpMetadataSource:
    """GET ``address + query`` and read a JSON fragment list."""

    def __init__(
        self,
        *,
        timeout: float | None = None,
        query: str | None = None,
        transport: httpx.BaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ):
        if timeout is None or query is None:
            from dynclient.config.access import get_config

            metadata = get_config().metadata
            timeout = metadata.timeout_seconds if timeout is None else timeout
            query = metadata.query if query is None else query
        self.timeout = timeout
        self.query = query
        self.transport = transport
        self.headers = dict(headers or {})

    def metadata_url(self, address: str) -> str:
        if not self.query or address.endswith(self.query):
            return address
        if self.query.startswith("?") and "?" in address:
            return f"{address}&{self.query[1:]}"
        return f"{address}{self.query}"

    def fetch(self, address: str) -> list[dict[str, Any]]:
        url = self.metadata_url(address)
        logger.debug(f"Fetching metadata from {url}")
        try:
            with httpx.Client(timeout=self.timeout, headers=self.headers, transport=self.transport) as client:
                response = client.get(url)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as e:
            raise log_fatal(
                MetadataResolutionError(f"Metadata request to {url} timed out after {self.timeout}s"),
                "Metadata fetch failed",
            ) from e
        except httpx.HTTPStatusError as e:
            raise log_fatal(
                MetadataResolutionError(f"Metadata request to {url} returned HTTP {e.response.status_code}"),
                "Metadata fetch failed",
            ) from e
        except httpx.RequestError as e:
            raise log_fatal(
                MetadataResolutionError(f"Metadata request to {url} failed: {e}"),
                "Metadata fetch failed",
            ) from e
        except ValueError as e:
            raise log_fatal(
                MetadataResolutionError(f"Metadata from {url} is not JSON: {e}"),
                "Metadata fetch failed",
            ) from e
        return _fragment_list(body, url)
