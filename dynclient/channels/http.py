"""HTTP channel: one JSON message frame per POST."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from dynclient.core.protocol import Message
from dynclient.core.serialization import decode_message, encode_message
from dynclient.utils.exceptions import ChannelFaultError

if TYPE_CHECKING:
    from dynclient.bindings import HttpBinding

ACTION_HEADER = "X-Message-Action"


class HttpChannel:
    def __init__(self, address: str, binding: HttpBinding):
        self.address = address
        self._binding = binding
        self._client: httpx.Client | None = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self, timeout: float) -> None:
        if self._client is not None:
            return
        binding = self._binding
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(binding.send_timeout, connect=timeout, read=binding.receive_timeout),
            "headers": dict(binding.headers),
        }
        if binding.transport is not None:
            kwargs["transport"] = binding.transport
        if getattr(binding, "verify", True) is False:
            kwargs["verify"] = False
        self._client = httpx.Client(**kwargs)

    def close(self, timeout: float) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.close()

    def abort(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except Exception as exc:
            logger.debug(f"Ignoring error while aborting channel to {self.address}: {exc}")

    def request(self, message: Message, timeout: float) -> Message:
        response = self._post(message, timeout)
        body = self._read_json(response)
        reply = decode_message(body, fallback_action=message.action)
        if response.status_code >= 400 and not reply.is_fault:
            raise ChannelFaultError(
                f"HTTP {response.status_code} from {self.address} for {message.action}",
                self.address,
            )
        return reply

    def send(self, message: Message, timeout: float) -> None:
        response = self._post(message, timeout)
        if response.status_code >= 400:
            raise ChannelFaultError(
                f"HTTP {response.status_code} from {self.address} for one-way {message.action}",
                self.address,
            )

    def _post(self, message: Message, timeout: float) -> httpx.Response:
        if self._client is None:
            raise ChannelFaultError(f"Channel to {self.address} is not open", self.address)
        try:
            response = self._client.post(
                self.address,
                json=encode_message(message),
                headers={ACTION_HEADER: message.action},
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise ChannelFaultError(
                f"Request to {self.address} timed out after {timeout}s",
                self.address,
                is_timeout=True,
            ) from exc
        except httpx.RequestError as exc:
            raise ChannelFaultError(f"Request to {self.address} failed: {exc}", self.address) from exc
        if len(response.content) > self._binding.max_received_message_size:
            raise ChannelFaultError(
                f"Reply from {self.address} exceeds max_received_message_size "
                f"({self._binding.max_received_message_size} bytes)",
                self.address,
            )
        return response

    def _read_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ChannelFaultError(
                f"Bad reply from {self.address}: HTTP {response.status_code} with non-JSON body",
                self.address,
            ) from exc
