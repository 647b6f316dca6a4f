import json

import httpx
import pytest

from dynclient.bindings import HttpBinding
from dynclient.channels.http import ACTION_HEADER
from dynclient.client.base import CommunicationState
from dynclient.synthesis.type_cache import ClientTypeCache, ProxyStrategy
from dynclient.utils.exceptions import ChannelFaultError, ErrorCategory, RemoteFaultError

pytestmark = pytest.mark.network

ADDRESS = "http://svc.example/calc"
ADD_ACTION = "http://dynclient.test/ICalculator/Add"


def _client(contract, handler, **binding_options):
    client_type = ClientTypeCache().get_or_build(contract, ProxyStrategy.CLIENT_BASE)
    binding = HttpBinding(transport=httpx.MockTransport(handler), **binding_options)
    return client_type(None, ADDRESS, binding)


def test_request_reply_over_http(calculator_contract) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        frame = json.loads(request.content)
        body = frame["body"]
        return httpx.Response(
            200,
            json={"action": f"{frame['action']}Response", "relatesTo": frame["messageId"], "body": {"result": body["a"] + body["b"]}},
        )

    client = _client(calculator_contract, handler)
    assert client.Add(2, 3) == 5
    assert client.state == CommunicationState.OPENED
    assert seen[0].method == "POST"
    assert str(seen[0].url) == ADDRESS
    assert seen[0].headers[ACTION_HEADER] == ADD_ACTION
    client.close()
    assert client.state == CommunicationState.CLOSED


def test_credentials_travel_in_message_headers(calculator_contract) -> None:
    frames: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        frames.append(json.loads(request.content))
        return httpx.Response(200, json={"action": f"{ADD_ACTION}Response", "body": {"result": 0}})

    client = _client(calculator_contract, handler)
    client.client_credentials.token = "abc"
    client.Add(0, 0)
    assert frames[0]["headers"]["Authorization"] == "Bearer abc"


def test_fault_frame_raises_remote_fault(calculator_contract) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"fault": {"code": "Sender", "reason": "bad numbers"}})

    client = _client(calculator_contract, handler)
    with pytest.raises(RemoteFaultError) as caught:
        client.Add(1, 1)
    assert caught.value.fault_code == "Sender"
    assert caught.value.reason == "bad numbers"
    assert client.state == CommunicationState.OPENED


def test_http_error_without_fault_faults_the_client(calculator_contract) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    client = _client(calculator_contract, handler)
    with pytest.raises(ChannelFaultError) as caught:
        client.Add(1, 1)
    assert not isinstance(caught.value, RemoteFaultError)
    assert client.state == CommunicationState.FAULTED
    with pytest.raises(ChannelFaultError):
        client.close()
    client.abort()
    assert client.state == CommunicationState.CLOSED


def test_timeout_is_reported_as_timeout_category(calculator_contract) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(calculator_contract, handler, send_timeout=0.5)
    with pytest.raises(ChannelFaultError) as caught:
        client.Add(1, 1)
    assert caught.value.category == ErrorCategory.TIMEOUT
    assert "0.5s" in caught.value.message


def test_reply_larger_than_quota_is_rejected(calculator_contract) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"action": f"{ADD_ACTION}Response", "body": {"result": 12345}})

    client = _client(calculator_contract, handler, max_received_message_size=10)
    with pytest.raises(ChannelFaultError, match="max_received_message_size"):
        client.Add(1, 1)


def test_one_way_send_does_not_read_reply(calculator_contract) -> None:
    actions: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        actions.append(request.headers[ACTION_HEADER])
        return httpx.Response(202)

    client = _client(calculator_contract, handler)
    assert client.Notify("hello") is None
    assert actions == ["http://dynclient.test/ICalculator/Notify"]
