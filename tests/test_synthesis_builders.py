import sys
import threading
from concurrent.futures import Future

import pytest

from dynclient.client.base import ClientBase
from dynclient.client.contract import contract_of, is_contract_type
from dynclient.core.contracts import ClientBuilder
from dynclient.core.description import ContractDescription, OperationDescription, ParameterDescription
from dynclient.hosting.host import ServiceHost
from dynclient.proxy.strategies import PerSessionThrowableProxy
from dynclient.synthesis.builders import (
    DynamicClientBuilder,
    SourceClientBuilder,
    create_builder,
    get_contract_type,
    get_proxy_type,
)
from dynclient.synthesis.type_cache import ClientTypeCache, ProxyStrategy, base_class_for
from dynclient.utils.exceptions import (
    ArgumentError,
    CodeGenerationError,
    ProxyTypeNotFoundError,
    UnknownContractError,
)


def test_create_builder_kinds() -> None:
    assert isinstance(create_builder("source"), SourceClientBuilder)
    dynamic = create_builder("dynamic", generate_async=True, output_path="ignored.py")
    assert isinstance(dynamic, DynamicClientBuilder)
    assert dynamic.generate_async
    assert isinstance(dynamic, ClientBuilder)
    with pytest.raises(ValueError):
        create_builder("emit")


@pytest.mark.parametrize("kind", ["source", "dynamic"])
def test_builders_produce_the_same_shape(kind, calculator_contract) -> None:
    loaded = create_builder(kind).build([contract_of(calculator_contract)])
    assert {t.__name__ for t in loaded.types} == {"Point", "ICalculator", "CalculatorClient"}
    interface = get_contract_type(loaded, "icalculator", "http://dynclient.test/")
    client = get_proxy_type(loaded, interface)
    assert issubclass(client, ClientBase)
    generated = contract_of(interface)
    declared = contract_of(calculator_contract)
    assert generated.identity == declared.identity
    for operation in declared.operations:
        twin = generated.find_operation(operation.name)
        assert twin.action == operation.action
        assert twin.reply_action == operation.reply_action
        assert twin.is_one_way == operation.is_one_way
        assert twin.signature == operation.signature


def test_dynamic_client_talks_to_host(calculator_contract, calculator, loopback_address) -> None:
    loaded = DynamicClientBuilder(generate_async=True).build([contract_of(calculator_contract)])
    assert loaded.module.__name__ not in sys.modules
    client_type = get_proxy_type(loaded, get_contract_type(loaded, "ICalculator"))
    point = loaded.module.Point
    with ServiceHost(calculator_contract, calculator, loopback_address):
        client = client_type(None, loopback_address, _loopback_binding())
        assert client.Add(a=1, b=2) == 3
        assert client.Translate(point(x=1, y=1), 2) == point(x=3, y=1)
        future = client.Add_async(5, 5)
        assert isinstance(future, Future)
        assert future.result(timeout=5) == 10
        client.Notify("dynamic")
        client.close()
    assert calculator.notifications == ["dynamic"]


def test_dynamic_builder_rejects_bad_contracts() -> None:
    contract = ContractDescription(
        name="IBroken",
        operations=[OperationDescription(name="Echo", parameters=[ParameterDescription("x", "Nope")], return_type="int")],
    )
    with pytest.raises(CodeGenerationError):
        DynamicClientBuilder().build([contract])


class TestTypeResolution:
    def test_unknown_contract(self, calculator_contract) -> None:
        with pytest.raises(UnknownContractError):
            get_contract_type([calculator_contract], "IOther")
        with pytest.raises(UnknownContractError):
            get_contract_type([calculator_contract], "ICalculator", "http://other/")

    def test_missing_proxy_type(self, calculator_contract) -> None:
        with pytest.raises(ProxyTypeNotFoundError):
            get_proxy_type([calculator_contract], calculator_contract)


class TestTypeCache:
    def test_builds_once_per_contract_and_strategy(self, calculator_contract) -> None:
        cache = ClientTypeCache()
        first = cache.get_or_build(calculator_contract, ProxyStrategy.PER_CALL_UNTHROWABLE)
        assert cache.get_or_build(calculator_contract, "per_call_unthrowable") is first
        assert first.__name__ == "ICalculatorPerCallUnthrowableProxy"
        assert issubclass(first, base_class_for(ProxyStrategy.PER_CALL_UNTHROWABLE))
        assert issubclass(first, calculator_contract)
        assert not is_contract_type(first)
        client = cache.get_or_build(calculator_contract, ProxyStrategy.CLIENT_BASE)
        assert issubclass(client, ClientBase)
        assert cache.builds == 2
        assert len(cache) == 2

    def test_concurrent_requests_build_once(self, calculator_contract) -> None:
        cache = ClientTypeCache()
        barrier = threading.Barrier(8)
        results: list[type] = []
        lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            built = cache.get_or_build(calculator_contract, ProxyStrategy.PER_SESSION_THROWABLE)
            with lock:
                results.append(built)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.builds == 1
        assert all(r is results[0] for r in results)

    def test_rejects_non_contract(self) -> None:
        with pytest.raises(ArgumentError):
            ClientTypeCache().get_or_build(dict, ProxyStrategy.CLIENT_BASE)

    def test_operation_named_like_a_manager_member(self) -> None:
        from dynclient.client.contract import operation_contract, service_contract

        @service_contract
        class IClashing:
            @operation_contract
            def dispose(self) -> None:
                raise NotImplementedError

        cache = ClientTypeCache()
        with pytest.raises(ArgumentError, match="collides"):
            cache.get_or_build(IClashing, ProxyStrategy.PER_SESSION_THROWABLE)
        assert cache.peek(IClashing, ProxyStrategy.PER_SESSION_THROWABLE) is None

    def test_typed_manager_is_usable(self, calculator_contract, calculator_host) -> None:
        cache = ClientTypeCache()
        proxy_type = cache.get_or_build(calculator_contract, ProxyStrategy.PER_SESSION_THROWABLE)
        with proxy_type(address=calculator_host.address, type_cache=cache) as proxy:
            assert isinstance(proxy, PerSessionThrowableProxy)
            assert proxy.Add(4, 5) == 9


def _loopback_binding():
    from dynclient.bindings import LoopbackBinding

    return LoopbackBinding()
