import pytest

from dynclient.client.base import CommunicationState
from dynclient.inspection.events import ErrorEventArgs
from dynclient.proxy.strategies import (
    PerCallThrowableProxy,
    PerCallUnthrowableProxy,
    PerSessionThrowableProxy,
    PerSessionUnthrowableProxy,
)
from dynclient.synthesis.type_cache import ClientTypeCache, ProxyStrategy
from dynclient.utils.exceptions import (
    ArgumentError,
    ArgumentMismatchError,
    ChannelFaultError,
    MethodNotFoundError,
    ObjectDisposedError,
    RemoteFaultError,
)


@pytest.fixture
def type_cache():
    return ClientTypeCache()


def test_manager_calls_through_loopback(calculator_contract, calculator_host, type_cache) -> None:
    manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
    assert manager.call("Add", 2, 3) == 5
    assert manager.state == CommunicationState.OPENED
    assert manager.current_endpoint.address.uri == calculator_host.address


def test_typed_proxy_forwards_to_the_manager(calculator_contract, point_type, calculator_host, type_cache) -> None:
    proxy_type = type_cache.get_or_build(calculator_contract, ProxyStrategy.PER_SESSION_THROWABLE)
    proxy = proxy_type(address=calculator_host.address, type_cache=type_cache)
    assert isinstance(proxy, calculator_contract)
    moved = proxy.Translate(point_type(x=1, y=2), dx=4)
    assert moved == point_type(x=5, y=2)
    assert proxy.Divide(b=4.0, a=2.0) == 0.5


def test_call_with_types_selects_by_signature(calculator_contract, calculator_host, type_cache) -> None:
    manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
    assert manager.call_with_types("Add", [int, int], [20, 22]) == 42
    with pytest.raises(MethodNotFoundError):
        manager.call_with_types("Add", [str, int], ["a", 1])
    with pytest.raises(ArgumentMismatchError):
        manager.call_with_types("Add", [int], [1, 2])


def test_call_operation_accepts_contract_method(calculator_contract, calculator_host, type_cache) -> None:
    manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
    assert manager.call_operation(calculator_contract.Add, 1, 1) == 2
    assert manager.call_operation("Add", 1, 2) == 3


def test_wrong_argument_count_is_rejected_before_dispatch(calculator_contract, calculator_host, type_cache) -> None:
    manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
    with pytest.raises(ArgumentError):
        manager.call("Add", 1)
    assert manager.state == CommunicationState.CREATED
    with pytest.raises(MethodNotFoundError):
        manager.call("Multiply", 1, 2)


def test_remote_fault_reaches_throwable_caller(calculator_contract, calculator_host, type_cache) -> None:
    manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
    with pytest.raises(RemoteFaultError) as caught:
        manager.call("Divide", 1.0, 0.0)
    assert caught.value.fault_code == "ZeroDivisionError"
    # The failed instance is torn down; the next call builds a new one.
    assert manager.call("Add", 1, 1) == 2


class TestFaultPolicies:
    def test_per_call_throwable_reraises_unwrapped(self, calculator_contract, loopback_address, type_cache) -> None:
        manager = PerCallThrowableProxy(calculator_contract, address=loopback_address, type_cache=type_cache)
        with pytest.raises(ChannelFaultError) as caught:
            manager.call("Add", 1, 2)
        assert caught.value.code == "ENDPOINT_NOT_LISTENING"
        assert manager.state == CommunicationState.FAULTED
        assert manager.is_aborted

    def test_per_call_unthrowable_reports_and_returns_none(self, calculator_contract, loopback_address, type_cache) -> None:
        manager = PerCallUnthrowableProxy(calculator_contract, address=loopback_address, type_cache=type_cache)
        errors: list[ErrorEventArgs] = []
        manager.error_occurred.subscribe(lambda sender, args: errors.append(args))
        assert manager.call("Add", 1, 2) is None
        assert len(errors) == 1
        assert isinstance(errors[0].exception, ChannelFaultError)
        assert errors[0].operation == "Add"

    def test_per_session_unthrowable_open_reports(self, calculator_contract, loopback_address, type_cache) -> None:
        manager = PerSessionUnthrowableProxy(calculator_contract, address=loopback_address, type_cache=type_cache)
        errors: list[ErrorEventArgs] = []
        manager.error_occurred.subscribe(lambda sender, args: errors.append(args))
        manager.open()
        assert len(errors) == 1
        assert errors[0].operation is None
        assert manager.state == CommunicationState.FAULTED

    def test_per_session_throwable_open_raises(self, calculator_contract, loopback_address, type_cache) -> None:
        manager = PerSessionThrowableProxy(calculator_contract, address=loopback_address, type_cache=type_cache)
        with pytest.raises(ChannelFaultError):
            manager.open()
        assert manager.state == CommunicationState.FAULTED

    def test_remote_fault_in_unthrowable_session(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerSessionUnthrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        errors: list[ErrorEventArgs] = []
        manager.error_occurred.subscribe(lambda sender, args: errors.append(args))
        assert manager.call("Divide", 1.0, 0.0) is None
        assert isinstance(errors[-1].exception, RemoteFaultError)
        assert manager.call("Add", 2, 2) == 4


class TestLifecycle:
    def test_dispose_is_idempotent(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.call("Add", 1, 1)
        manager.dispose()
        manager.dispose()
        assert manager.is_disposed
        assert manager.state == CommunicationState.CLOSED
        with pytest.raises(ObjectDisposedError):
            manager.call("Add", 1, 1)
        with pytest.raises(ObjectDisposedError):
            manager.open()

    def test_context_manager_disposes(self, calculator_contract, calculator_host, type_cache) -> None:
        with PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache) as manager:
            assert manager.call("Add", 3, 4) == 7
        assert manager.is_disposed

    def test_abort_marks_aborted(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.open()
        manager.abort()
        assert manager.is_aborted
        assert manager.state == CommunicationState.CLOSED
        manager.open()
        assert not manager.is_aborted

    def test_close_after_host_shutdown_does_not_raise(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.open()
        calculator_host.close()
        manager.close()
        assert manager.state == CommunicationState.CLOSED

    def test_per_call_open_keeps_no_instance(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerCallThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.open()
        assert manager.call("Add", 1, 2) == 3
        assert manager.current_endpoint is not None
        assert manager.state == CommunicationState.CLOSED

    def test_get_and_set_property(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        assert manager.get_property("state") == CommunicationState.CREATED
        manager.tag = {"owner": "tests"}
        assert manager.tag == {"owner": "tests"}
        with pytest.raises(AttributeError):
            manager.get_property("no_such_property")
        with pytest.raises(AttributeError):
            manager.set_property("no_such_property", 1)

    def test_rejects_non_contract_target(self) -> None:
        with pytest.raises(ArgumentError):
            PerSessionThrowableProxy(dict)


class TestInitialization:
    def test_credentials_callback_reaches_the_host(self, calculator_contract, calculator_host, type_cache) -> None:
        seen: list[dict] = []
        calculator_host.events.receiving_request.subscribe(lambda sender, args: seen.append(dict(args.message.headers)))
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.set_client_credentials_action = lambda credentials: setattr(credentials, "token", "t1")
        manager.call("Add", 1, 1)
        assert seen[-1]["Authorization"] == "Bearer t1"

    def test_dirty_callbacks_rerun_on_existing_instance(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        calls: list[str] = []
        manager.set_binding_action = lambda binding: calls.append("binding")
        manager.call("Add", 1, 1)
        assert calls == ["binding"]
        manager.call("Add", 1, 1)
        assert calls == ["binding"]
        manager.set_client_credentials_action = lambda credentials: calls.append("credentials")
        manager.call("Add", 1, 1)
        assert calls == ["binding", "credentials"]

    def test_binding_callback_can_change_timeouts(self, calculator_contract, calculator_host, type_cache) -> None:
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.set_binding_action = lambda binding: setattr(binding, "send_timeout", 5.0)
        assert manager.endpoint.binding.send_timeout == 5.0

    def test_serializer_settings_are_applied(self, calculator_contract, calculator_host, type_cache) -> None:
        from dynclient.client.behaviors import SerializerOperationBehavior

        resolved: list[SerializerOperationBehavior] = []
        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.set_serializer_resolver_action = resolved.append
        endpoint = manager.endpoint
        assert len(resolved) == len(endpoint.contract.operations)
        for operation in endpoint.contract.operations:
            serializer = operation.find_behavior(SerializerOperationBehavior)
            assert serializer.ignore_extension_data is True
            assert serializer.max_items_in_object_graph > 65536
        # Behaviors live on the instance's copy, never on the declared contract.
        assert all(not op.behaviors for op in calculator_contract.__contract__.operations)

    def test_inspector_behavior_attached_once(self, calculator_contract, calculator_host, type_cache) -> None:
        from dynclient.inspection.behavior import MessageInspectorEndpointBehavior

        manager = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=type_cache)
        manager.call("Add", 1, 1)
        manager.set_binding_action = lambda binding: None
        manager.call("Add", 1, 1)
        behaviors = [b for b in manager.endpoint.behaviors if isinstance(b, MessageInspectorEndpointBehavior)]
        assert len(behaviors) == 1


@pytest.mark.parametrize(
    "manager_type",
    [PerCallThrowableProxy, PerCallUnthrowableProxy, PerSessionThrowableProxy, PerSessionUnthrowableProxy],
)
def test_every_flavor_builds_from_an_address(manager_type, calculator_contract, calculator_host, type_cache) -> None:
    with manager_type(calculator_contract, address=calculator_host.address, type_cache=type_cache) as manager:
        assert manager.call("Add", 10, 5) == 15
        assert manager.current_endpoint.configuration_name is None
