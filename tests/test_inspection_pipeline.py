import uuid

import pytest

from dynclient.client.contract import operation_contract, service_contract
from dynclient.core.description import WILDCARD_ACTION
from dynclient.core.protocol import Message
from dynclient.hosting.host import ServiceHost
from dynclient.inspection.events import EventHook, MessageInspectorEventArgs
from dynclient.inspection.inspector import MessageInspector
from dynclient.inspection.schema import export_schema_set
from dynclient.proxy.strategies import PerCallThrowableProxy, PerSessionThrowableProxy
from dynclient.synthesis.type_cache import ClientTypeCache
from dynclient.utils.exceptions import RemoteFaultError, SchemaValidationError

ADD_ACTION = "http://dynclient.test/ICalculator/Add"


@service_contract(namespace="http://dynclient.test/")
class IRouter:
    @operation_contract(action=WILDCARD_ACTION)
    def Route(self, payload: dict) -> dict:
        raise NotImplementedError


class EchoRouter:
    def Route(self, payload: dict) -> dict:
        return {"echo": payload}


@service_contract(namespace="http://dynclient.test/")
class ISink:
    @operation_contract(action=WILDCARD_ACTION, is_one_way=True)
    def Push(self, item: str) -> None:
        raise NotImplementedError


class ListSink:
    def __init__(self):
        self.items: list[str] = []

    def Push(self, item: str) -> None:
        self.items.append(item)


@pytest.fixture
def manager(calculator_contract, calculator_host):
    proxy = PerSessionThrowableProxy(calculator_contract, address=calculator_host.address, type_cache=ClientTypeCache())
    yield proxy
    proxy.dispose()


def _record(hook: EventHook, name: str, log: list):
    hook.subscribe(lambda sender, args: log.append((name, args)))


def test_request_reply_events_share_message_id(manager) -> None:
    log: list = []
    _record(manager.sending_request, "send", log)
    _record(manager.receiving_reply, "reply", log)
    assert manager.call("Add", 1, 2) == 3
    assert [name for name, _ in log] == ["send", "reply"]
    send, reply = log[0][1], log[1][1]
    assert isinstance(send, MessageInspectorEventArgs)
    assert send.message_id == reply.message_id
    assert send.message.action == ADD_ACTION
    assert reply.message.action == f"{ADD_ACTION}Response"
    assert send.is_one_way is False
    assert send.validation_error is None
    assert send.endpoint is manager.current_endpoint


def test_one_way_raises_reply_event_with_no_message(manager, calculator) -> None:
    log: list = []
    _record(manager.sending_request, "send", log)
    _record(manager.receiving_reply, "reply", log)
    assert manager.call("Notify", "hello") is None
    assert calculator.notifications == ["hello"]
    assert [name for name, _ in log] == ["send", "reply"]
    send, reply = log[0][1], log[1][1]
    assert send.is_one_way and reply.is_one_way
    assert reply.message is None
    assert reply.message_id == send.message_id


def test_schema_violation_is_reported_not_blocking(manager) -> None:
    sent: list[MessageInspectorEventArgs] = []
    errors: list = []
    manager.sending_request.subscribe(lambda sender, args: sent.append(args))
    manager.error_occurred.subscribe(lambda sender, args: errors.append(args))
    with pytest.raises(RemoteFaultError) as caught:
        manager.call("Add", "five", "six")
    assert caught.value.fault_code == "InvalidMessage"
    assert sent[0].validation_error is not None
    assert len(errors) == 1
    exc = errors[0].exception
    assert isinstance(exc, SchemaValidationError)
    assert exc.source == str(sent[0].message_id)
    assert exc.action == ADD_ACTION


def test_ignore_message_validate(manager) -> None:
    manager.ignore_message_validate = True
    sent: list[MessageInspectorEventArgs] = []
    errors: list = []
    manager.sending_request.subscribe(lambda sender, args: sent.append(args))
    manager.error_occurred.subscribe(lambda sender, args: errors.append(args))
    with pytest.raises(RemoteFaultError):
        manager.call("Add", "five", "six")
    assert sent[0].validation_error is None
    assert errors == []


def test_ignore_message_inspect_after_creation(manager) -> None:
    log: list = []
    _record(manager.sending_request, "send", log)
    assert manager.call("Add", 1, 1) == 2
    manager.ignore_message_inspect = True
    assert manager.call("Add", 1, 1) == 2
    assert len(log) == 1


def test_host_events_see_each_exchange(calculator_host, manager) -> None:
    received: list[MessageInspectorEventArgs] = []
    replied: list[MessageInspectorEventArgs] = []
    calculator_host.events.receiving_request.subscribe(lambda sender, args: received.append(args))
    calculator_host.events.sending_reply.subscribe(lambda sender, args: replied.append(args))
    manager.call("Add", 1, 1)
    manager.call("Notify", "x")
    assert [args.message_id for args in received] == [args.message_id for args in replied]
    assert received[0].service_host is calculator_host
    assert replied[1].is_one_way and replied[1].message is None


class TestEventHook:
    def test_handlers_added_during_fire_wait_for_next_event(self) -> None:
        hook = EventHook("test")
        calls: list[str] = []

        def late(sender, args):
            calls.append("late")

        def first(sender, args):
            calls.append("first")
            hook.subscribe(late)

        hook.subscribe(first)
        hook.fire(None, None)
        assert calls == ["first"]
        hook.unsubscribe(first)
        hook.fire(None, None)
        assert calls == ["first", "late"]

    def test_unsubscribe_unknown_handler(self) -> None:
        hook = EventHook()
        assert hook.unsubscribe(lambda sender, args: None) is False
        assert len(hook) == 0


class TestSchemaExport:
    def test_one_model_per_action(self, calculator_contract) -> None:
        schemas = export_schema_set(calculator_contract.__contract__, calculator_contract)
        assert ADD_ACTION in schemas
        assert f"{ADD_ACTION}Response" in schemas
        assert "http://dynclient.test/ICalculator/Notify" in schemas
        assert "http://dynclient.test/ICalculator/NotifyResponse" not in schemas
        assert schemas.validate(ADD_ACTION, {"a": 1, "b": 2}) is None
        assert schemas.validate(ADD_ACTION, {"a": 1}) is not None
        assert schemas.validate(ADD_ACTION, {"a": 1, "b": 2, "c": 3}) is not None
        assert schemas.validate("urn:unknown", {"anything": True}) is None

    def test_wildcard_actions_are_not_exported_and_stay_on_the_contract(self) -> None:
        schemas = export_schema_set(IRouter.__contract__, IRouter)
        assert schemas.actions() == []
        operation = IRouter.__contract__.find_operation("Route")
        assert operation.action == WILDCARD_ACTION
        assert operation.reply_action == WILDCARD_ACTION

    def test_wildcard_operation_is_dispatched(self) -> None:
        address = f"loopback://router-{uuid.uuid4().hex[:8]}/IRouter"
        with ServiceHost(IRouter, EchoRouter(), address):
            with PerSessionThrowableProxy(IRouter, address=address, type_cache=ClientTypeCache()) as proxy:
                assert proxy.call("Route", {"k": 1}) == {"echo": {"k": 1}}

    def test_unknown_action_gets_fault(self, calculator_host) -> None:
        reply = calculator_host.dispatch(Message(action="urn:nope", body={}, message_id="m-1"))
        assert reply.fault.code == "ActionNotSupported"
        assert reply.relates_to == "m-1"


def test_one_way_wildcard_operation_gets_simulated_reply() -> None:
    address = f"loopback://sink-{uuid.uuid4().hex[:8]}/ISink"
    sink = ListSink()
    log: list = []
    with ServiceHost(ISink, sink, address) as host:
        received: list[MessageInspectorEventArgs] = []
        host.events.receiving_request.subscribe(lambda sender, args: received.append(args))
        with PerCallThrowableProxy(ISink, address=address, type_cache=ClientTypeCache()) as proxy:
            _record(proxy.sending_request, "send", log)
            _record(proxy.receiving_reply, "reply", log)
            assert proxy.call("Push", "x") is None
    assert sink.items == ["x"]
    assert [name for name, _ in log] == ["send", "reply"]
    assert log[0][1].is_one_way and log[1][1].message is None
    assert received[0].is_one_way


def test_validator_failure_is_reported_as_event(calculator_host) -> None:
    class BrokenSchemas:
        def validate(self, action, body):
            raise TypeError("schema unavailable")

    inspector = MessageInspector(calculator_host.endpoint)
    inspector.schema_set = BrokenSchemas()
    errors: list = []
    inspector.events.error_occurred.subscribe(lambda sender, args: errors.append(args))
    message_id = uuid.uuid4()
    error = inspector.validate_message(Message(action=ADD_ACTION, body={"a": 1, "b": 2}), message_id)
    assert error == "TypeError: schema unavailable"
    assert isinstance(errors[0].exception, SchemaValidationError)
    assert errors[0].exception.source == str(message_id)
