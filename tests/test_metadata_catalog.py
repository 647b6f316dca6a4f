import pytest

from dynclient.bindings import BindingRegistry, HttpBinding, LoopbackBinding
from dynclient.config.schema import BindingDefaults
from dynclient.core.description import WILDCARD_ACTION
from dynclient.metadata.catalog import ContractCatalog
from dynclient.utils.exceptions import EndpointNotFoundError, MetadataResolutionError

NS = "http://example.org/calc/"


def _contract(name="ICalculator", namespace=NS, operations=None):
    return {
        "kind": "contract",
        "name": name,
        "namespace": namespace,
        "operations": operations
        if operations is not None
        else [
            {
                "name": "Add",
                "parameters": [{"name": "a", "type": "int"}, {"name": "b", "type": "int"}],
                "returnType": "int",
            }
        ],
    }


def _endpoint(contract="ICalculator", address="http://svc.example/calc", binding="", **extra):
    return {"kind": "endpoint", "name": f"{contract}Endpoint", "contract": contract, "address": address, "binding": binding, **extra}


@pytest.fixture
def catalog():
    return ContractCatalog(BindingRegistry(BindingDefaults()))


def test_resolves_contract_operations_and_default_actions(catalog) -> None:
    resolution = catalog.resolve([_contract(), _endpoint()])
    contract = resolution.contracts[0]
    add = contract.find_operation("Add")
    assert add.action == f"{NS}ICalculator/Add"
    assert add.reply_action == f"{NS}ICalculator/AddResponse"
    assert add.signature == ("int", "int")
    assert add.return_type == "int"
    assert resolution.warnings == []
    endpoint = resolution.endpoints[0]
    assert isinstance(endpoint.binding, HttpBinding)
    assert endpoint.contract is contract


def test_one_way_and_wildcard_defaults(catalog) -> None:
    operations = [
        {"name": "Notify", "parameters": [{"name": "text", "type": "str"}], "isOneWay": True},
        {"name": "Route", "parameters": [{"name": "payload", "type": "dict"}], "returnType": "dict", "action": "*"},
    ]
    contract = catalog.resolve([_contract(operations=operations)]).contracts[0]
    notify = contract.find_operation("Notify")
    assert notify.is_one_way and notify.return_type == "None" and notify.reply_action == ""
    route = contract.find_operation("Route")
    assert route.action == WILDCARD_ACTION
    assert route.reply_action == WILDCARD_ACTION


def test_data_contracts_follow_references_transitively(catalog) -> None:
    fragments = [
        {"kind": "dataContract", "name": "Line", "namespace": NS, "fields": {"start": "Point", "end": "Point"}},
        {"kind": "dataContract", "name": "Point", "namespace": NS, "fields": {"x": "int", "y": "int"}},
        {"kind": "dataContract", "name": "Unused", "fields": {"value": "str"}},
        _contract(operations=[{"name": "Length", "parameters": [{"name": "line", "type": "Line"}], "returnType": "float"}]),
    ]
    contract = catalog.resolve(fragments).contracts[0]
    assert [dc.name for dc in contract.data_contracts] == ["Line", "Point"]


def test_snake_case_fragments_and_field_names_are_kept(catalog) -> None:
    fragments = [
        {"kind": "data_contract", "name": "Reading", "fields": {"sensorId": "str", "takenAt": "datetime"}},
        _contract(operations=[{"name": "Last", "parameters": [], "return_type": "Reading"}]),
    ]
    contract = catalog.resolve(fragments).contracts[0]
    assert contract.data_contracts[0].fields == {"sensorId": "str", "takenAt": "datetime"}


class TestWarnings:
    @pytest.mark.parametrize(("raw", "expected"), [("false", False), ("true", True), ("0", False), (1, True), (None, False)])
    def test_one_way_flag_parsing(self, catalog, raw, expected) -> None:
        operations = [{"name": "Fire", "isOneWay": raw}]
        resolution = catalog.resolve([_contract(operations=operations)])
        assert resolution.contracts[0].find_operation("Fire").is_one_way is expected
        assert resolution.warnings == []

    def test_unparsable_one_way_flag_is_two_way(self, catalog) -> None:
        resolution = catalog.resolve([_contract(operations=[{"name": "Fire", "isOneWay": "sometimes"}])])
        assert resolution.contracts[0].find_operation("Fire").is_one_way is False
        assert "not a boolean" in resolution.warnings[0].message

    def test_unknown_kind_is_ignored_with_warning(self, catalog) -> None:
        resolution = catalog.resolve([{"kind": "policy", "name": "x"}, _contract()])
        assert len(resolution.contracts) == 1
        assert any("unknown kind" in w.message for w in resolution.warnings)
        assert all(w.is_warning for w in resolution.warnings)

    def test_unknown_type_degrades_to_any(self, catalog) -> None:
        operations = [{"name": "Echo", "parameters": [{"name": "value", "type": "Mystery"}], "returnType": "Mystery"}]
        resolution = catalog.resolve([_contract(operations=operations)])
        echo = resolution.contracts[0].find_operation("Echo")
        assert echo.parameters[0].type_name == "Any"
        assert echo.return_type == "Any"
        assert len(resolution.warnings) == 2

    def test_endpoint_with_unknown_contract_is_skipped(self, catalog) -> None:
        resolution = catalog.resolve([_contract(), _endpoint(contract="IOther")])
        assert resolution.endpoints == []
        assert "unknown contract" in resolution.warnings[0].message

    def test_endpoint_with_bad_address_is_skipped(self, catalog) -> None:
        resolution = catalog.resolve([_contract(), _endpoint(address="calc")])
        assert resolution.endpoints == []

    def test_endpoint_with_unknown_binding_is_skipped(self, catalog) -> None:
        resolution = catalog.resolve([_contract(), _endpoint(binding="netTcp")])
        assert resolution.endpoints == []
        assert "unknown binding" in resolution.warnings[0].message

    def test_binding_with_unknown_type_is_skipped(self, catalog) -> None:
        resolution = catalog.resolve([_contract(), {"kind": "binding", "name": "b1", "type": "msmq"}])
        assert resolution.bindings == {}
        assert len(resolution.warnings) == 1

    def test_invalid_binding_timeout_falls_back_to_presets(self, catalog) -> None:
        fragments = [
            _contract(),
            {"kind": "binding", "name": "fast", "type": "http", "sendTimeout": -1},
            _endpoint(binding="fast"),
        ]
        resolution = catalog.resolve(fragments)
        assert resolution.bindings["fast"].send_timeout == 600.0
        assert resolution.endpoints[0].binding is resolution.bindings["fast"]
        assert len(resolution.warnings) == 1


class TestFatalErrors:
    def test_contract_without_name(self, catalog) -> None:
        with pytest.raises(MetadataResolutionError) as caught:
            catalog.resolve([_contract(name="")])
        assert not caught.value.diagnostics[-1].is_warning

    def test_duplicate_contract_identity(self, catalog) -> None:
        with pytest.raises(MetadataResolutionError, match="duplicate contract"):
            catalog.resolve([_contract(), _contract(name="icalculator", namespace=NS.upper())])

    def test_duplicate_operation(self, catalog) -> None:
        operations = [{"name": "Add"}, {"name": "Add"}]
        with pytest.raises(MetadataResolutionError, match="duplicate operation"):
            catalog.resolve([_contract(operations=operations)])

    def test_one_way_with_result(self, catalog) -> None:
        operations = [{"name": "Fire", "isOneWay": True, "returnType": "int"}]
        with pytest.raises(MetadataResolutionError):
            catalog.resolve([_contract(operations=operations)])

    def test_diagnostics_collected_before_failure_are_carried(self, catalog) -> None:
        with pytest.raises(MetadataResolutionError) as caught:
            catalog.resolve([{"kind": "policy"}, _contract(name="")])
        assert len(caught.value.diagnostics) == 2
        assert caught.value.diagnostics[0].is_warning


class TestLookups:
    def test_find_endpoint_is_case_insensitive(self, catalog) -> None:
        catalog.resolve([_contract(), _endpoint()])
        assert catalog.find_endpoint("icalculator").address.uri == "http://svc.example/calc"
        assert catalog.find_endpoint("ICALCULATOR", NS.upper()) is catalog.endpoints[0]

    def test_find_endpoint_respects_namespace(self, catalog) -> None:
        catalog.resolve([_contract(), _endpoint()])
        with pytest.raises(EndpointNotFoundError):
            catalog.find_endpoint("ICalculator", "http://other.org/")

    def test_first_matching_endpoint_wins(self, catalog) -> None:
        catalog.resolve([
            _contract(),
            _endpoint(address="loopback://one/calc"),
            _endpoint(address="http://two.example/calc"),
        ])
        endpoint = catalog.find_endpoint("ICalculator")
        assert endpoint.address.uri == "loopback://one/calc"
        assert isinstance(endpoint.binding, LoopbackBinding)

    def test_find_contract(self, catalog) -> None:
        catalog.resolve([_contract()])
        assert catalog.find_contract("icalculator", NS) is catalog.contracts[0]
        assert catalog.find_contract("IOther") is None
