"""Pytest hooks and fixtures."""

import uuid

import pytest
from pydantic import BaseModel, ConfigDict

from dynclient.client.contract import operation_contract, service_contract
from dynclient.config.access import clear_config_cache
from dynclient.hosting.host import ServiceHost

TEST_NAMESPACE = "http://dynclient.test/"


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "network: exercises the HTTP transport (served by httpx.MockTransport)",
    )


class Point(BaseModel):
    model_config = ConfigDict(json_schema_extra={"namespace": TEST_NAMESPACE})

    x: int
    y: int


@service_contract(namespace=TEST_NAMESPACE, known_types=[Point])
class ICalculator:
    @operation_contract
    def Add(self, a: int, b: int) -> int:
        raise NotImplementedError

    @operation_contract
    def Divide(self, a: float, b: float) -> float:
        raise NotImplementedError

    @operation_contract
    def Translate(self, point: Point, dx: int) -> Point:
        raise NotImplementedError

    @operation_contract(is_one_way=True)
    def Notify(self, text: str) -> None:
        raise NotImplementedError


class Calculator:
    def __init__(self):
        self.notifications: list[str] = []

    def Add(self, a: int, b: int) -> int:
        return a + b

    def Divide(self, a: float, b: float) -> float:
        return a / b

    def Translate(self, point: Point, dx: int) -> Point:
        return Point(x=point.x + dx, y=point.y)

    def Notify(self, text: str) -> None:
        self.notifications.append(text)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the default config path at an empty home directory."""
    monkeypatch.setenv("HOME", str(tmp_path))
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def calculator_contract():
    return ICalculator


@pytest.fixture
def point_type():
    return Point


@pytest.fixture
def loopback_address():
    return f"loopback://calc-{uuid.uuid4().hex[:8]}/ICalculator"


@pytest.fixture
def calculator():
    return Calculator()


@pytest.fixture
def calculator_host(calculator, loopback_address):
    host = ServiceHost(ICalculator, calculator, loopback_address)
    host.open()
    yield host
    host.close()
