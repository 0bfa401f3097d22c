"""
Shared pytest fixtures for the service tracker tests.

Remote services are replaced by in-process fakes: ``FakeJsonClient`` answers
``get_json`` calls from a route table, and ``StubTransport`` hands out one fake
client per base URL so location clients can be inspected.
"""

from typing import Any

import pytest

from service_tracker.config import TrackerConfig
from service_tracker.errors import TransportError
from service_tracker.pool import InMemoryAddressPool

DIRECTORY_URL = "http://directory.test"
APP_ID = "app-0001"
SERVICE_ID = "svc-0001"


class FakeJsonClient:
    """Answers ``get_json`` from a path -> response table."""

    def __init__(self, base_url: str = "http://fake", routes: dict[str, Any] | None = None):
        self.base_url = base_url
        self.routes: dict[str, Any] = routes or {}
        self.calls: list[tuple[str, dict[str, str]]] = []

    async def get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        params = dict(params or {})
        self.calls.append((path, params))
        if path not in self.routes:
            raise TransportError(f"GET {self.base_url}{path} failed with status 404", status=404)

        response = self.routes[path]
        if callable(response):
            response = response(params)
        if isinstance(response, BaseException):
            raise response
        return response

    def calls_to(self, path: str) -> list[dict[str, str]]:
        return [params for called, params in self.calls if called == path]


class StubTransport:
    """Stands in for HttpTransport, creating one FakeJsonClient per URL."""

    def __init__(self):
        self.clients: dict[str, FakeJsonClient] = {}
        self.created: list[str] = []
        self.closed = False

    def client(self, base_url: str) -> FakeJsonClient:
        self.created.append(base_url)
        if base_url not in self.clients:
            self.clients[base_url] = FakeJsonClient(base_url)
        return self.clients[base_url]

    def preset(self, base_url: str, routes: dict[str, Any]) -> FakeJsonClient:
        client = FakeJsonClient(base_url, routes)
        self.clients[base_url] = client
        return client

    async def close(self) -> None:
        self.closed = True


def vm_record(
    uuid: str,
    ips: list[str] | None = None,
    state: str = "running",
    nics: list[Any] | None = None,
    destroyed: bool = False,
) -> dict[str, Any]:
    """Build an inventory record as returned by the location lookup."""
    if nics is None:
        nics = [{"ips": [f"{ip}/24" for ip in ips]}] if ips else []
    record = {"uuid": uuid, "state": state, "nics": nics}
    if destroyed:
        record["destroyed"] = True
    return record


def instance_record(
    uuid: str, location: str | None = "us-east-1", shard: str | None = None
) -> dict[str, Any]:
    """Build a directory instance record."""
    metadata: dict[str, Any] = {}
    if location is not None:
        metadata["DATACENTER"] = location
    if shard is not None:
        metadata["SHARD"] = shard
    return {"uuid": uuid, "metadata": metadata}


def directory_routes(instances: list[dict[str, Any]], **overrides: Any) -> dict[str, Any]:
    routes = {
        "/applications": [{"uuid": APP_ID, "metadata": {"datacenter_name": "us-west-1"}}],
        "/services": [{"uuid": SERVICE_ID}],
        "/instances": instances,
    }
    routes.update(overrides)
    return routes


@pytest.fixture
def tracker_config() -> TrackerConfig:
    return TrackerConfig(
        service="manta/moray",
        directory_url=DIRECTORY_URL,
        dns_domain="example.com",
        min_poll=10.0,
        max_poll=60.0,
    )


@pytest.fixture
def pool() -> InMemoryAddressPool:
    return InMemoryAddressPool()


@pytest.fixture
def transport() -> StubTransport:
    return StubTransport()
