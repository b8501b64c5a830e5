"""Shared test fixtures: in-memory settings, scripted reachability, fake node."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from lnlink.config.base import ConfigStorePort
from lnlink.connection.session import ConnectionSession
from lnlink.connection.transport import TransportBuilder
from lnlink.diagnostics.reporter import DiagnosticsReporter
from lnlink.discovery.registry import EndpointRegistry
from lnlink.discovery.sweep import EndpointDiscovery
from lnlink.healing.repair import AutoRepairEngine
from lnlink.models import ConnectionConfig, HostCheck

NODE_INFO = {
    "identity_pubkey": "02f1a8c87607f415c8f22c00593002775941dea48869ce23096af27b0cfdcc0b69",
    "alias": "alice",
    "num_active_channels": 2,
    "num_pending_channels": 1,
    "num_peers": 3,
    "block_height": 812345,
    "synced_to_chain": True,
}


class FakeProber:
    """ReachabilityProberPort with a scripted set of listening endpoints."""

    def __init__(self) -> None:
        self.reachable: set[tuple[str, int]] = set()
        self.host_check = HostCheck(host="", resolved=True, reachable=False)
        self.calls: list[tuple[str, int, int]] = []

    def probe(self, host: str, port: int, timeout_ms: int) -> bool:
        self.calls.append((host, port, timeout_ms))
        return (host, port) in self.reachable

    def check_host(self, host: str, timeout_ms: int) -> HostCheck:
        return HostCheck(
            host=host,
            resolved=self.host_check.resolved,
            reachable=self.host_check.reachable,
            address=self.host_check.address,
            error=self.host_check.error,
        )


class MemoryConfigStore:
    """ConfigStorePort that records every save."""

    def __init__(self, config: ConnectionConfig | None = None) -> None:
        self.config = config or ConnectionConfig()
        self.saved: list[ConnectionConfig] = []

    def load(self) -> ConnectionConfig:
        return self.config

    def save(self, config: ConnectionConfig) -> None:
        self.saved.append(config)
        self.config = config


class FakeNode:
    """httpx.MockTransport handler answering ``getinfo`` on chosen endpoints.

    ``answering`` holds (scheme, host, port) keys that return NODE_INFO;
    ``failing`` maps keys to an error message returned as HTTP 500;
    everything else raises ConnectError like a closed port.
    """

    def __init__(self) -> None:
        self.answering: set[tuple[str, str, int]] = set()
        self.failing: dict[tuple[str, str, int], str] = {}
        self.requests: list[tuple[str, str, int, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.url.scheme, request.url.host, request.url.port)
        self.requests.append((*key, request.url.path))
        if key in self.failing:
            return httpx.Response(500, json={"code": 2, "message": self.failing[key]})
        if key not in self.answering:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
        return httpx.Response(200, json=NODE_INFO)

    def builder(self) -> TransportBuilder:
        return TransportBuilder(transport_factory=lambda verify: httpx.MockTransport(self.handler))


@pytest.fixture()
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture()
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture()
def store() -> MemoryConfigStore:
    return MemoryConfigStore()


@pytest.fixture()
def registry() -> EndpointRegistry:
    return EndpointRegistry()


@pytest.fixture()
def make_session(
    prober: FakeProber,
    node: FakeNode,
    store: MemoryConfigStore,
    registry: EndpointRegistry,
) -> Callable[..., ConnectionSession]:
    """Build a fully wired session over the fakes."""

    def _make(
        config: ConnectionConfig | None = None,
        *,
        config_store: ConfigStorePort | None = None,
    ) -> ConnectionSession:
        if config is not None:
            store.config = config
        settings = config_store or store
        builder = node.builder()
        discovery = EndpointDiscovery(prober, registry)
        engine = AutoRepairEngine(discovery, builder, settings)
        reporter = DiagnosticsReporter(discovery)
        return ConnectionSession(settings, builder, engine, reporter)

    return _make
