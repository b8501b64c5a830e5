"""Composition root: build and wire the connection layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

from lnlink.config.base import ConfigStorePort
from lnlink.config.certs import find_tls_certificates
from lnlink.config.reader import default_config_path
from lnlink.config.store import FileConfigStore
from lnlink.connection.base import ReachabilityProberPort
from lnlink.connection.prober import SocketProber
from lnlink.connection.session import ConnectionSession
from lnlink.connection.transport import TransportBuilder
from lnlink.diagnostics.reporter import DiagnosticsReporter
from lnlink.discovery.registry import EndpointRegistry
from lnlink.discovery.sweep import EndpointDiscovery
from lnlink.errors import LnLinkError
from lnlink.healing.repair import AutoRepairEngine
from lnlink.models import ConnectionConfig, EndpointCandidate, EndpointProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AppContext:
    """Everything the front end needs, explicitly constructed and owned.

    Pass this (or the session alone) to UI collaborators instead of
    reaching for process-wide singletons.
    """

    config_store: ConfigStorePort
    registry: EndpointRegistry
    prober: ReachabilityProberPort
    transport_builder: TransportBuilder
    repair_engine: AutoRepairEngine
    reporter: DiagnosticsReporter
    session: ConnectionSession

    def close(self) -> None:
        self.session.close()


def build_context(
    config_path: Path | str | None = None,
    *,
    config_store: ConfigStorePort | None = None,
    registry: EndpointRegistry | None = None,
    prober: ReachabilityProberPort | None = None,
    transport_builder: TransportBuilder | None = None,
    cert_search_home: Path | str | None = None,
) -> AppContext:
    """Wire the default adapters; any of them can be swapped for a fake."""
    store = config_store or FileConfigStore(Path(config_path or default_config_path()))
    prober = prober or SocketProber()
    builder = transport_builder or TransportBuilder()

    config = _adopt_found_certificate(store, store.load(), cert_search_home)
    registry = _with_preferred_port(registry or EndpointRegistry(), config)

    discovery = EndpointDiscovery(prober, registry)
    repair_engine = AutoRepairEngine(discovery, builder, store)
    reporter = DiagnosticsReporter(discovery)
    session = ConnectionSession(store, builder, repair_engine, reporter, config=config)
    logger.info("Lightning connection layer initialized for %s", session.base_url)

    return AppContext(
        config_store=store,
        registry=registry,
        prober=prober,
        transport_builder=builder,
        repair_engine=repair_engine,
        reporter=reporter,
        session=session,
    )


def _with_preferred_port(registry: EndpointRegistry, config: ConnectionConfig) -> EndpointRegistry:
    """Put the user-configured port ahead of the well-known candidates."""
    if config.preferred_port is None:
        return registry
    protocol = EndpointProtocol.REST_HTTPS if config.use_tls else EndpointProtocol.REST_HTTP
    return registry.with_override(EndpointCandidate(config.host, config.preferred_port, protocol))


def _adopt_found_certificate(
    store: ConfigStorePort,
    config: ConnectionConfig,
    home: Path | str | None,
) -> ConnectionConfig:
    """Fill in a missing certificate path from the usual node data directories."""
    if config.cert_path or not config.use_tls:
        return config
    found = find_tls_certificates(home)
    if not found:
        return config

    updated = replace(config, cert_path=found[0])
    try:
        store.save(updated)
    except LnLinkError as exc:
        logger.warning("Found TLS certificate at %s but could not save it: %s", found[0], exc)
        return config
    logger.info("Found TLS certificate at: %s", found[0])
    return updated
