"""Find a working endpoint for the node and persist it.

Invariant: a configuration is only ever saved after a full administrative
API call against exactly that configuration succeeded. Reachability alone
never causes a write, and a failed run leaves the saved settings untouched.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from lnlink.config.base import ConfigStorePort
from lnlink.connection.transport import DEFAULT_TIMEOUT_SECONDS, TransportBuilder
from lnlink.discovery.sweep import EndpointDiscovery
from lnlink.errors import LnLinkError, NodeApiError, TransportError
from lnlink.models import ConnectionConfig, RepairResult
from lnlink.node.client import NodeClient

logger = logging.getLogger(__name__)

GENERIC_LOOPBACK_NAME = "localhost"
# Networking stacks and container setups resolve "localhost" inconsistently
LOOPBACK_ALTERNATIVES = ("127.0.0.1", "0.0.0.0")

REACHABILITY_TIMEOUT_MS = 1000


class AutoRepairEngine:
    """Sweep, verify and persist -- stopping at the first verified endpoint.

    Steps, in order:
    1. The configured endpoint answers again: success, nothing changes.
    2. Another registry port on the configured host answers: switch port.
    3. The host is ``localhost``: retry the numeric loopback addresses with
       the configured port and any port discovered on them.
    """

    def __init__(
        self,
        discovery: EndpointDiscovery,
        transport_builder: TransportBuilder,
        config_store: ConfigStorePort,
        *,
        verify_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.discovery = discovery
        self.transport_builder = transport_builder
        self.config_store = config_store
        self.verify_timeout_seconds = verify_timeout_seconds

    def discover_port(self, host: str) -> int | None:
        return self.discovery.discover_port(host)

    def auto_repair(self, config: ConnectionConfig) -> RepairResult:
        """Run the repair steps against *config*.

        Returns:
            RepairResult whose ``config`` is the verified and already saved
            configuration on success, or *config* unchanged on failure.
        """
        logger.info("Attempting to auto-fix connection to %s...", config.address)
        prober = self.discovery.prober

        # 1. Transient failure: the configured endpoint is back
        if prober.probe(config.host, config.port, REACHABILITY_TIMEOUT_MS) and self.verify(config):
            logger.info("Configured endpoint %s is answering again", config.address)
            return RepairResult(
                fixed=True,
                config=config,
                description=f"Node is answering on the configured endpoint {config.address}",
            )

        # 2. Same host, different port
        discovered = self.discovery.discover_port(config.host)
        if discovered is not None and discovered != config.port:
            result = self._try_candidate(replace(config, port=discovered), probe_first=False)
            if result is not None:
                return result

        # 3. Numeric loopback addresses instead of the generic name
        if config.host == GENERIC_LOOPBACK_NAME:
            for address in LOOPBACK_ALTERNATIVES:
                logger.info("Trying alternative address: %s", address)
                for port in self._ports_to_try(address, config.port, discovered):
                    result = self._try_candidate(replace(config, host=address, port=port))
                    if result is not None:
                        return result

        logger.warning("Could not auto-fix connection to %s", config.address)
        return RepairResult(
            fixed=False,
            config=config,
            description=f"No responding node endpoint found for {config.host}",
        )

    def verify(self, config: ConnectionConfig) -> bool:
        """Full administrative API call against exactly *config*."""
        try:
            transport = self.transport_builder.build(
                config.host, config.port, config.use_tls, config.cert_path
            )
        except TransportError as exc:
            logger.warning("Cannot build transport for %s: %s", config.address, exc)
            return False

        try:
            NodeClient(transport).get_info(timeout=self.verify_timeout_seconds)
        except NodeApiError as exc:
            logger.warning("Endpoint %s did not pass API verification: %s", config.address, exc)
            return False
        finally:
            transport.close()
        return True

    def _ports_to_try(self, address: str, configured: int, discovered: int | None) -> list[int]:
        ports = [configured]
        if discovered is not None:
            ports.append(discovered)
        local = self.discovery.discover_port(address)
        if local is not None:
            ports.append(local)
        return list(dict.fromkeys(ports))

    def _try_candidate(
        self, candidate: ConnectionConfig, *, probe_first: bool = True
    ) -> RepairResult | None:
        if probe_first and not self.discovery.prober.probe(
            candidate.host, candidate.port, REACHABILITY_TIMEOUT_MS
        ):
            return None
        if not self.verify(candidate):
            return None

        try:
            self.config_store.save(candidate)
        except LnLinkError as exc:
            logger.error("Verified %s but could not save it: %s", candidate.address, exc)
            return None

        logger.info("Connection fixed with new endpoint: %s", candidate.address)
        return RepairResult(
            fixed=True,
            config=candidate,
            changed=True,
            description=f"Connection fixed with new endpoint {candidate.address}",
        )
