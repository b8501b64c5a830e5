"""Sweep candidate endpoints to find where the node is actually listening."""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from lnlink.connection.base import ReachabilityProberPort
from lnlink.discovery.registry import EndpointRegistry

logger = logging.getLogger(__name__)

DISCOVERY_TIMEOUT_MS = 500
SUBNET_PROBE_TIMEOUT_MS = 200
DEFAULT_SWEEP_DEADLINE_SECONDS = 30.0
LOOPBACK_ADDRESS = "127.0.0.1"

_MAX_CONCURRENT_PROBES = 32
_POLL_INTERVAL_SECONDS = 0.1


def discover_port(
    prober: ReachabilityProberPort,
    registry: EndpointRegistry,
    host: str,
    *,
    timeout_ms: int = DISCOVERY_TIMEOUT_MS,
) -> int | None:
    """Return the first registry port that accepts a connection on *host*.

    Linear scan in priority order with early exit. Returns None when no
    candidate is reachable.
    """
    logger.info("Attempting to discover node port on %s...", host)
    for candidate in registry.candidates_for(host):
        if prober.probe(candidate.host, candidate.port, timeout_ms):
            logger.info(
                "Found node listening on %s (%s)", candidate.address, candidate.protocol
            )
            return candidate.port
    logger.warning("Could not discover a node port on %s", host)
    return None


def discover_nodes(
    prober: ReachabilityProberPort,
    registry: EndpointRegistry,
    *,
    include_subnet: bool = False,
    deadline_seconds: float = DEFAULT_SWEEP_DEADLINE_SECONDS,
    cancel: threading.Event | None = None,
    local_address: str | None = None,
) -> list[str]:
    """Probe loopback (and optionally the local /24) for listening node ports.

    The sweep stops early when *cancel* is set or *deadline_seconds* elapse;
    whatever was found so far is returned, in sweep order, as ``host:port``.
    """
    stop = cancel if cancel is not None else threading.Event()
    deadline = time.monotonic() + deadline_seconds
    ports = registry.sweep_ports()

    targets: list[tuple[str, int, int]] = [
        (LOOPBACK_ADDRESS, port, DISCOVERY_TIMEOUT_MS) for port in ports
    ]
    if include_subnet:
        address = local_address or local_ipv4()
        hosts = subnet_hosts(address) if address else []
        if not hosts:
            logger.warning("No usable local network address; skipping subnet sweep")
        targets.extend((host, port, SUBNET_PROBE_TIMEOUT_MS) for host in hosts for port in ports)

    found = _sweep(prober, targets, deadline=deadline, stop=stop)
    logger.info("Node sweep probed %d endpoints, found %d", len(targets), len(found))
    return found


def local_ipv4() -> str | None:
    """Best-effort primary IPv4 address of this machine. Sends no packets."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            return str(sock.getsockname()[0])
    except OSError:
        return None


def subnet_hosts(address: str) -> list[str]:
    """All host addresses sharing *address*'s /24 prefix (loopback excluded)."""
    try:
        ip = ipaddress.IPv4Address(address)
    except ValueError:
        return []
    if ip.is_loopback or ip.is_unspecified:
        return []
    network = ipaddress.IPv4Network(f"{ip}/24", strict=False)
    return [str(host) for host in network.hosts()]


def _sweep(
    prober: ReachabilityProberPort,
    targets: list[tuple[str, int, int]],
    *,
    deadline: float,
    stop: threading.Event,
) -> list[str]:
    """Probe *targets* with bounded concurrency until done, cancelled or out of time."""
    if not targets:
        return []

    def _probe(host: str, port: int, timeout_ms: int) -> bool:
        if stop.is_set() or time.monotonic() >= deadline:
            return False
        return prober.probe(host, port, timeout_ms)

    hits: dict[int, str] = {}
    with ThreadPoolExecutor(
        max_workers=min(_MAX_CONCURRENT_PROBES, len(targets)),
        thread_name_prefix="lnlink-sweep",
    ) as pool:
        pending: dict[Future[bool], int] = {
            pool.submit(_probe, host, port, timeout_ms): index
            for index, (host, port, timeout_ms) in enumerate(targets)
        }
        while pending:
            remaining = deadline - time.monotonic()
            if stop.is_set() or remaining <= 0:
                reason = "cancelled" if stop.is_set() else "deadline reached"
                logger.warning("Node sweep stopped early (%s)", reason)
                for future in pending:
                    future.cancel()
                break
            done, _ = wait(
                pending,
                timeout=min(remaining, _POLL_INTERVAL_SECONDS),
                return_when=FIRST_COMPLETED,
            )
            for future in done:
                index = pending.pop(future)
                if not future.cancelled() and future.exception() is None and future.result():
                    host, port, _ = targets[index]
                    hits[index] = f"{host}:{port}"

    return [hits[index] for index in sorted(hits)]


class EndpointDiscovery:
    """Binds a prober and a registry for the discovery operations."""

    def __init__(self, prober: ReachabilityProberPort, registry: EndpointRegistry) -> None:
        self.prober = prober
        self.registry = registry

    def discover_port(self, host: str, *, timeout_ms: int = DISCOVERY_TIMEOUT_MS) -> int | None:
        return discover_port(self.prober, self.registry, host, timeout_ms=timeout_ms)

    def discover_nodes(
        self,
        *,
        include_subnet: bool = False,
        deadline_seconds: float = DEFAULT_SWEEP_DEADLINE_SECONDS,
        cancel: threading.Event | None = None,
        local_address: str | None = None,
    ) -> list[str]:
        return discover_nodes(
            self.prober,
            self.registry,
            include_subnet=include_subnet,
            deadline_seconds=deadline_seconds,
            cancel=cancel,
            local_address=local_address,
        )
