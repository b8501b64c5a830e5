"""Ports: reachability probing and connection status listeners."""

from __future__ import annotations

from typing import Protocol

from lnlink.models import ConnectionStatus, HostCheck


class ReachabilityProberPort(Protocol):
    """Port for bare transport-layer liveness checks. Never raises."""

    def probe(self, host: str, port: int, timeout_ms: int) -> bool:
        """Return True iff a TCP connection to host:port completes in time."""
        ...

    def check_host(self, host: str, timeout_ms: int) -> HostCheck:
        """Resolve *host* and check it is up, independent of any port."""
        ...


class ConnectionListener(Protocol):
    """Callback invoked synchronously on every connection status transition."""

    def __call__(self, status: ConnectionStatus, message: str) -> None: ...
