"""Well-known endpoints of a Lightning node's administrative interfaces.

Candidate order is priority order: when several candidates answer at the
same time, the earliest one wins. REST comes before the RPC port, which
comes before the peer-gossip port.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from lnlink.models import EndpointCandidate, EndpointProtocol

DEFAULT_HOST = "localhost"

# Bitcoin Core RPC, the base-layer node the Lightning node depends on
AUXILIARY_NODE_PORT = 8332

# Only worth trying during a user-requested node sweep
EXTRA_SWEEP_PORTS: tuple[int, ...] = (9911,)


def _default_candidates() -> tuple[EndpointCandidate, ...]:
    return (
        EndpointCandidate(DEFAULT_HOST, 8080, EndpointProtocol.REST_HTTPS),  # lnd REST
        EndpointCandidate(DEFAULT_HOST, 10009, EndpointProtocol.RPC),  # lnd gRPC
        EndpointCandidate(DEFAULT_HOST, 9735, EndpointProtocol.PEER),  # p2p
        EndpointCandidate(DEFAULT_HOST, 3000, EndpointProtocol.REST_HTTP),  # c-lightning REST plugin
        EndpointCandidate(DEFAULT_HOST, 8181, EndpointProtocol.REST_HTTP),
    )


@dataclass(frozen=True, slots=True)
class EndpointRegistry:
    """Ordered candidate endpoints plus an optional user-configured override."""

    candidates: tuple[EndpointCandidate, ...] = field(default_factory=_default_candidates)
    override: EndpointCandidate | None = None
    auxiliary_port: int = AUXILIARY_NODE_PORT
    extra_sweep_ports: tuple[int, ...] = EXTRA_SWEEP_PORTS

    def ordered(self) -> list[EndpointCandidate]:
        """All candidates in priority order, override first, duplicates dropped."""
        seen: set[int] = set()
        result: list[EndpointCandidate] = []
        for candidate in (self.override, *self.candidates):
            if candidate is None or candidate.port in seen:
                continue
            seen.add(candidate.port)
            result.append(candidate)
        return result

    def ports(self) -> list[int]:
        return [c.port for c in self.ordered()]

    def candidates_for(self, host: str) -> list[EndpointCandidate]:
        """The candidate list re-targeted at *host*."""
        return [EndpointCandidate(host, c.port, c.protocol) for c in self.ordered()]

    def sweep_ports(self) -> list[int]:
        ports = self.ports()
        return ports + [p for p in self.extra_sweep_ports if p not in ports]

    def auxiliary_for(self, host: str) -> EndpointCandidate:
        return EndpointCandidate(host, self.auxiliary_port, EndpointProtocol.RPC)

    def with_override(self, candidate: EndpointCandidate | None) -> EndpointRegistry:
        return EndpointRegistry(
            candidates=self.candidates,
            override=candidate,
            auxiliary_port=self.auxiliary_port,
            extra_sweep_ports=self.extra_sweep_ports,
        )
