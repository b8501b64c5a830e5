"""Domain models for lnlink. All frozen dataclasses -- no mutation after creation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from lnlink.errors import ConfigValidationError

# ─── Enumerations ─────────────────────────────────────────────


class EndpointProtocol(StrEnum):
    REST_HTTPS = "rest_https"
    REST_HTTP = "rest_http"
    RPC = "rpc"
    PEER = "peer"


class ConnectionStatus(StrEnum):
    UNKNOWN = "unknown"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class FailureCategory(StrEnum):
    NODE_SYNCING = "node_syncing"
    TLS_MISCONFIGURED = "tls_misconfigured"
    AUTH_FAILED = "auth_failed"
    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    API_RESTRICTED = "api_restricted"


# ─── Endpoint Models ──────────────────────────────────────────


def _check_host_port(host: str, port: int) -> None:
    if not host or not host.strip():
        raise ConfigValidationError("Host cannot be empty")
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigValidationError("Port must be a valid number")
    if not 1 <= port <= 65535:
        raise ConfigValidationError("Port must be between 1 and 65535")


@dataclass(frozen=True, slots=True)
class EndpointCandidate:
    """One well-known way to reach the node (host, port, protocol)."""

    host: str
    port: int
    protocol: EndpointProtocol

    def __post_init__(self) -> None:
        _check_host_port(self.host, self.port)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """The single active connection configuration of the process.

    Never edited in place: every change produces a new instance via
    ``dataclasses.replace`` and replaces the old one wholesale.
    """

    host: str = "localhost"
    port: int = 8080
    use_tls: bool = True
    cert_path: str = ""
    subnet_discovery: bool = False
    node_log_path: str = ""
    preferred_port: int | None = None

    def __post_init__(self) -> None:
        _check_host_port(self.host, self.port)
        if self.preferred_port is not None:
            _check_host_port(self.host, self.preferred_port)

    @property
    def scheme(self) -> str:
        return "https" if self.use_tls else "http"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


# ─── Node Models ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class NodeInfo:
    """Subset of the node's ``getinfo`` answer that the wallet cares about."""

    identity_pubkey: str
    alias: str = ""
    num_active_channels: int = 0
    num_pending_channels: int = 0
    num_peers: int = 0
    block_height: int = 0
    synced_to_chain: bool = False


# ─── Probe Models ─────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class HostCheck:
    """Port-independent liveness of a host."""

    host: str
    resolved: bool
    reachable: bool
    address: str = ""
    error: str = ""


# ─── Result Models ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ConnectionResult:
    success: bool
    fixed: bool = False
    diagnostics: str = ""
    error_message: str = ""


@dataclass(frozen=True, slots=True)
class SettingsValidation:
    valid: bool
    reachable: bool
    message: str


@dataclass(frozen=True, slots=True)
class RepairResult:
    """Outcome of one auto-repair run.

    ``config`` is the verified (and already persisted) configuration when
    ``fixed`` is True, otherwise the unchanged configuration.
    """

    fixed: bool
    config: ConnectionConfig
    changed: bool = False
    description: str = ""


@dataclass(frozen=True, slots=True)
class FailureDiagnosis:
    """Heuristic classification of an administrative API failure."""

    category: FailureCategory
    original_error: str
    explanation: str
    suggested_fix: str


# ─── Diagnostics Models ───────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Finding:
    key: str
    value: str


@dataclass(frozen=True, slots=True)
class DiagnosticsReport:
    """Ordered findings plus recommendations from one diagnostics run."""

    findings: tuple[Finding, ...] = ()
    recommendations: tuple[str, ...] = ()

    def get(self, key: str) -> str | None:
        """Return the first finding value recorded under *key*."""
        for finding in self.findings:
            if finding.key == key:
                return finding.value
        return None

    def get_all(self, key: str) -> list[str]:
        return [f.value for f in self.findings if f.key == key]

    def to_dict(self) -> dict[str, object]:
        return {
            "findings": [{"key": f.key, "value": f.value} for f in self.findings],
            "recommendations": list(self.recommendations),
        }

    def to_text(self) -> str:
        lines = ["Connection Diagnostics Report:", "------------------------"]
        lines.extend(f"{f.key}: {f.value}" for f in self.findings)
        if self.recommendations:
            lines.append("Recommendations:")
            lines.extend(f"{i}. {rec}" for i, rec in enumerate(self.recommendations, start=1))
        return "\n".join(lines) + "\n"


@dataclass(slots=True)
class ReportBuilder:
    """Append-only accumulator that freezes into a DiagnosticsReport."""

    _findings: list[Finding] = field(default_factory=list)
    _recommendations: list[str] = field(default_factory=list)

    def add(self, key: str, value: object) -> None:
        self._findings.append(Finding(key=key, value=str(value)))

    def recommend(self, text: str) -> None:
        self._recommendations.append(text)

    def build(self) -> DiagnosticsReport:
        return DiagnosticsReport(
            findings=tuple(self._findings),
            recommendations=tuple(self._recommendations),
        )
