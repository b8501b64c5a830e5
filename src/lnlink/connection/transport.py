"""Build HTTP clients for the node's administrative API.

Every client gets the same timeout and connection-retry policy. HTTPS
clients additionally get a trust policy, one of:

* ``PinnedTrust`` -- trust only the node's own certificate, skip hostname
  checks (the node is usually reached by IP or loopback, not by the
  certificate's subject name).
* ``PermissiveTrust`` -- accept any certificate and any hostname. Always
  logged at WARNING level since server identity is not verified.
"""

from __future__ import annotations

import logging
import ssl
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from lnlink.errors import TransportError

logger = logging.getLogger(__name__)

API_BASE_PATH = "/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRIES = 3


@dataclass(frozen=True, slots=True)
class PinnedTrust:
    cert_path: str


@dataclass(frozen=True, slots=True)
class PermissiveTrust:
    reason: str = ""


TrustPolicy = PinnedTrust | PermissiveTrust

TransportFactory = Callable[[ssl.SSLContext | bool], httpx.BaseTransport]


@dataclass(frozen=True, slots=True)
class Transport:
    """A configured HTTP client bound to one (scheme, host, port) endpoint."""

    host: str
    port: int
    scheme: str
    client: httpx.Client
    trust: TrustPolicy | None = None

    @property
    def base_url(self) -> str:
        return build_base_url(self.scheme, self.host, self.port)

    @property
    def secure(self) -> bool:
        return self.scheme == "https"

    def close(self) -> None:
        self.client.close()


def build_base_url(scheme: str, host: str, port: int) -> str:
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{scheme}://{host}:{port}{API_BASE_PATH}"


def resolve_trust_policy(cert_path: str | None) -> TrustPolicy:
    """Pick pinned trust when *cert_path* names an existing file, else permissive."""
    if not cert_path:
        return PermissiveTrust(reason="no TLS certificate configured")
    if not Path(cert_path).is_file():
        return PermissiveTrust(reason=f"TLS certificate not found at {cert_path}")
    return PinnedTrust(cert_path=cert_path)


class TransportBuilder:
    """Construct Transports with a uniform timeout, retry and trust policy.

    ``transport_factory`` replaces the underlying ``httpx.HTTPTransport``;
    it receives the ``verify`` argument the real transport would get.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retries: int = DEFAULT_RETRIES,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self._transport_factory = transport_factory

    def build(
        self,
        host: str,
        port: int,
        prefer_tls: bool,
        cert_path: str = "",
    ) -> Transport:
        """Build a client for host:port.

        Raises:
            TransportError: If the TLS context cannot be initialized at all.
                A missing or unreadable certificate is not an error; it
                degrades to permissive trust with a warning.
        """
        if not prefer_tls:
            return Transport(
                host=host,
                port=port,
                scheme="http",
                client=self._client(build_base_url("http", host, port), verify=True),
            )

        context, trust = self._tls_context(resolve_trust_policy(cert_path))
        return Transport(
            host=host,
            port=port,
            scheme="https",
            client=self._client(build_base_url("https", host, port), verify=context),
            trust=trust,
        )

    def _client(self, base_url: str, *, verify: ssl.SSLContext | bool) -> httpx.Client:
        if self._transport_factory is not None:
            transport = self._transport_factory(verify)
        else:
            transport = httpx.HTTPTransport(verify=verify, retries=self.retries)
        return httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=transport,
        )

    def _tls_context(self, trust: TrustPolicy) -> tuple[ssl.SSLContext, TrustPolicy]:
        context = _new_client_context()

        if isinstance(trust, PinnedTrust):
            try:
                context.load_verify_locations(cafile=trust.cert_path)
            except (ssl.SSLError, OSError, ValueError) as exc:
                trust = PermissiveTrust(
                    reason=f"TLS certificate at {trust.cert_path} is unreadable: {exc}"
                )
                context = _new_client_context()
            else:
                context.check_hostname = False
                logger.info("Pinned TLS trust to certificate %s", trust.cert_path)
                return context, trust

        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.warning(
            "TLS server verification DISABLED (%s). Any certificate and hostname "
            "will be accepted. Configure tls.cert.path to pin the node's certificate.",
            trust.reason,
        )
        return context, trust


def _new_client_context() -> ssl.SSLContext:
    try:
        return ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    except (ssl.SSLError, OSError, ValueError) as exc:
        raise TransportError(f"Cannot initialize TLS: {exc}") from exc
