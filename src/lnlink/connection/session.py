"""The connection session: active endpoint, status state machine, listeners.

Status transitions::

    UNKNOWN -> CONNECTING -> CONNECTED | DISCONNECTED | ERROR
    CONNECTED / DISCONNECTED / ERROR -> CONNECTING   (next connect())

Nothing here polls; every transition is driven by an explicit call.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path

from lnlink.config.base import ConfigStorePort
from lnlink.config.validation import validate_connection_settings
from lnlink.connection.base import ConnectionListener
from lnlink.connection.listeners import ListenerBus
from lnlink.connection.transport import Transport, TransportBuilder
from lnlink.diagnostics.reporter import CONNECTIVITY_TIMEOUT_MS, DiagnosticsReporter
from lnlink.discovery.sweep import DEFAULT_SWEEP_DEADLINE_SECONDS
from lnlink.errors import ConfigValidationError, LnLinkError, NodeApiError, TransportError
from lnlink.healing.repair import AutoRepairEngine
from lnlink.models import (
    ConnectionConfig,
    ConnectionResult,
    ConnectionStatus,
    DiagnosticsReport,
    NodeInfo,
    SettingsValidation,
)
from lnlink.node.client import NodeClient

logger = logging.getLogger(__name__)

STATUS_CHECK_TIMEOUT_SECONDS = 2.0


class ConnectionSession:
    """Owns the active ConnectionConfig and Transport.

    Both are replaced wholesale, never edited in place, so readers always
    see a consistent pair. Every operation that uses or replaces the active
    transport (``check_status``, ``connect``, ``auto_repair``, ``diagnose``,
    ``apply_settings``) holds a session-wide lock, so overlapping callers
    queue and a transport is never closed while a call is still using it.
    """

    def __init__(
        self,
        config_store: ConfigStorePort,
        transport_builder: TransportBuilder,
        repair_engine: AutoRepairEngine,
        reporter: DiagnosticsReporter,
        *,
        config: ConnectionConfig | None = None,
        status_timeout_seconds: float = STATUS_CHECK_TIMEOUT_SECONDS,
    ) -> None:
        self._store = config_store
        self._builder = transport_builder
        self._repair = repair_engine
        self._reporter = reporter
        self.status_timeout_seconds = status_timeout_seconds

        self._bus = ListenerBus()
        self._lock = threading.RLock()
        self._status = ConnectionStatus.UNKNOWN
        self._message = ""
        self._transport: Transport | None = None
        self._transport_error = ""
        self._config = config if config is not None else config_store.load()
        self._install(self._config)

    # ── Read-only views ─────────────────────────────────────────

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_message(self) -> str:
        return self._message

    @property
    def base_url(self) -> str:
        transport = self._transport
        return transport.base_url if transport is not None else ""

    def node_client(self) -> NodeClient:
        """Client bound to the currently active endpoint."""
        transport = self._transport
        if transport is None:
            raise TransportError(f"No usable transport: {self._transport_error}")
        return NodeClient(transport)

    # ── Listeners ───────────────────────────────────────────────

    def add_listener(self, listener: ConnectionListener) -> None:
        self._bus.add(listener)

    def remove_listener(self, listener: ConnectionListener) -> None:
        self._bus.remove(listener)

    # ── Operations ──────────────────────────────────────────────

    def check_status(self) -> ConnectionStatus:
        """One administrative API call against the active endpoint.

        Maps success to CONNECTED, an unsuccessful call to DISCONNECTED and an
        unexpected exception to ERROR, and notifies listeners once. Never
        touches the configuration.
        """
        with self._lock:
            status, message, _ = self._evaluate(allow_fallback=False)
            self._notify(status, message)
            return status

    def connect(self) -> ConnectionResult:
        """Connect, repairing the configuration if needed.

        Listeners see CONNECTING, then exactly one terminal status.
        """
        with self._lock:
            self._notify(ConnectionStatus.CONNECTING, "Connecting to Lightning node...")
            try:
                return self._connect_locked()
            except Exception as exc:
                logger.exception("Error connecting to Lightning node")
                self._notify(ConnectionStatus.ERROR, f"Error: {exc}")
                return ConnectionResult(success=False, error_message=f"Error: {exc}")

    def auto_repair(self) -> bool:
        """Run the repair engine on demand; notifies CONNECTED only on success."""
        with self._lock:
            result = self._repair.auto_repair(self._config)
            if not result.fixed:
                return False
            self._adopt(result.config)
            self._notify(
                ConnectionStatus.CONNECTED, f"Connection automatically fixed: {result.description}"
            )
            return True

    def diagnose(self) -> DiagnosticsReport:
        """Diagnostics for the active configuration. Never raises."""
        with self._lock:
            transport = self._transport
            transport_error = self._transport_error

            def fetch_info() -> NodeInfo:
                if transport is None:
                    raise TransportError(f"No usable transport: {transport_error}")
                return NodeClient(transport).get_info()

            return self._reporter.diagnose(self._config, fetch_info)

    def discover_port(self, host: str | None = None) -> int | None:
        return self._repair.discover_port(host or self._config.host)

    def discover_nodes(
        self,
        *,
        include_subnet: bool | None = None,
        deadline_seconds: float = DEFAULT_SWEEP_DEADLINE_SECONDS,
        cancel: threading.Event | None = None,
    ) -> list[str]:
        """User-invoked sweep of loopback and, if enabled, the local subnet."""
        subnet = self._config.subnet_discovery if include_subnet is None else include_subnet
        return self._repair.discovery.discover_nodes(
            include_subnet=subnet, deadline_seconds=deadline_seconds, cancel=cancel
        )

    # ── Settings ────────────────────────────────────────────────

    def validate_settings(self, host: str | None, port: str | int | None) -> SettingsValidation:
        """Validate user input, then check that the endpoint accepts connections."""
        try:
            clean_host, clean_port = validate_connection_settings(host, port)
        except ConfigValidationError as exc:
            return SettingsValidation(valid=False, reachable=False, message=str(exc))

        prober = self._repair.discovery.prober
        if not prober.probe(clean_host, clean_port, CONNECTIVITY_TIMEOUT_MS):
            return SettingsValidation(
                valid=True,
                reachable=False,
                message=f"Warning: Could not connect to {clean_host}:{clean_port}",
            )
        return SettingsValidation(valid=True, reachable=True, message="Valid")

    def apply_settings(
        self,
        host: str | None,
        port: str | int | None,
        use_tls: bool,
        cert_path: str = "",
    ) -> ConnectionResult:
        """Replace the configuration with user-entered settings and persist it.

        Invalid input is rejected before anything is saved or any network
        call is made. A certificate path is only kept if the file exists.
        """
        try:
            clean_host, clean_port = validate_connection_settings(host, port)
        except ConfigValidationError as exc:
            return ConnectionResult(success=False, error_message=str(exc))

        if cert_path and not Path(cert_path).is_file():
            logger.warning("Ignoring TLS certificate path %s: file does not exist", cert_path)
            cert_path = ""

        with self._lock:
            new_config = replace(
                self._config,
                host=clean_host,
                port=clean_port,
                use_tls=use_tls,
                cert_path=cert_path,
            )
            try:
                self._store.save(new_config)
            except LnLinkError as exc:
                return ConnectionResult(success=False, error_message=str(exc))
            self._adopt(new_config)
            logger.info("New settings applied: %s", new_config.address)
            return ConnectionResult(success=True)

    def close(self) -> None:
        with self._lock:
            if self._transport is not None:
                self._transport.close()
                self._transport = None

    # ── Internals ───────────────────────────────────────────────

    def _connect_locked(self) -> ConnectionResult:
        status, message, _ = self._evaluate(allow_fallback=True)
        if status == ConnectionStatus.CONNECTED:
            self._notify(status, message)
            return ConnectionResult(success=True)

        repair = self._repair.auto_repair(self._config)
        if repair.fixed:
            self._adopt(repair.config)
            self._notify(
                ConnectionStatus.CONNECTED, f"Connection automatically fixed: {repair.description}"
            )
            return ConnectionResult(success=True, fixed=True)

        report = self.diagnose()
        failure = f"Failed to connect to Lightning node: {message}"
        self._notify(status, failure)
        return ConnectionResult(
            success=False,
            diagnostics=report.to_text(),
            error_message=failure,
        )

    def _evaluate(
        self, *, allow_fallback: bool
    ) -> tuple[ConnectionStatus, str, NodeInfo | None]:
        transport = self._transport
        if transport is None:
            return (
                ConnectionStatus.ERROR,
                f"Error checking connection: {self._transport_error}",
                None,
            )

        try:
            info = NodeClient(transport).get_info(timeout=self.status_timeout_seconds)
        except NodeApiError as exc:
            if allow_fallback and transport.secure:
                info = self._try_plaintext(transport)
                if info is not None:
                    return ConnectionStatus.CONNECTED, _connected_message(info), info
            return ConnectionStatus.DISCONNECTED, f"Disconnected from Lightning node: {exc}", None
        except Exception as exc:
            logger.exception("Error checking connection to %s", transport.base_url)
            return ConnectionStatus.ERROR, f"Error checking connection: {exc}", None

        logger.info("Successfully connected to Lightning node using %s", transport.base_url)
        return ConnectionStatus.CONNECTED, _connected_message(info), info

    def _try_plaintext(self, secure: Transport) -> NodeInfo | None:
        """Retry the same host/port over HTTP, once.

        On success the HTTP transport becomes active for this process only;
        the saved configuration keeps TLS on.
        """
        logger.warning("HTTPS connection to %s failed. Trying HTTP...", secure.base_url)
        plain = self._builder.build(secure.host, secure.port, prefer_tls=False)
        try:
            info = NodeClient(plain).get_info(timeout=self.status_timeout_seconds)
        except NodeApiError as exc:
            logger.warning("HTTP fallback to %s failed: %s", plain.base_url, exc)
            plain.close()
            return None

        logger.warning(
            "Connected to %s over plain HTTP; TLS stays enabled in the saved settings",
            plain.base_url,
        )
        self._transport = plain
        secure.close()
        return info

    def _adopt(self, config: ConnectionConfig) -> None:
        self._config = config
        self._install(config)

    def _install(self, config: ConnectionConfig) -> None:
        previous = self._transport
        try:
            self._transport = self._builder.build(
                config.host, config.port, config.use_tls, config.cert_path
            )
            self._transport_error = ""
        except TransportError as exc:
            logger.error("Cannot build transport for %s: %s", config.address, exc)
            self._transport = None
            self._transport_error = str(exc)
        if previous is not None:
            previous.close()

    def _notify(self, status: ConnectionStatus, message: str) -> None:
        self._status = status
        self._message = message
        self._bus.notify(status, message)


def _connected_message(info: NodeInfo) -> str:
    return f"Connected to node: {info.alias} ({info.identity_pubkey})"
