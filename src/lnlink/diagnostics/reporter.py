"""Produce a human-readable connection diagnostics report.

The pipeline always runs every applicable stage and never raises: a stage
that blows up records its error as a finding and the next stage runs.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from lnlink.discovery.sweep import EndpointDiscovery
from lnlink.healing.classifier import classify_api_error
from lnlink.models import (
    ConnectionConfig,
    DiagnosticsReport,
    FailureCategory,
    NodeInfo,
    ReportBuilder,
)

logger = logging.getLogger(__name__)

CONNECTIVITY_TIMEOUT_MS = 2000
AUXILIARY_TIMEOUT_MS = 1000
HOST_CHECK_TIMEOUT_MS = 2000

_LOG_TAIL_LINES = 10
_LOG_KEYWORDS = ("sync", "chain", "block")

NETWORK_TROUBLESHOOTING = (
    "Check if the Lightning node is running",
    "Verify the host address is correct",
    "Check network connectivity and firewall settings",
)


class DiagnosticsReporter:
    """Combine reachability, API probing and failure heuristics into one report."""

    def __init__(
        self,
        discovery: EndpointDiscovery,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.discovery = discovery
        self._clock = clock

    def diagnose(
        self,
        config: ConnectionConfig,
        fetch_info: Callable[[], NodeInfo],
    ) -> DiagnosticsReport:
        """Run the full pipeline against a snapshot of the active configuration.

        Args:
            config: The configuration to diagnose. Never modified.
            fetch_info: Performs the full administrative API call against the
                active endpoint. May raise; failures become findings.
        """
        report = ReportBuilder()
        try:
            self._run(report, config, fetch_info)
        except Exception as exc:
            logger.warning("Diagnostics aborted early: %s", exc, exc_info=True)
            report.add("Diagnostics Error", f"{type(exc).__name__}: {exc}")
        return report.build()

    # ── Pipeline ────────────────────────────────────────────────

    def _run(
        self,
        report: ReportBuilder,
        config: ConnectionConfig,
        fetch_info: Callable[[], NodeInfo],
    ) -> None:
        report.add("Time", self._clock().isoformat(timespec="seconds"))
        report.add("Configured Host", config.host)
        report.add("Configured Port", config.port)
        report.add("Configured Scheme", config.scheme)

        prober = self.discovery.prober
        connected = prober.probe(config.host, config.port, CONNECTIVITY_TIMEOUT_MS)
        report.add("Basic Connectivity", "SUCCESS" if connected else "FAILED")

        self._guarded(report, "Bitcoin Node", lambda: self._check_auxiliary(report, config))

        if connected:
            self._guarded(report, "API Test", lambda: self._check_api(report, config, fetch_info))
        else:
            self._guarded(report, "Port Discovery", lambda: self._check_discovery(report, config))

    def _check_auxiliary(self, report: ReportBuilder, config: ConnectionConfig) -> None:
        aux = self.discovery.registry.auxiliary_for(config.host)
        available = self.discovery.prober.probe(aux.host, aux.port, AUXILIARY_TIMEOUT_MS)
        report.add("Bitcoin Node", "AVAILABLE" if available else "NOT AVAILABLE")

    def _check_discovery(self, report: ReportBuilder, config: ConnectionConfig) -> None:
        discovered = self.discovery.discover_port(config.host)
        if discovered is not None:
            report.add("Port Discovery", f"Found alternative port: {discovered}")
            report.recommend(f"Update configuration to use port {discovered}")
            return

        report.add("Port Discovery", "No alternative ports found")
        check = self.discovery.prober.check_host(config.host, HOST_CHECK_TIMEOUT_MS)
        if not check.resolved:
            report.add("Host Lookup", f"FAILED ({check.error})")
            report.add("Host Reachable", "NO")
        else:
            report.add("Host Reachable", "YES" if check.reachable else "NO")
        for line in NETWORK_TROUBLESHOOTING:
            report.recommend(line)

    def _check_api(
        self,
        report: ReportBuilder,
        config: ConnectionConfig,
        fetch_info: Callable[[], NodeInfo],
    ) -> None:
        try:
            info = fetch_info()
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            report.add("API Test", "FAILED")
            report.add("Error", message)
            self._classify(report, config, message)
            return

        report.add("API Test", "SUCCESS")
        report.add("Node Alias", info.alias)
        report.add("Pubkey", info.identity_pubkey)
        report.add("Synced to Chain", "YES" if info.synced_to_chain else "NO")
        report.add("Block Height", info.block_height)
        if not info.synced_to_chain:
            report.recommend("Wait for the node to finish syncing before sending payments")

    def _classify(self, report: ReportBuilder, config: ConnectionConfig, message: str) -> None:
        diagnosis = classify_api_error(message)
        report.add("Diagnosis", diagnosis.category.value)

        if diagnosis.category == FailureCategory.NODE_SYNCING:
            report.add("Possible Synchronization Issue Detected", diagnosis.explanation)
            report.recommend(diagnosis.suggested_fix)
            for line in _scan_node_log(config.node_log_path):
                report.add("Log", line)
            return

        if diagnosis.category == FailureCategory.API_RESTRICTED:
            report.recommend(diagnosis.explanation)
            return

        report.add("Explanation", diagnosis.explanation)
        report.recommend(diagnosis.suggested_fix)

    @staticmethod
    def _guarded(report: ReportBuilder, stage: str, run: Callable[[], None]) -> None:
        try:
            run()
        except Exception as exc:
            logger.warning("Diagnostics stage '%s' failed: %s", stage, exc, exc_info=True)
            report.add(f"{stage} Error", f"{type(exc).__name__}: {exc}")


def _scan_node_log(log_path: str) -> list[str]:
    """Recent node log lines that mention sync progress."""
    if not log_path:
        return []
    path = Path(log_path)
    try:
        with path.open(encoding="utf-8", errors="replace") as fh:
            tail = deque(fh, maxlen=_LOG_TAIL_LINES)
    except OSError as exc:
        logger.debug("Cannot read node log %s: %s", path, exc)
        return []
    return [
        line.rstrip("\n")
        for line in tail
        if any(keyword in line.lower() for keyword in _LOG_KEYWORDS)
    ]
