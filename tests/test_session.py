"""Tests for the connection session (connection/session.py)."""

from __future__ import annotations

import threading
from pathlib import Path

from lnlink.config.store import FileConfigStore
from lnlink.errors import ConfigWriteError
from lnlink.models import ConnectionConfig, ConnectionStatus
from lnlink.node.client import NodeClient

# ─── Helpers ──────────────────────────────────────────────────


class _Recorder:
    """Listener that records every notification."""

    def __init__(self) -> None:
        self.events: list[tuple[ConnectionStatus, str]] = []

    def __call__(self, status: ConnectionStatus, message: str) -> None:
        self.events.append((status, message))

    @property
    def statuses(self) -> list[ConnectionStatus]:
        return [status for status, _ in self.events]


def _config(host: str = "localhost", port: int = 8080, use_tls: bool = True) -> ConnectionConfig:
    return ConnectionConfig(host=host, port=port, use_tls=use_tls)


# ═══════════════════════════════════════════════════════════════
# 1. check_status
# ═══════════════════════════════════════════════════════════════


class TestCheckStatus:
    def test_initial_status_is_unknown(self, make_session):
        session = make_session(_config())
        assert session.status == ConnectionStatus.UNKNOWN

    def test_answering_endpoint_is_connected(self, make_session, node):
        node.answering.add(("https", "localhost", 8080))
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        assert session.check_status() == ConnectionStatus.CONNECTED
        assert recorder.statuses == [ConnectionStatus.CONNECTED]
        assert "alice" in recorder.events[0][1]

    def test_silent_endpoint_is_disconnected(self, make_session):
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        assert session.check_status() == ConnectionStatus.DISCONNECTED
        assert recorder.statuses == [ConnectionStatus.DISCONNECTED]

    def test_is_idempotent(self, make_session, node):
        node.answering.add(("https", "localhost", 8080))
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        first = session.check_status()
        second = session.check_status()

        assert first == second == ConnectionStatus.CONNECTED
        assert recorder.events[0] == recorder.events[1]

    def test_never_falls_back_to_http(self, make_session, node):
        node.answering.add(("http", "localhost", 8080))
        session = make_session(_config())

        assert session.check_status() == ConnectionStatus.DISCONNECTED
        assert session.transport.scheme == "https"

    def test_unexpected_exception_maps_to_error(self, make_session, monkeypatch):
        session = make_session(_config())

        def _boom(*_args, **_kwargs):
            raise RuntimeError("kaboom")

        monkeypatch.setattr("lnlink.connection.session.NodeClient.get_info", _boom)
        recorder = _Recorder()
        session.add_listener(recorder)

        assert session.check_status() == ConnectionStatus.ERROR
        assert "kaboom" in recorder.events[0][1]

    def test_does_not_touch_config(self, make_session, store):
        session = make_session(_config())
        session.check_status()
        assert store.saved == []
        assert session.config == _config()


# ═══════════════════════════════════════════════════════════════
# 2. connect
# ═══════════════════════════════════════════════════════════════


class TestConnect:
    def test_direct_success(self, make_session, node, store):
        node.answering.add(("https", "localhost", 8080))
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        result = session.connect()

        assert result.success is True
        assert result.fixed is False
        assert recorder.statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
        assert store.saved == []

    def test_repairs_to_discovered_port(self, make_session, prober, node, store):
        """Only the RPC-port endpoint answers; connect() moves the config there."""
        prober.reachable.add(("localhost", 10009))
        node.answering.add(("https", "localhost", 10009))
        session = make_session(_config(port=8080))
        recorder = _Recorder()
        session.add_listener(recorder)

        result = session.connect()

        assert result.success is True
        assert result.fixed is True
        assert session.config.port == 10009
        assert store.saved == [_config(port=10009)]
        assert session.base_url == "https://localhost:10009/v1"
        assert recorder.statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]

    def test_nothing_reachable_fails_with_diagnostics(self, make_session, store):
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        result = session.connect()

        assert result.success is False
        assert result.fixed is False
        assert "Failed to connect" in result.error_message
        assert "Connection Diagnostics Report" in result.diagnostics
        assert "Basic Connectivity: FAILED" in result.diagnostics
        assert store.saved == []
        assert session.config == _config()
        assert recorder.statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED]

    def test_https_failure_falls_back_to_http_without_saving(self, make_session, node, store):
        node.answering.add(("http", "localhost", 8080))
        session = make_session(_config())

        result = session.connect()

        assert result.success is True
        assert result.fixed is False
        assert session.transport.scheme == "http"
        assert session.config.use_tls is True
        assert store.saved == []

    def test_http_fallback_happens_once(self, make_session, node):
        session = make_session(_config())

        session.connect()

        http_info_calls = [
            r for r in node.requests if r[0] == "http" and r[1:3] == ("localhost", 8080)
        ]
        assert len(http_info_calls) == 1

    def test_plaintext_config_has_no_fallback(self, make_session, node):
        session = make_session(_config(use_tls=False))
        session.connect()
        assert all(r[0] == "http" for r in node.requests)

    def test_unexpected_exception_ends_in_error(self, make_session, monkeypatch):
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        def _boom(_config):
            raise RuntimeError("repair exploded")

        monkeypatch.setattr(session._repair, "auto_repair", _boom)
        result = session.connect()

        assert result.success is False
        assert "repair exploded" in result.error_message
        assert recorder.statuses[-1] == ConnectionStatus.ERROR
        assert recorder.statuses.count(ConnectionStatus.ERROR) == 1

    def test_reconnect_after_disconnect_goes_through_connecting(self, make_session, node):
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        session.connect()
        node.answering.add(("https", "localhost", 8080))
        session.connect()

        assert recorder.statuses == [
            ConnectionStatus.CONNECTING,
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
        ]

    def test_concurrent_connects_are_serialized(self, make_session, node, monkeypatch):
        node.answering.add(("https", "localhost", 8080))
        session = make_session(_config())
        active = 0
        overlap = False
        guard = threading.Lock()
        original = session._evaluate

        def _tracking(**kwargs):
            nonlocal active, overlap
            with guard:
                active += 1
                overlap = overlap or active > 1
            try:
                return original(**kwargs)
            finally:
                with guard:
                    active -= 1

        monkeypatch.setattr(session, "_evaluate", _tracking)
        threads = [threading.Thread(target=session.connect) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlap is False
        assert session.status == ConnectionStatus.CONNECTED


# ═══════════════════════════════════════════════════════════════
# 3. Listeners
# ═══════════════════════════════════════════════════════════════


class TestListeners:
    def test_failing_listener_does_not_break_others(self, make_session, node):
        node.answering.add(("https", "localhost", 8080))
        session = make_session(_config())
        recorder = _Recorder()

        def _broken(status, message):
            raise ValueError("listener bug")

        session.add_listener(_broken)
        session.add_listener(recorder)

        assert session.check_status() == ConnectionStatus.CONNECTED
        assert recorder.statuses == [ConnectionStatus.CONNECTED]

    def test_listener_registered_once(self, make_session):
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)
        session.add_listener(recorder)

        session.check_status()

        assert len(recorder.events) == 1

    def test_removed_listener_is_not_called(self, make_session):
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)
        session.remove_listener(recorder)

        session.check_status()

        assert recorder.events == []

    def test_last_message_tracks_notifications(self, make_session):
        session = make_session(_config())
        session.check_status()
        assert session.last_message.startswith("Disconnected from Lightning node")


# ═══════════════════════════════════════════════════════════════
# 4. auto_repair / settings
# ═══════════════════════════════════════════════════════════════


class TestAutoRepair:
    def test_success_notifies_connected(self, make_session, prober, node):
        prober.reachable.add(("localhost", 3000))
        node.answering.add(("https", "localhost", 3000))
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        assert session.auto_repair() is True
        assert session.config.port == 3000
        assert recorder.statuses == [ConnectionStatus.CONNECTED]

    def test_failure_is_silent(self, make_session):
        session = make_session(_config())
        recorder = _Recorder()
        session.add_listener(recorder)

        assert session.auto_repair() is False
        assert recorder.events == []


class TestSettings:
    def test_validate_rejects_empty_host_without_network(self, make_session, prober):
        session = make_session(_config())
        result = session.validate_settings("  ", "8080")
        assert result.valid is False
        assert result.message == "Host cannot be empty"
        assert prober.calls == []

    def test_validate_rejects_bad_port(self, make_session):
        session = make_session(_config())
        assert session.validate_settings("localhost", "abc").message == "Port must be a valid number"
        assert (
            session.validate_settings("localhost", "70000").message
            == "Port must be between 1 and 65535"
        )

    def test_validate_warns_when_unreachable(self, make_session):
        session = make_session(_config())
        result = session.validate_settings("10.0.0.5", "8080")
        assert result.valid is True
        assert result.reachable is False
        assert result.message == "Warning: Could not connect to 10.0.0.5:8080"

    def test_validate_reachable(self, make_session, prober):
        prober.reachable.add(("10.0.0.5", 8080))
        session = make_session(_config())
        assert session.validate_settings("10.0.0.5", 8080).message == "Valid"

    def test_apply_persists_and_rebuilds_transport(self, make_session, store):
        session = make_session(_config())

        result = session.apply_settings("127.0.0.1", "10009", use_tls=False)

        assert result.success is True
        assert store.saved == [_config(host="127.0.0.1", port=10009, use_tls=False)]
        assert session.base_url == "http://127.0.0.1:10009/v1"

    def test_apply_rejects_invalid_input_without_saving(self, make_session, store):
        session = make_session(_config())

        result = session.apply_settings("", "8080", use_tls=True)

        assert result.success is False
        assert result.error_message == "Host cannot be empty"
        assert store.saved == []

    def test_apply_drops_missing_cert_path(self, make_session, store, tmp_path: Path):
        session = make_session(_config())
        session.apply_settings("localhost", 8080, use_tls=True, cert_path=str(tmp_path / "nope"))
        assert store.saved[-1].cert_path == ""

    def test_apply_keeps_existing_cert_path(self, make_session, store, tmp_path: Path):
        cert = tmp_path / "tls.cert"
        cert.write_text("not really a cert")
        session = make_session(_config())
        session.apply_settings("localhost", 8080, use_tls=True, cert_path=str(cert))
        assert store.saved[-1].cert_path == str(cert)

    def test_apply_reports_save_failure(self, make_session, store, monkeypatch):
        session = make_session(_config())

        def _fail(_config):
            raise ConfigWriteError("disk full")

        monkeypatch.setattr(store, "save", _fail)
        result = session.apply_settings("localhost", 10009, use_tls=True)

        assert result.success is False
        assert "disk full" in result.error_message
        assert session.config.port == 8080


# ═══════════════════════════════════════════════════════════════
# 5. Unwritable settings file
# ═══════════════════════════════════════════════════════════════


def _blocked_store(tmp_path: Path) -> FileConfigStore:
    """Settings path whose parent directory cannot be created."""
    blocker = tmp_path / "notadir"
    blocker.write_text("a plain file where a directory should be")
    return FileConfigStore(blocker / "sub" / "lightning-config.yaml")


class TestUnwritableSettings:
    def test_apply_settings_reports_failure(self, make_session, tmp_path: Path):
        session = make_session(config_store=_blocked_store(tmp_path))

        result = session.apply_settings("127.0.0.1", "8080", use_tls=True)

        assert result.success is False
        assert "Cannot lock settings file" in result.error_message
        assert session.config == ConnectionConfig()

    def test_auto_repair_returns_false(self, make_session, prober, node, tmp_path: Path):
        prober.reachable.add(("localhost", 10009))
        node.answering.add(("https", "localhost", 10009))
        session = make_session(config_store=_blocked_store(tmp_path))

        assert session.auto_repair() is False
        assert session.config.port == 8080

    def test_connect_ends_disconnected_not_error(self, make_session, prober, node, tmp_path):
        prober.reachable.add(("localhost", 10009))
        node.answering.add(("https", "localhost", 10009))
        session = make_session(config_store=_blocked_store(tmp_path))
        recorder = _Recorder()
        session.add_listener(recorder)

        result = session.connect()

        assert result.success is False
        assert recorder.statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED]


# ═══════════════════════════════════════════════════════════════
# 6. Readers and a concurrent settings change
# ═══════════════════════════════════════════════════════════════


class TestSettingsChangeDuringRead:
    def test_diagnose_keeps_its_transport_open(self, make_session, prober, node, store, monkeypatch):
        prober.reachable.add(("localhost", 8080))
        node.answering.add(("https", "localhost", 8080))
        session = make_session(_config())
        writer = threading.Thread(
            target=session.apply_settings, args=("localhost", 8080, True)
        )
        writer_done_early: list[bool] = []
        original_probe = prober.probe

        def _probe(host, port, timeout_ms):
            if not writer_done_early:
                writer.start()
                writer.join(timeout=0.3)
                writer_done_early.append(not writer.is_alive())
            return original_probe(host, port, timeout_ms)

        monkeypatch.setattr(prober, "probe", _probe)

        report = session.diagnose()
        writer.join()

        assert writer_done_early == [False]
        assert report.get("API Test") == "SUCCESS"
        assert store.saved == [_config()]

    def test_check_status_keeps_its_transport_open(self, make_session, node, monkeypatch):
        node.answering.add(("https", "localhost", 8080))
        session = make_session(_config())
        writer = threading.Thread(
            target=session.apply_settings, args=("localhost", 8080, True)
        )
        original_get_info = NodeClient.get_info

        def _get_info(self, **kwargs):
            if not writer.is_alive() and writer.ident is None:
                writer.start()
                writer.join(timeout=0.3)
            return original_get_info(self, **kwargs)

        monkeypatch.setattr(NodeClient, "get_info", _get_info)

        assert session.check_status() == ConnectionStatus.CONNECTED
        writer.join()
