"""Atomic settings file writes with merge semantics.

Invariants:
  1. The full settings dict is round-tripped -- unknown keys are preserved.
  2. Writes are atomic: write to unique temp file, then os.replace().
  3. Concurrent writes are safe via threading.Lock (in-process) + fcntl.flock (cross-process).
"""

from __future__ import annotations

import contextlib
import fcntl
import os
import tempfile
import threading
from pathlib import Path

import yaml

from lnlink.config.reader import (
    KEY_CERT_PATH,
    KEY_HOST,
    KEY_LEGACY_USE_TLS,
    KEY_NODE_LOG_PATH,
    KEY_PORT,
    KEY_PREFERRED_PORT,
    KEY_SUBNET_DISCOVERY,
    KEY_USE_TLS,
    read_settings,
)
from lnlink.errors import ConfigWriteError
from lnlink.models import ConnectionConfig

_path_locks: dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _get_path_lock(path: Path) -> threading.Lock:
    """Get or create an in-process threading.Lock for *path*."""
    key = str(path.resolve())
    with _path_locks_guard:
        if key not in _path_locks:
            _path_locks[key] = threading.Lock()
        return _path_locks[key]


def config_to_settings(config: ConnectionConfig) -> dict[str, object]:
    """Flatten a ConnectionConfig into the recognized settings keys."""
    settings: dict[str, object] = {
        KEY_HOST: config.host,
        KEY_PORT: config.port,
        KEY_USE_TLS: config.use_tls,
        KEY_SUBNET_DISCOVERY: config.subnet_discovery,
    }
    if config.cert_path:
        settings[KEY_CERT_PATH] = config.cert_path
    if config.node_log_path:
        settings[KEY_NODE_LOG_PATH] = config.node_log_path
    if config.preferred_port is not None:
        settings[KEY_PREFERRED_PORT] = config.preferred_port
    return settings


def write_connection_config(config_path: Path | str, config: ConnectionConfig) -> None:
    """Merge *config* into the settings file atomically."""
    path = Path(config_path)
    lock = _get_path_lock(path)

    with lock:
        _locked_write(path, config)


def _locked_write(path: Path, config: ConnectionConfig) -> None:
    """Read-modify-write under an inter-process file lock."""
    lock_path = path.with_suffix(".lock")
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_fd = open(lock_path, "w")
    except OSError as exc:
        raise ConfigWriteError(f"Cannot lock settings file {path}: {exc}") from exc

    with lock_fd:
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
        except OSError as exc:
            raise ConfigWriteError(f"Cannot lock settings file {path}: {exc}") from exc
        try:
            raw = read_settings(path)
            raw.pop(KEY_LEGACY_USE_TLS, None)
            for key in (KEY_CERT_PATH, KEY_NODE_LOG_PATH, KEY_PREFERRED_PORT):
                raw.pop(key, None)
            raw.update(config_to_settings(config))
            _atomic_write(path, raw)
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)


def _atomic_write(path: Path, data: dict[str, object]) -> None:
    """Write YAML atomically: write to unique temp file then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: str | None = None
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            suffix=".tmp",
            prefix=f".{path.stem}_",
        )
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
        os.write(fd, content.encode("utf-8"))
        os.fsync(fd)
        os.close(fd)
        fd = None
        os.replace(tmp_path, str(path))
        tmp_path = None
    except PermissionError as exc:
        raise ConfigWriteError(f"Permission denied writing to {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigWriteError(f"Failed to write {path}: {exc}") from exc
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
