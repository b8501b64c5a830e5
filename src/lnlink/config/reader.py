"""Read the persisted connection settings file with schema tolerance.

The file is a flat YAML mapping::

    host: 127.0.0.1
    port: 10009
    useTls: true
    tls.cert.path: /home/me/.lnd/tls.cert
    discovery.preferredPort: 8443

Only the recognized keys are interpreted; everything else is preserved on write.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from lnlink.errors import ConfigReadError, ConfigValidationError
from lnlink.models import ConnectionConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LNLINK_CONFIG"

KEY_HOST = "host"
KEY_PORT = "port"
KEY_USE_TLS = "useTls"
KEY_LEGACY_USE_TLS = "useHttps"
KEY_CERT_PATH = "tls.cert.path"
KEY_SUBNET_DISCOVERY = "network.discovery"
KEY_NODE_LOG_PATH = "node.log.path"
KEY_PREFERRED_PORT = "discovery.preferredPort"

_TRUE_STRINGS = {"true", "yes", "on", "1"}


def default_config_path() -> Path:
    """Settings file location: $LNLINK_CONFIG or the per-user default."""
    override = os.environ.get(CONFIG_ENV_VAR, "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".lightning-wallet" / "lightning-config.yaml"


def read_settings(config_path: Path | str) -> dict[str, object]:
    """Read the full settings file.

    Returns the raw dict so the writer can round-trip unknown keys.
    Returns an empty dict if the file doesn't exist or is empty.
    """
    path = Path(config_path)
    if not path.exists():
        return {}

    try:
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigReadError(
            f"Invalid YAML in {path}: {exc}. Fix the syntax or delete the file to start fresh."
        ) from exc
    except PermissionError as exc:
        raise ConfigReadError(f"Permission denied reading {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigReadError(
            f"{path} must contain a mapping of settings, got {type(data).__name__}."
        )
    return data


def parse_connection_config(raw: dict[str, object]) -> ConnectionConfig:
    """Build a ConnectionConfig from raw settings, using defaults for missing keys."""
    defaults = ConnectionConfig()

    host = str(raw.get(KEY_HOST) or defaults.host).strip()
    port = _as_port(raw.get(KEY_PORT, defaults.port))

    if KEY_USE_TLS in raw:
        use_tls = _as_bool(raw[KEY_USE_TLS])
    elif KEY_LEGACY_USE_TLS in raw:
        use_tls = _as_bool(raw[KEY_LEGACY_USE_TLS])
    else:
        use_tls = defaults.use_tls

    preferred = raw.get(KEY_PREFERRED_PORT)
    preferred_port = _as_port(preferred) if preferred not in (None, "") else None

    try:
        return ConnectionConfig(
            host=host,
            port=port,
            use_tls=use_tls,
            cert_path=str(raw.get(KEY_CERT_PATH) or ""),
            subnet_discovery=_as_bool(raw.get(KEY_SUBNET_DISCOVERY, False)),
            node_log_path=str(raw.get(KEY_NODE_LOG_PATH) or ""),
            preferred_port=preferred_port,
        )
    except ConfigValidationError as exc:
        raise ConfigReadError(f"Invalid connection settings: {exc}") from exc


def load_connection_config(config_path: Path | str) -> ConnectionConfig:
    """Read and parse the settings file in one step."""
    return parse_connection_config(read_settings(config_path))


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_STRINGS


def _as_port(value: object) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigReadError(f"Port must be a valid number, got {value!r}") from exc
