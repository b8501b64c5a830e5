"""lnlink: self-healing connection layer for a remote Lightning node's REST API.

Typical use from a front end::

    ctx = build_context()
    ctx.session.add_listener(on_status_changed)
    result = ctx.session.connect()
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _distribution_version

from lnlink.app import AppContext, build_context
from lnlink.connection.session import ConnectionSession
from lnlink.errors import LnLinkError
from lnlink.models import ConnectionConfig, ConnectionResult, ConnectionStatus, DiagnosticsReport

__all__ = [
    "AppContext",
    "ConnectionConfig",
    "ConnectionResult",
    "ConnectionSession",
    "ConnectionStatus",
    "DiagnosticsReport",
    "LnLinkError",
    "build_context",
]

_LOCAL_VERSION_FALLBACK = "0.0.0+local"


def _resolve_version() -> str:
    """Installed distribution version, or a fixed local marker for source checkouts."""
    try:
        return _distribution_version("lnlink")
    except PackageNotFoundError:
        return _LOCAL_VERSION_FALLBACK


__version__ = _resolve_version()
