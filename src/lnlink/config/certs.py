"""Locate node TLS certificates in the usual per-user data directories."""

from __future__ import annotations

from pathlib import Path

_CERT_LOCATIONS: tuple[tuple[str, ...], ...] = (
    (".lnd", "tls.cert"),
    (".lightning", "tls.cert"),
    ("Library", "Application Support", "Lnd", "tls.cert"),
    (".polar", "networks", "1", "volumes", "lnd", "tls.cert"),
)


def find_tls_certificates(home: Path | str | None = None) -> list[str]:
    """Return existing certificate paths, most likely first."""
    base = Path(home) if home is not None else Path.home()
    found: list[str] = []
    for parts in _CERT_LOCATIONS:
        candidate = base.joinpath(*parts)
        if candidate.is_file():
            found.append(str(candidate))
    return found
