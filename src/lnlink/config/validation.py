"""Validate user-entered connection settings before any network attempt."""

from __future__ import annotations

from lnlink.errors import ConfigValidationError


def validate_connection_settings(host: str | None, port: str | int | None) -> tuple[str, int]:
    """Check a host/port pair as typed by the user.

    Returns:
        The normalized ``(host, port)`` pair.

    Raises:
        ConfigValidationError: With a message suitable for showing directly
            next to the offending input field.
    """
    if host is None or not str(host).strip():
        raise ConfigValidationError("Host cannot be empty")

    if isinstance(port, bool):
        raise ConfigValidationError("Port must be a valid number")
    try:
        port_num = int(str(port).strip())
    except ValueError:
        raise ConfigValidationError("Port must be a valid number") from None

    if not 1 <= port_num <= 65535:
        raise ConfigValidationError("Port must be between 1 and 65535")

    return str(host).strip(), port_num
