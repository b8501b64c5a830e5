"""Bare TCP reachability checks -- the primitive all discovery builds on.

Every call opens and closes its own socket, so the functions are safe to
call concurrently. No retries happen here; callers own the retry policy.
"""

from __future__ import annotations

import logging
import socket

from lnlink.models import HostCheck

logger = logging.getLogger(__name__)

# TCP echo; an active refusal on it still proves the host is up
_HOST_CHECK_PORT = 7


def probe(host: str, port: int, timeout_ms: int) -> bool:
    """Return True iff a TCP connection to (host, port) completes within *timeout_ms*.

    Refused connections, timeouts, DNS failures and invalid ports all yield False.
    """
    try:
        with socket.create_connection((host, port), timeout=timeout_ms / 1000):
            return True
    except (OSError, OverflowError, ValueError) as exc:
        logger.debug("Endpoint %s:%s not reachable: %s", host, port, exc)
        return False


def check_host(host: str, timeout_ms: int) -> HostCheck:
    """Resolve *host* and test whether it answers at all.

    A host that actively refuses a connection is up; only silence
    (timeout, unreachable network) counts as down.
    """
    try:
        infos = socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except (OSError, UnicodeError) as exc:
        return HostCheck(host=host, resolved=False, reachable=False, error=str(exc))

    address = str(infos[0][4][0])
    try:
        with socket.create_connection((address, _HOST_CHECK_PORT), timeout=timeout_ms / 1000):
            reachable = True
    except ConnectionRefusedError:
        reachable = True
    except OSError as exc:
        return HostCheck(
            host=host, resolved=True, reachable=False, address=address, error=str(exc)
        )
    return HostCheck(host=host, resolved=True, reachable=reachable, address=address)


class SocketProber:
    """Adapter for ReachabilityProberPort."""

    def probe(self, host: str, port: int, timeout_ms: int) -> bool:
        return probe(host, port, timeout_ms)

    def check_host(self, host: str, timeout_ms: int) -> HostCheck:
        return check_host(host, timeout_ms)
