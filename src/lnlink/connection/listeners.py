"""Broadcast connection status transitions to registered callbacks."""

from __future__ import annotations

import logging
import threading

from lnlink.connection.base import ConnectionListener
from lnlink.models import ConnectionStatus

logger = logging.getLogger(__name__)


class ListenerBus:
    """Registered-callback list.

    Callbacks run synchronously, in registration order, on the notifying
    thread. A callback that raises is logged and skipped; it never stops
    the remaining callbacks or the caller.
    """

    def __init__(self) -> None:
        self._listeners: list[ConnectionListener] = []
        self._guard = threading.Lock()

    def add(self, listener: ConnectionListener) -> None:
        with self._guard:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove(self, listener: ConnectionListener) -> None:
        with self._guard:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._listeners)

    def notify(self, status: ConnectionStatus, message: str) -> None:
        with self._guard:
            snapshot = list(self._listeners)
        for listener in snapshot:
            try:
                listener(status, message)
            except Exception:
                logger.warning("Connection listener %r raised; ignoring", listener, exc_info=True)
