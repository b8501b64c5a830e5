"""Port: persisted connection settings."""

from __future__ import annotations

from typing import Protocol

from lnlink.models import ConnectionConfig


class ConfigStorePort(Protocol):
    """Port for loading and saving the single active ConnectionConfig."""

    def load(self) -> ConnectionConfig:
        """Read the persisted settings, falling back to defaults."""
        ...

    def save(self, config: ConnectionConfig) -> None:
        """Persist *config* immediately. Raises ConfigWriteError on failure."""
        ...
