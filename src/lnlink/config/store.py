"""File-backed ConfigStorePort adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from lnlink.config.reader import load_connection_config
from lnlink.config.writer import write_connection_config
from lnlink.models import ConnectionConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileConfigStore:
    """Adapter for ConfigStorePort backed by a YAML settings file."""

    path: Path

    def load(self) -> ConnectionConfig:
        config = load_connection_config(self.path)
        logger.info("Loaded connection settings from %s (%s)", self.path, config.address)
        return config

    def save(self, config: ConnectionConfig) -> None:
        write_connection_config(self.path, config)
        logger.info("Saved connection settings to %s (%s)", self.path, config.address)
