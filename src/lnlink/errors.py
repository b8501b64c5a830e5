"""Exception hierarchy for lnlink.

All exceptions inherit from LnLinkError (single catch point).
Messages are written for operators -- clear, actionable, no stack traces.
"""

from __future__ import annotations


class LnLinkError(Exception):
    """Base exception for all lnlink errors."""


class ConfigReadError(LnLinkError):
    """Error reading the persisted connection settings."""


class ConfigWriteError(LnLinkError):
    """Error writing the persisted connection settings."""


class ConfigValidationError(LnLinkError):
    """Connection settings were rejected before any network attempt."""


class TransportError(LnLinkError):
    """The TLS context for an HTTP transport could not be initialized."""


class NodeApiError(LnLinkError):
    """The node's administrative API did not answer successfully."""
