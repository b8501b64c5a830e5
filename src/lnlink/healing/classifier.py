"""Classify administrative API failures into actionable diagnoses."""

from __future__ import annotations

from lnlink.models import FailureCategory, FailureDiagnosis

_SYNC_PATTERNS = (
    "connection reset",
    "block height out of range",
    "sync",
    "height",
)
_TLS_PATTERNS = (
    "ssl",
    "certificate",
    "handshake",
    "wrong version number",
    "tls",
)
_AUTH_PATTERNS = (
    "http 401",
    "http 403",
    "unauthorized",
    "forbidden",
    "macaroon",
    "permission denied",
)
_REFUSED_PATTERNS = ("connection refused", "connecterror", "econnrefused")
_TIMEOUT_PATTERNS = ("timed out", "timeout")


def classify_api_error(message: str) -> FailureDiagnosis:
    """Map the text of a failed API call to a FailureDiagnosis.

    Chain synchronization is checked first: a node that is still catching
    up with the base layer resets connections and rejects height-dependent
    calls, and those symptoms would otherwise read as a network problem.

    Args:
        message: The error text, typically ``str(NodeApiError)``.

    Returns:
        FailureDiagnosis with category, explanation and suggested fix.
        Unrecognized errors fall back to API_RESTRICTED.
    """
    lower = message.lower()

    # ── Node still synchronizing ─────────────────────────────
    if _matches_any(lower, _SYNC_PATTERNS):
        return FailureDiagnosis(
            category=FailureCategory.NODE_SYNCING,
            original_error=message,
            explanation=(
                "The Lightning node appears to be running but might be synchronizing "
                "with the Bitcoin blockchain. This process can take some time and may "
                "cause connection resets or API failures."
            ),
            suggested_fix="Wait for the node to fully synchronize and try again later.",
        )

    # ── TLS misconfiguration ─────────────────────────────────
    if _matches_any(lower, _TLS_PATTERNS):
        return FailureDiagnosis(
            category=FailureCategory.TLS_MISCONFIGURED,
            original_error=message,
            explanation=(
                "The TLS handshake with the node failed. The node may expect plain "
                "HTTP on this port, or the pinned certificate does not match the "
                "one the node presents."
            ),
            suggested_fix=(
                "Point tls.cert.path at the node's current tls.cert, or toggle "
                "useTls to match how the node's REST listener is configured."
            ),
        )

    # ── Authentication ───────────────────────────────────────
    if _matches_any(lower, _AUTH_PATTERNS):
        return FailureDiagnosis(
            category=FailureCategory.AUTH_FAILED,
            original_error=message,
            explanation="The node rejected the request's credentials.",
            suggested_fix="Check that the wallet is allowed to use the node's REST API.",
        )

    # ── Connection refused ───────────────────────────────────
    if _matches_any(lower, _REFUSED_PATTERNS):
        return FailureDiagnosis(
            category=FailureCategory.CONNECTION_REFUSED,
            original_error=message,
            explanation=(
                "The endpoint refused the connection. The node is not running or "
                "listens on a different port."
            ),
            suggested_fix="Start the node or run port discovery to find the right port.",
        )

    # ── Timeout ──────────────────────────────────────────────
    if _matches_any(lower, _TIMEOUT_PATTERNS):
        return FailureDiagnosis(
            category=FailureCategory.TIMEOUT,
            original_error=message,
            explanation="The node did not answer in time; it may be overloaded or starting up.",
            suggested_fix="Retry in a moment; if it persists, check the node's load and logs.",
        )

    # ── Fallback ─────────────────────────────────────────────
    return FailureDiagnosis(
        category=FailureCategory.API_RESTRICTED,
        original_error=message,
        explanation="The Lightning node may be running but API access is restricted.",
        suggested_fix=(
            "Check the node's REST listener settings (restlisten) and that this "
            "machine is allowed to reach it."
        ),
    )


# ─── Helpers ─────────────────────────────────────────────────


def _matches_any(text: str, patterns: tuple[str, ...]) -> bool:
    """Return True if any pattern appears in text."""
    return any(p in text for p in patterns)
