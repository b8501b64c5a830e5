"""Client for the node's administrative REST API (``/v1/...``)."""

from __future__ import annotations

import logging

import httpx

from lnlink.connection.transport import Transport
from lnlink.errors import NodeApiError
from lnlink.models import NodeInfo

logger = logging.getLogger(__name__)

INFO_PATH = "/getinfo"


class NodeClient:
    """Thin synchronous client over one Transport.

    Every failure -- transport error, non-2xx answer, unparseable body --
    surfaces as NodeApiError carrying the original error text.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._transport.base_url

    def get_json(self, path: str, *, timeout: float | None = None) -> dict:
        url = self._transport.base_url + path
        kwargs: dict[str, object] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = self._transport.client.get(url, **kwargs)
        except httpx.HTTPError as exc:
            raise NodeApiError(f"Request to {url} failed: {type(exc).__name__}: {exc}") from exc

        if response.is_error:
            raise NodeApiError(
                f"Request to {url} answered HTTP {response.status_code}: {_error_detail(response)}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise NodeApiError(f"Request to {url} did not return JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise NodeApiError(f"Request to {url} returned {type(data).__name__}, expected object")
        return data

    def get_info(self, *, timeout: float | None = None) -> NodeInfo:
        """Call ``GET /v1/getinfo`` -- the lightweight "is the API answering" call."""
        data = self.get_json(INFO_PATH, timeout=timeout)
        pubkey = data.get("identity_pubkey")
        if not pubkey:
            raise NodeApiError(
                f"{self.base_url}{INFO_PATH} answered without identity_pubkey; "
                "this port does not look like a Lightning node's REST API."
            )
        return NodeInfo(
            identity_pubkey=str(pubkey),
            alias=str(data.get("alias", "")),
            num_active_channels=_as_int(data.get("num_active_channels")),
            num_pending_channels=_as_int(data.get("num_pending_channels")),
            num_peers=_as_int(data.get("num_peers")),
            block_height=_as_int(data.get("block_height")),
            synced_to_chain=bool(data.get("synced_to_chain", False)),
        )


def _error_detail(response: httpx.Response) -> str:
    """Prefer the node's own error message over the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()[:500] or response.reason_phrase
    if isinstance(body, dict):
        for key in ("message", "error"):
            if body.get(key):
                return str(body[key])
    return response.text.strip()[:500]


def _as_int(value: object) -> int:
    # lnd encodes 64-bit integers as strings in its JSON
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
