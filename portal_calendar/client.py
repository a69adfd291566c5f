"""Thin async wrapper around the job-portal REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from . import config

logger = logging.getLogger(__name__)


class PortalError(RuntimeError):
    """Base error raised by :class:`PortalClient`."""


class PortalTransportError(PortalError):
    """Network failure, timeout or 5xx.  Worth retrying with backoff."""


class PortalResponseError(PortalError):
    """The endpoint answered but not usefully (4xx, bad JSON, ``success: false``)."""

    def __init__(self, path: str, message: str, *, status_code: int | None = None) -> None:
        self.path = path
        self.status_code = status_code
        super().__init__(f"{path}: {message}")


class PortalClient:
    """Issue GET requests against the portal API and decode JSON bodies."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or config.api_base_url()).rstrip("/")
        token = config.api_token() if token is None else token
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else config.http_timeout(),
        )
        self._headers = headers

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` and return the decoded body.

        Raises :class:`PortalTransportError` for failures that may go away on
        retry and :class:`PortalResponseError` for everything else.
        """
        url = f"{self.base_url}{path}"
        logger.debug("GET %s params=%s", url, params)
        try:
            resp = await self._http.get(url, params=params, headers=self._headers)
        except httpx.TransportError as exc:
            raise PortalTransportError(f"{path}: {exc}") from exc

        if resp.status_code >= 500:
            raise PortalTransportError(f"{path}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise PortalResponseError(
                path, f"HTTP {resp.status_code}", status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise PortalResponseError(path, "response is not JSON") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


def extract_records(payload: Any, *keys: str) -> list[dict]:
    """Pull the record list out of any of the portal's response shapes.

    Accepts bare arrays, ``{"success": true, "data": [...]}`` and
    ``{"data": {"<key>": [...]}}`` where ``<key>`` is one of *keys*.  Raises
    :class:`ValueError` for ``success: false`` bodies.
    """
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected response type: {type(payload).__name__}")
    if payload.get("success") is False:
        raise ValueError(payload.get("message") or "success: false")

    for container in (payload.get("data"), payload):
        if isinstance(container, list):
            return [r for r in container if isinstance(r, dict)]
        if isinstance(container, dict):
            for key in keys:
                value = container.get(key)
                if isinstance(value, list):
                    return [r for r in value if isinstance(r, dict)]
    return []


def extract_total(payload: Any, fallback: int) -> int:
    """Best-effort total count from a paginated response."""
    if not isinstance(payload, dict):
        return fallback
    candidates = [
        payload.get("total"),
        payload.get("totalCount"),
        payload.get("count"),
        (payload.get("pagination") or {}).get("total"),
    ]
    data = payload.get("data")
    if isinstance(data, dict):
        candidates.extend([data.get("total"), (data.get("pagination") or {}).get("total")])
    for value in candidates:
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return max(value, fallback)
    return fallback
