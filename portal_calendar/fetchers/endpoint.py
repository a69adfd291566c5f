"""Fetchers backed by a single portal REST endpoint."""

from __future__ import annotations

from typing import Any

from ..client import PortalClient, extract_records, extract_total
from .base import BaseFetcher, FetchedPage


class EndpointFetcher(BaseFetcher):
    """GET one path and read records from ``data`` or one of *keys*."""

    def __init__(self, name: str, path: str, keys: tuple[str, ...] = ()) -> None:
        self._name = name
        self.path = path
        self.keys = keys

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self, client: PortalClient, params: dict[str, Any]) -> FetchedPage:
        payload = await client.get_json(self.path, self._query(params))
        records = extract_records(payload, *self.keys)
        return FetchedPage(
            records=records,
            total=extract_total(payload, len(records)),
            endpoint=self.path,
        )

    @staticmethod
    def _query(params: dict[str, Any]) -> dict[str, Any]:
        # The portal expects lower-case "true"/"false"; unset values are omitted.
        return {
            k: (str(v).lower() if isinstance(v, bool) else v)
            for k, v in params.items()
            if v is not None
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r}, {self.path!r})"


class DashboardStatsFetcher(EndpointFetcher):
    """Read the ``recentUsers`` sample from the dashboard summary.

    The summary's own ``total`` counts every user, not the sample, so the
    page total is the sample size.
    """

    def __init__(self, path: str) -> None:
        super().__init__("dashboard-stats", path, keys=("recentUsers",))

    async def fetch(self, client: PortalClient, params: dict[str, Any]) -> FetchedPage:
        payload = await client.get_json(self.path)
        records = extract_records(payload, *self.keys)
        return FetchedPage(records=records, total=len(records), endpoint=self.path)
