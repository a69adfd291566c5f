"""Abstract base class for portal record fetchers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..client import PortalClient


@dataclass(slots=True)
class FetchedPage:
    """Raw records returned by one fetcher call."""

    records: list[dict] = field(default_factory=list)
    total: int = 0
    endpoint: str = ""


class BaseFetcher(ABC):
    """Interface that every record source must implement."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier for this source (e.g. ``'admin-users'``)."""

    @abstractmethod
    async def fetch(self, client: PortalClient, params: dict[str, Any]) -> FetchedPage:
        """Fetch one page of raw records.

        Parameters
        ----------
        client:
            Portal API client used for the request.
        params:
            Query parameters (``page``, ``limit``, ``sort``, population flags,
            and optional ``status``/``role``/``jobId``).  ``startDate`` and
            ``endDate`` are ISO-8601 strings of the requested window.

        Raises ``PortalTransportError`` on network failure and
        ``PortalResponseError`` or ``ValueError`` when the endpoint answered
        without usable data.
        """
