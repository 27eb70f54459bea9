from __future__ import annotations

import logging

import requests

from ..core.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "wq-tracker/1.0 (+scheduled)"


class RequestsPageFetcher:
    """Single-attempt page fetch; any failure is fatal for the cycle."""

    def __init__(self, session: requests.Session | None = None, timeout: float = 30.0):
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._timeout = timeout

    def fetch(self, url: str) -> str:
        logger.debug("Fetching %s", url)
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise FetchError(f"Request to {url} failed: {exc}") from exc
        if response.status_code != 200:
            raise FetchError(
                f"Received invalid status code: {response.status_code}",
                status_code=response.status_code,
            )
        return response.text
