"""
Fetcher Module
==============

Single-shot HTTP GET for source content. There is no retry at this layer:
a failed fetch raises FetchError and the pipeline skips the source.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from release_intel.ingestion.errors import FetchError
from release_intel.ingestion.registry import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

ACCEPT_HTML = "text/html"
ACCEPT_JSON = "application/json"


@dataclass
class FetchResult:
    """Result of fetching a URL."""

    url: str
    text: str
    status_code: int
    content_type: str
    fetched_at: datetime

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.text)


class Fetcher:
    """
    HTTP fetcher with a fixed descriptive user agent.

    Each call opens a short-lived ``httpx.AsyncClient``; nothing is held
    between sources.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15.0,
        max_redirects: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport

    async def fetch(self, url: str, accept: str = ACCEPT_HTML) -> FetchResult:
        """
        Fetch a URL.

        Args:
            url: URL to fetch
            accept: Value for the Accept header

        Returns:
            FetchResult for a 2xx response

        Raises:
            FetchError: On network error, timeout, redirect overflow or non-2xx
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    url,
                    headers={"User-Agent": self.user_agent, "Accept": accept},
                )
        except httpx.TimeoutException as e:
            raise FetchError(url, f"Timeout after {self.timeout}s") from e
        except httpx.TooManyRedirects as e:
            raise FetchError(url, f"More than {self.max_redirects} redirects") from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"HTTP error: {e}") from e

        if not 200 <= response.status_code < 300:
            raise FetchError(
                url, f"HTTP {response.status_code}", status_code=response.status_code
            )

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        logger.debug(f"Fetched {url} ({response.status_code}, {len(response.text)} chars)")

        return FetchResult(
            url=str(response.url),
            text=response.text,
            status_code=response.status_code,
            content_type=content_type,
            fetched_at=datetime.now(UTC),
        )
