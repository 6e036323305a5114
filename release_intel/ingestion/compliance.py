"""
Compliance Gate Module
======================

Decides whether a URL may be fetched according to its origin's robots.txt.

Only the ``User-agent: *`` block is honoured. A ``Disallow: /`` rule blocks
the whole origin, a rule ending in ``*`` blocks every path with that prefix,
and any other rule blocks exactly that path. When robots.txt cannot be read
the gate fails open.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

import httpx

from release_intel.ingestion.registry import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

_USER_AGENT_RE = re.compile(r"^User-agent:\s*", re.IGNORECASE)
_DISALLOW_RE = re.compile(r"^Disallow:\s*", re.IGNORECASE)


def get_origin(url: str) -> str:
    """Return ``scheme://host`` for a URL, or an empty string if it has none."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def get_path(url: str) -> str:
    """Return the path component of a URL, defaulting to ``/``."""
    try:
        return urlparse(url).path or "/"
    except ValueError:
        return "/"


def parse_disallow_rules(body: str) -> list[str]:
    """
    Collect the Disallow rules of the ``User-agent: *`` block.

    A later ``User-agent: *`` line starts the rule list over. Empty
    ``Disallow:`` lines allow everything and are ignored.
    """
    in_star_block = False
    rules: list[str] = []

    for line in body.splitlines():
        trimmed = line.strip()
        if _USER_AGENT_RE.match(trimmed):
            agent = _USER_AGENT_RE.sub("", trimmed).strip().lower()
            in_star_block = agent == "*"
            if in_star_block:
                rules.clear()
        elif in_star_block and _DISALLOW_RE.match(trimmed):
            rule = _DISALLOW_RE.sub("", trimmed).strip()
            if rule:
                rules.append(rule)

    return rules


def is_path_allowed(path: str, rules: list[str]) -> bool:
    """Check a request path against Disallow rules."""
    for rule in rules:
        if rule == "/":
            return False
        if rule.endswith("*"):
            prefix = rule.rstrip("*")
            if prefix and path.startswith(prefix):
                return False
        elif path == rule:
            return False
    return True


class ComplianceGate:
    """
    robots.txt gate for source URLs.

    Nothing is cached: every check reads robots.txt again so that a
    change on the publisher's side is honoured by the next source.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport

    async def _fetch_robots(self, origin: str) -> str | None:
        """Fetch robots.txt for an origin; None means unreadable."""
        robots_url = f"{origin}/robots.txt"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    robots_url,
                    headers={"User-Agent": self.user_agent},
                    follow_redirects=True,
                )
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch robots.txt for {origin}: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"robots.txt for {origin} returned {response.status_code}")
            return None
        return response.text

    async def is_allowed(self, url: str) -> bool:
        """
        Check if a URL may be fetched.

        Args:
            url: Full URL to check

        Returns:
            True if allowed, False if disallowed or the origin is invalid
        """
        origin = get_origin(url)
        if not origin:
            return False

        body = await self._fetch_robots(origin)
        if body is None or not body.strip():
            # Fail open
            return True

        return is_path_allowed(get_path(url), parse_disallow_rules(body))
