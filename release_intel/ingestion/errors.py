"""Exceptions raised by the ingestion pipeline."""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for ingestion pipeline errors."""


class FetchError(IngestionError):
    """A source URL could not be fetched (network, timeout, redirects, non-2xx)."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"{message} ({url})")


class ComplianceDenied(IngestionError):
    """robots.txt (or an underivable origin) forbids fetching a URL."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Disallowed by robots.txt: {url}")


class ExtractionFailure(IngestionError):
    """An extractor could not turn fetched content into a payload."""


class PersistenceError(IngestionError):
    """Writing one merged candidate to the database failed."""

    def __init__(self, set_name: str, message: str) -> None:
        self.set_name = set_name
        super().__init__(f"{set_name}: {message}")
