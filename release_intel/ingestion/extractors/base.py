"""
Extractor Base Module
=====================

Defines the abstract base class for source extractors.
Extractors are responsible for:
1. Declaring which URL of a source is read, and with which Accept type
2. Turning the fetched content into an ExtractedPayload
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from release_intel.core.schema import ExtractedPayload
from release_intel.ingestion.crawler import ACCEPT_HTML

if TYPE_CHECKING:
    from release_intel.ingestion.crawler import FetchResult
    from release_intel.ingestion.registry import SourceConfig


class BaseExtractor(ABC):
    """
    Abstract base class for source extractors.

    Subclasses must implement:
    - extract: Parse fetched content into an ExtractedPayload
    """

    # Extractor identification (override in subclasses)
    EXTRACTOR_NAME: str = "base"
    EXTRACTOR_VERSION: str = "1.0.0"
    ACCEPT: str = ACCEPT_HTML
    USES_AI: bool = False

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        """
        Initialize the extractor.

        Args:
            config: Optional custom configuration from sources.yaml
        """
        self.config = config or {}

    def content_url(self, source: SourceConfig) -> str:
        """URL to fetch for a source: ``custom_config.api_url`` or the source URL."""
        return self.config.get("api_url") or source.url

    @abstractmethod
    def extract(self, result: FetchResult, source: SourceConfig) -> ExtractedPayload:
        """
        Extract releases from fetched content.

        Args:
            result: The fetched content
            source: The source it came from

        Returns:
            ExtractedPayload, empty when nothing could be identified

        Raises:
            ExtractionFailure: When the content is not in the expected format
        """
        pass
