"""
AI-Assisted Extractor
=====================

Sends page content to the configured text-completion provider and
validates the returned JSON against ExtractedPayload. Every failure mode
(no credentials, provider error, bad JSON, schema mismatch) yields an
empty payload.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from release_intel.core.schema import ExtractedPayload
from release_intel.ingestion.extractors.base import BaseExtractor
from release_intel.services.ai.client import AIClient, ai_client_from_env
from release_intel.services.ai.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    build_extraction_prompt,
)

if TYPE_CHECKING:
    from release_intel.ingestion.crawler import FetchResult
    from release_intel.ingestion.registry import SourceConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_INPUT_CHARS = 120_000
EXTRACTION_TEMPERATURE = 0.1
EXTRACTION_MODEL_ENV = "OPENAI_EXTRACTION_MODEL"

_UNSET = object()


class AIExtractor(BaseExtractor):
    """Extractor backed by an LLM."""

    EXTRACTOR_NAME = "ai"
    EXTRACTOR_VERSION = "1.0.0"
    USES_AI = True

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        ai_client: AIClient | None | object = _UNSET,
        max_input_chars: int | None = None,
    ) -> None:
        """
        Initialize the extractor.

        Args:
            config: Optional custom configuration from sources.yaml
            ai_client: Client to use; resolved from the environment when omitted
            max_input_chars: Content budget before head + tail truncation
        """
        super().__init__(config)
        self._ai_client = ai_client
        self.max_input_chars = int(
            max_input_chars
            or self.config.get("max_input_chars", DEFAULT_MAX_INPUT_CHARS)
        )

    @property
    def ai_client(self) -> AIClient | None:
        if self._ai_client is _UNSET:
            self._ai_client = ai_client_from_env(EXTRACTION_MODEL_ENV)
        return self._ai_client  # type: ignore[return-value]

    def extract(self, result: FetchResult, source: SourceConfig) -> ExtractedPayload:
        client = self.ai_client
        if client is None:
            logger.warning(f"No AI credentials; skipping extraction for {source.id}")
            return ExtractedPayload.empty()

        prompt = build_extraction_prompt(
            result.text,
            source_label=source.name,
            expected_category=source.category.value,
            max_chars=self.max_input_chars,
        )
        generation = client.generate_json(
            EXTRACTION_SYSTEM_PROMPT, prompt, temperature=EXTRACTION_TEMPERATURE
        )
        if not generation.success or generation.parsed_json is None:
            logger.warning(
                f"AI extraction failed for {source.id}: {generation.error_message}"
            )
            return ExtractedPayload.empty()

        return self.validate_payload(generation.parsed_json, source)

    @staticmethod
    def validate_payload(data: dict[str, Any], source: SourceConfig) -> ExtractedPayload:
        """
        Validate a raw JSON object as an ExtractedPayload.

        Releases without a category inherit the source's category. A payload
        that still fails validation is discarded as a whole.
        """
        releases = data.get("releases")
        if isinstance(releases, list):
            for release in releases:
                if isinstance(release, dict) and not release.get("category"):
                    release["category"] = source.category.value

        try:
            return ExtractedPayload.model_validate(data)
        except ValidationError as e:
            logger.warning(
                f"AI extraction for {source.id} failed validation "
                f"({e.error_count()} errors); discarding payload"
            )
            return ExtractedPayload.empty()
