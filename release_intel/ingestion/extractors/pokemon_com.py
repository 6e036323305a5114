"""
Pokemon.com Extractors
======================

Deterministic extractors for the official Pokémon TCG site:
- a set page parser (targeted regexes, no AI)
- the expansions listing, read from its JSON endpoint
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from release_intel.core.enums import Category, ProductType
from release_intel.core.schema import (
    ExtractedPayload,
    ExtractedProduct,
    ExtractedSet,
    coerce_date,
)
from release_intel.ingestion.crawler import ACCEPT_JSON
from release_intel.ingestion.errors import ExtractionFailure
from release_intel.ingestion.extractors.base import BaseExtractor
from release_intel.ingestion.normalizer import clean_html_text

if TYPE_CHECKING:
    from release_intel.ingestion.crawler import FetchResult
    from release_intel.ingestion.registry import SourceConfig

logger = logging.getLogger(__name__)

POKEMON_BASE_URL = "https://www.pokemon.com"
EXPANSIONS_API_URL = "https://www.pokemon.com/api/1/us/expansions"

_TITLE_PREFIX_RE = re.compile(r"^Pok[eé]mon\s+TCG:\s*", re.IGNORECASE)
_TITLE_PATTERNS = (
    re.compile(r'<meta\s+name="pkm-title"\s+content="([^"]+)"', re.IGNORECASE),
    re.compile(r"<title>([^<]+)\|", re.IGNORECASE),
    re.compile(r"<h1[^>]*>([\s\S]*?)</h1>", re.IGNORECASE),
)
_RELEASE_DATE_RE = re.compile(
    r"Release\s*Date</td>\s*<td[^>]*>\s*([A-Za-z]+\s+\d{1,2},\s+\d{4})\s*</td>",
    re.IGNORECASE,
)
_SUMMARY_RE = re.compile(r"<p>([\s\S]{80,1200}?)</p>", re.IGNORECASE)
_IMAGE_PATTERNS = (
    re.compile(r'<meta\s+property="og:image"\s+content="([^"]+)"', re.IGNORECASE),
    re.compile(r'<img[^>]+src="([^"]+logo[^"]*)"', re.IGNORECASE),
)


def to_absolute_url(path_or_url: str | None) -> str | None:
    """Resolve a pokemon.com relative path."""
    if not path_or_url:
        return None
    if path_or_url.startswith(("http://", "https://")):
        return path_or_url
    if path_or_url.startswith("/"):
        return f"{POKEMON_BASE_URL}{path_or_url}"
    return f"{POKEMON_BASE_URL}/{path_or_url}"


def clean_set_title(raw: str | None) -> str:
    """Clean an expansion title and drop the "Pokémon TCG:" prefix."""
    return _TITLE_PREFIX_RE.sub("", clean_html_text(raw)).strip()


def _first_match(patterns: tuple[re.Pattern[str], ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


class PokemonComSetPageExtractor(BaseExtractor):
    """
    Parser for a single pokemon.com expansion page.

    Produces exactly one set with one set_default product, or nothing
    when no title can be found.
    """

    EXTRACTOR_NAME = "pokemon_com_set_page"
    EXTRACTOR_VERSION = "1.0.0"

    def extract(self, result: FetchResult, source: SourceConfig) -> ExtractedPayload:
        html = result.text
        set_name = clean_set_title(_first_match(_TITLE_PATTERNS, html))
        if not set_name:
            logger.info(f"No set title found on {source.url}")
            return ExtractedPayload.empty()

        release_date = None
        date_match = _RELEASE_DATE_RE.search(html)
        if date_match:
            try:
                release_date = datetime.strptime(
                    re.sub(r"\s+", " ", date_match.group(1)), "%B %d, %Y"
                ).date()
            except ValueError:
                logger.debug(f"Unparseable release date '{date_match.group(1)}'")

        summary = None
        summary_match = _SUMMARY_RE.search(html)
        if summary_match:
            summary = clean_html_text(summary_match.group(1))[:500] or None

        image_url = to_absolute_url(_first_match(_IMAGE_PATTERNS, html))

        product = ExtractedProduct(
            name=set_name,
            product_type=ProductType.SET_DEFAULT.value,
            release_date=release_date,
            image_url=image_url,
            buy_url=source.url,
            contents_summary=summary,
        )
        return ExtractedPayload(
            releases=[
                ExtractedSet(set_name=set_name, category=Category.POKEMON, products=[product])
            ]
        )


class PokemonComExpansionsExtractor(BaseExtractor):
    """Reader for the official expansions JSON endpoint."""

    EXTRACTOR_NAME = "pokemon_com_expansions"
    EXTRACTOR_VERSION = "1.0.0"
    ACCEPT = ACCEPT_JSON

    def content_url(self, source: SourceConfig) -> str:
        return self.config.get("api_url") or EXPANSIONS_API_URL

    def extract(self, result: FetchResult, source: SourceConfig) -> ExtractedPayload:
        try:
            data = result.json()
        except json.JSONDecodeError as e:
            raise ExtractionFailure(f"Expansions endpoint returned invalid JSON: {e}") from e

        items: list[dict[str, Any]] = data if isinstance(data, list) else []
        releases: list[ExtractedSet] = []

        for item in items:
            if not isinstance(item, dict):
                continue
            set_name = clean_set_title(item.get("title"))
            if not set_name:
                continue

            system = clean_html_text(item.get("system"))
            product = ExtractedProduct(
                name=set_name,
                product_type=ProductType.SET_DEFAULT.value,
                release_date=coerce_date(item.get("releaseDate")),
                image_url=to_absolute_url(item.get("thumbnail")),
                buy_url=to_absolute_url(item.get("url")),
                contents_summary=f"Series: {system}" if system else None,
            )
            releases.append(
                ExtractedSet(set_name=set_name, category=Category.POKEMON, products=[product])
            )

        logger.info(f"Expansions endpoint listed {len(releases)} sets")
        return ExtractedPayload(releases=releases)
