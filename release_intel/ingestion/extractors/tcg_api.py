"""
Structured TCG API Extractors
=============================

Tier A extractors for public set catalogs:
- pokemontcg.io ``/v2/sets``
- Scryfall ``/sets``

Both skip sets released more than ``max_age_days`` ago (default 365).
"""

from __future__ import annotations

import json
import logging
from datetime import date, timedelta
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
from release_intel.ingestion.normalizer import clean_html_text, normalize_for_match

if TYPE_CHECKING:
    from release_intel.ingestion.crawler import FetchResult
    from release_intel.ingestion.registry import SourceConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_DAYS = 365

# Scryfall set types that correspond to sealed retail releases
SCRYFALL_MAIN_SET_TYPES = frozenset(
    {"core", "expansion", "masters", "draft_innovation", "commander"}
)


def canonical_pokemon_release_name(name: str, series: str | None) -> str:
    """
    Name a pokemontcg.io set as "{name} ({series})".

    The series is left out when the set name already contains it.
    """
    name = clean_html_text(name)
    series = clean_html_text(series).removesuffix(" Series").removesuffix(" series").strip()
    if not series:
        return name
    n = normalize_for_match(name)
    s = normalize_for_match(series)
    if not n or not s or s in n:
        return name
    return f"{name} ({series})"


class _JsonSetCatalogExtractor(BaseExtractor):
    """Shared plumbing for JSON set catalogs."""

    ACCEPT = ACCEPT_JSON

    @property
    def max_age_days(self) -> int:
        return int(self.config.get("max_age_days", DEFAULT_MAX_AGE_DAYS))

    def _cutoff(self) -> date:
        return date.today() - timedelta(days=self.max_age_days)

    def _load_data(self, result: FetchResult) -> list[dict[str, Any]]:
        try:
            body = result.json()
        except json.JSONDecodeError as e:
            raise ExtractionFailure(f"{self.EXTRACTOR_NAME}: invalid JSON: {e}") from e
        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            raise ExtractionFailure(f"{self.EXTRACTOR_NAME}: response has no data list")
        return [item for item in body["data"] if isinstance(item, dict)]


class PokemonTcgSetsExtractor(_JsonSetCatalogExtractor):
    """Extractor for the pokemontcg.io sets endpoint."""

    EXTRACTOR_NAME = "pokemontcg_sets"
    EXTRACTOR_VERSION = "1.0.0"

    def extract(self, result: FetchResult, source: SourceConfig) -> ExtractedPayload:
        cutoff = self._cutoff()
        releases: list[ExtractedSet] = []

        for item in self._load_data(result):
            release_date = coerce_date(item.get("releaseDate"))
            if release_date is None or release_date < cutoff:
                continue
            name = item.get("name")
            if not name:
                continue

            series = item.get("series")
            release_name = canonical_pokemon_release_name(name, series)
            total = item.get("total")
            summary = None
            if series and total:
                summary = f"Pokemon TCG set from the {series} series. Contains {total} cards."
            elif series:
                summary = f"Pokemon TCG set from the {series} series."

            images = item.get("images") or {}
            product = ExtractedProduct(
                name=release_name,
                product_type=ProductType.SET_DEFAULT.value,
                release_date=release_date,
                image_url=images.get("logo"),
                contents_summary=summary,
            )
            releases.append(
                ExtractedSet(
                    set_name=release_name, category=Category.POKEMON, products=[product]
                )
            )

        logger.info(f"pokemontcg.io listed {len(releases)} recent sets")
        return ExtractedPayload(releases=releases)


class ScryfallSetsExtractor(_JsonSetCatalogExtractor):
    """Extractor for the Scryfall sets endpoint (Magic: The Gathering)."""

    EXTRACTOR_NAME = "scryfall_sets"
    EXTRACTOR_VERSION = "1.0.0"

    def extract(self, result: FetchResult, source: SourceConfig) -> ExtractedPayload:
        cutoff = self._cutoff()
        releases: list[ExtractedSet] = []

        for item in self._load_data(result):
            if item.get("digital"):
                continue
            set_type = item.get("set_type", "")
            if set_type not in SCRYFALL_MAIN_SET_TYPES:
                continue
            release_date = coerce_date(item.get("released_at"))
            if release_date is None or release_date < cutoff:
                continue
            name = clean_html_text(item.get("name"))
            if not name:
                continue

            summary = f"Magic: The Gathering {set_type} set."
            if item.get("card_count"):
                summary = f"{summary} Contains {item['card_count']} cards."

            product = ExtractedProduct(
                name=name,
                product_type=ProductType.SET_DEFAULT.value,
                release_date=release_date,
                image_url=item.get("icon_svg_uri"),
                buy_url=item.get("scryfall_uri"),
                contents_summary=summary,
            )
            releases.append(
                ExtractedSet(set_name=name, category=Category.MTG, products=[product])
            )

        logger.info(f"Scryfall listed {len(releases)} recent main sets")
        return ExtractedPayload(releases=releases)
