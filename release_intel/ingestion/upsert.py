"""
Upsert Engine Module
====================

Writes the merged products of a resolved release, recording one
ReleaseProductChange row per tracked field whose formatted value differs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.orm import Session

from release_intel.core.enums import Category, ProductType, SourceTier
from release_intel.core.schema import ExtractedProduct, ReleaseProduct, ReleaseProductChange
from release_intel.db.repositories import (
    ReleaseProductChangeRepository,
    ReleaseProductRepository,
)
from release_intel.ingestion.normalizer import normalize_for_match

if TYPE_CHECKING:
    from release_intel.core.schema import Release
    from release_intel.ingestion.reconciler import MergedCandidate

logger = logging.getLogger(__name__)

# Fields compared for change detection, in recording order
TRACKED_FIELDS = ("release_date", "preorder_date", "msrp", "estimated_resale")

TIER_A_RESALE_MARKUP = 1.08


@dataclass
class UpsertOutcome:
    """Counters for one resolved release."""

    upserted: int = 0
    changes: int = 0
    strategy_product_ids: list[UUID] = field(default_factory=list)


def format_value(value: date | float | int | None) -> str:
    """
    Format a tracked value for comparison and storage.

    None -> "", dates -> YYYY-MM-DD, numbers -> str(float) so that 50 and
    50.0 compare equal.
    """
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return str(float(value))
    return str(value)


def map_product_type(raw: str | None) -> ProductType:
    """Map a free-form product type onto ProductType."""
    lower = (raw or "other").strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return ProductType(lower)
    except ValueError:
        pass
    if "etb" in lower or "elite" in lower:
        return ProductType.ELITE_TRAINER_BOX
    if "booster_box" in lower or "display" in lower:
        return ProductType.BOOSTER_BOX
    if "bundle" in lower:
        return ProductType.BOOSTER_BUNDLE
    if "tin" in lower:
        return ProductType.TIN
    if "collection" in lower:
        return ProductType.COLLECTION
    if "blister" in lower:
        return ProductType.BLISTER
    if "build" in lower and "battle" in lower:
        return ProductType.BUILD_BATTLE
    return ProductType.OTHER


def tier_a_estimated_resale(msrp: float) -> float:
    """Conservative resale estimate for tier A products without market data."""
    return round(msrp * TIER_A_RESALE_MARKUP, 2)


def estimate_resale(
    product: ExtractedProduct, category: Category, tier: SourceTier
) -> float | None:
    """
    Reported resale, or the tier A estimate for non-Pokémon products.

    Pokémon tier A listings are set-level placeholders, so no estimate is
    made for them.
    """
    if product.estimated_resale is not None:
        return product.estimated_resale
    if tier == SourceTier.A and category != Category.POKEMON and product.msrp is not None:
        return tier_a_estimated_resale(product.msrp)
    return None


def build_contents_summary(product: ExtractedProduct, supporting_sources: list[str]) -> str | None:
    """
    Combine summary, explicit chases and corroborating sources.

    Sources are only listed when more than one source reported the set.
    """
    parts = []
    if product.contents_summary:
        parts.append(product.contents_summary)
    if product.top_chases:
        parts.append(f"Top chases: {', '.join(product.top_chases)}")
    summary = " ".join(parts)

    if len(supporting_sources) > 1:
        evidence = f"Sources: {', '.join(supporting_sources)}."
        summary = f"{summary} {evidence}" if summary else evidence

    return summary or None


class UpsertEngine:
    """Creates or updates the products of a resolved release."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.products = ReleaseProductRepository(session)
        self.changes = ReleaseProductChangeRepository(session)

    def upsert(self, release: Release, candidate: MergedCandidate) -> UpsertOutcome:
        """
        Upsert every merged product of a candidate under a release.

        Args:
            release: The release the candidate resolved to
            candidate: The merged candidate

        Returns:
            UpsertOutcome with created count, change count and the
            Pokémon products that need a fresh strategy
        """
        outcome = UpsertOutcome()
        source = candidate.primary_source

        for merged in candidate.products:
            name = merged.name.strip()
            if not name:
                continue
            name_key = normalize_for_match(name)
            if not name_key:
                continue

            incoming = ReleaseProduct(
                release_id=release.id,
                name=name,
                product_type=map_product_type(merged.product_type),
                category=release.category,
                msrp=merged.msrp,
                estimated_resale=estimate_resale(merged, release.category, source.tier),
                release_date=merged.release_date,
                preorder_date=merged.preorder_date,
                image_url=merged.image_url,
                buy_url=merged.buy_url,
                contents_summary=build_contents_summary(merged, candidate.supporting_sources),
                source_tier=source.tier,
                source_url=source.url,
                confidence=candidate.confidence,
            )

            existing = self.products.get_by_name_key(release.id, name_key)
            if existing is None:
                created = self.products.create(incoming, name_key=name_key)
                outcome.upserted += 1
                logger.debug(f"Created product '{created.name}' for '{release.name}'")
                if release.category == Category.POKEMON:
                    outcome.strategy_product_ids.append(created.id)
                continue

            dirty = False
            for field_name in TRACKED_FIELDS:
                old_value = format_value(getattr(existing, field_name))
                new_value = format_value(getattr(incoming, field_name))
                if old_value == new_value:
                    continue
                self.changes.create(
                    ReleaseProductChange(
                        release_product_id=existing.id,
                        field=field_name,
                        old_value=old_value,
                        new_value=new_value,
                        source_url=source.url,
                    )
                )
                outcome.changes += 1
                dirty = True
                logger.info(
                    f"Change on '{existing.name}': {field_name} "
                    f"'{old_value}' -> '{new_value}'"
                )

            self.products.update(
                incoming.model_copy(
                    update={"id": existing.id, "created_at": existing.created_at}
                )
            )
            if dirty and release.category == Category.POKEMON:
                outcome.strategy_product_ids.append(existing.id)

        return outcome
