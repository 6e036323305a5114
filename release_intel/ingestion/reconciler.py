"""
Reconciler Module
=================

Groups the set candidates of one run by canonical set key, ranks each
group's sources by trust, merges their products field by field and scores
the confidence of the merged result.

Trust score:   tier_rank * 100 + source_type_weight
Confidence:    tier_base + source_type_weight + corroboration bonus
               - recency penalty, clamped to [5, 99]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from release_intel.core.enums import Category, Confidence, ProductType, SourceTier, SourceType
from release_intel.core.schema import ExtractedPayload, ExtractedProduct
from release_intel.ingestion.normalizer import canonical_set_key, normalize_for_match
from release_intel.ingestion.registry import SourceConfig

logger = logging.getLogger(__name__)

TIER_RANK: dict[SourceTier, int] = {SourceTier.A: 3, SourceTier.B: 2, SourceTier.C: 1}
TIER_BASE: dict[SourceTier, int] = {SourceTier.A: 72, SourceTier.B: 56, SourceTier.C: 38}
SOURCE_TYPE_WEIGHT: dict[SourceType, int] = {
    SourceType.OFFICIAL: 10,
    SourceType.DISTRIBUTOR: 6,
    SourceType.RETAILER: 4,
    SourceType.NEWS: 0,
    SourceType.COMMUNITY: -8,
}

CONFIRMED_THRESHOLD = 75
UNCONFIRMED_THRESHOLD = 50
MIN_CONFIDENCE_SCORE = 5
MAX_CONFIDENCE_SCORE = 99

SET_DEFAULT_IDENTITY = "set_default"
FALLBACK_SUMMARY = "Set-level fallback product inferred from expansion page."

# Fields merged as "first non-null in trust order"
_MERGED_FIELDS = (
    "msrp",
    "estimated_resale",
    "release_date",
    "preorder_date",
    "image_url",
    "buy_url",
    "contents_summary",
)


@dataclass
class ExtractedSetCandidate:
    """One set as reported by one source during one run."""

    set_name: str
    category: Category
    products: list[ExtractedProduct]
    source: SourceConfig
    seen_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class MergedCandidate:
    """All candidates for one logical set, merged in trust order."""

    set_name: str
    category: Category
    products: list[ExtractedProduct]
    confidence: Confidence
    confidence_score: int
    primary_source: SourceConfig
    supporting_sources: list[str] = field(default_factory=list)
    members: list[ExtractedSetCandidate] = field(default_factory=list)

    @property
    def supporting_count(self) -> int:
        return len(self.supporting_sources)


def trust_score(source: SourceConfig) -> int:
    """Rank a source for conflict resolution; higher wins."""
    return TIER_RANK[source.tier] * 100 + SOURCE_TYPE_WEIGHT[source.source_type]


def confidence_score(
    primary: SourceConfig,
    supporting_count: int,
    seen_at: datetime,
    now: datetime | None = None,
) -> int:
    """
    Score confidence in a merged candidate.

    Args:
        primary: The highest-trust source of the group
        supporting_count: Number of distinct sources that reported the set
        seen_at: When the primary candidate was seen
        now: Reference time (defaults to the current UTC time)

    Returns:
        Integer score in [5, 99]
    """
    now = now or datetime.now(UTC)
    age_days = max(0, (now - seen_at).days)
    corroboration_bonus = min(20, max(0, supporting_count - 1) * 8)
    recency_penalty = min(15, age_days)
    score = (
        TIER_BASE[primary.tier]
        + SOURCE_TYPE_WEIGHT[primary.source_type]
        + corroboration_bonus
        - recency_penalty
    )
    return max(MIN_CONFIDENCE_SCORE, min(MAX_CONFIDENCE_SCORE, score))


def confidence_from_score(score: int) -> Confidence:
    """Map a numeric confidence score onto the Confidence enum."""
    if score >= CONFIRMED_THRESHOLD:
        return Confidence.CONFIRMED
    if score >= UNCONFIRMED_THRESHOLD:
        return Confidence.UNCONFIRMED
    return Confidence.RUMOR


def product_identity(product: ExtractedProduct, set_name: str) -> str:
    """Merge key of a product within its set."""
    if product.product_type == ProductType.SET_DEFAULT.value:
        return SET_DEFAULT_IDENTITY
    return normalize_for_match(product.name or set_name)


def build_candidates(
    payload: ExtractedPayload,
    source: SourceConfig,
    seen_at: datetime | None = None,
) -> list[ExtractedSetCandidate]:
    """
    Turn one source's payload into set candidates.

    A set reported without products gets a single set_default product
    named after the set.
    """
    seen_at = seen_at or datetime.now(UTC)
    candidates = []
    for extracted in payload.releases:
        products = list(extracted.products) or [
            ExtractedProduct(
                name=extracted.set_name,
                product_type=ProductType.SET_DEFAULT.value,
                contents_summary=FALLBACK_SUMMARY,
            )
        ]
        candidates.append(
            ExtractedSetCandidate(
                set_name=extracted.set_name,
                category=extracted.category,
                products=products,
                source=source,
                seen_at=seen_at,
            )
        )
    return candidates


class Reconciler:
    """Merges set candidates from many sources into one record per set."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now

    def group(
        self, candidates: list[ExtractedSetCandidate]
    ) -> list[list[ExtractedSetCandidate]]:
        """Group candidates by (category, canonical set key), in first-seen order."""
        buckets: dict[tuple[Category, str], list[ExtractedSetCandidate]] = {}
        for candidate in candidates:
            key = (candidate.category, canonical_set_key(candidate.set_name))
            buckets.setdefault(key, []).append(candidate)
        return list(buckets.values())

    def merge_group(self, group: list[ExtractedSetCandidate]) -> MergedCandidate:
        """Merge one bucket of candidates."""
        # sorted() is stable: equal trust keeps extraction order
        ranked = sorted(group, key=lambda c: trust_score(c.source), reverse=True)
        primary = ranked[0]

        merged: dict[str, ExtractedProduct] = {}
        for candidate in ranked:
            for raw in candidate.products:
                identity = product_identity(raw, candidate.set_name)
                existing = merged.get(identity)
                if existing is None:
                    merged[identity] = raw.model_copy(
                        update={
                            "name": raw.name or candidate.set_name,
                            "top_chases": list(raw.top_chases),
                        }
                    )
                    continue

                updates = {
                    name: getattr(raw, name)
                    for name in _MERGED_FIELDS
                    if getattr(existing, name) is None and getattr(raw, name) is not None
                }
                if not existing.top_chases and raw.top_chases:
                    updates["top_chases"] = list(raw.top_chases)
                if updates:
                    merged[identity] = existing.model_copy(update=updates)

        supporting: list[str] = []
        for candidate in group:
            if candidate.source.name not in supporting:
                supporting.append(candidate.source.name)

        score = confidence_score(
            primary.source, len(supporting), primary.seen_at, now=self._now
        )
        return MergedCandidate(
            set_name=primary.set_name,
            category=primary.category,
            products=list(merged.values()),
            confidence=confidence_from_score(score),
            confidence_score=score,
            primary_source=primary.source,
            supporting_sources=supporting,
            members=list(group),
        )

    def remerge(self, merged: list[MergedCandidate]) -> MergedCandidate:
        """
        Merge candidates that resolve to the same release into one.

        Their source candidates are merged again as a single bucket, so
        trust order decides across the combined group.
        """
        if len(merged) == 1:
            return merged[0]
        return self.merge_group([member for candidate in merged for member in candidate.members])

    def reconcile(self, candidates: list[ExtractedSetCandidate]) -> list[MergedCandidate]:
        """
        Reconcile all candidates of a run.

        Returns:
            One MergedCandidate per logical set, in first-seen order
        """
        merged = [self.merge_group(group) for group in self.group(candidates)]
        logger.info(f"Reconciled {len(candidates)} candidates into {len(merged)} sets")
        return merged
