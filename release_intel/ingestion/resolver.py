"""
Entity Resolver Module
======================

Matches merged set candidates to canonical Release records using name
containment first, then Levenshtein similarity against a configurable
threshold. Unmatched candidates become new releases.

Releases also carry fields derived from their products on every match:
release date, released flag, hype score and top chases.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from release_intel.core.enums import Category, MatchAction
from release_intel.core.schema import ExtractedProduct, Release
from release_intel.db.repositories import ReleaseRepository
from release_intel.ingestion.editorial import editorial_top_chases
from release_intel.ingestion.normalizer import normalize_for_match

if TYPE_CHECKING:
    from release_intel.ingestion.reconciler import MergedCandidate
    from release_intel.ingestion.registry import EntityResolutionConfig

logger = logging.getLogger(__name__)

DEFAULT_FUZZY_THRESHOLD = 0.82
DEFAULT_REVIEW_MARGIN = 0.05
SIMILARITY_PRECISION = 6

DEFAULT_MSRP_BY_CATEGORY: dict[Category, float] = {
    Category.POKEMON: 4.99,
    Category.MTG: 5.99,
}
FALLBACK_MSRP = 9.99

MANUFACTURER_BY_CATEGORY: dict[Category, str] = {
    Category.POKEMON: "The Pokémon Company",
    Category.MTG: "Wizards of the Coast",
    Category.YUGIOH: "Konami",
}

BASE_HYPE_SCORE = 5.0
MAX_HYPE_SCORE = 10.0
POPULAR_POKEMON_SERIES = ("scarlet violet", "sword shield", "sun moon")
PREMIUM_MTG_MARKERS = ("masterpiece", "masters", "collector", "commander")
MAX_TOP_CHASES = 5


@dataclass
class ResolutionResult:
    """Result of resolving a merged candidate to a release."""

    release: Release
    action: MatchAction
    similarity: float = 1.0
    needs_review: bool = False

    @property
    def created(self) -> bool:
        return self.action == MatchAction.CREATED


def earliest_release_date(products: list[ExtractedProduct]) -> date | None:
    """Earliest non-null product release date."""
    dates = [p.release_date for p in products if p.release_date is not None]
    return min(dates) if dates else None


def infer_release_msrp(category: Category, products: list[ExtractedProduct]) -> float:
    """First positive product MSRP, else the category default."""
    for product in products:
        if product.msrp is not None and product.msrp > 0:
            return product.msrp
    return DEFAULT_MSRP_BY_CATEGORY.get(category, FALLBACK_MSRP)


def manufacturer_for_category(category: Category) -> str:
    return MANUFACTURER_BY_CATEGORY.get(category, "Unknown")


def calculate_hype_score(
    category: Category,
    set_name: str,
    release_date: date,
    today: date,
    context: str = "",
) -> float:
    """
    Score pre-release hype on a 0-10 scale.

    Starts at 5. Releases due within 30 days get +2, within 90 days +1.
    Pokémon sets from a popular series get +1 and premium Magic products
    +1.5. ``context`` is extra text (product summaries) searched for the
    series or product line.
    """
    score = BASE_HYPE_SCORE
    days_until = (release_date - today).days
    if 0 < days_until <= 30:
        score += 2.0
    elif 30 < days_until <= 90:
        score += 1.0

    text = normalize_for_match(f"{set_name} {context}")
    if category == Category.POKEMON and any(s in text for s in POPULAR_POKEMON_SERIES):
        score += 1.0
    elif category == Category.MTG and any(m in text for m in PREMIUM_MTG_MARKERS):
        score += 1.5

    return min(score, MAX_HYPE_SCORE)


def derive_top_chases(set_name: str, products: list[ExtractedProduct]) -> list[str]:
    """Chase cards reported for a set's products, else the editorial list."""
    chases: list[str] = []
    for product in products:
        for chase in product.top_chases:
            if chase not in chases:
                chases.append(chase)
    if chases:
        return chases[:MAX_TOP_CHASES]
    return editorial_top_chases(set_name)


def _summary_context(products: list[ExtractedProduct]) -> str:
    return " ".join(p.contents_summary for p in products if p.contents_summary)


class EntityResolver:
    """
    Resolves merged candidates to canonical releases.

    Pass 1 takes the first release (by creation order) whose normalized
    name contains, or is contained in, the candidate's. Pass 2 takes the
    most similar release at or above the fuzzy threshold.
    """

    def __init__(
        self,
        session: Session,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
        review_margin: float = DEFAULT_REVIEW_MARGIN,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            session: SQLAlchemy database session
            fuzzy_threshold: Similarity >= this counts as a match
            review_margin: Fuzzy matches within this margin above the
                threshold are flagged for review
        """
        self.session = session
        self.releases = ReleaseRepository(session)
        self.fuzzy_threshold = fuzzy_threshold
        self.review_margin = review_margin

    @classmethod
    def from_config(cls, session: Session, config: EntityResolutionConfig) -> EntityResolver:
        """Create resolver from configuration."""
        return cls(
            session=session,
            fuzzy_threshold=config.fuzzy_match_threshold,
            review_margin=config.review_margin,
        )

    def _best_entry(
        self, normalized: str, entries: Sequence[tuple[Hashable, str]]
    ) -> tuple[Hashable, MatchAction, float] | None:
        """Apply both matching passes to (key, normalized name) entries."""
        if not normalized:
            return None

        # Pass 1: containment
        for key, entry_norm in entries:
            if entry_norm and (entry_norm in normalized or normalized in entry_norm):
                return key, MatchAction.CONTAINMENT, 1.0

        # Pass 2: fuzzy
        best: Hashable | None = None
        best_score = 0.0
        for key, entry_norm in entries:
            score = round(
                self._string_similarity(normalized, entry_norm), SIMILARITY_PRECISION
            )
            if score >= self.fuzzy_threshold and score > best_score:
                best, best_score = key, score

        if best is None:
            return None
        return best, MatchAction.FUZZY, best_score

    def find_match(
        self, set_name: str, category: Category
    ) -> tuple[Release, MatchAction, float] | None:
        """
        Find an existing release for a set name.

        Returns:
            (release, action, similarity) or None when nothing matches
        """
        releases = self.releases.list_by_category(category)
        entries = [(index, normalize_for_match(r.name)) for index, r in enumerate(releases)]
        match = self._best_entry(normalize_for_match(set_name), entries)
        if match is None:
            return None
        index, action, similarity = match
        return releases[index], action, similarity

    def plan_targets(self, candidates: list[MergedCandidate]) -> list[list[int]]:
        """
        Group candidates by the release each would resolve to.

        Candidates are walked in order without writing anything. A
        candidate that matches no stored release opens a pending release
        under its own name, which later candidates can match like a
        stored one.

        Returns:
            Lists of candidate indices, one per target release, in
            first-seen order
        """
        stored: dict[Category, list[tuple[Hashable, str]]] = {}
        pending: dict[Category, list[tuple[Hashable, str]]] = {}
        groups: dict[Hashable, list[int]] = {}

        for index, candidate in enumerate(candidates):
            category = candidate.category
            if category not in stored:
                stored[category] = [
                    (("release", r.id), normalize_for_match(r.name))
                    for r in self.releases.list_by_category(category)
                ]
            entries = stored[category] + pending.get(category, [])
            normalized = normalize_for_match(candidate.set_name)
            match = self._best_entry(normalized, entries)

            if match is None:
                key: Hashable = ("pending", index)
                pending.setdefault(category, []).append((key, normalized))
            else:
                key = match[0]
            groups.setdefault(key, []).append(index)

        return list(groups.values())

    def resolve(self, candidate: MergedCandidate, today: date | None = None) -> ResolutionResult:
        """
        Resolve a merged candidate, creating a release when nothing matches.

        On a match the release's derived fields (release date, released
        flag, hype score and top chases) are refreshed from the
        candidate's products.
        """
        today = today or date.today()
        earliest = earliest_release_date(candidate.products)
        top_chases = derive_top_chases(candidate.set_name, candidate.products)

        match = self.find_match(candidate.set_name, candidate.category)
        if match is None:
            release = self._create_release(candidate, earliest or today, today, top_chases)
            logger.info(f"Created release '{release.name}' ({release.category.value})")
            return ResolutionResult(release=release, action=MatchAction.CREATED)

        release, action, similarity = match
        needs_review = (
            action == MatchAction.FUZZY
            and similarity < round(self.fuzzy_threshold + self.review_margin, SIMILARITY_PRECISION)
        )
        if needs_review:
            logger.warning(
                f"Near-threshold match '{candidate.set_name}' -> '{release.name}' "
                f"(similarity {similarity:.3f}); needs review"
            )
        else:
            logger.debug(f"Matched '{candidate.set_name}' -> '{release.name}' via {action.value}")

        release_date = earliest or release.release_date
        release = self.releases.update_derived(
            release.id,
            release_date=release_date,
            is_released=release_date <= today,
            hype_score=calculate_hype_score(
                release.category,
                release.name,
                release_date,
                today,
                context=_summary_context(candidate.products),
            ),
            top_chases=top_chases or None,
        )
        return ResolutionResult(
            release=release, action=action, similarity=similarity, needs_review=needs_review
        )

    def _create_release(
        self,
        candidate: MergedCandidate,
        release_date: date,
        today: date,
        top_chases: list[str],
    ) -> Release:
        return self.releases.create(
            Release(
                name=candidate.set_name,
                category=candidate.category,
                release_date=release_date,
                manufacturer=manufacturer_for_category(candidate.category),
                msrp=infer_release_msrp(candidate.category, candidate.products),
                hype_score=calculate_hype_score(
                    candidate.category,
                    candidate.set_name,
                    release_date,
                    today,
                    context=_summary_context(candidate.products),
                ),
                top_chases=top_chases,
                description=f"Scraped release candidate for {candidate.set_name}.",
                is_released=release_date <= today,
            )
        )

    def _string_similarity(self, s1: str, s2: str) -> float:
        """
        Calculate string similarity using Levenshtein distance.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Similarity score between 0.0 and 1.0
        """
        if s1 == s2:
            return 1.0

        if not s1 or not s2:
            return 0.0

        distance = self._levenshtein_distance(s1, s2)
        max_len = max(len(s1), len(s2))

        return 1.0 - (distance / max_len)

    @staticmethod
    def _levenshtein_distance(s1: str, s2: str) -> int:
        """
        Calculate the Levenshtein distance between two strings.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Edit distance
        """
        if len(s1) < len(s2):
            s1, s2 = s2, s1

        if len(s2) == 0:
            return len(s1)

        previous_row = list(range(len(s2) + 1))
        for i, c1 in enumerate(s1):
            current_row = [i + 1]
            for j, c2 in enumerate(s2):
                insertions = previous_row[j + 1] + 1
                deletions = current_row[j] + 1
                substitutions = previous_row[j] + (c1 != c2)
                current_row.append(min(insertions, deletions, substitutions))
            previous_row = current_row

        return previous_row[-1]
