"""
Editorial Top Chases
====================

Curated top-chase lists for sets whose sources report no chase cards.
Entries come from trusted editorial pages and are matched on the
normalized set name.
"""

from dataclasses import dataclass, field

from release_intel.ingestion.normalizer import normalize_for_match


@dataclass(frozen=True)
class EditorialTopChases:
    """Fallback chase list for the sets matching any of ``set_matchers``."""

    set_matchers: tuple[str, ...]
    source_url: str
    top_chases: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, set_name: str) -> bool:
        normalized = normalize_for_match(set_name)
        return any(normalize_for_match(m) in normalized for m in self.set_matchers)


EDITORIAL_TOP_CHASES: tuple[EditorialTopChases, ...] = (
    EditorialTopChases(
        set_matchers=("ascended heroes",),
        source_url=(
            "https://www.tcgplayer.com/content/article/"
            "The-10-Cards-Everybody-Wants-from-Ascended-Heroes/"
            "4b471867-7630-40c0-a27b-4a42d1a2a309/"
        ),
        top_chases=(
            "Mega Gengar ex SAR",
            "Mega Dragonite ex SAR",
            "Rocket's Mewtwo ex SAR",
            "N's Zoroark ex SIR",
            "Iono's Bellibolt ex SIR",
        ),
    ),
)


def editorial_top_chases(
    set_name: str,
    entries: tuple[EditorialTopChases, ...] = EDITORIAL_TOP_CHASES,
) -> list[str]:
    """Top chases of the first editorial entry matching a set, else []."""
    for entry in entries:
        if entry.matches(set_name):
            return list(entry.top_chases)
    return []
