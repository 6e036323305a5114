"""
Extractor Registry Module
=========================

Central registry for source extractors.
Provides factory functions for creating extractors by name.
"""

from __future__ import annotations

from typing import Any, Type

from release_intel.ingestion.extractors.ai import AIExtractor
from release_intel.ingestion.extractors.base import BaseExtractor
from release_intel.ingestion.extractors.pokemon_com import (
    PokemonComExpansionsExtractor,
    PokemonComSetPageExtractor,
)
from release_intel.ingestion.extractors.tcg_api import (
    PokemonTcgSetsExtractor,
    ScryfallSetsExtractor,
)

# Registry mapping extractor names to their classes
EXTRACTOR_REGISTRY: dict[str, Type[BaseExtractor]] = {
    AIExtractor.EXTRACTOR_NAME: AIExtractor,
    PokemonComSetPageExtractor.EXTRACTOR_NAME: PokemonComSetPageExtractor,
    PokemonComExpansionsExtractor.EXTRACTOR_NAME: PokemonComExpansionsExtractor,
    PokemonTcgSetsExtractor.EXTRACTOR_NAME: PokemonTcgSetsExtractor,
    ScryfallSetsExtractor.EXTRACTOR_NAME: ScryfallSetsExtractor,
}


def get_extractor(
    name: str,
    config: dict[str, Any] | None = None,
    **options: Any,
) -> BaseExtractor | None:
    """
    Get an extractor instance by name.

    Args:
        name: Name of the extractor (e.g., "ai", "pokemon_com_set_page")
        config: Optional custom configuration
        **options: Extra constructor arguments (e.g. ai_client for AI extractors)

    Returns:
        Extractor instance, or None if name not found
    """
    extractor_class = EXTRACTOR_REGISTRY.get(name)
    if extractor_class is None:
        return None
    return extractor_class(config, **options)


def register_extractor(name: str, extractor_class: Type[BaseExtractor]) -> None:
    """
    Register a new extractor type.

    Args:
        name: Name to register the extractor under
        extractor_class: Extractor class (must inherit from BaseExtractor)
    """
    if not issubclass(extractor_class, BaseExtractor):
        raise TypeError(f"{extractor_class} must inherit from BaseExtractor")
    EXTRACTOR_REGISTRY[name] = extractor_class


def list_extractors() -> list[str]:
    """List all registered extractor names."""
    return list(EXTRACTOR_REGISTRY.keys())


def get_extractor_info(name: str) -> dict[str, str] | None:
    """
    Get information about an extractor type.

    Returns:
        Dict with extractor info, or None if not found
    """
    extractor_class = EXTRACTOR_REGISTRY.get(name)
    if extractor_class is None:
        return None

    return {
        "name": extractor_class.EXTRACTOR_NAME,
        "version": extractor_class.EXTRACTOR_VERSION,
        "class": extractor_class.__name__,
        "accept": extractor_class.ACCEPT,
    }


__all__ = [
    # Registry functions
    "get_extractor",
    "register_extractor",
    "list_extractors",
    "get_extractor_info",
    "EXTRACTOR_REGISTRY",
    # Base class
    "BaseExtractor",
    # Concrete extractors
    "AIExtractor",
    "PokemonComSetPageExtractor",
    "PokemonComExpansionsExtractor",
    "PokemonTcgSetsExtractor",
    "ScryfallSetsExtractor",
]
