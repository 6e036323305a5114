"""
Source Registry Module
======================

Manages release intel source configurations loaded from YAML files.
Sources define which APIs and pages are read, their trust tier and
publisher type, and which extractor turns their content into candidates.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from release_intel.core.enums import Category, SourceTier, SourceType

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; ReleaseIntelBot/1.0; +https://github.com/release-intel)"
)


@dataclass
class SourceConfig:
    """Configuration for a single release intel source."""

    id: str
    name: str
    url: str
    tier: SourceTier
    source_type: SourceType
    category: Category
    extractor: str = "ai"
    enabled: bool = True
    include_in_scrape: bool = True
    schedule: str | None = None
    description: str = ""
    custom_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceConfig:
        """
        Create from dictionary.

        Raises:
            KeyError: If a required key is missing
            ValueError: If tier, source_type or category is not recognized
        """
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            url=data["url"],
            tier=SourceTier(str(data["tier"]).upper()),
            source_type=SourceType(data.get("source_type", "news")),
            category=Category(data["category"]),
            extractor=data.get("extractor", "ai"),
            enabled=bool(data.get("enabled", True)),
            include_in_scrape=bool(data.get("include_in_scrape", True)),
            schedule=data.get("schedule"),
            description=data.get("description", ""),
            custom_config=data.get("custom_config") or {},
        )


@dataclass
class EntityResolutionConfig:
    """Configuration for release matching thresholds."""

    fuzzy_match_threshold: float = 0.82
    review_margin: float = 0.05

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EntityResolutionConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        thresholds = data.get("thresholds", {})
        return cls(
            fuzzy_match_threshold=float(thresholds.get("fuzzy_match", 0.82)),
            review_margin=float(thresholds.get("review_margin", 0.05)),
        )


@dataclass
class GlobalConfig:
    """Global configuration settings."""

    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 15.0
    robots_timeout: float = 8.0
    max_redirects: int = 3
    inter_source_delay_seconds: float = 1.5
    extraction_max_input_chars: int = 120_000
    stale_run_after_hours: float = 3.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
            request_timeout=float(data.get("request_timeout", 15)),
            robots_timeout=float(data.get("robots_timeout", 8)),
            max_redirects=int(data.get("max_redirects", 3)),
            inter_source_delay_seconds=float(data.get("inter_source_delay_seconds", 1.5)),
            extraction_max_input_chars=int(data.get("extraction_max_input_chars", 120_000)),
            stale_run_after_hours=float(data.get("stale_run_after_hours", 3)),
        )


class SourceRegistry:
    """
    Registry for managing release intel source configurations.

    Loads source definitions from a YAML file and provides methods
    to query and manage them. Registry order is the YAML order and is
    the order sources are processed in.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceConfig] = {}
        self._global_config: GlobalConfig = GlobalConfig()
        self._entity_resolution: EntityResolutionConfig = EntityResolutionConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def entity_resolution(self) -> EntityResolutionConfig:
        """Get entity resolution configuration."""
        return self._entity_resolution

    @property
    def config_path(self) -> Path | None:
        """Path of the loaded YAML file, if any."""
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the sources.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._entity_resolution = EntityResolutionConfig.from_dict(
            data.get("entity_resolution")
        )

        # Load sources
        self._sources.clear()
        for source_data in data.get("sources", []):
            self.add_source(SourceConfig.from_dict(source_data))

    def add_source(self, source: SourceConfig) -> None:
        """Register a source, replacing any source with the same id."""
        self._sources[source.id] = source

    def get_source(self, source_id: str) -> SourceConfig | None:
        """
        Get a source configuration by id.

        Args:
            source_id: Source id

        Returns:
            SourceConfig if found, None otherwise
        """
        return self._sources.get(source_id)

    def list_sources(self) -> list[SourceConfig]:
        """Get all registered sources."""
        return list(self._sources.values())

    def list_enabled_sources(self) -> list[SourceConfig]:
        """Get all enabled sources."""
        return [s for s in self._sources.values() if s.enabled]

    def list_scrape_sources(self) -> list[SourceConfig]:
        """
        Get the sources a pipeline run should read.

        Returns:
            Enabled sources marked include_in_scrape, in registry order
        """
        return [s for s in self._sources.values() if s.enabled and s.include_in_scrape]

    def get_sources_by_tier(self, tier: SourceTier | str) -> list[SourceConfig]:
        """Get enabled sources of one tier."""
        tier = SourceTier(tier)
        return [s for s in self._sources.values() if s.enabled and s.tier == tier]

    def enable_source(self, source_id: str) -> bool:
        """
        Enable a source.

        Returns:
            True if source was found and enabled, False otherwise
        """
        source = self._sources.get(source_id)
        if source is None:
            return False
        source.enabled = True
        return True

    def disable_source(self, source_id: str) -> bool:
        """
        Disable a source.

        Returns:
            True if source was found and disabled, False otherwise
        """
        source = self._sources.get(source_id)
        if source is None:
            return False
        source.enabled = False
        return True


# Global registry instance
_default_registry: SourceRegistry | None = None


def default_config_path() -> Path:
    """Resolve SOURCES_CONFIG_PATH, falling back to config/sources.yaml."""
    config_path = os.environ.get("SOURCES_CONFIG_PATH")
    if config_path:
        return Path(config_path)
    # Default to config/sources.yaml relative to project root
    project_root = Path(__file__).resolve().parent.parent.parent
    return project_root / "config" / "sources.yaml"


def get_default_registry() -> SourceRegistry:
    """
    Get the default source registry instance.

    Loads configuration from the path specified in SOURCES_CONFIG_PATH
    environment variable, or falls back to config/sources.yaml.

    Returns:
        The global SourceRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = SourceRegistry()
        path = default_config_path()
        if path.exists():
            _default_registry.load_config(path)

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
