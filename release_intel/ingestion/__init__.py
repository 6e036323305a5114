"""
Release Intel Ingestion Framework
=================================

This package provides the release sync pipeline: it collects trading-card
set announcements from tiered sources and reconciles them into canonical
releases and products.

Pipeline Stages:
1. Registry - Tiered sources loaded from config/sources.yaml
2. Compliance - robots.txt check per fetched origin
3. Fetch - Plain HTTP GET with a fixed user agent
4. Extract - Deterministic parsers or AI-assisted extraction
5. Reconcile - Group by canonical set key, merge in trust order, score confidence
6. Resolve - Match to canonical releases (containment, then fuzzy)
7. Upsert - Persist products and field-level change history
8. Strategy - Hand new or changed Pokémon products to the strategy service
"""

from release_intel.ingestion.registry import (
    SourceRegistry,
    SourceConfig,
    GlobalConfig,
    EntityResolutionConfig,
    get_default_registry,
)
from release_intel.ingestion.errors import (
    IngestionError,
    FetchError,
    ComplianceDenied,
    ExtractionFailure,
    PersistenceError,
)
from release_intel.ingestion.compliance import ComplianceGate
from release_intel.ingestion.crawler import (
    Fetcher,
    FetchResult,
)
from release_intel.ingestion.reconciler import (
    Reconciler,
    ExtractedSetCandidate,
    MergedCandidate,
)
from release_intel.ingestion.resolver import (
    EntityResolver,
    ResolutionResult,
)
from release_intel.ingestion.upsert import (
    UpsertEngine,
    UpsertOutcome,
)
from release_intel.ingestion.run_state import (
    RunStateTracker,
    InMemoryRunStateTracker,
    DatabaseRunStateTracker,
    BeginResult,
    RunStateSnapshot,
    get_default_tracker,
)
from release_intel.ingestion.pipeline import (
    PipelineOrchestrator,
    PipelineResult,
    release_sync_job,
)

__all__ = [
    # Registry
    "SourceRegistry",
    "SourceConfig",
    "GlobalConfig",
    "EntityResolutionConfig",
    "get_default_registry",
    # Errors
    "IngestionError",
    "FetchError",
    "ComplianceDenied",
    "ExtractionFailure",
    "PersistenceError",
    # Fetching
    "ComplianceGate",
    "Fetcher",
    "FetchResult",
    # Reconciliation
    "Reconciler",
    "ExtractedSetCandidate",
    "MergedCandidate",
    # Resolution and persistence
    "EntityResolver",
    "ResolutionResult",
    "UpsertEngine",
    "UpsertOutcome",
    # Run-state
    "RunStateTracker",
    "InMemoryRunStateTracker",
    "DatabaseRunStateTracker",
    "BeginResult",
    "RunStateSnapshot",
    "get_default_tracker",
    # Pipeline
    "PipelineOrchestrator",
    "PipelineResult",
    "release_sync_job",
]
