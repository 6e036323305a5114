"""
Release Sync Pipeline
=====================

Orchestrates one release-intel cycle:
1. Walk the scrape-enabled sources in registry order
2. Check robots.txt, fetch, extract (per-source errors are isolated)
3. Reconcile all set candidates of the run
4. Group merged candidates by the release they resolve to and merge
   each group again in trust order
5. Resolve each group and upsert its products, recording field-level changes
6. Hand new or changed Pokémon products to the strategy hook, then
   backfill strategies for Pokémon products still without one

Scheduled runs come from an arq cron job; manual runs from the CLI or the
admin endpoint. Every run goes through the single-flight run-state tracker.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.orm import Session

from release_intel.core.enums import MatchAction, RunTrigger
from release_intel.core.schema import ExtractedPayload, PipelineRunRecord
from release_intel.db.engine import get_session
from release_intel.ingestion.compliance import ComplianceGate
from release_intel.ingestion.crawler import Fetcher
from release_intel.ingestion.errors import (
    ComplianceDenied,
    ExtractionFailure,
    FetchError,
    PersistenceError,
)
from release_intel.ingestion.extractors import (
    EXTRACTOR_REGISTRY,
    BaseExtractor,
    get_extractor,
)
from release_intel.ingestion.reconciler import (
    ExtractedSetCandidate,
    MergedCandidate,
    Reconciler,
    build_candidates,
)
from release_intel.ingestion.registry import (
    SourceConfig,
    SourceRegistry,
    get_default_registry,
)
from release_intel.ingestion.resolver import EntityResolver
from release_intel.ingestion.run_state import (
    BeginResult,
    DatabaseRunStateTracker,
    RunStateTracker,
    get_default_tracker,
)
from release_intel.ingestion.upsert import UpsertEngine
from release_intel.services.ai.client import AIClient

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]
StrategyHook = Callable[[UUID], bool]
StrategyBackfill = Callable[[], int]

_UNSET = object()


@dataclass
class PipelineResult:
    """Counters and errors for one pipeline cycle."""

    sources: int = 0
    sources_processed: int = 0
    sources_skipped: int = 0
    sources_failed: int = 0
    candidates: int = 0
    sets_merged: int = 0
    releases_created: int = 0
    releases_matched: int = 0
    needs_review: int = 0
    products_upserted: int = 0
    changes_detected: int = 0
    strategies_generated: int = 0
    strategies_backfilled: int = 0
    persistence_failures: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sources": self.sources,
            "sourcesProcessed": self.sources_processed,
            "sourcesSkipped": self.sources_skipped,
            "sourcesFailed": self.sources_failed,
            "candidates": self.candidates,
            "setsMerged": self.sets_merged,
            "releasesCreated": self.releases_created,
            "releasesMatched": self.releases_matched,
            "needsReview": self.needs_review,
            "productsUpserted": self.products_upserted,
            "changesDetected": self.changes_detected,
            "strategiesGenerated": self.strategies_generated,
            "strategiesBackfilled": self.strategies_backfilled,
            "persistenceFailures": self.persistence_failures,
            "errors": self.errors,
        }


def generate_strategy(product_id: UUID) -> bool:
    """Default strategy hook: generate and commit one strategy."""
    from release_intel.services.strategy_service import StrategyService

    with get_session() as session:
        strategy = StrategyService(session).generate_for_product(product_id)
        session.commit()
    return strategy is not None


def backfill_strategies() -> int:
    """Default strategy backfill: Pokémon products that have no strategy yet."""
    from release_intel.services.strategy_service import StrategyService

    with get_session() as session:
        count = StrategyService(session).backfill_pokemon_strategies()
        session.commit()
    return count


class PipelineOrchestrator:
    """
    Runs release sync cycles.

    Collaborators are injectable so tests can supply mock transports, a
    temporary database and a fake AI client.
    """

    def __init__(
        self,
        registry: SourceRegistry | None = None,
        session_factory: SessionFactory = get_session,
        fetcher: Fetcher | None = None,
        gate: ComplianceGate | None = None,
        ai_client: AIClient | None | object = _UNSET,
        tracker: RunStateTracker | None = None,
        strategy_hook: StrategyHook | None = generate_strategy,
        strategy_backfill: StrategyBackfill | None = backfill_strategies,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Source registry (defaults to the process-wide one)
            session_factory: Context manager factory yielding sessions
            fetcher: HTTP fetcher (built from the global config when omitted)
            gate: robots.txt gate (built from the global config when omitted)
            ai_client: Client for AI extraction; resolved from the
                environment when omitted, disabled when None
            tracker: Run-state tracker (defaults to the process-wide one)
            strategy_hook: Called once per product needing a strategy;
                None disables strategy generation, backfill included
            strategy_backfill: Called once at the end of a cycle when a
                strategy hook is set; None skips the backfill
            sleep: Awaitable used for the inter-source delay
        """
        self.registry = registry if registry is not None else get_default_registry()
        self.session_factory = session_factory
        global_config = self.registry.global_config
        self.fetcher = fetcher or Fetcher(
            user_agent=global_config.user_agent,
            timeout=global_config.request_timeout,
            max_redirects=global_config.max_redirects,
        )
        self.gate = gate or ComplianceGate(
            user_agent=global_config.user_agent,
            timeout=global_config.robots_timeout,
        )
        self._ai_client = ai_client
        self._tracker = tracker
        self.strategy_hook = strategy_hook
        self.strategy_backfill = strategy_backfill
        self._sleep = sleep

    @property
    def tracker(self) -> RunStateTracker:
        if self._tracker is None:
            self._tracker = get_default_tracker()
            if isinstance(self._tracker, DatabaseRunStateTracker):
                self._tracker.stale_after = timedelta(
                    hours=self.registry.global_config.stale_run_after_hours
                )
        return self._tracker

    # Run lifecycle

    def start(self, trigger: RunTrigger) -> BeginResult:
        """Claim the single-flight slot without executing anything."""
        begin = self.tracker.begin(trigger)
        if begin.accepted:
            logger.info(f"Started run {begin.run.run_id} ({trigger.value})")
        else:
            logger.info(
                f"Run {begin.run.run_id} already in progress; {trigger.value} trigger rejected"
            )
        return begin

    async def execute(self, run: PipelineRunRecord) -> PipelineResult | None:
        """
        Execute a cycle for a run claimed with ``start`` and record its outcome.

        Returns:
            The PipelineResult, or None when the cycle failed
        """
        try:
            result = await self.run_cycle()
        except Exception as e:
            logger.exception(f"Run {run.run_id} failed: {e}")
            await asyncio.to_thread(self.tracker.finish_failure, run.run_id, e)
            return None

        await asyncio.to_thread(self.tracker.finish_success, run.run_id, result.to_dict())
        logger.info(
            f"Run {run.run_id} completed: {result.releases_created} created, "
            f"{result.releases_matched} matched, {result.changes_detected} changes"
        )
        return result

    async def run(self, trigger: RunTrigger) -> tuple[BeginResult, PipelineResult | None]:
        """Start and execute a run; rejected triggers execute nothing."""
        begin = await asyncio.to_thread(self.start, trigger)
        if not begin.accepted:
            return begin, None
        return begin, await self.execute(begin.run)

    # Cycle

    async def run_cycle(self) -> PipelineResult:
        """Run one full fetch, reconcile and persist cycle."""
        result = PipelineResult()
        sources = self.registry.list_scrape_sources()
        result.sources = len(sources)
        delay = self.registry.global_config.inter_source_delay_seconds

        candidates: list[ExtractedSetCandidate] = []
        for index, source in enumerate(sources):
            if index and delay > 0:
                await self._sleep(delay)
            candidates.extend(await self._collect_source(source, result))

        result.candidates = len(candidates)
        reconciler = Reconciler()
        merged = reconciler.reconcile(candidates)
        result.sets_merged = len(merged)

        groups = await asyncio.to_thread(self._plan_groups, merged)
        for group in groups:
            candidate = reconciler.remerge(group)
            if len(group) > 1:
                names = ", ".join(f"'{c.set_name}'" for c in group)
                logger.info(f"Combined {names} into '{candidate.set_name}'")
            try:
                product_ids = await asyncio.to_thread(self._persist_candidate, candidate, result)
            except PersistenceError as e:
                logger.error(f"Persistence failed for '{e.set_name}': {e}")
                result.persistence_failures += 1
                result.errors.append(str(e))
                continue
            await self._run_strategy_hook(product_ids, result)

        await self._run_strategy_backfill(result)
        return result

    async def _collect_source(
        self, source: SourceConfig, result: PipelineResult
    ) -> list[ExtractedSetCandidate]:
        try:
            payload = await self._extract_source(source)
        except ComplianceDenied as e:
            logger.info(f"Skipping {source.id}: {e}")
            result.sources_skipped += 1
            return []
        except FetchError as e:
            logger.warning(f"Fetch failed for {source.id}: {e}")
            result.sources_failed += 1
            result.errors.append(f"{source.id}: {e}")
            return []
        except Exception as e:
            logger.exception(f"Error processing source {source.id}")
            result.sources_failed += 1
            result.errors.append(f"{source.id}: {e}")
            return []

        result.sources_processed += 1
        found = build_candidates(payload, source)
        logger.info(f"{source.id}: extracted {len(found)} set(s)")
        return found

    async def _extract_source(self, source: SourceConfig) -> ExtractedPayload:
        extractor = self._build_extractor(source)
        url = extractor.content_url(source)

        if not await self.gate.is_allowed(url):
            raise ComplianceDenied(url)

        fetched = await self.fetcher.fetch(url, accept=extractor.ACCEPT)
        try:
            return await asyncio.to_thread(extractor.extract, fetched, source)
        except ExtractionFailure as e:
            logger.warning(f"Extraction failed for {source.id}: {e}")
            return ExtractedPayload.empty()

    def _build_extractor(self, source: SourceConfig) -> BaseExtractor:
        extractor_class = EXTRACTOR_REGISTRY.get(source.extractor)
        if extractor_class is None:
            raise ValueError(f"Extractor '{source.extractor}' not found")

        options: dict[str, Any] = {}
        if extractor_class.USES_AI:
            if self._ai_client is not _UNSET:
                options["ai_client"] = self._ai_client
            options["max_input_chars"] = (
                self.registry.global_config.extraction_max_input_chars
            )
        return get_extractor(source.extractor, source.custom_config, **options)

    def _plan_groups(self, merged: list[MergedCandidate]) -> list[list[MergedCandidate]]:
        """Group merged candidates that resolve to the same release."""
        with self.session_factory() as session:
            resolver = EntityResolver.from_config(session, self.registry.entity_resolution)
            plan = resolver.plan_targets(merged)
        return [[merged[index] for index in group] for group in plan]

    def _persist_candidate(
        self, candidate: MergedCandidate, result: PipelineResult
    ) -> list[UUID]:
        """
        Resolve and upsert one merged candidate in its own transaction.

        Raises:
            PersistenceError: When anything fails; the transaction is rolled back
        """
        with self.session_factory() as session:
            try:
                resolver = EntityResolver.from_config(
                    session, self.registry.entity_resolution
                )
                resolution = resolver.resolve(candidate)
                outcome = UpsertEngine(session).upsert(resolution.release, candidate)
                session.commit()
            except Exception as e:
                session.rollback()
                raise PersistenceError(candidate.set_name, str(e)) from e

        if resolution.action == MatchAction.CREATED:
            result.releases_created += 1
        else:
            result.releases_matched += 1
        if resolution.needs_review:
            result.needs_review += 1
        result.products_upserted += outcome.upserted
        result.changes_detected += outcome.changes
        return outcome.strategy_product_ids

    async def _run_strategy_hook(self, product_ids: list[UUID], result: PipelineResult) -> None:
        if self.strategy_hook is None:
            return
        for product_id in product_ids:
            try:
                if await asyncio.to_thread(self.strategy_hook, product_id):
                    result.strategies_generated += 1
            except Exception:
                logger.exception(f"Strategy hook failed for product {product_id}")

    async def _run_strategy_backfill(self, result: PipelineResult) -> None:
        if self.strategy_hook is None or self.strategy_backfill is None:
            return
        try:
            result.strategies_backfilled = await asyncio.to_thread(self.strategy_backfill)
        except Exception:
            logger.exception("Strategy backfill failed")


# arq integration


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def release_sync_job(ctx: dict[str, Any]) -> dict[str, Any]:
    """
    Scheduled release sync task.

    Args:
        ctx: arq context

    Returns:
        Run summary as dictionary
    """
    orchestrator = PipelineOrchestrator()
    begin, result = await orchestrator.run(RunTrigger.SCHEDULED)
    return {
        "run_id": begin.run.run_id,
        "accepted": begin.accepted,
        "started_at": begin.run.started_at.isoformat(),
        "completed_at": datetime.now(UTC).isoformat(),
        "result": result.to_dict() if result else None,
    }


class WorkerSettings:
    """arq worker settings."""

    functions = [release_sync_job]
    cron_jobs = [
        cron(release_sync_job, hour={6, 12, 18}, minute=0, run_at_startup=False),
    ]
    redis_settings = get_redis_settings()
    max_jobs = 1
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
