"""Tests for the release sync pipeline."""

import asyncio
import copy
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from uuid import UUID

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from release_intel.core.enums import (
    Category,
    Confidence,
    ProductType,
    RunStatus,
    RunTrigger,
    SourceTier,
    SourceType,
)
from release_intel.db.models import Base
from release_intel.db.repositories import (
    ReleaseProductChangeRepository,
    ReleaseProductRepository,
    ReleaseRepository,
)
from release_intel.ingestion.compliance import ComplianceGate
from release_intel.ingestion.crawler import ACCEPT_JSON, Fetcher
from release_intel.ingestion.pipeline import PipelineOrchestrator, PipelineResult
from release_intel.ingestion.registry import SourceConfig, SourceRegistry
from release_intel.ingestion.run_state import InMemoryRunStateTracker
from release_intel.ingestion.upsert import UpsertEngine
from release_intel.services.ai.client import AIClient, AIProvider, GenerationResult


class FakeAIClient(AIClient):
    """Returns a canned payload per source, keyed by the prompt's source label."""

    provider = AIProvider.OPENAI
    model = "fake"

    def __init__(self, payloads: dict[str, dict[str, Any]]) -> None:
        self.payloads = payloads
        self.sources_seen: list[str] = []

    def generate_json(
        self, system_prompt: str, user_prompt: str, temperature: float = 0.1
    ) -> GenerationResult:
        label = re.search(r"^Source: (.+)$", user_prompt, re.MULTILINE).group(1)
        self.sources_seen.append(label)
        parsed = copy.deepcopy(self.payloads.get(label, {"releases": []}))
        return GenerationResult(success=True, raw_response="{}", parsed_json=parsed)


class RecordingSleep:
    """Async sleep replacement that records delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingHook:
    """Strategy hook that records product ids."""

    def __init__(self, fail: bool = False) -> None:
        self.product_ids: list[UUID] = []
        self.fail = fail

    def __call__(self, product_id: UUID) -> bool:
        self.product_ids.append(product_id)
        if self.fail:
            raise RuntimeError("provider down")
        return True


PAGE_HTML = "<html><body><h1>Upcoming releases</h1></body></html>"


def site_handler(request: httpx.Request) -> httpx.Response:
    """Serve robots.txt and pages for the test hosts."""
    host = request.url.host
    if request.url.path == "/robots.txt":
        if host == "blocked.example.test":
            return httpx.Response(200, text="User-agent: *\nDisallow: /\n")
        return httpx.Response(404)
    if host == "down.example.test":
        return httpx.Response(503, text="unavailable")
    if host == "api.example.test":
        return httpx.Response(
            200,
            json={"data": []},
            headers={"content-type": "application/json"},
        )
    return httpx.Response(200, text=PAGE_HTML, headers={"content-type": "text/html"})


def make_source(
    source_id: str,
    name: str,
    host: str,
    tier: SourceTier = SourceTier.B,
    source_type: SourceType = SourceType.RETAILER,
    extractor: str = "ai",
    custom_config: dict[str, Any] | None = None,
) -> SourceConfig:
    """Create a pokemon source on a test host."""
    return SourceConfig(
        id=source_id,
        name=name,
        url=f"https://{host}/tcg/releases",
        tier=tier,
        source_type=source_type,
        category=Category.POKEMON,
        extractor=extractor,
        custom_config=custom_config or {},
    )


OFFICIAL = make_source(
    "pokemon-official",
    "Pokemon Official",
    "official.example.test",
    tier=SourceTier.A,
    source_type=SourceType.OFFICIAL,
)
RETAILER = make_source("retailer", "Retailer", "retailer.example.test")


def official_payload(etb_msrp: float = 49.99) -> dict[str, Any]:
    return {
        "releases": [
            {
                "setName": "Perfect Order",
                "category": "pokemon",
                "products": [
                    {
                        "name": "Perfect Order Elite Trainer Box",
                        "productType": "elite_trainer_box",
                        "msrp": etb_msrp,
                        "releaseDate": "2026-03-27",
                    }
                ],
            }
        ]
    }


RETAILER_PAYLOAD = {
    "releases": [
        {
            "setName": "Pokémon TCG: Perfect Order",
            "category": "pokemon",
            "products": [
                {
                    "name": "Perfect Order Elite Trainer Box",
                    "productType": "elite_trainer_box",
                    "msrp": 59.99,
                    "releaseDate": "2026-03-27",
                    "preorderDate": "2026-02-10",
                },
                {
                    "name": "Perfect Order Booster Bundle",
                    "productType": "booster_bundle",
                    "msrp": 26.94,
                    "releaseDate": "2026-03-27",
                },
            ],
        }
    ]
}


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def session_factory(temp_db_path):
    """A get_session-style factory bound to a temporary database."""
    engine = create_engine(
        f"sqlite:///{temp_db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)

    @contextmanager
    def factory():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    yield factory
    engine.dispose()


def make_registry(*sources: SourceConfig) -> SourceRegistry:
    registry = SourceRegistry()
    for source in sources:
        registry.add_source(source)
    return registry


def make_orchestrator(
    session_factory,
    sources: list[SourceConfig],
    ai_client: AIClient | None,
    hook: RecordingHook | None = None,
    tracker: InMemoryRunStateTracker | None = None,
    sleep: RecordingSleep | None = None,
    handler=site_handler,
    backfill=None,
) -> PipelineOrchestrator:
    transport = httpx.MockTransport(handler)
    return PipelineOrchestrator(
        registry=make_registry(*sources),
        session_factory=session_factory,
        fetcher=Fetcher(transport=transport),
        gate=ComplianceGate(transport=transport),
        ai_client=ai_client,
        tracker=tracker or InMemoryRunStateTracker(),
        strategy_hook=hook,
        strategy_backfill=backfill,
        sleep=sleep or RecordingSleep(),
    )


class TestPipelineResult:
    """Tests for PipelineResult."""

    def test_to_dict_keys(self) -> None:
        data = PipelineResult(sources=2, changes_detected=1).to_dict()
        assert data["sources"] == 2
        assert data["changesDetected"] == 1
        assert data["errors"] == []
        assert set(data) >= {"setsMerged", "releasesCreated", "needsReview"}


class TestRunCycle:
    """End-to-end tests for PipelineOrchestrator.run_cycle."""

    @pytest.mark.asyncio
    async def test_two_sources_one_release(self, session_factory) -> None:
        """Test two sources reporting one set yield one confirmed release."""
        client = FakeAIClient(
            {"Pokemon Official": official_payload(), "Retailer": RETAILER_PAYLOAD}
        )
        hook = RecordingHook()
        orchestrator = make_orchestrator(session_factory, [OFFICIAL, RETAILER], client, hook)

        result = await orchestrator.run_cycle()

        assert result.sources == 2
        assert result.sources_processed == 2
        assert result.candidates == 2
        assert result.sets_merged == 1
        assert result.releases_created == 1
        assert result.products_upserted == 2
        assert result.changes_detected == 0
        assert result.strategies_generated == 2
        assert result.errors == []
        assert client.sources_seen == ["Pokemon Official", "Retailer"]

        with session_factory() as session:
            (release,) = ReleaseRepository(session).list_all()
            assert release.name == "Perfect Order"
            products = {
                p.product_type: p for p in ReleaseProductRepository(session).list_by_release(release.id)
            }

        etb = products[ProductType.ELITE_TRAINER_BOX]
        assert etb.msrp == 49.99
        assert etb.source_tier == SourceTier.A
        assert etb.confidence == Confidence.CONFIRMED
        assert str(etb.preorder_date) == "2026-02-10"
        assert etb.contents_summary == "Sources: Pokemon Official, Retailer."
        assert products[ProductType.BOOSTER_BUNDLE].msrp == 26.94
        assert sorted(hook.product_ids) == sorted(p.id for p in products.values())

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, session_factory) -> None:
        """Test identical input on a second run writes nothing new."""
        client = FakeAIClient(
            {"Pokemon Official": official_payload(), "Retailer": RETAILER_PAYLOAD}
        )
        hook = RecordingHook()
        orchestrator = make_orchestrator(session_factory, [OFFICIAL, RETAILER], client, hook)
        await orchestrator.run_cycle()
        hook.product_ids.clear()

        result = await orchestrator.run_cycle()

        assert result.releases_created == 0
        assert result.releases_matched == 1
        assert result.products_upserted == 0
        assert result.changes_detected == 0
        assert result.strategies_generated == 0
        assert hook.product_ids == []
        with session_factory() as session:
            assert ReleaseRepository(session).count() == 1
            assert ReleaseProductRepository(session).count() == 2

    @pytest.mark.asyncio
    async def test_price_change_detected(self, session_factory) -> None:
        """Test an MSRP update is recorded and re-queued for strategy."""
        client = FakeAIClient({"Pokemon Official": official_payload(49.99)})
        hook = RecordingHook()
        orchestrator = make_orchestrator(session_factory, [OFFICIAL], client, hook)
        await orchestrator.run_cycle()

        client.payloads["Pokemon Official"] = official_payload(54.99)
        result = await orchestrator.run_cycle()

        assert result.changes_detected == 1
        assert result.strategies_generated == 1
        with session_factory() as session:
            (release,) = ReleaseRepository(session).list_all()
            (product,) = ReleaseProductRepository(session).list_by_release(release.id)
            (change,) = ReleaseProductChangeRepository(session).list_by_product(product.id)
        assert (change.field, change.old_value, change.new_value) == ("msrp", "49.99", "54.99")

    @pytest.mark.asyncio
    async def test_source_failures_are_isolated(self, session_factory) -> None:
        """Test robots denials, fetch errors and bad extractors don't stop the run."""
        blocked = make_source("blocked", "Blocked", "blocked.example.test")
        down = make_source("down", "Down", "down.example.test")
        broken = make_source("broken", "Broken", "retailer.example.test", extractor="nope")
        client = FakeAIClient({"Pokemon Official": official_payload()})
        orchestrator = make_orchestrator(
            session_factory, [blocked, down, broken, OFFICIAL], client
        )

        result = await orchestrator.run_cycle()

        assert result.sources == 4
        assert result.sources_skipped == 1
        assert result.sources_failed == 2
        assert result.sources_processed == 1
        assert result.releases_created == 1
        assert any(e.startswith("down:") and "HTTP 503" in e for e in result.errors)
        assert any(e.startswith("broken:") for e in result.errors)
        assert "Blocked" not in client.sources_seen

    @pytest.mark.asyncio
    async def test_inter_source_delay(self, session_factory) -> None:
        """Test the configured delay runs between sources only."""
        sleep = RecordingSleep()
        sources = [
            make_source(f"s{i}", f"Source {i}", f"s{i}.example.test") for i in range(3)
        ]
        orchestrator = make_orchestrator(
            session_factory, sources, FakeAIClient({}), sleep=sleep
        )

        await orchestrator.run_cycle()

        assert sleep.delays == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_ai_disabled(self, session_factory) -> None:
        """Test AI sources yield nothing when no client is configured."""
        orchestrator = make_orchestrator(session_factory, [OFFICIAL], ai_client=None)

        result = await orchestrator.run_cycle()

        assert result.sources_processed == 1
        assert result.candidates == 0
        assert result.sets_merged == 0

    @pytest.mark.asyncio
    async def test_json_extractor_requests_json(self, session_factory) -> None:
        """Test structured sources are fetched with a JSON Accept header."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return site_handler(request)

        source = make_source(
            "tcg-api",
            "TCG API",
            "official.example.test",
            tier=SourceTier.A,
            extractor="pokemontcg_sets",
            custom_config={"api_url": "https://api.example.test/v2/sets"},
        )
        orchestrator = make_orchestrator(
            session_factory, [source], ai_client=None, handler=handler
        )

        result = await orchestrator.run_cycle()

        assert result.sources_processed == 1
        page = [r for r in seen if r.url.path == "/v2/sets"][0]
        assert page.headers["Accept"] == ACCEPT_JSON
        assert page.headers["User-Agent"] == orchestrator.fetcher.user_agent
        assert [r.url.host for r in seen if r.url.path == "/robots.txt"] == ["api.example.test"]

    @pytest.mark.asyncio
    async def test_persistence_runs_off_event_loop(self, session_factory, monkeypatch) -> None:
        """Test resolve and upsert run in a worker thread."""
        original_upsert = UpsertEngine.upsert
        on_loop: list[bool] = []

        def recording_upsert(self, release, candidate):
            try:
                asyncio.get_running_loop()
                on_loop.append(True)
            except RuntimeError:
                on_loop.append(False)
            return original_upsert(self, release, candidate)

        monkeypatch.setattr(UpsertEngine, "upsert", recording_upsert)
        orchestrator = make_orchestrator(
            session_factory, [OFFICIAL], FakeAIClient({"Pokemon Official": official_payload()})
        )

        await orchestrator.run_cycle()

        assert on_loop == [False]

    @pytest.mark.asyncio
    async def test_persistence_failure_rolls_back(self, session_factory, monkeypatch) -> None:
        """Test one failing set is rolled back and the others still persist."""
        original_upsert = UpsertEngine.upsert

        def failing_upsert(self, release, candidate):
            if candidate.set_name == "Broken Set":
                raise RuntimeError("disk full")
            return original_upsert(self, release, candidate)

        monkeypatch.setattr(UpsertEngine, "upsert", failing_upsert)
        payload = official_payload()
        payload["releases"].append(
            {"setName": "Broken Set", "category": "pokemon", "products": []}
        )
        orchestrator = make_orchestrator(
            session_factory, [OFFICIAL], FakeAIClient({"Pokemon Official": payload})
        )

        result = await orchestrator.run_cycle()

        assert result.sets_merged == 2
        assert result.persistence_failures == 1
        assert result.releases_created == 1
        assert any("Broken Set" in e and "disk full" in e for e in result.errors)
        with session_factory() as session:
            names = [r.name for r in ReleaseRepository(session).list_all()]
        assert names == ["Perfect Order"]

    @pytest.mark.asyncio
    async def test_failing_strategy_hook(self, session_factory) -> None:
        """Test hook errors are logged and leave the counters alone."""
        hook = RecordingHook(fail=True)
        orchestrator = make_orchestrator(
            session_factory,
            [OFFICIAL],
            FakeAIClient({"Pokemon Official": official_payload()}),
            hook,
        )

        result = await orchestrator.run_cycle()

        assert len(hook.product_ids) == 1
        assert result.strategies_generated == 0
        assert result.products_upserted == 1
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_backfill_runs_after_cycle(self, session_factory) -> None:
        """Test the strategy backfill runs once after products are persisted."""
        calls: list[int] = []

        def backfill() -> int:
            with session_factory() as session:
                calls.append(ReleaseProductRepository(session).count())
            return 3

        orchestrator = make_orchestrator(
            session_factory,
            [OFFICIAL],
            FakeAIClient({"Pokemon Official": official_payload()}),
            RecordingHook(),
            backfill=backfill,
        )

        result = await orchestrator.run_cycle()

        assert calls == [1]
        assert result.strategies_backfilled == 3
        assert result.to_dict()["strategiesBackfilled"] == 3

    @pytest.mark.asyncio
    async def test_backfill_skipped_without_hook(self, session_factory) -> None:
        """Test disabling the strategy hook also disables the backfill."""
        calls: list[bool] = []

        def backfill() -> int:
            calls.append(True)
            return 1

        orchestrator = make_orchestrator(
            session_factory,
            [OFFICIAL],
            FakeAIClient({"Pokemon Official": official_payload()}),
            backfill=backfill,
        )

        result = await orchestrator.run_cycle()

        assert calls == []
        assert result.strategies_backfilled == 0

    @pytest.mark.asyncio
    async def test_failing_backfill(self, session_factory) -> None:
        """Test backfill errors are logged and the cycle still completes."""

        def backfill() -> int:
            raise RuntimeError("provider down")

        orchestrator = make_orchestrator(
            session_factory,
            [OFFICIAL],
            FakeAIClient({"Pokemon Official": official_payload()}),
            RecordingHook(),
            backfill=backfill,
        )

        result = await orchestrator.run_cycle()

        assert result.strategies_backfilled == 0
        assert result.products_upserted == 1
        assert result.errors == []


class TestRunLifecycle:
    """Tests for start, execute and run."""

    @pytest.mark.asyncio
    async def test_run_records_result(self, session_factory) -> None:
        tracker = InMemoryRunStateTracker()
        orchestrator = make_orchestrator(
            session_factory,
            [OFFICIAL],
            FakeAIClient({"Pokemon Official": official_payload()}),
            tracker=tracker,
        )

        begin, result = await orchestrator.run(RunTrigger.MANUAL)

        assert begin.accepted
        assert result.releases_created == 1
        state = tracker.get_state()
        assert state.status == RunStatus.COMPLETED
        assert state.last_run.run_id == begin.run.run_id
        assert state.last_run.result["releasesCreated"] == 1

    @pytest.mark.asyncio
    async def test_run_rejected_while_running(self, session_factory) -> None:
        tracker = InMemoryRunStateTracker()
        holder = tracker.begin(RunTrigger.SCHEDULED)
        client = FakeAIClient({"Pokemon Official": official_payload()})
        orchestrator = make_orchestrator(session_factory, [OFFICIAL], client, tracker=tracker)

        begin, result = await orchestrator.run(RunTrigger.MANUAL)

        assert begin.accepted is False
        assert begin.run.run_id == holder.run.run_id
        assert result is None
        assert client.sources_seen == []

    @pytest.mark.asyncio
    async def test_execute_failure_marks_run_failed(self, session_factory, monkeypatch) -> None:
        tracker = InMemoryRunStateTracker()
        orchestrator = make_orchestrator(session_factory, [], None, tracker=tracker)

        async def explode():
            raise RuntimeError("registry unavailable")

        monkeypatch.setattr(orchestrator, "run_cycle", explode)
        begin = orchestrator.start(RunTrigger.MANUAL)

        assert await orchestrator.execute(begin.run) is None
        state = tracker.get_state()
        assert state.status == RunStatus.FAILED
        assert state.last_run.error == "registry unavailable"
        assert orchestrator.start(RunTrigger.MANUAL).accepted is True


class TestTrustPrecedence:
    """Tests for value precedence across tiers."""

    @pytest.mark.asyncio
    async def test_lower_tier_fills_missing_price(self, session_factory) -> None:
        """Test the official source keeps attribution while a retailer fills the MSRP."""
        box = {"name": "Foo Box", "productType": "collection", "releaseDate": "2026-05-01"}
        client = FakeAIClient(
            {
                "Pokemon Official": {
                    "releases": [
                        {"setName": "Foo", "category": "pokemon", "products": [box]}
                    ]
                },
                "Retailer": {
                    "releases": [
                        {
                            "setName": "Foo",
                            "category": "pokemon",
                            "products": [{**box, "msrp": 49.99}],
                        }
                    ]
                },
            }
        )
        orchestrator = make_orchestrator(session_factory, [RETAILER, OFFICIAL], client)

        await orchestrator.run_cycle()

        with session_factory() as session:
            (release,) = ReleaseRepository(session).list_all()
            (product,) = ReleaseProductRepository(session).list_by_release(release.id)
        assert product.name == "Foo Box"
        assert product.msrp == 49.99
        assert product.source_tier == SourceTier.A
        assert product.source_url == OFFICIAL.url
        assert product.confidence == Confidence.CONFIRMED

    @pytest.mark.asyncio
    async def test_related_sets_merge_by_trust_across_runs(self, session_factory) -> None:
        """Test sets with different keys that land on one release merge in trust order."""
        rumor = make_source(
            "rumor",
            "Rumor Mill",
            "rumor.example.test",
            tier=SourceTier.C,
            source_type=SourceType.COMMUNITY,
        )
        etb = {
            "name": "Ascended Heroes Elite Trainer Box",
            "productType": "elite_trainer_box",
            "releaseDate": "2026-01-30",
        }
        client = FakeAIClient(
            {
                "Pokemon Official": {
                    "releases": [
                        {
                            "setName": "Ascended Heroes",
                            "category": "pokemon",
                            "products": [{**etb, "msrp": 49.99}],
                        }
                    ]
                },
                "Rumor Mill": {
                    "releases": [
                        {
                            "setName": "Ascended Heroes Expansion",
                            "category": "pokemon",
                            "products": [{**etb, "msrp": 54.99}],
                        }
                    ]
                },
            }
        )
        orchestrator = make_orchestrator(session_factory, [rumor, OFFICIAL], client)

        first = await orchestrator.run_cycle()
        second = await orchestrator.run_cycle()

        assert first.sets_merged == 2
        assert first.releases_created == 1
        assert first.changes_detected == 0
        assert second.releases_created == 0
        assert second.releases_matched == 1
        assert second.changes_detected == 0
        with session_factory() as session:
            (release,) = ReleaseRepository(session).list_all()
            (product,) = ReleaseProductRepository(session).list_by_release(release.id)
            assert ReleaseProductChangeRepository(session).count() == 0
        assert release.name == "Ascended Heroes"
        assert product.msrp == 49.99
        assert product.source_tier == SourceTier.A
        assert product.source_url == OFFICIAL.url
        assert product.confidence == Confidence.CONFIRMED
        assert product.contents_summary == "Sources: Rumor Mill, Pokemon Official."
