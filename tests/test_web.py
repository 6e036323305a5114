"""Tests for web routes."""

import asyncio
import tempfile
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from release_intel.core.enums import (
    Category,
    Confidence,
    ProductType,
    RunTrigger,
    SourceTier,
    StrategyPrimary,
)
from release_intel.core.schema import (
    Release,
    ReleaseProduct,
    ReleaseProductChange,
    ReleaseProductStrategy,
)
from release_intel.db.models import Base
from release_intel.db.repositories import (
    ReleaseProductChangeRepository,
    ReleaseProductRepository,
    ReleaseProductStrategyRepository,
    ReleaseRepository,
)
from release_intel.ingestion.pipeline import PipelineOrchestrator
from release_intel.ingestion.registry import SourceRegistry
from release_intel.ingestion.run_state import InMemoryRunStateTracker

TOKEN = "s3cret-admin-token"


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def test_engine(temp_db_path):
    """Create a test database engine."""
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def test_session(test_engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=test_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def mock_get_session(test_engine):
    """A get_session replacement bound to the test engine."""
    TestSessionLocal = sessionmaker(bind=test_engine)

    @contextmanager
    def _get_session():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    return _get_session


@pytest.fixture
def tracker():
    return InMemoryRunStateTracker()


@pytest.fixture
def orchestrator(mock_get_session, tracker):
    """Orchestrator over an empty registry and the test database."""
    return PipelineOrchestrator(
        registry=SourceRegistry(),
        session_factory=mock_get_session,
        ai_client=None,
        tracker=tracker,
        strategy_hook=None,
    )


@pytest.fixture
def client(mock_get_session, orchestrator, monkeypatch):
    """Create a test client with mocked database and orchestrator."""
    monkeypatch.setenv("RELEASE_INTEL_ADMIN_TOKEN", TOKEN)
    monkeypatch.setattr("release_intel.web.routes.releases.get_session", mock_get_session)

    # Also mock the init_db in app creation to prevent it from creating another DB
    monkeypatch.setattr("release_intel.web.app.init_db", lambda: None)

    from release_intel.web.app import create_app
    from release_intel.web.dependencies import get_orchestrator

    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)


def on_event_loop() -> bool:
    """True when called from a thread running an asyncio event loop."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def seed_catalog(session: Session) -> tuple[Release, ReleaseProduct]:
    """Insert a release with one product, one change and one strategy."""
    release = ReleaseRepository(session).create(
        Release(
            name="Perfect Order",
            category=Category.POKEMON,
            release_date=date(2026, 3, 27),
            msrp=49.99,
        )
    )
    product = ReleaseProductRepository(session).create(
        ReleaseProduct(
            release_id=release.id,
            name="Perfect Order Elite Trainer Box",
            product_type=ProductType.ELITE_TRAINER_BOX,
            category=Category.POKEMON,
            msrp=54.99,
            source_tier=SourceTier.A,
            source_url="https://www.pokemon.com/",
            confidence=Confidence.CONFIRMED,
        ),
        name_key="perfect order elite trainer box",
    )
    ReleaseProductChangeRepository(session).create(
        ReleaseProductChange(
            release_product_id=product.id,
            field="msrp",
            old_value="49.99",
            new_value="54.99",
            source_url="https://www.pokemon.com/",
        )
    )
    ReleaseProductStrategyRepository(session).create(
        ReleaseProductStrategy(
            release_product_id=product.id,
            primary=StrategyPrimary.WATCH,
            confidence=55,
            reason_summary="No resale data yet.",
        )
    )
    session.commit()
    return release, product


class TestHealth:
    """Tests for the health route."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAdminAuth:
    """Tests for the admin token guard."""

    def test_missing_token(self, client: TestClient) -> None:
        assert client.post("/admin/release-sync").status_code == 403

    def test_status_requires_token(self, client: TestClient) -> None:
        assert client.get("/admin/release-sync/status").status_code == 403

    def test_wrong_token(self, client: TestClient) -> None:
        response = client.get(
            "/admin/release-sync/status", headers={"X-Admin-Token": "nope"}
        )
        assert response.status_code == 403

    def test_unconfigured_token_rejects_all(
        self, client: TestClient, monkeypatch
    ) -> None:
        monkeypatch.delenv("RELEASE_INTEL_ADMIN_TOKEN")
        response = client.post("/admin/release-sync", headers={"X-Admin-Token": TOKEN})
        assert response.status_code == 403


class TestReleaseSyncRoutes:
    """Tests for the release sync admin routes."""

    def test_status_idle(self, client: TestClient) -> None:
        response = client.get("/admin/release-sync/status", headers={"X-Admin-Token": TOKEN})
        assert response.status_code == 200
        assert response.json() == {"status": "idle", "currentRun": None, "lastRun": None}

    def test_run_state_calls_leave_event_loop(
        self, client: TestClient, tracker, monkeypatch
    ) -> None:
        """Test trigger and status do run-state work in a worker thread."""
        seen: list[bool] = []

        def recording(method):
            def wrapper(*args, **kwargs):
                seen.append(on_event_loop())
                return method(*args, **kwargs)

            return wrapper

        monkeypatch.setattr(tracker, "begin", recording(tracker.begin))
        monkeypatch.setattr(tracker, "get_state", recording(tracker.get_state))
        headers = {"X-Admin-Token": TOKEN}

        assert client.post("/admin/release-sync", headers=headers).status_code == 202
        assert client.get("/admin/release-sync/status", headers=headers).status_code == 200

        assert seen == [False, False]

    def test_trigger_runs_in_background(self, client: TestClient) -> None:
        """Test a manual trigger is accepted and completes after the response."""
        response = client.post("/admin/release-sync", headers={"X-Admin-Token": TOKEN})

        assert response.status_code == 202
        run_id = response.json()["runId"]
        assert run_id.startswith("release_")
        assert "startedAt" in response.json()

        status = client.get(
            "/admin/release-sync/status", headers={"X-Admin-Token": TOKEN}
        ).json()
        assert status["status"] == "completed"
        assert status["lastRun"]["runId"] == run_id
        assert status["lastRun"]["trigger"] == "manual"
        assert status["lastRun"]["result"]["sources"] == 0

    def test_trigger_conflict(self, client: TestClient, tracker) -> None:
        """Test a trigger during a running sync returns the running run."""
        holder = tracker.begin(RunTrigger.SCHEDULED)

        response = client.post("/admin/release-sync", headers={"X-Admin-Token": TOKEN})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "sync_in_progress"
        assert body["runId"] == holder.run.run_id
        assert body["startedAt"] == holder.run.started_at.isoformat()

        status = client.get(
            "/admin/release-sync/status", headers={"X-Admin-Token": TOKEN}
        ).json()
        assert status["status"] == "running"
        assert status["currentRun"]["runId"] == holder.run.run_id


class TestReleaseRoutes:
    """Tests for the read-only release routes."""

    def test_list_releases(self, client: TestClient, test_session: Session) -> None:
        release, _ = seed_catalog(test_session)

        response = client.get("/releases")

        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 1
        assert data["releases"][0]["id"] == str(release.id)
        assert data["releases"][0]["release_date"] == "2026-03-27"

    def test_release_products(self, client: TestClient, test_session: Session) -> None:
        release, product = seed_catalog(test_session)

        response = client.get(f"/releases/{release.id}/products")

        assert response.status_code == 200
        data = response.json()
        assert data["release"]["name"] == "Perfect Order"
        (item,) = data["products"]
        assert item["id"] == str(product.id)
        assert item["product_type"] == "elite_trainer_box"
        assert item["strategy"]["primary"] == "Watch"

    def test_release_not_found(self, client: TestClient) -> None:
        response = client.get(f"/releases/{uuid4()}/products")
        assert response.status_code == 404

    def test_product_changes(self, client: TestClient, test_session: Session) -> None:
        _, product = seed_catalog(test_session)

        response = client.get(f"/release-products/{product.id}/changes")

        assert response.status_code == 200
        (change,) = response.json()["changes"]
        assert change["field"] == "msrp"
        assert change["old_value"] == "49.99"
        assert change["new_value"] == "54.99"

    def test_product_not_found(self, client: TestClient) -> None:
        response = client.get(f"/release-products/{uuid4()}/changes")
        assert response.status_code == 404
