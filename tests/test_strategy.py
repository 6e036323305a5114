"""Tests for the strategy service."""

import tempfile
from datetime import date
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from release_intel.core.enums import (
    Category,
    Confidence,
    ProductType,
    SourceTier,
    StrategyPrimary,
)
from release_intel.core.schema import Release, ReleaseProduct
from release_intel.db.models import Base
from release_intel.db.repositories import (
    ReleaseProductRepository,
    ReleaseProductStrategyRepository,
    ReleaseRepository,
)
from release_intel.services.ai.client import AIClient, AIProvider, GenerationResult
from release_intel.services.strategy_service import StrategyService


class FakeAIClient(AIClient):
    """Returns the same parsed JSON for every call."""

    provider = AIProvider.ANTHROPIC
    model = "fake"

    def __init__(self, parsed: dict[str, Any] | None) -> None:
        self.parsed = parsed
        self.prompts: list[str] = []

    def generate_json(
        self, system_prompt: str, user_prompt: str, temperature: float = 0.1
    ) -> GenerationResult:
        self.prompts.append(user_prompt)
        if self.parsed is None:
            return GenerationResult(
                success=False, raw_response="", error_message="Empty response"
            )
        return GenerationResult(success=True, raw_response="{}", parsed_json=self.parsed)


VALID_STRATEGY = {
    "primary": "Flip",
    "confidence": 72,
    "reasonSummary": "Resale is well above MSRP and demand is strong.",
    "keyFactors": [
        {"factor": "Resale premium", "impact": "positive", "detail": "+35% over MSRP"},
    ],
}


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine."""
    engine = create_engine(f"sqlite:///{temp_db_path}", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


def add_product(
    session: Session, name: str, category: Category = Category.POKEMON
) -> ReleaseProduct:
    """Insert a release with one product."""
    release = ReleaseRepository(session).create(
        Release(
            name=f"{name} Set",
            category=category,
            release_date=date(2026, 3, 27),
            msrp=4.99,
            hype_score=8.5,
        )
    )
    return ReleaseProductRepository(session).create(
        ReleaseProduct(
            release_id=release.id,
            name=name,
            product_type=ProductType.ELITE_TRAINER_BOX,
            category=category,
            msrp=49.99,
            estimated_resale=67.5,
            release_date=date(2026, 3, 27),
            source_tier=SourceTier.A,
            source_url="https://www.pokemon.com/",
            confidence=Confidence.CONFIRMED,
        ),
        name_key=name.lower(),
    )


class TestBuildPayload:
    """Tests for StrategyService.build_payload."""

    def test_payload_fields(self, session: Session) -> None:
        product = add_product(session, "Perfect Order ETB")
        payload = StrategyService(session, ai_client=None).build_payload(product.id)

        assert payload["name"] == "Perfect Order ETB"
        assert payload["productType"] == "elite_trainer_box"
        assert payload["msrp"] == 49.99
        assert payload["estimatedResale"] == 67.5
        assert payload["releaseDate"] == "2026-03-27"
        assert payload["hypeScore"] == 8.5
        assert payload["setName"] == "Perfect Order ETB Set"
        assert payload["confidence"] == "confirmed"

    def test_unknown_product(self, session: Session) -> None:
        service = StrategyService(session, ai_client=None)
        assert service.build_payload("00000000-0000-0000-0000-000000000000") is None


class TestGenerateForProduct:
    """Tests for StrategyService.generate_for_product."""

    def test_stores_strategy(self, session: Session) -> None:
        """Test a valid recommendation is persisted."""
        product = add_product(session, "Perfect Order ETB")
        client = FakeAIClient(VALID_STRATEGY)

        strategy = StrategyService(session, ai_client=client).generate_for_product(product.id)

        assert strategy is not None
        assert strategy.primary == StrategyPrimary.FLIP
        assert strategy.confidence == 72
        stored = ReleaseProductStrategyRepository(session).get_latest_for_product(product.id)
        assert stored.reason_summary == VALID_STRATEGY["reasonSummary"]
        assert stored.key_factors[0].impact == "positive"
        assert '"name": "Perfect Order ETB"' in client.prompts[0]

    def test_invalid_output(self, session: Session) -> None:
        """Test output failing validation stores nothing."""
        product = add_product(session, "Perfect Order ETB")
        client = FakeAIClient({"primary": "Sell Immediately", "confidence": 50})

        service = StrategyService(session, ai_client=client)

        assert service.generate_for_product(product.id) is None
        assert ReleaseProductStrategyRepository(session).get_latest_for_product(product.id) is None

    def test_generation_failure(self, session: Session) -> None:
        product = add_product(session, "Perfect Order ETB")
        service = StrategyService(session, ai_client=FakeAIClient(None))
        assert service.generate_for_product(product.id) is None

    def test_no_client(self, session: Session) -> None:
        product = add_product(session, "Perfect Order ETB")
        assert StrategyService(session, ai_client=None).generate_for_product(product.id) is None

    def test_client_from_environment(self, session: Session, monkeypatch) -> None:
        """Test a missing API key disables generation."""
        monkeypatch.setenv("AI_PROVIDER", "openai")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert StrategyService(session).ai_client is None


class TestBackfill:
    """Tests for StrategyService.backfill_pokemon_strategies."""

    def test_pokemon_only(self, session: Session) -> None:
        """Test only Pokémon products without a strategy are processed."""
        first = add_product(session, "Perfect Order ETB")
        add_product(session, "Ascended Heroes ETB")
        add_product(session, "Foundations Bundle", category=Category.MTG)
        client = FakeAIClient(VALID_STRATEGY)
        service = StrategyService(session, ai_client=client)
        service.generate_for_product(first.id)
        client.prompts.clear()

        count = service.backfill_pokemon_strategies()

        assert count == 1
        assert len(client.prompts) == 1
        assert "Ascended Heroes ETB" in client.prompts[0]
        assert service.backfill_pokemon_strategies() == 0

    def test_limit(self, session: Session) -> None:
        for i in range(3):
            add_product(session, f"Product {i}")
        service = StrategyService(session, ai_client=FakeAIClient(VALID_STRATEGY))
        assert service.backfill_pokemon_strategies(limit=2) == 2
