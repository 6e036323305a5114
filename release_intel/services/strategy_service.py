"""Strategy service: AI-generated Flip/Hold/Avoid hints for release products."""

import logging
import time
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from release_intel.core.enums import Category
from release_intel.core.schema import ReleaseProductStrategy, StrategyRecommendation
from release_intel.db.repositories import (
    ReleaseProductRepository,
    ReleaseProductStrategyRepository,
    ReleaseRepository,
)
from release_intel.services.ai.client import AIClient, ai_client_from_env
from release_intel.services.ai.prompts import STRATEGY_SYSTEM_PROMPT, build_strategy_prompt

logger = logging.getLogger(__name__)

STRATEGY_TEMPERATURE = 0.2
STRATEGY_MODEL_ENV = "OPENAI_STRATEGY_MODEL"
BACKFILL_LIMIT = 50

_UNSET = object()


class StrategyService:
    """
    Generates and persists strategy recommendations.

    The caller owns the transaction: records are flushed, not committed.
    """

    def __init__(
        self,
        session: Session,
        ai_client: AIClient | None | object = _UNSET,
    ):
        """
        Initialize the strategy service.

        Args:
            session: SQLAlchemy database session.
            ai_client: Optional pre-configured AI client. If not provided,
                      it is created from environment variables.
        """
        self.session = session
        self.product_repo = ReleaseProductRepository(session)
        self.release_repo = ReleaseRepository(session)
        self.strategy_repo = ReleaseProductStrategyRepository(session)
        self._ai_client = ai_client

    @property
    def ai_client(self) -> AIClient | None:
        """Get or create the AI client from environment variables."""
        if self._ai_client is _UNSET:
            self._ai_client = ai_client_from_env(STRATEGY_MODEL_ENV)
        return self._ai_client  # type: ignore[return-value]

    def build_payload(self, product_id: UUID | str) -> dict | None:
        """Build the JSON payload describing one product, or None if missing."""
        product = self.product_repo.get_by_id(product_id)
        if product is None:
            return None
        release = self.release_repo.get_by_id(product.release_id)

        return {
            "id": str(product.id),
            "name": product.name,
            "productType": product.product_type.value,
            "category": product.category.value,
            "msrp": product.msrp,
            "estimatedResale": product.estimated_resale,
            "releaseDate": product.release_date.isoformat() if product.release_date else None,
            "preorderDate": product.preorder_date.isoformat() if product.preorder_date else None,
            "hypeScore": release.hype_score if release else None,
            "setName": release.name if release else None,
            "contentsSummary": product.contents_summary,
            "confidence": product.confidence.value,
            "sourceUrl": product.source_url,
        }

    def generate_for_product(self, product_id: UUID | str) -> ReleaseProductStrategy | None:
        """
        Generate and store a strategy for one product.

        Returns:
            The stored strategy, or None when the product is missing, no AI
            client is configured, or the model output is invalid.
        """
        payload = self.build_payload(product_id)
        if payload is None:
            logger.warning(f"Strategy requested for unknown product {product_id}")
            return None

        client = self.ai_client
        if client is None:
            return None

        generation = client.generate_json(
            STRATEGY_SYSTEM_PROMPT,
            build_strategy_prompt(payload),
            temperature=STRATEGY_TEMPERATURE,
        )
        if not generation.success or generation.parsed_json is None:
            logger.warning(f"Strategy generation failed for {product_id}: {generation.error_message}")
            return None

        try:
            recommendation = StrategyRecommendation.model_validate(generation.parsed_json)
        except ValidationError as e:
            logger.warning(f"Strategy for {product_id} failed validation: {e.error_count()} errors")
            return None

        strategy = self.strategy_repo.create(
            ReleaseProductStrategy(
                release_product_id=UUID(str(product_id)),
                primary=recommendation.primary,
                confidence=recommendation.confidence,
                reason_summary=recommendation.reason_summary,
                key_factors=recommendation.key_factors,
            )
        )
        logger.info(f"Strategy for '{payload['name']}': {strategy.primary.value}")
        return strategy

    def backfill_pokemon_strategies(
        self, limit: int = BACKFILL_LIMIT, delay_seconds: float = 0.0
    ) -> int:
        """
        Generate strategies for Pokémon products that have none yet.

        Args:
            limit: Maximum number of products to process.
            delay_seconds: Pause between provider calls.

        Returns:
            Number of strategies created.
        """
        products = self.product_repo.list_without_strategy(Category.POKEMON, limit=limit)
        count = 0
        for index, product in enumerate(products):
            if index and delay_seconds:
                time.sleep(delay_seconds)
            try:
                if self.generate_for_product(product.id) is not None:
                    count += 1
            except Exception:
                logger.exception(f"Strategy backfill failed for product {product.id}")

        if count:
            logger.info(f"Strategy backfill: generated {count} strategies for Pokémon products")
        return count
