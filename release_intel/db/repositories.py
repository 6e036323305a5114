"""Repository classes for release catalog database operations."""

import json
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from release_intel.core.enums import (
    Category,
    Confidence,
    ProductType,
    RunStatus,
    RunTrigger,
    SourceTier,
    StrategyPrimary,
)
from release_intel.core.schema import (
    KeyFactor,
    PipelineRunRecord,
    Release,
    ReleaseProduct,
    ReleaseProductChange,
    ReleaseProductStrategy,
)
from release_intel.db.models import (
    PipelineRunDB,
    ReleaseDB,
    ReleaseProductChangeDB,
    ReleaseProductDB,
    ReleaseProductStrategyDB,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ============================================================================
# Canonical Catalog Repositories
# ============================================================================


class ReleaseRepository:
    """Repository for Release operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, release: Release) -> Release:
        """Create a new release."""
        db_item = ReleaseDB(
            id=str(release.id),
            name=release.name,
            category=release.category.value,
            release_date=release.release_date,
            manufacturer=release.manufacturer,
            msrp=release.msrp,
            estimated_resale=release.estimated_resale,
            hype_score=release.hype_score,
            image_url=release.image_url,
            top_chases_json=json.dumps(release.top_chases),
            print_run=release.print_run,
            description=release.description,
            is_released=release.is_released,
            created_at=release.created_at,
            updated_at=release.updated_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, release_id: UUID | str) -> Release | None:
        """Get a release by ID."""
        stmt = select(ReleaseDB).where(ReleaseDB.id == str(release_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_by_category(self, category: Category | str) -> list[Release]:
        """List releases of one category in creation order."""
        value = category.value if isinstance(category, Category) else category
        stmt = (
            select(ReleaseDB)
            .where(ReleaseDB.category == value)
            .order_by(ReleaseDB.created_at.asc(), ReleaseDB.id.asc())
        )
        return [self._to_domain(item) for item in self.session.execute(stmt).scalars()]

    def list_all(self, limit: int = 100, offset: int = 0) -> list[Release]:
        """List releases, soonest release date first."""
        stmt = (
            select(ReleaseDB)
            .order_by(ReleaseDB.release_date.asc(), ReleaseDB.name.asc())
            .offset(offset)
            .limit(limit)
        )
        return [self._to_domain(item) for item in self.session.execute(stmt).scalars()]

    def count(self) -> int:
        """Get total count of releases."""
        stmt = select(func.count()).select_from(ReleaseDB)
        return self.session.execute(stmt).scalar() or 0

    def update_derived(
        self,
        release_id: UUID | str,
        release_date: date,
        is_released: bool,
        hype_score: float | None = None,
        top_chases: list[str] | None = None,
    ) -> Release:
        """
        Refresh the fields that are derived from a release's products.

        ``hype_score`` and ``top_chases`` are left alone when None. The row
        is only touched when a value actually differs.
        """
        stmt = select(ReleaseDB).where(ReleaseDB.id == str(release_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            raise ValueError(f"Release with id {release_id} not found")

        updates: dict[str, Any] = {"release_date": release_date, "is_released": is_released}
        if hype_score is not None:
            updates["hype_score"] = hype_score
        if top_chases is not None:
            updates["top_chases_json"] = json.dumps(top_chases)

        changed = False
        for name, value in updates.items():
            if getattr(db_item, name) != value:
                setattr(db_item, name, value)
                changed = True
        if changed:
            db_item.updated_at = _utc_now()
            self.session.flush()
        return self._to_domain(db_item)

    def _to_domain(self, db_item: ReleaseDB) -> Release:
        """Convert DB model to domain model."""
        return Release(
            id=UUID(db_item.id),
            name=db_item.name,
            category=Category(db_item.category),
            release_date=db_item.release_date,
            manufacturer=db_item.manufacturer,
            msrp=db_item.msrp,
            estimated_resale=db_item.estimated_resale,
            hype_score=db_item.hype_score,
            image_url=db_item.image_url,
            top_chases=json.loads(db_item.top_chases_json or "[]"),
            print_run=db_item.print_run,
            description=db_item.description,
            is_released=db_item.is_released,
            created_at=_aware(db_item.created_at),
            updated_at=_aware(db_item.updated_at),
        )


class ReleaseProductRepository:
    """Repository for ReleaseProduct operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, product: ReleaseProduct, name_key: str) -> ReleaseProduct:
        """Create a new release product under its normalized name key."""
        db_item = ReleaseProductDB(
            id=str(product.id),
            release_id=str(product.release_id),
            name=product.name,
            name_key=name_key,
            product_type=product.product_type.value,
            category=product.category.value,
            msrp=product.msrp,
            estimated_resale=product.estimated_resale,
            release_date=product.release_date,
            preorder_date=product.preorder_date,
            image_url=product.image_url,
            buy_url=product.buy_url,
            contents_summary=product.contents_summary,
            source_tier=product.source_tier.value,
            source_url=product.source_url,
            confidence=product.confidence.value,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_by_id(self, product_id: UUID | str) -> ReleaseProduct | None:
        """Get a release product by ID."""
        stmt = select(ReleaseProductDB).where(ReleaseProductDB.id == str(product_id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_by_name_key(self, release_id: UUID | str, name_key: str) -> ReleaseProduct | None:
        """Get a release product by its release and normalized name."""
        stmt = select(ReleaseProductDB).where(
            ReleaseProductDB.release_id == str(release_id),
            ReleaseProductDB.name_key == name_key,
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_by_release(self, release_id: UUID | str) -> list[ReleaseProduct]:
        """List products of a release in creation order."""
        stmt = (
            select(ReleaseProductDB)
            .where(ReleaseProductDB.release_id == str(release_id))
            .order_by(ReleaseProductDB.created_at.asc(), ReleaseProductDB.name.asc())
        )
        return [self._to_domain(item) for item in self.session.execute(stmt).scalars()]

    def list_without_strategy(
        self, category: Category = Category.POKEMON, limit: int = 50
    ) -> list[ReleaseProduct]:
        """List products of a category that have no strategy recommendation yet."""
        has_strategy = select(ReleaseProductStrategyDB.release_product_id)
        stmt = (
            select(ReleaseProductDB)
            .where(
                ReleaseProductDB.category == category.value,
                ReleaseProductDB.id.not_in(has_strategy),
            )
            .order_by(ReleaseProductDB.created_at.asc())
            .limit(limit)
        )
        return [self._to_domain(item) for item in self.session.execute(stmt).scalars()]

    def count(self) -> int:
        """Get total count of release products."""
        stmt = select(func.count()).select_from(ReleaseProductDB)
        return self.session.execute(stmt).scalar() or 0

    def update(self, product: ReleaseProduct) -> ReleaseProduct:
        """Update an existing release product with merged values."""
        stmt = select(ReleaseProductDB).where(ReleaseProductDB.id == str(product.id))
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            raise ValueError(f"ReleaseProduct with id {product.id} not found")

        db_item.name = product.name
        db_item.product_type = product.product_type.value
        db_item.msrp = product.msrp
        db_item.estimated_resale = product.estimated_resale
        db_item.release_date = product.release_date
        db_item.preorder_date = product.preorder_date
        db_item.image_url = product.image_url
        db_item.buy_url = product.buy_url
        db_item.contents_summary = product.contents_summary
        db_item.source_tier = product.source_tier.value
        db_item.source_url = product.source_url
        db_item.confidence = product.confidence.value
        db_item.updated_at = _utc_now()

        self.session.flush()
        return self._to_domain(db_item)

    def _to_domain(self, db_item: ReleaseProductDB) -> ReleaseProduct:
        """Convert DB model to domain model."""
        return ReleaseProduct(
            id=UUID(db_item.id),
            release_id=UUID(db_item.release_id),
            name=db_item.name,
            product_type=ProductType(db_item.product_type),
            category=Category(db_item.category),
            msrp=db_item.msrp,
            estimated_resale=db_item.estimated_resale,
            release_date=db_item.release_date,
            preorder_date=db_item.preorder_date,
            image_url=db_item.image_url,
            buy_url=db_item.buy_url,
            contents_summary=db_item.contents_summary,
            source_tier=SourceTier(db_item.source_tier),
            source_url=db_item.source_url,
            confidence=Confidence(db_item.confidence),
            created_at=_aware(db_item.created_at),
            updated_at=_aware(db_item.updated_at),
        )


class ReleaseProductChangeRepository:
    """Repository for the append-only change log. No update or delete."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, change: ReleaseProductChange) -> ReleaseProductChange:
        """Append a change entry."""
        db_item = ReleaseProductChangeDB(
            id=str(change.id),
            release_product_id=str(change.release_product_id),
            field=change.field,
            old_value=change.old_value,
            new_value=change.new_value,
            source_url=change.source_url,
            detected_at=change.detected_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def list_by_product(self, product_id: UUID | str) -> list[ReleaseProductChange]:
        """List changes for a product, oldest first."""
        stmt = (
            select(ReleaseProductChangeDB)
            .where(ReleaseProductChangeDB.release_product_id == str(product_id))
            .order_by(ReleaseProductChangeDB.detected_at.asc())
        )
        return [self._to_domain(item) for item in self.session.execute(stmt).scalars()]

    def count(self) -> int:
        """Get total count of change entries."""
        stmt = select(func.count()).select_from(ReleaseProductChangeDB)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: ReleaseProductChangeDB) -> ReleaseProductChange:
        """Convert DB model to domain model."""
        return ReleaseProductChange(
            id=UUID(db_item.id),
            release_product_id=UUID(db_item.release_product_id),
            field=db_item.field,
            old_value=db_item.old_value,
            new_value=db_item.new_value,
            source_url=db_item.source_url,
            detected_at=_aware(db_item.detected_at),
        )


class ReleaseProductStrategyRepository:
    """Repository for strategy recommendations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, strategy: ReleaseProductStrategy) -> ReleaseProductStrategy:
        """Persist a strategy recommendation."""
        db_item = ReleaseProductStrategyDB(
            id=str(strategy.id),
            release_product_id=str(strategy.release_product_id),
            primary=strategy.primary.value,
            confidence=strategy.confidence,
            reason_summary=strategy.reason_summary,
            key_factors_json=json.dumps([f.model_dump() for f in strategy.key_factors]),
            created_at=strategy.created_at,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_latest_for_product(self, product_id: UUID | str) -> ReleaseProductStrategy | None:
        """Get the most recent strategy for a product."""
        stmt = (
            select(ReleaseProductStrategyDB)
            .where(ReleaseProductStrategyDB.release_product_id == str(product_id))
            .order_by(ReleaseProductStrategyDB.created_at.desc())
            .limit(1)
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def _to_domain(self, db_item: ReleaseProductStrategyDB) -> ReleaseProductStrategy:
        """Convert DB model to domain model."""
        return ReleaseProductStrategy(
            id=UUID(db_item.id),
            release_product_id=UUID(db_item.release_product_id),
            primary=StrategyPrimary(db_item.primary),
            confidence=db_item.confidence,
            reason_summary=db_item.reason_summary,
            key_factors=[KeyFactor(**f) for f in json.loads(db_item.key_factors_json or "[]")],
            created_at=_aware(db_item.created_at),
        )


# ============================================================================
# Pipeline Run Repository
# ============================================================================


class PipelineRunRepository:
    """Repository for pipeline run rows used by the database run-state."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, record: PipelineRunRecord) -> PipelineRunRecord:
        """
        Insert a run row.

        Raises sqlalchemy.exc.IntegrityError on flush when another row for the
        same pipeline is already running.
        """
        db_item = PipelineRunDB(
            run_id=record.run_id,
            pipeline=record.pipeline,
            trigger=record.trigger.value,
            status=record.status.value,
            started_at=record.started_at,
            ended_at=record.ended_at,
            duration_ms=record.duration_ms,
            result_json=json.dumps(record.result) if record.result is not None else None,
            error=record.error,
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get(self, run_id: str) -> PipelineRunRecord | None:
        """Get a run by ID."""
        db_item = self.session.get(PipelineRunDB, run_id)
        return self._to_domain(db_item) if db_item else None

    def get_running(self, pipeline: str) -> PipelineRunRecord | None:
        """Get the run currently holding the slot for a pipeline."""
        stmt = select(PipelineRunDB).where(
            PipelineRunDB.pipeline == pipeline,
            PipelineRunDB.status == RunStatus.RUNNING.value,
        )
        db_item = self.session.execute(stmt).scalars().first()
        return self._to_domain(db_item) if db_item else None

    def get_last_finished(self, pipeline: str) -> PipelineRunRecord | None:
        """Get the most recently started run that is no longer running."""
        stmt = (
            select(PipelineRunDB)
            .where(
                PipelineRunDB.pipeline == pipeline,
                PipelineRunDB.status != RunStatus.RUNNING.value,
            )
            .order_by(PipelineRunDB.started_at.desc())
            .limit(1)
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def finish(
        self,
        run_id: str,
        status: RunStatus,
        ended_at: datetime,
        duration_ms: int,
        result: dict | None = None,
        error: str | None = None,
    ) -> bool:
        """
        Close a running row.

        Returns False when the row does not exist or is no longer running.
        """
        stmt = (
            update(PipelineRunDB)
            .where(
                PipelineRunDB.run_id == run_id,
                PipelineRunDB.status == RunStatus.RUNNING.value,
            )
            .values(
                status=status.value,
                ended_at=ended_at,
                duration_ms=duration_ms,
                result_json=json.dumps(result) if result is not None else None,
                error=error,
            )
        )
        return self.session.execute(stmt).rowcount > 0

    def abandon_stale(self, pipeline: str, started_before: datetime) -> int:
        """Mark runs stuck in running since before the cutoff as failed."""
        stmt = (
            update(PipelineRunDB)
            .where(
                PipelineRunDB.pipeline == pipeline,
                PipelineRunDB.status == RunStatus.RUNNING.value,
                PipelineRunDB.started_at < started_before,
            )
            .values(
                status=RunStatus.FAILED.value,
                ended_at=_utc_now(),
                error="abandoned",
            )
        )
        return self.session.execute(stmt).rowcount

    def _to_domain(self, db_item: PipelineRunDB) -> PipelineRunRecord:
        """Convert DB model to domain model."""
        return PipelineRunRecord(
            run_id=db_item.run_id,
            pipeline=db_item.pipeline,
            trigger=RunTrigger(db_item.trigger),
            status=RunStatus(db_item.status),
            started_at=_aware(db_item.started_at),
            ended_at=_aware(db_item.ended_at),
            duration_ms=db_item.duration_ms,
            result=json.loads(db_item.result_json) if db_item.result_json else None,
            error=db_item.error,
        )
