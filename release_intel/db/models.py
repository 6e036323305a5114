"""SQLAlchemy ORM models for the Release Intel database.

These models define the database tables for the release catalog:
- ReleaseDB, ReleaseProductDB (canonical catalog)
- ReleaseProductChangeDB (append-only change audit)
- ReleaseProductStrategyDB (strategy collaborator output)
- PipelineRunDB (run-state for the database backend)
"""

from datetime import UTC, date, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Canonical Catalog
# ============================================================================


class ReleaseDB(Base):
    """
    Database model for canonical releases.

    One row per real-world set or expansion, deduplicated across sources.
    """

    __tablename__ = "releases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    release_date: Mapped[date] = mapped_column(Date, nullable=False)
    manufacturer: Mapped[str] = mapped_column(String(100), default="Unknown")
    msrp: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_resale: Mapped[float | None] = mapped_column(Float, nullable=True)
    hype_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    top_chases_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    print_run: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_released: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    # Relationships
    products: Mapped[list["ReleaseProductDB"]] = relationship(
        "ReleaseProductDB", back_populates="release", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<ReleaseDB(id={self.id}, name='{self.name}', category={self.category})>"


class ReleaseProductDB(Base):
    """
    Database model for release products.

    One sellable SKU (booster box, ETB, tin...) belonging to a release.
    """

    __tablename__ = "release_products"
    __table_args__ = (
        UniqueConstraint("release_id", "name_key", name="uq_release_products_release_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    release_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("releases.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False)
    product_type: Mapped[str] = mapped_column(String(30), default="other")
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    msrp: Mapped[float | None] = mapped_column(Float, nullable=True)
    estimated_resale: Mapped[float | None] = mapped_column(Float, nullable=True)
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    preorder_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    buy_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    contents_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_tier: Mapped[str] = mapped_column(String(1), nullable=False)
    source_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    confidence: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    # Relationships
    release: Mapped["ReleaseDB"] = relationship("ReleaseDB", back_populates="products")
    changes: Mapped[list["ReleaseProductChangeDB"]] = relationship(
        "ReleaseProductChangeDB", back_populates="release_product"
    )

    def __repr__(self) -> str:
        return f"<ReleaseProductDB(id={self.id}, name='{self.name}', type={self.product_type})>"


class ReleaseProductChangeDB(Base):
    """
    Database model for release product changes.

    Append-only: rows are written once and never updated.
    """

    __tablename__ = "release_product_changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    release_product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("release_products.id"), nullable=False, index=True
    )
    field: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, index=True)

    # Relationships
    release_product: Mapped["ReleaseProductDB"] = relationship(
        "ReleaseProductDB", back_populates="changes"
    )

    def __repr__(self) -> str:
        return f"<ReleaseProductChangeDB(id={self.id}, field={self.field})>"


class ReleaseProductStrategyDB(Base):
    """Database model for strategy recommendations on release products."""

    __tablename__ = "release_product_strategies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    release_product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("release_products.id"), nullable=False, index=True
    )
    primary: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    reason_summary: Mapped[str] = mapped_column(Text, nullable=False)
    key_factors_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<ReleaseProductStrategyDB(id={self.id}, primary={self.primary})>"


# ============================================================================
# Pipeline Run-State
# ============================================================================


class PipelineRunDB(Base):
    """
    Database model for pipeline runs.

    A partial unique index allows at most one running row per pipeline.
    """

    __tablename__ = "pipeline_runs"
    __table_args__ = (
        Index(
            "uq_pipeline_runs_running",
            "pipeline",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    run_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pipeline: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    trigger: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PipelineRunDB(run_id={self.run_id}, status={self.status})>"
