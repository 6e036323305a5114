"""Pydantic v2 models for Release Intel.

These models define:
- ExtractedProduct, ExtractedSet, ExtractedPayload (extraction output)
- Release, ReleaseProduct, ReleaseProductChange (canonical catalog)
- ReleaseProductStrategy, StrategyRecommendation (strategy collaborator)
- PipelineRunRecord (run-state)
"""

from datetime import UTC, date, datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from release_intel.core.enums import (
    Category,
    Confidence,
    ProductType,
    RunStatus,
    RunTrigger,
    SourceTier,
    StrategyPrimary,
)


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


_DATE_FORMATS = ("%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%m/%d/%Y", "%Y/%m/%d")


def coerce_date(value: Any) -> date | None:
    """
    Parse a loosely formatted date value.

    Accepts date/datetime objects, ISO strings (with or without a time part)
    and a handful of long-form US formats. Anything else becomes None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or text.lower() in ("null", "none", "tba", "tbd"):
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


# ============================================================================
# Extraction Output
# ============================================================================


class ExtractedProduct(BaseModel):
    """One sellable product as reported by a single source."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    product_type: str = Field(default=ProductType.SET_DEFAULT.value, alias="productType")
    msrp: float | None = Field(default=None, ge=0)
    estimated_resale: float | None = Field(default=None, alias="estimatedResale", ge=0)
    release_date: date | None = Field(default=None, alias="releaseDate")
    preorder_date: date | None = Field(default=None, alias="preorderDate")
    image_url: str | None = Field(default=None, alias="imageUrl")
    buy_url: str | None = Field(default=None, alias="buyUrl")
    contents_summary: str | None = Field(default=None, alias="contentsSummary")
    top_chases: list[str] = Field(default_factory=list, alias="topChases")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("product_type", mode="before")
    @classmethod
    def default_product_type(cls, v: Any) -> str:
        if v is None or (isinstance(v, str) and not v.strip()):
            return ProductType.SET_DEFAULT.value
        return str(v).strip()

    @field_validator("release_date", "preorder_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> date | None:
        return coerce_date(v)

    @field_validator("top_chases", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> list[str]:
        if v is None:
            return []
        return v


class ExtractedSet(BaseModel):
    """A release (set/expansion) and its products as reported by one source."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    set_name: str = Field(alias="setName", min_length=1)
    category: Category
    products: list[ExtractedProduct] = Field(default_factory=list)

    @field_validator("set_name", mode="before")
    @classmethod
    def strip_set_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("products", mode="before")
    @classmethod
    def products_none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ExtractedPayload(BaseModel):
    """Top-level extraction result for one source."""

    model_config = ConfigDict(extra="ignore")

    releases: list[ExtractedSet] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "ExtractedPayload":
        return cls(releases=[])


# ============================================================================
# Canonical Catalog
# ============================================================================


class Release(BaseModel):
    """Canonical, deduplicated record for one real-world release."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    category: Category
    release_date: date
    manufacturer: str = "Unknown"
    msrp: float
    estimated_resale: float | None = None
    hype_score: float | None = None
    image_url: str | None = None
    top_chases: list[str] = Field(default_factory=list)
    print_run: str | None = None
    description: str | None = None
    is_released: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()


class ReleaseProduct(BaseModel):
    """One sellable SKU belonging to a release."""

    id: UUID = Field(default_factory=uuid4)
    release_id: UUID
    name: str
    product_type: ProductType = ProductType.OTHER
    category: Category
    msrp: float | None = None
    estimated_resale: float | None = None
    release_date: date | None = None
    preorder_date: date | None = None
    image_url: str | None = None
    buy_url: str | None = None
    contents_summary: str | None = None
    source_tier: SourceTier
    source_url: str
    confidence: Confidence
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class ReleaseProductChange(BaseModel):
    """Immutable audit entry for a detected field change."""

    id: UUID = Field(default_factory=uuid4)
    release_product_id: UUID
    field: str
    old_value: str | None = None
    new_value: str | None = None
    source_url: str | None = None
    detected_at: datetime = Field(default_factory=_utc_now)


# ============================================================================
# Strategy Collaborator
# ============================================================================


class KeyFactor(BaseModel):
    """One factor behind a strategy recommendation."""

    model_config = ConfigDict(extra="ignore")

    factor: str
    impact: Literal["positive", "negative", "neutral"] = "neutral"
    detail: str = ""


class StrategyRecommendation(BaseModel):
    """Validated strategy output from the AI provider."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    primary: StrategyPrimary
    confidence: float = Field(ge=0, le=100)
    reason_summary: str = Field(alias="reasonSummary", min_length=1)
    key_factors: list[KeyFactor] = Field(default_factory=list, alias="keyFactors")


class ReleaseProductStrategy(BaseModel):
    """Persisted strategy recommendation for a release product."""

    id: UUID = Field(default_factory=uuid4)
    release_product_id: UUID
    primary: StrategyPrimary
    confidence: float
    reason_summary: str
    key_factors: list[KeyFactor] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)


# ============================================================================
# Pipeline Runs
# ============================================================================


class PipelineRunRecord(BaseModel):
    """One pipeline run as tracked by the run-state backends."""

    run_id: str
    pipeline: str
    trigger: RunTrigger
    status: RunStatus
    started_at: datetime
    ended_at: datetime | None = None
    duration_ms: int | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
