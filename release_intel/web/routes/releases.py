"""Read-only JSON routes over persisted releases."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from release_intel.db.engine import get_session
from release_intel.db.repositories import (
    ReleaseProductChangeRepository,
    ReleaseProductRepository,
    ReleaseProductStrategyRepository,
    ReleaseRepository,
)

router = APIRouter(tags=["releases"])


@router.get("/releases")
def list_releases(limit: int = 100, offset: int = 0) -> JSONResponse:
    """List releases, soonest release date first."""
    with get_session() as session:
        repo = ReleaseRepository(session)
        releases = repo.list_all(limit=limit, offset=offset)
        total = repo.count()

    return JSONResponse({
        "releases": [r.model_dump(mode="json") for r in releases],
        "total_count": total,
    })


@router.get("/releases/{release_id}/products")
def list_release_products(release_id: str) -> JSONResponse:
    """Get a release with its products and their latest strategies."""
    with get_session() as session:
        release = ReleaseRepository(session).get_by_id(release_id)
        if not release:
            raise HTTPException(status_code=404, detail="Release not found")

        products = ReleaseProductRepository(session).list_by_release(release_id)
        strategy_repo = ReleaseProductStrategyRepository(session)
        strategies = {p.id: strategy_repo.get_latest_for_product(p.id) for p in products}

    return JSONResponse({
        "release": release.model_dump(mode="json"),
        "products": [
            {
                **p.model_dump(mode="json"),
                "strategy": (
                    strategies[p.id].model_dump(mode="json") if strategies[p.id] else None
                ),
            }
            for p in products
        ],
    })


@router.get("/release-products/{product_id}/changes")
def list_product_changes(product_id: str) -> JSONResponse:
    """Get the field-level change history of a product."""
    with get_session() as session:
        product = ReleaseProductRepository(session).get_by_id(product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Release product not found")

        changes = ReleaseProductChangeRepository(session).list_by_product(product_id)

    return JSONResponse({
        "product": product.model_dump(mode="json"),
        "changes": [c.model_dump(mode="json") for c in changes],
    })
