"""FastAPI application factory for Release Intel."""

from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from release_intel import __version__
from release_intel.db.engine import init_db

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Release Intel",
        description="Trading-card release tracking: multi-source reconciliation of sets and products",
        version=__version__,
    )

    # Initialize database tables
    init_db()

    # Include routers (import here to avoid circular imports)
    from release_intel.web.routes import pipeline, releases

    app.include_router(pipeline.router)
    app.include_router(releases.router)

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness check."""
        return JSONResponse({"status": "ok", "version": __version__})

    return app


# Application instance
app = create_app()
