"""Database initialization and persistence layer."""

from release_intel.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from release_intel.db.models import (
    Base,
    PipelineRunDB,
    ReleaseDB,
    ReleaseProductChangeDB,
    ReleaseProductDB,
    ReleaseProductStrategyDB,
)
from release_intel.db.repositories import (
    PipelineRunRepository,
    ReleaseProductChangeRepository,
    ReleaseProductRepository,
    ReleaseProductStrategyRepository,
    ReleaseRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "ReleaseDB",
    "ReleaseProductDB",
    "ReleaseProductChangeDB",
    "ReleaseProductStrategyDB",
    "PipelineRunDB",
    # Repositories
    "ReleaseRepository",
    "ReleaseProductRepository",
    "ReleaseProductChangeRepository",
    "ReleaseProductStrategyRepository",
    "PipelineRunRepository",
]
