"""
Database Engine Module
======================

One process-wide engine and session factory for the release catalog.

``DATABASE_URL`` may hold a full SQLAlchemy URL (e.g. PostgreSQL for
multi-instance deployments) or a plain SQLite file path. Without it the
catalog lives in ``~/.release_intel/release_intel.db``.

The web app, the CLI and the arq worker can share one SQLite file, so
SQLite connections run in WAL mode with foreign keys enforced.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".release_intel" / "release_intel.db"
DATABASE_URL_ENV = "DATABASE_URL"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ALEMBIC_INI = PROJECT_ROOT / "alembic.ini"

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_url(path: Path) -> str:
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the database URL.

    Precedence: explicit ``db_path``, then ``DATABASE_URL``, then the
    default SQLite file. The parent directory of a SQLite file is created.
    """
    if db_path is not None:
        return _sqlite_url(Path(db_path))

    configured = os.environ.get(DATABASE_URL_ENV, "").strip()
    if "://" in configured:
        return configured
    if configured:
        return _sqlite_url(Path(configured))
    return _sqlite_url(DEFAULT_DB_PATH)


def _configure_sqlite(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Build a new engine for the resolved database URL.

    SQLite engines allow use across threads (FastAPI background tasks and
    ``asyncio.to_thread`` hooks share them) and get the connection pragmas.
    """
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _configure_sqlite)
    return engine


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker[Session]:
    """Return the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(db_path), autoflush=False)
    return _session_factory


def reset_engine() -> None:
    """Dispose of the process-wide engine (tests, or after changing DATABASE_URL)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Yield a session and close it afterwards.

    Nothing is committed here: repositories flush, and the caller decides
    when a unit of work is done::

        with get_session() as session:
            ReleaseRepository(session).create(release)
            session.commit()
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create any missing tables from the ORM metadata."""
    from release_intel.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))


def run_migrations(db_path: Path | str | None = None, revision: str = "head") -> None:
    """
    Upgrade the schema with Alembic.

    Raises:
        FileNotFoundError: When alembic.ini is not next to the package
    """
    if not ALEMBIC_INI.exists():
        raise FileNotFoundError(f"Alembic config not found: {ALEMBIC_INI}")

    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(Path(__file__).parent / "migrations"))
    config.set_main_option("sqlalchemy.url", get_database_url(db_path))
    command.upgrade(config, revision)
