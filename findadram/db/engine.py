"""Database engine and session management for the trawler catalog."""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

# Used when neither an explicit path nor DATABASE_URL is given
DEFAULT_DB_PATH = Path.home() / ".findadram" / "findadram.db"

# Seconds a SQLite connection waits on a locked database. The worker and
# the web app write jobs from different threads.
SQLITE_BUSY_TIMEOUT = 15

_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the catalog database URL.

    An explicit path wins, then DATABASE_URL (a full URL or a SQLite file
    path), then the per-user default. SQLite parent directories are created.
    """
    if db_path is None:
        configured = os.environ.get("DATABASE_URL")
        if configured and "://" in configured:
            return configured
        db_path = configured or DEFAULT_DB_PATH

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Get or lazily create the process-wide engine."""
    global _engine
    if _engine is None:
        url = get_database_url(db_path)
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}
        _engine = create_engine(url, echo=echo, connect_args=connect_args, pool_pre_ping=True)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker[Session]:
    """Get or lazily create the session factory the pipeline and repositories share."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(db_path), autoflush=False)
    return _SessionLocal


def reset_engine() -> None:
    """Dispose of the global engine so the next call rereads DATABASE_URL."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """Open a session on the global engine; callers commit their own work."""
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create any missing catalog and job tables."""
    from findadram.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))
