"""Database initialization and persistence layer."""

from findadram.db.engine import (
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from findadram.db.models import (
    Base,
    BarDB,
    BarWhiskeyDB,
    TrawlJobDB,
    WhiskeyDB,
)
from findadram.db.repositories import (
    BarRepository,
    BarWhiskeyRepository,
    TrawlJobRepository,
    WhiskeyRepository,
)

__all__ = [
    # Engine
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "BarDB",
    "WhiskeyDB",
    "BarWhiskeyDB",
    "TrawlJobDB",
    # Repositories
    "BarRepository",
    "WhiskeyRepository",
    "BarWhiskeyRepository",
    "TrawlJobRepository",
]
