"""Database initialization and persistence layer."""

from venue_agent.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from venue_agent.db.models import (
    Base,
    IngestionJobDB,
    ReferenceEntityDB,
    VenueDB,
    VenueImageDB,
    VenueLinkDB,
)
from venue_agent.db.repositories import (
    IngestionJobRepository,
    ReferenceRepository,
    VenueImageRepository,
    VenueLinkRepository,
    VenueRepository,
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
    "IngestionJobDB",
    "ReferenceEntityDB",
    "VenueDB",
    "VenueImageDB",
    "VenueLinkDB",
    # Repositories
    "IngestionJobRepository",
    "ReferenceRepository",
    "VenueImageRepository",
    "VenueLinkRepository",
    "VenueRepository",
]
