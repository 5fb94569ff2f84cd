"""Database engine and session handling for the venue store."""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".venue_agent" / "venue_agent.db"


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the database URL.

    An explicit ``db_path`` wins, then ``DATABASE_URL`` (a full URL or a
    bare SQLite file path), then ``~/.venue_agent/venue_agent.db``. The
    parent directory of a SQLite file is created if needed.
    """
    if db_path is None:
        configured = os.environ.get("DATABASE_URL", "")
        if "://" in configured:
            return configured
        db_path = configured or DEFAULT_DB_PATH

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let pysqlite honour SAVEPOINT.

    The driver's own transaction handling swallows BEGIN, which breaks
    ``Session.begin_nested()``; emit BEGIN ourselves instead.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Build an engine; SQLite engines get thread sharing and savepoint support."""
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    # The arq worker and asyncio.to_thread calls touch sessions off the main thread.
    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    _enable_sqlite_savepoints(engine)
    return engine


_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(db_path), autoflush=False)
    return _session_factory


def reset_engine() -> None:
    """Drop the cached engine so the next call picks up a new DATABASE_URL."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Open a session and always close it.

    Nothing is committed here: the orchestrator commits at each stage
    transition and CLI commands commit their own writes.
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create every venue table that does not exist yet."""
    from venue_agent.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))
