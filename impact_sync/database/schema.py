"""Engine and session management for the swing database."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from impact_sync.database.models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/impact_sync.db"

# One engine and session factory per database URL
_engines: Dict[str, Engine] = {}
_session_factories: Dict[str, sessionmaker] = {}


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_engine(database_url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """
    Engine for ``database_url``, created on first use.

    SQLite parent directories are created and foreign keys enforced so that
    analyses cannot reference a missing recording.
    """
    engine = _engines.get(database_url)
    if engine is not None:
        return engine

    if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        Path(database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    if database_url.startswith("sqlite"):
        _enable_sqlite_foreign_keys(engine)

    _engines[database_url] = engine
    logger.info(f"Database engine created: {database_url}")
    return engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Session factory bound to ``engine`` (default database if omitted)."""
    if engine is None:
        engine = get_engine()
    key = str(engine.url)
    factory = _session_factories.get(key)
    if factory is None:
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        _session_factories[key] = factory
    return factory


@contextmanager
def get_session(database_url: str = DEFAULT_DATABASE_URL) -> Iterator[Session]:
    """
    Session closed after use.

    Example:
        with get_session(url) as session:
            stats = DatabaseOperations(session).get_database_stats()
    """
    session = get_session_factory(get_engine(database_url))()
    try:
        yield session
    finally:
        session.close()


def init_db(database_url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """Create all tables and return the engine."""
    engine = get_engine(database_url, echo)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")
    return engine


def reset_engine() -> None:
    """Dispose of every cached engine and session factory."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
    _session_factories.clear()
    logger.debug("Database engines reset")
