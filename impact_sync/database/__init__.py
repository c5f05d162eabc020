"""Persistence for swing recordings and analyses."""

from impact_sync.database.models import Base, SwingAnalysis, SwingRecording
from impact_sync.database.operations import DatabaseOperations
from impact_sync.database.schema import get_engine, get_session, get_session_factory, init_db, reset_engine

__all__ = [
    "Base",
    "SwingAnalysis",
    "SwingRecording",
    "DatabaseOperations",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
]
