"""Database session management with connection pooling"""

from typing import Any, Dict
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from parental_guard.config import settings
from parental_guard.infrastructure.database.models import Base


def engine_options(database_url: str) -> Dict[str, Any]:
    """SQLite gets a thread-shareable connection; other backends a bounded pool"""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": 10,
        "max_overflow": 10,
        "pool_recycle": 3600,
    }


engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create tables that do not exist yet"""
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Session:
    """Yield a session and close it afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
