"""Database connection and session management."""

import os
from typing import Iterator, Optional
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Base class for all database models
Base = declarative_base()

# Global engine and session factory, created lazily
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(database_url: str, echo: bool = False,
                 connect_args: Optional[dict] = None) -> Engine:
    """Create a database engine with settings appropriate for the backend."""
    if connect_args is None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}

    # In-memory SQLite only exists on one connection
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            connect_args=connect_args,
            poolclass=StaticPool,
            echo=echo
        )

    return create_engine(database_url, echo=echo, connect_args=connect_args)


def get_database_engine(database_url: Optional[str] = None,
                        echo: bool = False,
                        connect_args: Optional[dict] = None) -> Engine:
    """Get or create the global database engine."""
    global _engine

    if _engine is None:
        if database_url is None:
            database_url = os.getenv("FLOWRUN_DATABASE_URL", "sqlite:///./flowrun.db")
        _engine = build_engine(database_url, echo=echo, connect_args=connect_args)

    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Get the session factory bound to the given or global engine."""
    global _session_factory

    if engine is not None:
        return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False,
            bind=get_database_engine()
        )
    return _session_factory


def reset_database_engine():
    """Reset the global database engine (mainly for testing)."""
    global _engine, _session_factory
    if _engine:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_db() -> Iterator[Session]:
    """Dependency to get database session."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def create_tables(engine: Optional[Engine] = None):
    """Create all database tables."""
    from . import models  # noqa: F401  registers the mappers on Base
    Base.metadata.create_all(bind=engine or get_database_engine())


def drop_tables(engine: Optional[Engine] = None):
    """Drop all database tables."""
    Base.metadata.drop_all(bind=engine or get_database_engine())
