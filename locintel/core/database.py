"""
Database engine and session management.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from locintel.core.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    """
    Create a database engine for the given URL.

    SQLite engines allow cross-thread use (repository calls run in worker
    threads); in-memory SQLite shares a single connection.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
        echo=False,
    )


def create_tables(engine: Engine) -> None:
    """
    Create all tables if they don't exist.

    Idempotent - safe to call multiple times.
    """
    logger.info("Creating tables if they don't exist...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables ready")


def create_session_factory(engine: Engine) -> sessionmaker:
    """Build the session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a session that is always closed.

    Usage:
        with session_scope(factory) as db:
            ...
    """
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def ping(engine: Engine) -> bool:
    """Run a trivial query against the database."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True
