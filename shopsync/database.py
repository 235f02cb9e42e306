"""Database engine and session configuration.

WHAT:
    Builds SQLAlchemy engines and session factories on demand and exposes the
    FastAPI dependency for database access.

WHY:
    - Sync runs, the arq worker, the CLI and the HTTP app each own their
      storage handle; nothing opens a connection at import time.
    - Tests hand an in-memory SQLite factory to the same code paths.

USAGE:
    from shopsync.database import build_session_factory, session_scope

    factory = build_session_factory()
    with session_scope(factory) as db:
        ...

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/orm/session_basics.html
    - shopsync/workers/arq_worker.py (worker ctx owns the factory)
    - shopsync/main.py (app.state owns the factory)
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional, Union

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        # Attempt to load from local .env for developer convenience
        from shopsync.utils.env import load_env_file
        load_env_file()
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Ensure .env is loaded or env var is exported."
        )

    return database_url


# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================

def build_engine(database_url: Optional[str] = None) -> Engine:
    """Create an engine for ``database_url`` (defaults to DATABASE_URL).

    SQLite engines (tests/dev) do not support pool_size/max_overflow.
    """
    url = database_url or get_database_url()
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        pool_size=5,            # Sync runs are sequential per tenant
        max_overflow=10,
        pool_recycle=3600,      # Recycle connections every hour
        pool_pre_ping=True,     # Validate connections before use
    )


def build_session_factory(bind: Union[str, Engine, None] = None) -> sessionmaker:
    """Build a session factory from a URL, an existing engine, or DATABASE_URL."""
    engine = bind if isinstance(bind, Engine) else build_engine(bind)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Yield a session and always close it.

    Commits are the caller's business: reconcilers commit once per page.
    Anything left uncommitted when an exception escapes is rolled back.
    """
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a session from the factory stored on ``app.state``.

    Example:
        @router.post("/shopify/sync")
        async def sync(payload: SyncInput, db: Session = Depends(get_db)):
            ...
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
