"""
Database connection and engine management for Chainflow.

Provides a process-wide SQLAlchemy engine for the relational store shared by the API, the scheduler and the workers.
Uses dependency injection pattern for database sessions so that request handlers never share a session.
"""

import logging
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from chainflow.config.settings import get_settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """
    Create the SQLAlchemy engine for the configured ``database_url``.

    SQLite needs ``check_same_thread`` disabled because the scheduler thread
    and FastAPI's thread pool both open sessions on it.

    Returns:
        Engine: A configured SQLAlchemy engine
    """
    settings = get_settings()
    connect_args = {"check_same_thread": False} if settings.is_sqlite else {}
    logger.info(f"Creating database engine for environment {settings.environment}")
    return create_engine(
        settings.database_url,
        pool_pre_ping=not settings.is_sqlite,
        connect_args=connect_args,
        echo=False,
    )


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions that ensures proper connection lifecycle management.

    Example:
        @router.get("/flows")
        def list_flows(db: Session = Depends(get_db)):
            return FlowsRepository(db).list_flows(user_id)

    Yields:
        Session: SQLAlchemy session for database operations

    Notes:
        The session is automatically closed in the finally block, ensuring proper
        resource cleanup even if exceptions occur during request processing.
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def get_new_db_session() -> Session:
    """
    Create and return a new SQLAlchemy session for workers and the scheduler.

    This function should be used for non-request-scoped operations (queue jobs,
    scheduler ticks, startup tasks). The caller owns the session and must close it,
    typically with a ``with`` block.

    Returns:
        Session: A new SQLAlchemy session instance for database operations.
    """
    return get_session_factory()()
