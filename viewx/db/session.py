"""
Database session management for viewx.

Provides session factory and initialization utilities.
"""

import logging
from pathlib import Path
from typing import Optional, Union
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

# Global session factory
_SessionFactory: Optional[sessionmaker] = None
_engine: Optional[Engine] = None


def create_db_engine(db_path: Optional[Union[str, Path]] = None, echo: bool = False) -> Engine:
    """
    Create an engine and all tables.

    Args:
        db_path: SQLite file, or None for a private in-memory database
        echo: If True, log all SQL statements (debug mode)
    """
    if db_path is None or str(db_path) == ":memory:":
        # One shared connection, otherwise every session sees an empty database
        engine = create_engine(
            "sqlite://",
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(f"sqlite:///{db_path}", echo=echo)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def init_db(db_path: Optional[Union[str, Path]] = None, echo: bool = False) -> Engine:
    """
    Initialize the default database and create all tables.

    Args:
        db_path: SQLite file, or None for in-memory
        echo: If True, log all SQL statements (debug mode)

    Returns:
        SQLAlchemy engine
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    _engine = create_db_engine(db_path, echo=echo)
    _SessionFactory = sessionmaker(bind=_engine)
    logger.debug(f"Initialized database at {db_path or ':memory:'}")
    return _engine


def get_session() -> Session:
    """
    Get a new database session.

    Returns:
        SQLAlchemy session

    Raises:
        RuntimeError: If database not initialized
    """
    if _SessionFactory is None:
        raise RuntimeError(
            "Database not initialized. Call init_db() first."
        )
    return _SessionFactory()


@contextmanager
def session_scope(session: Optional[Session] = None):
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            session.add(definition)
            # Automatically commits or rolls back

    An existing session can be passed in; it is committed or rolled back but
    not closed.
    """
    owned = session is None
    if owned:
        session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        if owned:
            session.close()


def close_db():
    """Close database connection and cleanup."""
    global _engine, _SessionFactory

    if _engine:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def get_or_create(session: Session, model, defaults: Optional[dict] = None, **kwargs):
    """
    Get existing instance or create new one.

    Args:
        session: Database session
        model: SQLAlchemy model class
        defaults: Extra values set only when creating
        **kwargs: Filter criteria

    Returns:
        Tuple of (instance, created: bool)
    """
    instance = session.query(model).filter_by(**kwargs).first()
    if instance:
        return instance, False
    instance = model(**kwargs, **(defaults or {}))
    session.add(instance)
    return instance, True
