"""Database layer for viewx using SQLAlchemy + SQLite."""

from .models import Base, ViewDefinition, CompiledView, compute_hash
from .session import (
    create_db_engine, init_db, get_session, session_scope, close_db, get_or_create
)

__all__ = [
    'Base',
    'ViewDefinition',
    'CompiledView',
    'compute_hash',
    'create_db_engine',
    'init_db',
    'get_session',
    'session_scope',
    'close_db',
    'get_or_create',
]
