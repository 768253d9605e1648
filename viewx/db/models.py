"""
SQLAlchemy models for the viewx database.

Only view definitions and compiled-view cache entries are persisted;
extensions, slots and replacements live in process memory.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Float, DateTime,
    UniqueConstraint, Index, JSON
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_hash(*parts: Any) -> str:
    """SHA-256 over the canonical JSON of the given parts."""
    digest = hashlib.sha256()
    for part in parts:
        if not isinstance(part, str):
            part = json.dumps(part, sort_keys=True, default=str)
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class ViewDefinition(Base):
    """Stored definition of one view of an entity."""
    __tablename__ = 'view_definitions'

    id = Column(Integer, primary_key=True)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    name = Column(String(200))
    entity_name = Column(String(100), nullable=False, index=True)
    view_type = Column(String(50), nullable=False, index=True)
    priority = Column(Integer, default=16, nullable=False)

    archetype = Column(JSON, nullable=False, default=dict)
    config = Column(JSON, nullable=False, default=dict)

    # Parent definition, by slug
    inherit_slug = Column(String(200), index=True)
    owner_plugin = Column(String(100), index=True)
    active = Column(Boolean, default=True, nullable=False)
    cacheable = Column(Boolean, default=True, nullable=False)
    content_hash = Column(String(64))

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index('idx_view_entity_type', 'entity_name', 'view_type'),
    )

    def compute_content_hash(self) -> str:
        return compute_hash(self.archetype or {}, self.config or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'slug': self.slug,
            'name': self.name,
            'entity': self.entity_name,
            'type': self.view_type,
            'priority': self.priority,
            'archetype': self.archetype or {},
            'config': self.config or {},
            'inherit': self.inherit_slug,
            'owner': self.owner_plugin,
            'active': self.active,
            'cacheable': self.cacheable,
        }

    def __repr__(self):
        return f"<ViewDefinition(slug='{self.slug}', entity='{self.entity_name}', type='{self.view_type}')>"


class CompiledView(Base):
    """Persisted compiled-view cache entry."""
    __tablename__ = 'compiled_views'

    id = Column(Integer, primary_key=True)
    view_name = Column(String(200), nullable=False, index=True)
    source_hash = Column(String(64), nullable=False)
    output_markup = Column(Text, nullable=False)
    applied_extension_ids = Column(JSON, nullable=False, default=list)
    compile_log = Column(JSON, nullable=False, default=list)
    compile_duration_ms = Column(Float, default=0.0)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('view_name', 'source_hash', name='uix_compiled_view_hash'),
    )

    @property
    def extension_ids(self) -> List[str]:
        return list(self.applied_extension_ids or [])

    def __repr__(self):
        return f"<CompiledView(view='{self.view_name}', hash='{self.source_hash[:12]}')>"
