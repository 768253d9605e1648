"""
Compiled-view cache.

Entries are keyed by (view name, source hash). The source hash changes when
the base markup or the view's archetype changes; registering or removing an
extension for a view drops all of its entries.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .db.models import CompiledView
from .db.session import session_scope

logger = logging.getLogger(__name__)


@dataclass
class CompiledViewCacheEntry:
    view_name: str
    source_hash: str
    output_markup: str
    applied_extension_ids: List[str] = field(default_factory=list)
    compile_log: List[Dict[str, Any]] = field(default_factory=list)
    compile_duration_ms: float = 0.0


class MemoryCacheBackend:
    """Process-local cache backend."""

    name = "memory"

    def __init__(self):
        self._entries: Dict[Tuple[str, str], CompiledViewCacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, view_name: str, source_hash: str) -> Optional[CompiledViewCacheEntry]:
        return self._entries.get((view_name, source_hash))

    def put(self, entry: CompiledViewCacheEntry) -> None:
        with self._lock:
            self._entries[(entry.view_name, entry.source_hash)] = entry

    def invalidate(self, view_name: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key[0] == view_name]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries = {}
        return count

    def __len__(self):
        return len(self._entries)


class DatabaseCacheBackend:
    """Cache backend storing entries in the ``compiled_views`` table."""

    name = "database"

    def __init__(self, session: Session):
        self.session = session
        self._lock = threading.RLock()

    def get(self, view_name: str, source_hash: str) -> Optional[CompiledViewCacheEntry]:
        with self._lock:
            row = self.session.query(CompiledView).filter_by(
                view_name=view_name, source_hash=source_hash
            ).first()
            if row is None:
                return None
            return CompiledViewCacheEntry(
                view_name=row.view_name,
                source_hash=row.source_hash,
                output_markup=row.output_markup,
                applied_extension_ids=row.extension_ids,
                compile_log=list(row.compile_log or []),
                compile_duration_ms=row.compile_duration_ms or 0.0,
            )

    def put(self, entry: CompiledViewCacheEntry) -> None:
        with self._lock, session_scope(self.session) as session:
            row = session.query(CompiledView).filter_by(
                view_name=entry.view_name, source_hash=entry.source_hash
            ).first()
            if row is None:
                row = CompiledView(view_name=entry.view_name, source_hash=entry.source_hash)
                session.add(row)
            row.output_markup = entry.output_markup
            row.applied_extension_ids = list(entry.applied_extension_ids)
            row.compile_log = list(entry.compile_log)
            row.compile_duration_ms = entry.compile_duration_ms

    def invalidate(self, view_name: str) -> int:
        with self._lock, session_scope(self.session) as session:
            return session.query(CompiledView).filter_by(view_name=view_name).delete()

    def clear(self) -> int:
        with self._lock, session_scope(self.session) as session:
            return session.query(CompiledView).delete()

    def __len__(self):
        return self.session.query(CompiledView).count()


class CompiledViewCache:
    """
    Front for a cache backend with hit/miss counters.

    Args:
        backend: Storage backend (memory by default)
        enabled: When False every lookup misses and nothing is stored
    """

    def __init__(self, backend=None, enabled: bool = True):
        self.backend = backend if backend is not None else MemoryCacheBackend()
        self.enabled = enabled
        self.hits = 0
        self.misses = 0

    def get(self, view_name: str, source_hash: str) -> Optional[CompiledViewCacheEntry]:
        if not self.enabled:
            return None
        entry = self.backend.get(view_name, source_hash)
        if entry is None:
            self.misses += 1
        else:
            self.hits += 1
        return entry

    def put(self, entry: CompiledViewCacheEntry) -> None:
        if self.enabled:
            self.backend.put(entry)

    def invalidate(self, view_name: str) -> int:
        count = self.backend.invalidate(view_name)
        if count:
            logger.debug(f"Invalidated {count} compiled entries for {view_name}")
        return count

    def clear(self) -> int:
        return self.backend.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "backend": self.backend.name,
            "enabled": self.enabled,
            "entries": len(self.backend),
            "hits": self.hits,
            "misses": self.misses,
        }
