"""
Diagnostic Store - Bounded In-Memory Store for Extraction Diagnostics
=====================================================================

Holds DiagnosticReports and the selector engine's "what worked last time"
records, keyed by ID and queryable by URL, priority or time range.

ARCHITECTURAL DECISION:
- One store per process, constructed explicitly and passed to the
  components that need it (no module-level instance)
- Bounded by entry count and by estimated size. When either bound is
  exceeded, expired entries go first, then the entries whose retention
  window (measured from last access) ends soonest, until the store is back
  under 80% of both bounds
- Never raises on bad input: unknown priorities become "medium", a missing
  payload becomes a placeholder and a missing ID is generated

THREAD SAFETY:
- Every public method holds a single re-entrant lock
- Reads hand out copies, so callers cannot change stored entries
"""

import copy
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_SIZE = 1024
EVICTION_TARGET_RATIO = 0.8


class Priority(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def normalize(cls, value: Any) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


DEFAULT_RETENTION_HOURS = {
    Priority.CRITICAL: 24.0,
    Priority.HIGH: 12.0,
    Priority.MEDIUM: 6.0,
    Priority.LOW: 1.0,
}


@dataclass
class DiagnosticEntry:
    id: str
    url: str
    payload: Any
    priority: Priority
    created_at: float
    last_accessed: float
    access_count: int = 0
    size_bytes: int = DEFAULT_ENTRY_SIZE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "payload": self.payload,
            "priority": self.priority.value,
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
            "access_count": self.access_count,
            "size_bytes": self.size_bytes,
        }


@dataclass(frozen=True)
class DiagnosticStoreStats:
    entry_count: int
    total_bytes: int
    max_entries: int
    max_bytes: int
    by_priority: Dict[str, int] = field(default_factory=dict)
    stores: int = 0
    retrievals: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expired_evictions: int = 0
    peak_bytes: int = 0

    @property
    def hit_rate(self) -> float:
        return self.hits / self.retrievals if self.retrievals else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_count": self.entry_count,
            "total_bytes": self.total_bytes,
            "max_entries": self.max_entries,
            "max_bytes": self.max_bytes,
            "by_priority": dict(self.by_priority),
            "stores": self.stores,
            "retrievals": self.retrievals,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 3),
            "evictions": self.evictions,
            "expired_evictions": self.expired_evictions,
            "peak_bytes": self.peak_bytes,
        }


class DiagnosticStore:
    """
    Priority-aware bounded store.

    Usage:
        store = DiagnosticStore(max_entries=1000, max_memory_mb=100)
        entry_id = store.store(None, url, report.to_dict(), "high")
        entries = store.get_by_url(url)
    """

    def __init__(
        self,
        max_entries: int = 1000,
        max_memory_mb: float = 100.0,
        retention_hours: Optional[Mapping[Union[str, Priority], float]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_entries = max(1, int(max_entries))
        self.max_bytes = max(1, int(max_memory_mb * 1024 * 1024))
        self._retention = dict(DEFAULT_RETENTION_HOURS)
        for key, hours in (retention_hours or {}).items():
            self._retention[Priority.normalize(key)] = float(hours)
        self._clock = clock

        self._lock = threading.RLock()
        self._entries: Dict[str, DiagnosticEntry] = {}
        self._total_bytes = 0

        self._stores = 0
        self._retrievals = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired_evictions = 0
        self._peak_bytes = 0

    # ── Writes ─────────────────────────────────────────────────────

    def store(self, entry_id: Optional[str], url: Optional[str], payload: Any, priority: Any = Priority.MEDIUM) -> str:
        """Store (or replace) an entry. Returns the ID actually used."""
        try:
            entry_id = str(entry_id) if entry_id else f"diag-{uuid.uuid4().hex[:12]}"
            if payload is None:
                payload = {"placeholder": True, "reason": "no payload provided"}
            payload = _snapshot(payload)
            now = self._clock()
            entry = DiagnosticEntry(
                id=entry_id,
                url=url or "",
                payload=payload,
                priority=Priority.normalize(priority),
                created_at=now,
                last_accessed=now,
                size_bytes=_estimate_size(payload),
            )
        except Exception as e:
            logger.warning(f"Diagnostic entry could not be prepared, storing placeholder: {e}")
            now = self._clock()
            entry_id = entry_id or f"diag-{uuid.uuid4().hex[:12]}"
            entry = DiagnosticEntry(
                id=entry_id, url=url or "", payload={"placeholder": True, "reason": str(e)},
                priority=Priority.MEDIUM, created_at=now, last_accessed=now,
            )

        with self._lock:
            previous = self._entries.pop(entry.id, None)
            if previous is not None:
                self._total_bytes -= previous.size_bytes
            self._entries[entry.id] = entry
            self._total_bytes += entry.size_bytes
            self._stores += 1
            self._peak_bytes = max(self._peak_bytes, self._total_bytes)

            if len(self._entries) > self.max_entries or self._total_bytes > self.max_bytes:
                self._evict(keep=entry.id)

        return entry.id

    def delete(self, entry_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(entry_id, None)
            if entry is None:
                return False
            self._total_bytes -= entry.size_bytes
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
        logger.debug("Diagnostic store cleared")

    def cleanup(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        with self._lock:
            return self._remove_expired()

    # ── Reads ──────────────────────────────────────────────────────

    def get(self, entry_id: str) -> Optional[DiagnosticEntry]:
        with self._lock:
            self._retrievals += 1
            entry = self._entries.get(entry_id)
            if entry is None or self._is_expired(entry, self._clock()):
                self._misses += 1
                return None
            self._hits += 1
            return self._touch(entry)

    def get_by_url(self, url: str) -> List[DiagnosticEntry]:
        return self._query(lambda e: e.url == url)

    def get_by_priority(self, priority: Any) -> List[DiagnosticEntry]:
        wanted = Priority.normalize(priority)
        return self._query(lambda e: e.priority == wanted)

    def get_by_time_range(self, start: Union[float, datetime], end: Union[float, datetime]) -> List[DiagnosticEntry]:
        """Entries created between ``start`` and ``end`` (epoch seconds or datetimes), inclusive."""
        start_ts = start.timestamp() if isinstance(start, datetime) else float(start)
        end_ts = end.timestamp() if isinstance(end, datetime) else float(end)
        return self._query(lambda e: start_ts <= e.created_at <= end_ts)

    def stats(self) -> DiagnosticStoreStats:
        with self._lock:
            by_priority = {p.value: 0 for p in Priority}
            for entry in self._entries.values():
                by_priority[entry.priority.value] += 1
            return DiagnosticStoreStats(
                entry_count=len(self._entries),
                total_bytes=self._total_bytes,
                max_entries=self.max_entries,
                max_bytes=self.max_bytes,
                by_priority=by_priority,
                stores=self._stores,
                retrievals=self._retrievals,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expired_evictions=self._expired_evictions,
                peak_bytes=self._peak_bytes,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def retention_seconds(self, priority: Priority) -> float:
        return self._retention[priority] * 3600

    # ── Internals (lock held) ──────────────────────────────────────

    def _query(self, predicate: Callable[[DiagnosticEntry], bool]) -> List[DiagnosticEntry]:
        with self._lock:
            now = self._clock()
            self._retrievals += 1
            matches = [
                e for e in self._entries.values()
                if not self._is_expired(e, now) and predicate(e)
            ]
            if matches:
                self._hits += 1
            else:
                self._misses += 1
            matches.sort(key=lambda e: e.created_at)
            return [self._touch(e) for e in matches]

    def _touch(self, entry: DiagnosticEntry) -> DiagnosticEntry:
        entry.last_accessed = self._clock()
        entry.access_count += 1
        return copy.deepcopy(entry)

    def _is_expired(self, entry: DiagnosticEntry, now: float) -> bool:
        return now - entry.created_at > self.retention_seconds(entry.priority)

    def _remove_expired(self) -> int:
        now = self._clock()
        expired = [e.id for e in self._entries.values() if self._is_expired(e, now)]
        for entry_id in expired:
            self._total_bytes -= self._entries.pop(entry_id).size_bytes
        self._expired_evictions += len(expired)
        self._evictions += len(expired)
        return len(expired)

    def _evict(self, keep: str) -> None:
        removed = self._remove_expired()

        target_entries = int(self.max_entries * EVICTION_TARGET_RATIO)
        target_bytes = int(self.max_bytes * EVICTION_TARGET_RATIO)
        if len(self._entries) <= self.max_entries and self._total_bytes <= self.max_bytes:
            if removed:
                logger.debug(f"Diagnostic store: evicted {removed} expired entries")
            return

        # Entries whose retention window ends soonest go first
        candidates = sorted(
            (e for e in self._entries.values() if e.id != keep),
            key=lambda e: e.last_accessed + self.retention_seconds(e.priority),
        )
        for entry in candidates:
            if len(self._entries) <= target_entries and self._total_bytes <= target_bytes:
                break
            del self._entries[entry.id]
            self._total_bytes -= entry.size_bytes
            self._evictions += 1
            removed += 1

        logger.debug(
            f"Diagnostic store: evicted {removed} entries, "
            f"{len(self._entries)} left ({self._total_bytes} bytes)"
        )


def _snapshot(payload: Any) -> Any:
    if hasattr(payload, "to_dict"):
        return payload.to_dict()
    return copy.deepcopy(payload)


def _estimate_size(payload: Any) -> int:
    try:
        return len(json.dumps(payload, default=str)) * 2
    except (TypeError, ValueError):
        return DEFAULT_ENTRY_SIZE
