"""
log_store.py
------------
Capacity-bounded, time-ordered store of prediction log entries.

The store holds one immutable tuple.  Every write builds a new list,
normalises it (ascending ``created_at``, oldest entries evicted past
``max_logs``) and swaps it in under a lock, so readers only ever see a
complete snapshot.  Removed entries are reported to listeners after the
swap; the selection cell uses this to drop a displayed entry that no
longer exists.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from models.log_entry import LogEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOGS = 1500

RemovalListener = Callable[[List[LogEntry]], None]


class LogStore:
    def __init__(self, max_logs: int = DEFAULT_MAX_LOGS) -> None:
        if max_logs < 1:
            raise ValueError("max_logs must be >= 1")
        self.max_logs = max_logs
        self._entries: Tuple[LogEntry, ...] = ()
        self._lock = threading.Lock()
        self._listeners: List[RemovalListener] = []

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #
    @property
    def snapshot(self) -> Tuple[LogEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self._entries)

    def get(self, entry_id: str) -> Optional[LogEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def add_removal_listener(self, fn: RemovalListener) -> None:
        self._listeners.append(fn)

    # ------------------------------------------------------------------ #
    # Write side
    # ------------------------------------------------------------------ #
    def insert_batch(self, entries: Iterable[LogEntry]) -> List[LogEntry]:
        """Append new entries, re-sort, evict oldest past capacity. Returns evicted."""
        new = list(entries)
        return self.mutate(lambda current: current + new)

    def mutate(self, fn: Callable[[List[LogEntry]], Sequence[LogEntry]]) -> List[LogEntry]:
        """
        Apply ``fn`` to a copy of the current entries and swap in the result.

        ``fn`` must not block; it runs while the lock is held.  Returns the
        entries that were present before and are gone afterwards (deleted
        by ``fn`` or evicted for capacity).
        """
        with self._lock:
            before = self._entries
            after = self._normalise(fn(list(before)))
            kept = {e.id for e in after}
            removed = [e for e in before if e.id not in kept]
            self._entries = after

        if removed:
            self._notify_removed(removed)
        return removed

    def evict_over_capacity(self) -> List[LogEntry]:
        return self.mutate(lambda current: current)

    def remove_where(self, predicate: Callable[[LogEntry], bool]) -> List[LogEntry]:
        return self.mutate(lambda current: [e for e in current if not predicate(e)])

    def clear(self) -> List[LogEntry]:
        return self.mutate(lambda current: [])

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _normalise(self, entries: Sequence[LogEntry]) -> Tuple[LogEntry, ...]:
        ordered = sorted(entries, key=lambda e: e.created_at)  # stable: ties keep insertion order
        overflow = len(ordered) - self.max_logs
        if overflow > 0:
            logger.debug("[LogStore] evicting %d oldest entries (cap=%d)", overflow, self.max_logs)
            ordered = ordered[overflow:]
        return tuple(ordered)

    def _notify_removed(self, removed: List[LogEntry]) -> None:
        for fn in self._listeners:
            try:
                fn(removed)
            except Exception:
                logger.exception("[LogStore] removal listener %r failed", fn)
