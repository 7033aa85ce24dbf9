"""
selection.py
------------
The user's live choices, owned outside the engine.

``SelectionCell`` is a single reference cell the UI writes and the engine
samples at well-defined points (tick fire, batch reconciliation, sweep).
It also tracks which log entry the details panel is showing so removals
from the store can clear it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, List, Literal, Optional, Tuple

from models.log_entry import LogEntry
from models.prediction import INSTRUMENTS, PipsSettings
from utils.interval import normalize_interval

logger = logging.getLogger(__name__)

DetailsView = Literal["about", "details"]

DEFAULT_MIN_LIFETIME_SECONDS = 10
DEFAULT_MAX_LIFETIME_SECONDS = 600


@dataclass(frozen=True)
class SelectionState:
    instruments: Tuple[str, ...] = ()
    pips: PipsSettings = field(default_factory=PipsSettings)
    refresh_interval: str = "1m"
    max_lifetime_s: int = DEFAULT_MAX_LIFETIME_SECONDS


class SelectionCell:
    """Thread-safe holder for the current selection and displayed entry."""

    def __init__(self, state: Optional[SelectionState] = None) -> None:
        self._lock = threading.Lock()
        self._state = state or SelectionState()
        self._displayed_id: Optional[str] = None
        self._details_view: DetailsView = "about"
        self._interval_listeners: List[Callable[[str], None]] = []

    # ── Reads ───────────────────────────────────────────────

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def instruments(self) -> Tuple[str, ...]:
        return self._state.instruments

    @property
    def pips(self) -> PipsSettings:
        return self._state.pips

    @property
    def refresh_interval(self) -> str:
        return self._state.refresh_interval

    @property
    def max_lifetime_s(self) -> int:
        return self._state.max_lifetime_s

    @property
    def displayed_entry_id(self) -> Optional[str]:
        return self._displayed_id

    @property
    def details_view(self) -> DetailsView:
        return self._details_view

    # ── Writes (UI side) ────────────────────────────────────

    def set_instruments(self, instruments: Iterable[str]) -> None:
        picked = []
        for inst in instruments:
            if inst not in INSTRUMENTS:
                raise ValueError(f"unknown instrument {inst!r}")
            if inst not in picked:
                picked.append(inst)
        with self._lock:
            self._state = replace(self._state, instruments=tuple(picked))

    def set_pips(self, pips: PipsSettings) -> None:
        # invalid ranges are accepted here; the scheduler pauses on them
        with self._lock:
            self._state = replace(self._state, pips=pips)

    def set_refresh_interval(self, interval: str) -> None:
        interval = normalize_interval(interval)
        with self._lock:
            changed = interval != self._state.refresh_interval
            self._state = replace(self._state, refresh_interval=interval)
        if changed:
            for fn in list(self._interval_listeners):
                fn(interval)

    def set_max_lifetime(self, seconds: int) -> None:
        with self._lock:
            self._state = replace(self._state, max_lifetime_s=int(seconds))

    def add_interval_listener(self, fn: Callable[[str], None]) -> None:
        self._interval_listeners.append(fn)

    def remove_interval_listener(self, fn: Callable[[str], None]) -> None:
        if fn in self._interval_listeners:
            self._interval_listeners.remove(fn)

    # ── Displayed entry ─────────────────────────────────────

    def display(self, entry_id: Optional[str]) -> None:
        with self._lock:
            self._displayed_id = entry_id
            self._details_view = "details" if entry_id else "about"

    def clear_displayed(self) -> None:
        self.display(None)

    def on_entries_removed(self, removed: List[LogEntry]) -> None:
        """Store removal listener: clear the details panel if its entry went away."""
        displayed = self._displayed_id
        if displayed is None:
            return
        if any(e.id == displayed for e in removed):
            logger.debug("Displayed entry %s removed from store; clearing selection", displayed)
            self.clear_displayed()
