"""
session.py
----------
Owns the two long-running tasks of an active dashboard session: the
scheduler timer and the eviction sweep.

Changing the refresh interval cancels the pending timer and starts a new
one; a batch already in flight keeps running and is reconciled as usual.
``stop()`` cancels both loops but never the in-flight batch.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from modules.log_store import LogStore
from modules.scheduler import PredictionScheduler
from modules.selection import SelectionCell
from modules.sweeper import EvictionSweeper
from modules.view_builder import DateRangeFilter, LogViews, PartitionQuery, build_views


class PredictionSession:
    def __init__(
        self,
        store: LogStore,
        selection: SelectionCell,
        scheduler: PredictionScheduler,
        sweeper: EvictionSweeper,
        logger: Optional[logging.Logger] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.selection = selection
        self.scheduler = scheduler
        self.sweeper = sweeper
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.clock = clock or scheduler.clock

        self._timer_task: Optional[asyncio.Task] = None
        self._sweep_task: Optional[asyncio.Task] = None

        store.add_removal_listener(selection.on_entries_removed)

    # ── Lifecycle ───────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def start(self) -> None:
        """Start the timer and sweep loops (idempotent)."""
        if self.is_running:
            return
        self._timer_task = asyncio.create_task(self.scheduler.run(), name="prediction-timer")
        self._sweep_task = asyncio.create_task(self.sweeper.run(), name="eviction-sweep")
        self.selection.add_interval_listener(self._on_interval_changed)
        self.logger.info(
            "Session started (interval=%s, instruments=%s)",
            self.selection.refresh_interval,
            list(self.selection.instruments),
        )

    async def stop(self) -> None:
        self.selection.remove_interval_listener(self._on_interval_changed)
        tasks = [t for t in (self._timer_task, self._sweep_task) if t is not None]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timer_task = None
        self._sweep_task = None
        self.logger.info("Session stopped")

    async def wait(self) -> None:
        """Block until the session loops end (they only end when cancelled)."""
        while self.is_running:
            task = self._timer_task
            await asyncio.gather(task, return_exceptions=True)
            if task is self._timer_task:
                return

    def restart_timer(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
        self._timer_task = asyncio.create_task(self.scheduler.run(), name="prediction-timer")

    def _on_interval_changed(self, interval: str) -> None:
        self.logger.info("Refresh interval changed to %s – rescheduling", interval)
        self.restart_timer()

    # ── Views ───────────────────────────────────────────────

    def views(
        self,
        *,
        date_range: Optional[DateRangeFilter] = None,
        active: Optional[PartitionQuery] = None,
        expired: Optional[PartitionQuery] = None,
        now: Optional[datetime] = None,
    ) -> LogViews:
        return build_views(
            self.store.snapshot,
            now=now or self.clock(),
            selected_instruments=self.selection.instruments,
            date_range=date_range,
            active=active,
            expired=expired,
        )
