"""
sweeper.py
----------
Once-a-second pass that drops log entries whose instrument is no longer
selected, whatever their status or expiry.  Removal goes through the
store, so a displayed entry that disappears is cleared as well.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from models.log_entry import LogEntry
from modules.log_store import LogStore
from modules.selection import SelectionCell

DEFAULT_SWEEP_INTERVAL_S = 1.0


class EvictionSweeper:
    def __init__(
        self,
        store: LogStore,
        selection: SelectionCell,
        logger: Optional[logging.Logger] = None,
        *,
        interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.selection = selection
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.interval_s = interval_s
        self._sleep = sleep
        self.removed_total = 0

    def sweep(self) -> List[LogEntry]:
        selected = set(self.selection.instruments)
        removed = self.store.remove_where(lambda e: e.instrument not in selected)
        if removed:
            self.removed_total += len(removed)
            self.logger.debug("Sweep removed %d entries of deselected instruments", len(removed))
        return removed

    async def run(self) -> None:
        while True:
            await self._sleep(self.interval_s)
            try:
                self.sweep()
            except Exception:
                self.logger.exception("Sweep failed")
