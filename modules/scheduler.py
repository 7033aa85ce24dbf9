"""
scheduler.py
------------
Self-rescheduling tick loop that turns the current selection into
batches of pending prediction log entries, fans the predictions out
concurrently and folds the results back into the log store.

    IDLE_WAITING -> DISPATCHING -> RECONCILING -> IDLE_WAITING ...

Each wait is aligned to the wall-clock boundary of the selected refresh
interval.  A tick is skipped (and simply rescheduled) while a batch is
still in flight, when nothing is selected, or when the pip ranges are
invalid.  Nothing that happens inside a tick stops the loop.
"""

from __future__ import annotations

import asyncio
import logging
import random
import statistics
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from core.result_handler import coerce_prediction_result
from models.log_entry import LogEntry, new_entry_id
from models.prediction import PipsSettings, PredictionResult
from modules.log_store import LogStore
from modules.predictor import BasePredictor
from modules.selection import DEFAULT_MIN_LIFETIME_SECONDS, SelectionCell
from notifiers.hub import NotifierHub
from utils.interval import resolve_delay_ms


# ----------------------------- constants ---------------------------------- #
MIN_PREDICTIONS_PER_INSTRUMENT = 1
MAX_PREDICTIONS_PER_INSTRUMENT = 10

# recent fetch latencies kept for the average in the metrics line
LATENCY_WINDOW = 500

PAUSED_TITLE = "Prediction Paused"
PAUSED_DESCRIPTION = (
    "Ensure Min/Max PIPS for profit & loss are valid (Min > 0, Max > 0, Min <= Max). "
    "Predictions update automatically if parameters are valid."
)


class SchedulerState(str, Enum):
    IDLE_WAITING = "IDLE_WAITING"
    DISPATCHING = "DISPATCHING"
    RECONCILING = "RECONCILING"


@dataclass(frozen=True)
class BatchSummary:
    success_count: int = 0
    error_count: int = 0
    dropped_count: int = 0
    discarded_count: int = 0
    skipped: Optional[str] = None  # "in_flight" | "no_instruments" | "invalid_pips"

    @property
    def dispatched(self) -> bool:
        return self.skipped is None


# ---------------------------- tick loop ----------------------------------- #
class PredictionScheduler:
    """Asynchronous batch dispatcher for prediction log entries."""

    def __init__(
        self,
        store: LogStore,
        selection: SelectionCell,
        predictor: BasePredictor,
        notifier: NotifierHub,
        logger: Optional[logging.Logger] = None,
        *,
        min_lifetime_s: int = DEFAULT_MIN_LIFETIME_SECONDS,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[], str] = new_entry_id,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        latency_window: int = LATENCY_WINDOW,
    ) -> None:
        # logger
        self.logger = logger or logging.getLogger(self.__class__.__name__)

        # components
        self.store = store
        self.selection = selection
        self.predictor = predictor
        self.notifier = notifier

        # knobs
        self.min_lifetime_s = min_lifetime_s
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.id_factory = id_factory
        self._sleep = sleep

        self.state = SchedulerState.IDLE_WAITING
        self._batch_task: Optional[asyncio.Task] = None

        # metrics
        self.metrics: Dict[str, object] = {
            "ticks": 0,
            "skipped": 0,
            "batches": 0,
            "requests_sent": 0,
            "errors": 0,
            "latencies": deque(maxlen=max(1, latency_window)),
        }

    # -------------------------------------------------------------------- #
    @property
    def in_flight(self) -> bool:
        return self.state is not SchedulerState.IDLE_WAITING

    @property
    def batch_task(self) -> Optional[asyncio.Task]:
        return self._batch_task

    def next_delay_ms(self) -> int:
        return resolve_delay_ms(self.selection.refresh_interval, self.clock())

    # -------------------------------------------------------------------- #
    def fire(self) -> Tuple[BatchSummary, Optional[asyncio.Task]]:
        """
        Evaluate the skip gates and, if they pass, dispatch one batch.

        Returns the skip summary (or an empty one) and the reconciliation
        task.  The task is not awaited here, so cancelling the timer never
        cancels fetches that are already running.
        """
        self.metrics["ticks"] += 1

        if self.in_flight:
            return self._skip("in_flight"), None

        instruments = self.selection.instruments
        if not instruments:
            return self._skip("no_instruments"), None

        pips = self.selection.pips
        if not pips.is_valid():
            self.notifier.notify(PAUSED_TITLE, PAUSED_DESCRIPTION, "info")
            return self._skip("invalid_pips"), None

        self.state = SchedulerState.DISPATCHING
        try:
            entries = self.synthesize(instruments, pips)
            self.store.insert_batch(entries)
        except Exception:
            self.state = SchedulerState.IDLE_WAITING
            raise

        self.metrics["batches"] += 1
        self.logger.info(
            "Dispatching %d prediction(s) for %s", len(entries), ", ".join(instruments)
        )
        task = asyncio.get_running_loop().create_task(
            self._reconcile(entries), name="prediction-batch"
        )
        self._batch_task = task
        return BatchSummary(), task

    async def tick(self) -> BatchSummary:
        """Fire once and wait for the batch (if any) to be reconciled."""
        summary, task = self.fire()
        if task is None:
            return summary
        return await task

    def synthesize(self, instruments, pips: PipsSettings) -> List[LogEntry]:
        """k pending entries per instrument, k uniform in [1, 10], one shared snapshot."""
        created_at = self.clock()
        entries: List[LogEntry] = []
        for instrument in instruments:
            k = self.rng.randint(MIN_PREDICTIONS_PER_INSTRUMENT, MAX_PREDICTIONS_PER_INSTRUMENT)
            for _ in range(k):
                entries.append(
                    LogEntry.pending(
                        instrument, pips, created_at=created_at, entry_id=self.id_factory()
                    )
                )
        return entries

    # -------------------------------------------------------------------- #
    async def _fetch(self, entry: LogEntry) -> PredictionResult:
        self.metrics["requests_sent"] += 1
        t0 = time.monotonic()
        try:
            raw = await self.predictor.predict(entry.instrument, entry.parameters)
            result = coerce_prediction_result(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.warning("Prediction failed %s: %s", entry.instrument, exc)
            result = PredictionResult.failure(str(exc) or exc.__class__.__name__)
        self.metrics["latencies"].append(time.monotonic() - t0)
        if not result.ok:
            self.metrics["errors"] += 1
        return result

    async def _reconcile(self, entries: List[LogEntry]) -> BatchSummary:
        self.state = SchedulerState.RECONCILING
        try:
            results = await asyncio.gather(*(self._fetch(e) for e in entries))
            summary = self.apply_results(list(zip(entries, results)))
            self._notify_summary(summary)
            return summary
        except Exception:
            self.logger.exception("Batch reconciliation failed")
            return BatchSummary()
        finally:
            self.state = SchedulerState.IDLE_WAITING

    def apply_results(self, results: List[Tuple[LogEntry, PredictionResult]]) -> BatchSummary:
        """Fold one batch of results into the store in a single atomic mutation."""
        counts = {"success": 0, "error": 0, "dropped": 0, "discarded": 0}

        def _fold(current: List[LogEntry]) -> List[LogEntry]:
            # selection is sampled now, not at dispatch time
            selected = set(self.selection.instruments)
            now = self.clock()
            index = {e.id: i for i, e in enumerate(current)}
            dropped = set()

            for pending, result in results:
                i = index.get(pending.id)
                if i is None:
                    counts["discarded"] += 1
                    continue
                if pending.instrument not in selected:
                    dropped.add(pending.id)
                    counts["dropped"] += 1
                    continue
                if result.ok:
                    current[i] = current[i].resolve_success(result.outcome, self._expiry(now))
                    counts["success"] += 1
                else:
                    current[i] = current[i].resolve_error(result.failure_reason)
                    counts["error"] += 1

            if not dropped:
                return current
            return [e for e in current if e.id not in dropped]

        self.store.mutate(_fold)
        return BatchSummary(
            success_count=counts["success"],
            error_count=counts["error"],
            dropped_count=counts["dropped"],
            discarded_count=counts["discarded"],
        )

    def _expiry(self, now: datetime) -> datetime:
        low = self.min_lifetime_s
        high = max(low, self.selection.max_lifetime_s)
        return now + timedelta(seconds=self.rng.randint(low, high))

    def _notify_summary(self, summary: BatchSummary) -> None:
        ok, failed = summary.success_count, summary.error_count
        if ok == 0 and failed == 0:
            return
        instruments = ", ".join(self.selection.instruments)
        if ok and not failed:
            self.notifier.notify(
                "Predictions Updated",
                f"{ok} prediction(s) completed for {instruments}.",
                "success",
            )
        elif ok and failed:
            self.notifier.notify(
                "Some Predictions Failed",
                f"{ok} succeeded, {failed} failed for {instruments}.",
                "success",
            )
        else:
            self.notifier.notify(
                "Prediction Errors",
                f"{failed} prediction(s) failed for {instruments}.",
                "error",
            )

    def _skip(self, reason: str) -> BatchSummary:
        self.metrics["skipped"] += 1
        self.logger.debug("Tick skipped: %s", reason)
        return BatchSummary(skipped=reason)

    # -------------------------------------------------------------------- #
    def log_metrics(self) -> None:
        latencies = self.metrics["latencies"]
        avg = statistics.mean(latencies) if latencies else 0
        self.logger.info(
            "📊 Ticks: %s | Batches: %s | Skipped: %s | Requests: %s | Errors: %s | Avg latency: %.3fs",
            self.metrics["ticks"],
            self.metrics["batches"],
            self.metrics["skipped"],
            self.metrics["requests_sent"],
            self.metrics["errors"],
            avg,
        )

    async def run(self) -> None:
        """Wait for each aligned boundary and fire; runs until cancelled."""
        self.logger.info(
            "✅ PredictionScheduler started – interval %s", self.selection.refresh_interval
        )
        try:
            while True:
                delay_ms = self.next_delay_ms()
                self.logger.debug("Next tick in %dms", delay_ms)
                await self._sleep(delay_ms / 1000)
                try:
                    self.fire()
                except Exception:
                    self.logger.exception("Tick failed – rescheduling")
        except asyncio.CancelledError:
            self.logger.info("Scheduler timer cancelled")
            raise
