import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from models.prediction import PipsRange, PipsSettings, PredictionOutcome, PredictionResult
from modules.log_store import LogStore
from modules.scheduler import (
    PAUSED_TITLE,
    BatchSummary,
    PredictionScheduler,
    SchedulerState,
)
from modules.selection import SelectionCell
from notifiers.hub import NotifierHub

NOW = datetime(2024, 5, 1, 10, 7, 0, tzinfo=timezone.utc)

OUTCOME = PredictionOutcome(
    trading_signal="BUY",
    signal_details="Price expected to increase by ~15 pips.",
    reasoning="Positive momentum.",
)

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def store():
    return LogStore()

@pytest.fixture
def selection():
    cell = SelectionCell()
    cell.set_instruments(["XAU/USD"])
    return cell

@pytest.fixture
def notifier():
    return NotifierHub(backends=[])

@pytest.fixture
def predictor():
    mock = MagicMock()
    mock.predict = AsyncMock(return_value=PredictionResult.success(OUTCOME))
    return mock

@pytest.fixture
def scheduler(store, selection, predictor, notifier):
    return PredictionScheduler(
        store,
        selection,
        predictor,
        notifier,
        logging.getLogger("test"),
        rng=random.Random(7),
        clock=lambda: NOW,
    )

# ------------------------- Gates ------------------------- #

@pytest.mark.asyncio
async def test_invalid_pips_pauses_with_one_notification(scheduler, selection, store, notifier, predictor):
    selection.set_pips(PipsSettings(
        profit_pips=PipsRange(min=0, max=20),
        loss_pips=PipsRange(min=5, max=10),
    ))

    summary = await scheduler.tick()

    assert summary.skipped == "invalid_pips"
    assert len(store) == 0
    assert [n.title for n in notifier.history] == [PAUSED_TITLE]
    assert notifier.latest.severity == "info"
    predictor.predict.assert_not_called()
    assert scheduler.state is SchedulerState.IDLE_WAITING


@pytest.mark.asyncio
async def test_no_instruments_skips_silently(scheduler, selection, store, notifier):
    selection.set_instruments([])

    summary = await scheduler.tick()

    assert summary.skipped == "no_instruments"
    assert len(store) == 0
    assert len(notifier.history) == 0


@pytest.mark.asyncio
async def test_tick_while_in_flight_is_skipped(scheduler, predictor, store):
    release = asyncio.Event()

    async def slow_predict(instrument, pips):
        await release.wait()
        return PredictionResult.success(OUTCOME)

    predictor.predict.side_effect = slow_predict

    first, task = scheduler.fire()
    assert first.dispatched
    pending = len(store)

    second, none_task = scheduler.fire()
    assert second.skipped == "in_flight"
    assert none_task is None
    assert len(store) == pending

    release.set()
    await task
    assert scheduler.state is SchedulerState.IDLE_WAITING

# ------------------------- Batches ------------------------- #

@pytest.mark.asyncio
async def test_successful_batch(scheduler, store, notifier, predictor):
    summary = await scheduler.tick()

    k = summary.success_count
    assert 1 <= k <= 10
    assert summary.error_count == 0
    assert len(store) == k
    assert all(e.status == "SUCCESS" for e in store)
    assert all(e.outcome == OUTCOME for e in store)
    assert predictor.predict.await_count == k

    assert len(notifier.history) == 1
    note = notifier.latest
    assert note.title == "Predictions Updated"
    assert note.severity == "success"
    assert str(k) in note.description


@pytest.mark.asyncio
async def test_batch_shares_one_created_at(scheduler, store, selection):
    selection.set_instruments(["XAU/USD", "BTC/USD"])
    await scheduler.tick()

    assert {e.created_at for e in store} == {NOW}
    assert {e.instrument for e in store} == {"XAU/USD", "BTC/USD"}


@pytest.mark.asyncio
async def test_entries_snapshot_pips_at_dispatch(scheduler, store, selection):
    pips = PipsSettings(profit_pips=PipsRange(min=30, max=40), loss_pips=PipsRange(min=1, max=2))
    selection.set_pips(pips)
    await scheduler.tick()
    selection.set_pips(PipsSettings())

    assert all(e.parameters == pips for e in store)


@pytest.mark.asyncio
async def test_success_expiry_within_lifetime_bounds(scheduler, store, selection):
    selection.set_max_lifetime(30)
    for _ in range(5):
        await scheduler.tick()

    for e in store:
        assert NOW + timedelta(seconds=10) <= e.expires_at <= NOW + timedelta(seconds=30)


@pytest.mark.asyncio
async def test_max_lifetime_below_minimum_clamps_to_minimum(scheduler, store, selection):
    selection.set_max_lifetime(3)
    await scheduler.tick()
    assert all(e.expires_at == NOW + timedelta(seconds=10) for e in store)


@pytest.mark.asyncio
async def test_predictor_exception_becomes_error_entry(scheduler, store, notifier, predictor):
    predictor.predict.side_effect = RuntimeError("upstream down")

    summary = await scheduler.tick()

    assert summary.success_count == 0
    assert summary.error_count == len(store) > 0
    assert all(e.status == "ERROR" for e in store)
    assert all(e.failure_reason == "upstream down" for e in store)
    assert all(e.expires_at is None for e in store)
    assert notifier.latest.title == "Prediction Errors"
    assert notifier.latest.severity == "error"
    assert scheduler.metrics["errors"] == len(store)


@pytest.mark.asyncio
async def test_mixed_results_notification(scheduler, store, notifier, predictor):
    calls = {"n": 0}

    async def alternate(instrument, pips):
        calls["n"] += 1
        if calls["n"] % 2:
            return PredictionResult.success(OUTCOME)
        return {"error": "Rate limited"}

    predictor.predict.side_effect = alternate
    with patch.object(scheduler.rng, "randint", return_value=4):
        summary = await scheduler.tick()

    assert summary.success_count == 2
    assert summary.error_count == 2
    assert notifier.latest.title == "Some Predictions Failed"
    assert notifier.latest.severity == "success"
    assert {e.failure_reason for e in store if e.status == "ERROR"} == {"Rate limited"}


@pytest.mark.asyncio
async def test_invalid_payload_becomes_error(scheduler, store, predictor):
    predictor.predict.return_value = {"tradingSignal": "BUY", "signalDetails": ""}

    await scheduler.tick()

    assert all(e.status == "ERROR" for e in store)
    assert all("incomplete" in e.failure_reason for e in store)


@pytest.mark.asyncio
async def test_deselect_during_flight_drops_entries(scheduler, store, selection, notifier, predictor):
    release = asyncio.Event()

    async def slow_predict(instrument, pips):
        await release.wait()
        return PredictionResult.success(OUTCOME)

    predictor.predict.side_effect = slow_predict

    _, task = scheduler.fire()
    await asyncio.sleep(0)
    assert len(store) > 0
    assert all(e.status == "PENDING" for e in store)

    selection.set_instruments([])
    release.set()
    summary = await task

    assert len(store) == 0
    assert summary.success_count == 0
    assert summary.error_count == 0
    assert summary.dropped_count > 0
    assert len(notifier.history) == 0


@pytest.mark.asyncio
async def test_entries_removed_mid_flight_are_discarded(scheduler, store, notifier, predictor):
    release = asyncio.Event()

    async def slow_predict(instrument, pips):
        await release.wait()
        return PredictionResult.success(OUTCOME)

    predictor.predict.side_effect = slow_predict

    _, task = scheduler.fire()
    await asyncio.sleep(0)
    dispatched = len(store)
    store.clear()

    release.set()
    summary = await task

    assert len(store) == 0
    assert summary.discarded_count == dispatched
    assert summary.success_count == 0
    assert len(notifier.history) == 0


def test_apply_results_on_evicted_entry_does_not_resurrect(scheduler, store):
    entries = scheduler.synthesize(["XAU/USD"], PipsSettings())
    store.insert_batch(entries)
    store.remove_where(lambda e: e.id == entries[0].id)

    summary = scheduler.apply_results(
        [(e, PredictionResult.success(OUTCOME)) for e in entries]
    )

    assert store.get(entries[0].id) is None
    assert summary.discarded_count == 1
    assert summary.success_count == len(entries) - 1

# ------------------------- Run loop ------------------------- #

@pytest.mark.asyncio
async def test_run_survives_tick_failure(store, selection, predictor, notifier):
    sleep = AsyncMock(side_effect=[None, None, asyncio.CancelledError()])
    sched = PredictionScheduler(
        store, selection, predictor, notifier, clock=lambda: NOW, sleep=sleep,
    )

    with patch.object(
        sched, "fire", side_effect=[RuntimeError("boom"), (BatchSummary(), None)]
    ) as fire:
        with pytest.raises(asyncio.CancelledError):
            await sched.run()

    assert fire.call_count == 2
    # 10:07:00 with a 1m interval: next boundary 10:08:00
    assert sleep.await_args_list[0].args[0] == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_log_metrics(scheduler, caplog):
    await scheduler.tick()
    with caplog.at_level(logging.INFO, logger="test"):
        scheduler.log_metrics()
    assert "Batches: 1" in caplog.text


@pytest.mark.asyncio
async def test_latency_history_is_bounded(store, selection, predictor, notifier):
    sched = PredictionScheduler(
        store, selection, predictor, notifier,
        rng=random.Random(3), clock=lambda: NOW, latency_window=5,
    )

    with patch.object(sched.rng, "randint", return_value=4):
        await sched.tick()
        await sched.tick()

    assert sched.metrics["requests_sent"] == 8
    assert len(sched.metrics["latencies"]) == 5
