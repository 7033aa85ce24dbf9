"""
predictor.py
------------

Prediction sources ("fetch collaborators") the scheduler calls once per
pending log entry::

    result = await predictor.predict("XAU/USD", pips_settings)
    if result.ok:
        ...  # result.outcome
    else:
        ...  # result.failure_reason

``MockPredictor`` is the stand-in used by the dashboard: it waits a short,
random time and invents a plausible signal.  ``HttpPredictor`` posts the
same request to a remote service.  Neither raises for ordinary failures;
they return a failure result so one bad call never aborts a batch.
"""

from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from core.result_handler import coerce_prediction_result
from models.prediction import PipsSettings, PredictionOutcome, PredictionResult

logger = logging.getLogger(__name__)


class BasePredictor(ABC):
    """Every prediction source must implement predict()."""

    @abstractmethod
    async def predict(self, instrument: str, pips: PipsSettings) -> PredictionResult:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MockPredictor(BasePredictor):
    """Simulated prediction source.  Not financial advice, not even close."""

    def __init__(
        self,
        *,
        rng: Optional[random.Random] = None,
        min_latency_s: float = 0.3,
        max_latency_s: float = 0.7,
    ) -> None:
        self.rng = rng or random.Random()
        self.min_latency_s = min_latency_s
        self.max_latency_s = max(min_latency_s, max_latency_s)

    async def predict(self, instrument: str, pips: PipsSettings) -> PredictionResult:
        try:
            await asyncio.sleep(self.rng.uniform(self.min_latency_s, self.max_latency_s))
            outcome = self.generate(instrument, pips)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Mock prediction generation failed for %s: %s", instrument, exc)
            return PredictionResult.failure(f"Failed to get mock prediction: {exc}")
        return PredictionResult.success(outcome)

    def generate(self, instrument: str, pips: PipsSettings) -> PredictionOutcome:
        target = self.rng.randint(pips.profit_pips.min, max(pips.profit_pips.min, pips.profit_pips.max))
        stop = pips.loss_pips.max
        factor = self.rng.random()
        move = round(target * (0.5 + factor))  # 50%..150% of target

        if factor < 0.35:
            signal = "BUY"
            if move >= target:
                details = f"Price expected to increase by ~{move} pips, reaching the {target} pips target."
            else:
                details = f"Price expected to increase by ~{move} pips, but may not reach {target} pips."
            reasoning = (
                f"Simulated analysis suggests positive momentum for {instrument} "
                f"with a {stop} pips stop."
            )
        elif factor < 0.55:
            signal = "HOLD"
            details = f"Price may consolidate, likely missing the {target} pips target."
            reasoning = f"Simulated conditions for {instrument} indicate consolidation or minor fluctuations."
        elif factor < 0.7:
            signal = "WAIT"
            details = f"No clear direction yet for a {target} pips move."
            reasoning = f"Simulated volatility for {instrument} is too low to commit."
        else:
            signal = "SELL"
            details = f"Price expected to decrease by ~{move} pips."
            reasoning = (
                f"Simulated analysis indicates negative pressure on {instrument}, "
                f"moving away from the {target} pips target."
            )

        reasoning = f"{reasoning} Target was {target} pips for {instrument}. This is not financial advice."
        return PredictionOutcome(trading_signal=signal, signal_details=details, reasoning=reasoning)


class HttpPredictor(BasePredictor):
    """POSTs ``{instrument, pips}`` to a prediction service and validates the reply."""

    def __init__(
        self,
        url: str,
        *,
        timeout_s: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if not url:
            raise ValueError("HttpPredictor needs a URL")
        self.url = url
        self.timeout_s = timeout_s
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "prediction-log-engine/1.0"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def predict(self, instrument: str, pips: PipsSettings) -> PredictionResult:
        session = await self._ensure_session()
        body = {"instrument": instrument, "pips": pips.model_dump()}
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with session.post(self.url, json=body, timeout=timeout) as resp:
                if resp.status != 200:
                    return PredictionResult.failure(f"HTTP {resp.status}")
                data = await resp.json()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Prediction request failed %s: %s", instrument, exc)
            return PredictionResult.failure(f"Prediction request failed: {exc}")
        return coerce_prediction_result(data)
