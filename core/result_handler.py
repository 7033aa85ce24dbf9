from __future__ import annotations
import logging
from typing import Any, Mapping

from pydantic import ValidationError
from models.prediction import PredictionOutcome, PredictionResult

logger = logging.getLogger(__name__)


def coerce_prediction_result(raw: Any) -> PredictionResult:
    """
    Validate a predictor reply with Pydantic.

    Accepts a ``PredictionResult``, a bare ``PredictionOutcome`` or a mapping
    shaped like either (``{"data": {...}}`` / ``{"error": "..."}`` as
    returned by the prediction action are understood too).  Anything that
    does not validate becomes a failure result instead of raising.
    """
    if isinstance(raw, PredictionResult):
        return raw
    if isinstance(raw, PredictionOutcome):
        return PredictionResult.success(raw)
    if not isinstance(raw, Mapping):
        return PredictionResult.failure(f"unexpected predictor reply type {type(raw).__name__}")

    if raw.get("error") or raw.get("failure_reason"):
        return PredictionResult.failure(str(raw.get("error") or raw.get("failure_reason")))

    payload = raw.get("data") or raw.get("outcome") or raw
    try:
        outcome = PredictionOutcome.model_validate(_snake_case_keys(payload))
    except ValidationError as ve:
        logger.warning("Prediction payload validation failed: %s", ve)
        return PredictionResult.failure(
            "Prediction data was incomplete. Please check the prediction source."
        )
    return PredictionResult.success(outcome)


_CAMEL_TO_SNAKE = {
    "tradingSignal": "trading_signal",
    "signalDetails": "signal_details",
}


def _snake_case_keys(payload: Any) -> Any:
    if not isinstance(payload, Mapping):
        return payload
    return {_CAMEL_TO_SNAKE.get(k, k): v for k, v in payload.items()}
