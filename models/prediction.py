from __future__ import annotations
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

Instrument = Literal["XAU/USD", "BTC/USD"]
TradingSignal = Literal["BUY", "SELL", "HOLD", "WAIT", "N/A"]

INSTRUMENTS: tuple[str, ...] = ("XAU/USD", "BTC/USD")
TRADING_SIGNALS: tuple[str, ...] = ("BUY", "SELL", "HOLD", "WAIT", "N/A")


class PipsRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = 0
    max: int = 0

    def is_valid(self) -> bool:
        return self.min > 0 and self.max > 0 and self.min <= self.max


class PipsSettings(BaseModel):
    """Profit / loss pip ranges. Frozen so a log entry keeps its own snapshot."""

    model_config = ConfigDict(frozen=True)

    profit_pips: PipsRange = Field(default_factory=lambda: PipsRange(min=10, max=20))
    loss_pips: PipsRange = Field(default_factory=lambda: PipsRange(min=5, max=10))

    def is_valid(self) -> bool:
        return self.profit_pips.is_valid() and self.loss_pips.is_valid()


class PredictionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    trading_signal: TradingSignal
    signal_details: str = Field(..., min_length=1)
    reasoning: str = Field(..., min_length=1)


class PredictionResult(BaseModel):
    """Reply of a predictor: either an outcome or a failure reason, never both."""

    model_config = ConfigDict(frozen=True)

    outcome: Optional[PredictionOutcome] = None
    failure_reason: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one(self):
        if (self.outcome is None) == (self.failure_reason is None):
            raise ValueError("exactly one of outcome / failure_reason must be set")
        return self

    @property
    def ok(self) -> bool:
        return self.outcome is not None

    @classmethod
    def success(cls, outcome: PredictionOutcome) -> "PredictionResult":
        return cls(outcome=outcome)

    @classmethod
    def failure(cls, reason: str) -> "PredictionResult":
        return cls(failure_reason=reason or "unknown error")
