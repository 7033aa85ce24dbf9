# --------------------------------------------------------------------
# models/log_entry.py
# One immutable record per attempted prediction. Status moves
# PENDING -> SUCCESS | ERROR exactly once; every transition returns a new
# instance so the store can swap whole snapshots.
# --------------------------------------------------------------------
from __future__ import annotations
import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Literal, Optional

from models.prediction import PipsSettings, PredictionOutcome

PredictionStatus = Literal["PENDING", "SUCCESS", "ERROR"]
STATUSES: tuple[str, ...] = ("PENDING", "SUCCESS", "ERROR")


def new_entry_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class LogEntry:
    id: str
    created_at: datetime
    instrument: str
    parameters: PipsSettings
    status: PredictionStatus = "PENDING"
    outcome: Optional[PredictionOutcome] = None
    failure_reason: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def pending(
        cls,
        instrument: str,
        parameters: PipsSettings,
        *,
        created_at: datetime,
        entry_id: Optional[str] = None,
    ) -> "LogEntry":
        return cls(
            id=entry_id or new_entry_id(),
            created_at=created_at,
            instrument=instrument,
            parameters=parameters,
        )

    # ------------------------------------------------------------------ #
    # transitions
    # ------------------------------------------------------------------ #
    def resolve_success(self, outcome: PredictionOutcome, expires_at: datetime) -> "LogEntry":
        if self.status != "PENDING":
            raise ValueError(f"entry {self.id} already resolved ({self.status})")
        return replace(self, status="SUCCESS", outcome=outcome, expires_at=expires_at)

    def resolve_error(self, reason: str) -> "LogEntry":
        if self.status != "PENDING":
            raise ValueError(f"entry {self.id} already resolved ({self.status})")
        return replace(self, status="ERROR", failure_reason=reason)

    # ------------------------------------------------------------------ #
    # derived values
    # ------------------------------------------------------------------ #
    @property
    def signal(self) -> Optional[str]:
        if self.status != "SUCCESS" or self.outcome is None:
            return None
        return self.outcome.trading_signal

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def seconds_remaining(self, now: datetime) -> Optional[int]:
        """Countdown shown next to active rows; 0 once expired."""
        if self.expires_at is None:
            return None
        return max(0, math.ceil((self.expires_at - now).total_seconds()))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "instrument": self.instrument,
            "parameters": self.parameters.model_dump(),
            "status": self.status,
            "outcome": self.outcome.model_dump() if self.outcome else None,
            "failure_reason": self.failure_reason,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
