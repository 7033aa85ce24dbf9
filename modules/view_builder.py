"""
view_builder.py
---------------
Derives the "active" and "expired" tables from a store snapshot.

Pure and re-derivable: the same snapshot and parameters always give the
same ordered output.  Pipeline per partition:

1. base filter    instrument selected, ``created_at`` inside the date range
2. partition      active = no expiry or expiry in the future, expired = the rest
3. filter         status / trading signal ("ALL" disables a filter)
4. sort           one key, asc/desc, undefined values always last
5. cap            first ``display_count`` rows, total kept for "N of M"
"""

from __future__ import annotations

import locale
from dataclasses import dataclass, field
from datetime import datetime
from functools import cmp_to_key
from typing import Any, Iterable, Literal, Optional, Sequence, Tuple

from models.log_entry import STATUSES, LogEntry
from models.prediction import TRADING_SIGNALS

SortDirection = Literal["asc", "desc"]

SORTABLE_KEYS: Tuple[str, ...] = (
    "status",
    "created_at",
    "instrument",
    "profit_pips_max",
    "loss_pips_max",
    "signal",
    "expires_at",
)

ALL = "ALL"
DEFAULT_DISPLAY_COUNT = 10


# ------------------------------------------------------------------ #
# parameters
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class DateRangeFilter:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        if self.start and self.end and self.start > self.end:
            raise ValueError("date range start is after end")

    def contains(self, ts: datetime) -> bool:
        if self.start is not None and ts < self.start:
            return False
        return not (self.end is not None and ts > self.end)


@dataclass(frozen=True)
class SortConfig:
    key: str = "created_at"
    direction: SortDirection = "desc"

    def __post_init__(self):
        if self.key not in SORTABLE_KEYS:
            raise ValueError(f"unknown sort key {self.key!r}")
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"unknown sort direction {self.direction!r}")

    def toggled(self, key: str) -> "SortConfig":
        """Column click: same column flips direction, a new column starts ascending."""
        if key == self.key:
            return SortConfig(key, "desc" if self.direction == "asc" else "asc")
        return SortConfig(key, "asc")


@dataclass(frozen=True)
class PartitionQuery:
    status: str = ALL
    signal: str = ALL
    sort: SortConfig = field(default_factory=SortConfig)
    display_count: int = DEFAULT_DISPLAY_COUNT

    def __post_init__(self):
        if self.status != ALL and self.status not in STATUSES:
            raise ValueError(f"unknown status filter {self.status!r}")
        if self.signal != ALL and self.signal not in TRADING_SIGNALS:
            raise ValueError(f"unknown signal filter {self.signal!r}")
        if self.display_count < 0:
            raise ValueError("display_count must be >= 0")

    def matches(self, entry: LogEntry) -> bool:
        if self.status != ALL and entry.status != self.status:
            return False
        # signal is undefined unless SUCCESS, so it never matches a concrete filter
        return not (self.signal != ALL and entry.signal != self.signal)


# ------------------------------------------------------------------ #
# results
# ------------------------------------------------------------------ #
@dataclass(frozen=True)
class PartitionView:
    entries: Tuple[LogEntry, ...]
    total: int

    @property
    def shown(self) -> int:
        return len(self.entries)

    @property
    def label(self) -> str:
        return f"{self.shown} of {self.total}"


@dataclass(frozen=True)
class LogViews:
    active: PartitionView
    expired: PartitionView


# ------------------------------------------------------------------ #
# sorting
# ------------------------------------------------------------------ #
def sortable_value(entry: LogEntry, key: str) -> Any:
    if key == "status":
        return entry.status
    if key == "created_at":
        return entry.created_at
    if key == "instrument":
        return entry.instrument
    if key == "profit_pips_max":
        return entry.parameters.profit_pips.max
    if key == "loss_pips_max":
        return entry.parameters.loss_pips.max
    if key == "signal":
        return entry.signal
    if key == "expires_at":
        return entry.expires_at
    return None


def _compare(a: Any, b: Any) -> int:
    if isinstance(a, str) and isinstance(b, str):
        return locale.strcoll(a, b)
    if isinstance(a, (str, bytes)) or isinstance(b, (str, bytes)):
        return locale.strcoll(str(a), str(b))
    return (a > b) - (a < b)


def sort_entries(entries: Iterable[LogEntry], config: SortConfig) -> list:
    defined, undefined = [], []
    for e in entries:
        (undefined if sortable_value(e, config.key) is None else defined).append(e)

    sign = 1 if config.direction == "asc" else -1
    ordered = sorted(
        defined,
        key=cmp_to_key(
            lambda x, y: sign * _compare(sortable_value(x, config.key), sortable_value(y, config.key))
        ),
    )
    return ordered + undefined


# ------------------------------------------------------------------ #
# pipeline
# ------------------------------------------------------------------ #
def _partition_view(entries: Sequence[LogEntry], query: PartitionQuery) -> PartitionView:
    filtered = [e for e in entries if query.matches(e)]
    ordered = sort_entries(filtered, query.sort)
    return PartitionView(entries=tuple(ordered[: query.display_count]), total=len(ordered))


def build_views(
    snapshot: Iterable[LogEntry],
    *,
    now: datetime,
    selected_instruments: Iterable[str],
    date_range: Optional[DateRangeFilter] = None,
    active: Optional[PartitionQuery] = None,
    expired: Optional[PartitionQuery] = None,
) -> LogViews:
    selected = set(selected_instruments)
    date_range = date_range or DateRangeFilter()

    base = [
        e for e in snapshot
        if e.instrument in selected and date_range.contains(e.created_at)
    ]
    active_rows = [e for e in base if e.expires_at is None or e.expires_at > now]
    expired_rows = [e for e in base if e.expires_at is not None and e.expires_at <= now]

    return LogViews(
        active=_partition_view(active_rows, active or PartitionQuery()),
        expired=_partition_view(expired_rows, expired or PartitionQuery()),
    )
