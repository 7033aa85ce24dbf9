"""
utils/interval.py
-----------------
Refresh-interval selectors and the wall-clock aligned delay resolver.

A selector is an amount plus a unit (minute, hour, day).  The resolver
returns how many milliseconds remain until the next boundary strictly
after ``now`` whose minute-of-hour / hour-of-day is a multiple of the
amount ("15m" fires at :00, :15, :30, :45).  Day intervals count from the
start of the current day.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional, Union

logger = logging.getLogger(__name__)

IntervalUnit = Literal["minute", "hour", "day"]

DEFAULT_REFRESH_INTERVAL_MS = 60_000
MIN_DELAY_MS = 100

# what the selection form offers
REFRESH_INTERVAL_OPTIONS: tuple[str, ...] = ("1m", "5m", "15m", "30m", "1h", "4h", "1D")

_UNIT_ALIASES = {
    "m": "minute", "min": "minute", "mins": "minute", "minute": "minute", "minutes": "minute",
    "h": "hour", "hr": "hour", "hrs": "hour", "hour": "hour", "hours": "hour",
    "d": "day", "day": "day", "days": "day",
}
_UNIT_SUFFIX = {"minute": "m", "hour": "h", "day": "D"}

_AMOUNT_FIRST = re.compile(r"^\s*(\d*)\s*([a-z]+)\s*$")
_UNIT_FIRST = re.compile(r"^\s*([a-z]+)\s*(\d+)\s*$")


@dataclass(frozen=True)
class IntervalSelector:
    amount: int
    unit: IntervalUnit

    @property
    def key(self) -> str:
        return f"{self.amount}{_UNIT_SUFFIX[self.unit]}"


def parse_interval(value: Union[str, IntervalSelector, None]) -> Optional[IntervalSelector]:
    """Parse "15m", "1D", "hour4", "15 minutes" ... into a selector, or None."""
    if isinstance(value, IntervalSelector):
        return value if value.amount > 0 and value.unit in _UNIT_SUFFIX else None
    if not isinstance(value, str) or not value.strip():
        return None

    # "D" / "1D" are days; "m" is always minutes (no month unit)
    text = value.strip().lower()
    match = _AMOUNT_FIRST.match(text)
    if match:
        amount_str, unit_str = match.groups()
    else:
        match = _UNIT_FIRST.match(text)
        if not match:
            return None
        unit_str, amount_str = match.groups()

    unit = _UNIT_ALIASES.get(unit_str)
    if unit is None:
        return None
    amount = int(amount_str) if amount_str else 1
    if amount <= 0:
        return None
    return IntervalSelector(amount=amount, unit=unit)


def normalize_interval(value: str) -> str:
    """
    Map aliases to a canonical key ('15m', '4h', '1D').
    Unparseable input is returned unchanged.
    """
    selector = parse_interval(value)
    return selector.key if selector else value


# ------------------------------------------------------------------ #
# boundary arithmetic
# ------------------------------------------------------------------ #
def _localize(wall: datetime, reference: datetime) -> datetime:
    """Attach the zone of ``reference`` to a naive wall-clock time."""
    tz = reference.tzinfo
    if tz is None:
        return wall
    if (
        isinstance(tz, timezone)
        and tz is not timezone.utc
        and reference.utcoffset() == reference.astimezone().utcoffset()
    ):
        # fixed offset taken from the host clock: resolve with the host's DST rules
        return wall.astimezone()
    return wall.replace(tzinfo=tz)


def _next_boundary(selector: IntervalSelector, now: datetime) -> datetime:
    """Boundary computed on the wall clock, then placed back in ``now``'s zone."""
    amount = selector.amount
    wall = now.replace(tzinfo=None)
    if selector.unit == "minute":
        base = wall.replace(second=0, microsecond=0)
        minute = (base.minute // amount + 1) * amount
        if minute >= 60:
            boundary = base.replace(minute=0) + timedelta(hours=1)
        else:
            boundary = base.replace(minute=minute)
    elif selector.unit == "hour":
        base = wall.replace(minute=0, second=0, microsecond=0)
        hour = (base.hour // amount + 1) * amount
        if hour >= 24:
            boundary = base.replace(hour=0) + timedelta(days=1)
        else:
            boundary = base.replace(hour=hour)
    else:
        start_of_day = wall.replace(hour=0, minute=0, second=0, microsecond=0)
        boundary = start_of_day + timedelta(days=amount)
    return _localize(boundary, now)


def _following_boundary(selector: IntervalSelector, boundary: datetime) -> datetime:
    if selector.unit == "minute":
        step = timedelta(minutes=selector.amount)
    elif selector.unit == "hour":
        step = timedelta(hours=selector.amount)
    else:
        step = timedelta(days=selector.amount)
    # realign in case the step crossed an hour / day rollover
    return _next_boundary(selector, boundary + step - timedelta(microseconds=1))


def _delta_ms(later: datetime, earlier: datetime) -> int:
    if later.tzinfo is not None and earlier.tzinfo is not None:
        # elapsed time, not wall-clock difference, when a DST shift lies between
        later, earlier = later.astimezone(timezone.utc), earlier.astimezone(timezone.utc)
    return int((later - earlier) / timedelta(milliseconds=1))


def resolve_delay_ms(
    interval: Union[str, IntervalSelector, None],
    now: Optional[datetime] = None,
) -> int:
    """Milliseconds until the next aligned tick. Never raises."""
    selector = parse_interval(interval)
    if selector is None:
        logger.warning(
            "Unknown refresh interval %r, defaulting to %sms", interval, DEFAULT_REFRESH_INTERVAL_MS
        )
        return DEFAULT_REFRESH_INTERVAL_MS

    now = now or datetime.now().astimezone()
    boundary = _next_boundary(selector, now)
    delay = _delta_ms(boundary, now)

    if delay <= 0:
        boundary = _following_boundary(selector, boundary)
        delay = _delta_ms(boundary, now)
        if delay <= 0:
            logger.error(
                "Delay still %sms after readjustment for %s, using %sms",
                delay, selector.key, MIN_DELAY_MS,
            )
            delay = MIN_DELAY_MS
    return delay
