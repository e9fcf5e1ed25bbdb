"""
countdown_to/temporal.py

Temporal progress model.

Provides:
- Instant resolution from separate date/time components
- Progress fraction and phase over a start/end interval
- Day/hour/minute/second decomposition of durations
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .errors import DegenerateInterval, InvalidTemporalInput


# =============================================================================
# Instant Resolution
# =============================================================================

# "2025-12-01T20:00" or "2025-12-01T20:00:00"
COMBINED_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2})?$")

SINGLE_DIGIT_HOUR = re.compile(r"^\d:")

MIDNIGHT = "00:00:00"


def to_local_naive(value: datetime) -> datetime:
    """Convert an offset-aware datetime to naive local time."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def resolve_instant(
    date_str: Optional[str],
    time_str: Optional[str],
    now: datetime,
    label: str = "",
) -> datetime:
    """
    Build an instant from a date component and a time component.

    A date already written as a combined "YYYY-MM-DDTHH:MM[:SS]" value is
    parsed as-is and the time component is ignored. Otherwise a missing
    date means today (relative to ``now``), a missing time means midnight,
    "9" becomes "09:00:00" and "HH:MM" becomes "HH:MM:00".

    Args:
        date_str: Date component such as "2025-01-01", or None.
        time_str: Time component such as "14:30", or None.
        now: Reference time used for the "today" default.
        label: Optional "start"/"end" label used in error messages.

    Returns:
        Naive local datetime.

    Raises:
        InvalidTemporalInput: If the resolved string is not a valid instant.
    """
    if date_str and COMBINED_PATTERN.match(date_str):
        combined = date_str
    else:
        date_part = date_str or now.strftime("%Y-%m-%d")
        time_part = time_str or MIDNIGHT

        if ":" not in time_part:
            time_part = f"{time_part}:00"
        if time_part.count(":") == 1:
            time_part = f"{time_part}:00"
        if SINGLE_DIGIT_HOUR.match(time_part):
            time_part = f"0{time_part}"

        combined = f"{date_part}T{time_part}"

    try:
        value = datetime.fromisoformat(combined)
    except ValueError:
        side = f"{label} " if label else ""
        raise InvalidTemporalInput(
            f"Invalid {side}date or time format: {combined}"
        ) from None

    return to_local_naive(value)


# =============================================================================
# Duration Decomposition
# =============================================================================

class Rounding(str, Enum):
    """Rounding policy applied to every decomposed duration field."""

    FLOOR = "floor"
    CEIL = "ceil"

    @property
    def func(self) -> Callable[[float], float]:
        return math.ceil if self is Rounding.CEIL else math.floor


@dataclass(frozen=True)
class DurationParts:
    """A duration split into calendar-style units."""

    days: int
    hours: int
    minutes: int
    seconds: int


def decompose(delta: timedelta, rounding: Rounding = Rounding.FLOOR) -> DurationParts:
    """
    Split a duration into days, hours-mod-24, minutes-mod-60, seconds-mod-60.

    Every field is derived from the total magnitude rather than by
    subtracting larger units, and the same rounding function is applied to
    all four.
    """
    total = max(delta.total_seconds(), 0.0)
    rnd = Rounding(rounding).func

    return DurationParts(
        days=int(rnd(total / 86400)),
        hours=int(rnd((total / 3600) % 24)),
        minutes=int(rnd((total / 60) % 60)),
        seconds=int(rnd(total % 60)),
    )


# =============================================================================
# Progress Model
# =============================================================================

class Phase(str, Enum):
    """Where the reference time sits relative to the interval."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Moments:
    """The three instants exposed to date placeholders."""

    start: datetime
    end: datetime
    current: datetime


@dataclass(frozen=True)
class ProgressState:
    """
    Progress of one evaluation.

    Attributes:
        fraction: Position within the interval, in [0, 1].
        phase: Upcoming, active or complete.
        elapsed: Time since start, clamped to [0, total].
        remaining: Time left until end, clamped to [0, total].
        total: Length of the interval.
        elapsed_parts: Decomposition of ``elapsed``.
        remaining_parts: Decomposition of ``remaining``.
        total_parts: Decomposition of ``total``.
    """

    fraction: float
    phase: Phase
    elapsed: timedelta
    remaining: timedelta
    total: timedelta
    elapsed_parts: DurationParts
    remaining_parts: DurationParts
    total_parts: DurationParts

    @property
    def percent(self) -> int:
        """Whole percent complete, floored."""
        return math.floor(self.fraction * 100)

    @property
    def is_complete(self) -> bool:
        return self.phase is Phase.COMPLETE


def compute_progress(
    start: datetime,
    end: datetime,
    now: datetime,
    upcoming: bool = False,
    rounding: Rounding = Rounding.FLOOR,
) -> ProgressState:
    """
    Compute the progress of ``now`` through ``[start, end]``.

    Args:
        start: Interval start.
        end: Interval end, strictly after start.
        now: Reference time.
        upcoming: Mark the state as upcoming regardless of ``now``. Used when
            the caller evaluates the time left before a future start.
        rounding: Rounding policy for the duration decompositions.

    Returns:
        ProgressState for this evaluation.

    Raises:
        DegenerateInterval: If ``end`` is not after ``start``.
    """
    total = end - start
    if total <= timedelta(0):
        raise DegenerateInterval("End date/time must be after start date/time.")

    elapsed = min(max(now - start, timedelta(0)), total)
    remaining = total - elapsed

    # Clamp again: float division can land a hair outside [0, 1].
    fraction = min(max(elapsed / total, 0.0), 1.0)

    if upcoming or now < start:
        phase = Phase.UPCOMING
    elif fraction >= 1:
        phase = Phase.COMPLETE
    else:
        phase = Phase.ACTIVE

    return ProgressState(
        fraction=fraction,
        phase=phase,
        elapsed=elapsed,
        remaining=remaining,
        total=total,
        elapsed_parts=decompose(elapsed, rounding),
        remaining_parts=decompose(remaining, rounding),
        total_parts=decompose(total, rounding),
    )
