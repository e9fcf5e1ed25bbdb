"""
countdown_to/params.py

Parsing and validation of the declarative countdown block.

A block is a list of ``key: value`` lines:

    title: Launch
    startDate: 2025-01-01
    endDate: 2025-01-10
    infoFormat: {percent}% - {remaining} left

Lines without a colon, blank lines and lines with an empty key or value are
ignored. Unknown keys are kept but nothing downstream reads them.
"""

import re
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

from .errors import DegenerateInterval, ValidationError
from .temporal import resolve_instant


# Keys read by the scheduler and formatter
KNOWN_KEYS = (
    "startDate",
    "startTime",
    "endDate",
    "endTime",
    "title",
    "type",
    "color",
    "trailColor",
    "progressType",
    "onCompleteText",
    "infoFormat",
    "infoFormatUpcoming",
    "updateInRealTime",
    "updateIntervalInSeconds",
)

# Older spellings still honoured when the current key is absent
KEY_ALIASES = {
    "updateIntervalInSeconds": "updateInterval",
    "trailColor": "backgroundColor",
}

# "30", "1.5", "30s" -> leading number
LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)")


class BarType(str, Enum):
    """Shape of the visual indicator."""

    LINE = "line"
    CIRCLE = "circle"
    SEMICIRCLE = "semicircle"
    SQUARE = "square"

    @classmethod
    def parse(cls, value: str) -> "BarType":
        """Match case-insensitively; anything unknown draws a line."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.LINE


class ProgressType(str, Enum):
    """Direction the indicator fills."""

    FORWARD = "forward"
    COUNTDOWN = "countdown"

    @classmethod
    def parse(cls, value: str) -> "ProgressType":
        """Match case-insensitively; anything unknown fills forward."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.FORWARD


class Config(Mapping[str, str]):
    """
    Read-only result of parsing a countdown block.

    Behaves as a mapping of every parsed key to its string value. The
    resolved start and end instants are attached by ``parse``.
    """

    def __init__(
        self,
        values: Dict[str, str],
        start: datetime,
        end: datetime,
    ):
        self._values = MappingProxyType(dict(values))
        self._start = start
        self._end = end

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Config({dict(self._values)!r})"

    def value(self, key: str) -> Optional[str]:
        """Value for ``key``, falling back to its alias."""
        if key in self._values:
            return self._values[key]
        alias = KEY_ALIASES.get(key)
        if alias:
            return self._values.get(alias)
        return None

    @property
    def start(self) -> datetime:
        return self._start

    @property
    def end(self) -> datetime:
        return self._end

    @property
    def title(self) -> str:
        return self.value("title") or ""

    @property
    def bar_type(self) -> Optional[BarType]:
        raw = self.value("type")
        return BarType.parse(raw) if raw else None

    @property
    def progress_type(self) -> Optional[ProgressType]:
        raw = self.value("progressType")
        return ProgressType.parse(raw) if raw else None

    @property
    def update_in_real_time(self) -> Optional[bool]:
        raw = self.value("updateInRealTime")
        if raw is None:
            return None
        return raw.lower() == "true"

    @property
    def update_interval_seconds(self) -> Optional[float]:
        """
        Per-block refresh interval in seconds.

        The leading number is used and anything after it is ignored, so
        "1.5" and "30s" are both accepted.

        Raises:
            ValidationError: If the value does not start with a number.
        """
        raw = self.value("updateIntervalInSeconds")
        if raw is None:
            return None
        match = LEADING_NUMBER.match(raw)
        if not match:
            raise ValidationError(f"Update interval must be a number of seconds: {raw}")
        return float(match.group(0))


def split_lines(source: str) -> Dict[str, str]:
    """
    Collect ``key: value`` pairs from the block.

    Only the first colon separates key from value. Repeated keys keep the
    last value.
    """
    values: Dict[str, str] = {}

    for line in source.strip().splitlines():
        line = line.strip()
        if not line or ":" not in line:
            continue

        key, value = line.split(":", 1)
        key = key.strip()
        value = value.strip()
        if key and value:
            values[key] = value

    return values


def parse(source: str, now: Optional[datetime] = None) -> Config:
    """
    Parse and validate a countdown block.

    Rules are checked in order and the first failure is raised:

    1. a start date or start time is required;
    2. an end date or end time is required;
    3. a time-only start cannot be paired with a dated end;
    4. start and end must resolve to distinct instants, end after start.

    Args:
        source: Raw block text.
        now: Reference time for time-only components (default: now).

    Returns:
        Config with resolved start and end instants.

    Raises:
        ValidationError: Missing or contradictory fields.
        InvalidTemporalInput: A date or time does not parse.
        DegenerateInterval: Start equals end, or end precedes start.
    """
    values = split_lines(source)
    now = now or datetime.now()

    start_date = values.get("startDate")
    start_time = values.get("startTime")
    end_date = values.get("endDate")
    end_time = values.get("endTime")

    if not start_date and not start_time:
        raise ValidationError("Start date or start time is required")

    if not end_date and not end_time:
        raise ValidationError("End date or end time is required")

    if start_time and not start_date and end_date:
        raise ValidationError(
            "Start time with no start date requires an end time with no end date"
        )

    start = resolve_instant(start_date, start_time, now, label="start")
    end = resolve_instant(end_date, end_time, now, label="end")

    if start == end:
        raise DegenerateInterval("Start date and end date cannot be the same")
    if end < start:
        raise DegenerateInterval("End date/time must be after start date/time.")

    return Config(values, start, end)
