"""
countdown_to/tokens.py

Token-based formatting for dates and durations.

Format strings follow the Luxon token table that block authors already use
("yyyy-MM-dd", "LLL d, yyyy", "hh:mm:ss"). Runs of the same letter form one
token, text inside single quotes is copied verbatim ('' is a literal quote)
and every other character passes through. Letter runs that are not known
tokens are copied literally, so a malformed format degrades to text instead
of failing.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Tuple


MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)

WEEKDAY_NAMES = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)

# (is_literal, text)
Token = Tuple[bool, str]


def tokenize(fmt: str) -> List[Token]:
    """
    Split a format string into literal text and letter-run tokens.

    Args:
        fmt: Format string, e.g. "EEEE, MMMM d 'at' HH:mm".

    Returns:
        List of (is_literal, text) pairs in order.
    """
    tokens: List[Token] = []
    i = 0
    n = len(fmt)

    while i < n:
        ch = fmt[i]

        if ch == "'":
            if i + 1 < n and fmt[i + 1] == "'":
                tokens.append((True, "'"))
                i += 2
                continue
            close = fmt.find("'", i + 1)
            if close == -1:
                # Unterminated quote runs to the end of the format
                tokens.append((True, fmt[i + 1:]))
                break
            tokens.append((True, fmt[i + 1:close]))
            i = close + 1

        elif ch.isalpha():
            j = i
            while j < n and fmt[j] == ch:
                j += 1
            tokens.append((False, fmt[i:j]))
            i = j

        else:
            tokens.append((True, ch))
            i += 1

    return tokens


# =============================================================================
# Dates
# =============================================================================

def _hour12(value: datetime) -> int:
    return value.hour % 12 or 12


def _millis(value: datetime) -> int:
    return value.microsecond // 1000


DATE_TOKENS: Dict[str, Callable[[datetime], str]] = {
    # Year
    "y": lambda d: str(d.year),
    "yy": lambda d: f"{d.year % 100:02d}",
    "yyyy": lambda d: f"{d.year:04d}",
    # Month (format and standalone forms are identical in English)
    "M": lambda d: str(d.month),
    "MM": lambda d: f"{d.month:02d}",
    "MMM": lambda d: MONTH_NAMES[d.month - 1][:3],
    "MMMM": lambda d: MONTH_NAMES[d.month - 1],
    "L": lambda d: str(d.month),
    "LL": lambda d: f"{d.month:02d}",
    "LLL": lambda d: MONTH_NAMES[d.month - 1][:3],
    "LLLL": lambda d: MONTH_NAMES[d.month - 1],
    # Day of month / year
    "d": lambda d: str(d.day),
    "dd": lambda d: f"{d.day:02d}",
    "o": lambda d: str(d.timetuple().tm_yday),
    "ooo": lambda d: f"{d.timetuple().tm_yday:03d}",
    # Weekday (1 = Monday)
    "E": lambda d: str(d.isoweekday()),
    "EEE": lambda d: WEEKDAY_NAMES[d.weekday()][:3],
    "EEEE": lambda d: WEEKDAY_NAMES[d.weekday()],
    "c": lambda d: str(d.isoweekday()),
    "ccc": lambda d: WEEKDAY_NAMES[d.weekday()][:3],
    "cccc": lambda d: WEEKDAY_NAMES[d.weekday()],
    # Time of day
    "H": lambda d: str(d.hour),
    "HH": lambda d: f"{d.hour:02d}",
    "h": lambda d: str(_hour12(d)),
    "hh": lambda d: f"{_hour12(d):02d}",
    "m": lambda d: str(d.minute),
    "mm": lambda d: f"{d.minute:02d}",
    "s": lambda d: str(d.second),
    "ss": lambda d: f"{d.second:02d}",
    "S": lambda d: str(_millis(d)),
    "SSS": lambda d: f"{_millis(d):03d}",
    "a": lambda d: "AM" if d.hour < 12 else "PM",
}


def format_datetime(value: datetime, fmt: str) -> str:
    """
    Render a datetime with a token format.

    Args:
        value: The datetime to render.
        fmt: Token format such as "LLL d, yyyy".

    Returns:
        Rendered text; unknown tokens are copied as written.
    """
    out = []
    for literal, text in tokenize(fmt):
        if literal:
            out.append(text)
            continue
        render = DATE_TOKENS.get(text)
        out.append(render(value) if render else text)
    return "".join(out)


# =============================================================================
# Durations
# =============================================================================

# Duration token letter -> milliseconds per unit, largest first
DURATION_UNITS = {
    "d": 86_400_000,
    "h": 3_600_000,
    "m": 60_000,
    "s": 1_000,
    "S": 1,
}


def shift_duration(delta: timedelta, units: List[str]) -> Dict[str, int]:
    """
    Distribute a duration over the given unit letters, largest first.

    Whatever is left below the smallest requested unit is dropped.

    Args:
        delta: Non-negative duration.
        units: Unit letters from DURATION_UNITS.

    Returns:
        Mapping of unit letter to whole amount.
    """
    remaining = max(delta // timedelta(milliseconds=1), 0)
    amounts: Dict[str, int] = {}

    for unit, size in DURATION_UNITS.items():
        if unit in units:
            amounts[unit], remaining = divmod(remaining, size)

    return amounts


def format_duration(delta: timedelta, fmt: str) -> str:
    """
    Render a duration with a token format.

    Only day, hour, minute, second and millisecond tokens are understood.
    The duration is expressed in exactly the units the format uses, so
    "hh:mm" renders 26h30m as "26:30". Repeating a letter zero-pads to
    the run length.

    Args:
        delta: The duration to render.
        fmt: Token format such as "d 'days' hh:mm".

    Returns:
        Rendered text; other letters are copied as written.
    """
    tokens = tokenize(fmt)
    units = [
        text[0] for literal, text in tokens
        if not literal and text[0] in DURATION_UNITS
    ]
    amounts = shift_duration(delta, units)

    out = []
    for literal, text in tokens:
        if literal or text[0] not in DURATION_UNITS:
            out.append(text)
        else:
            out.append(str(amounts[text[0]]).zfill(len(text)))
    return "".join(out)
