"""
countdown_to/template.py

Placeholder substitution for countdown info text.

Placeholders:
    {percent}                      whole percent complete (floored)
    {start} {end} {current}        ISO calendar date
    {remaining} {elapsed} {total}  human-readable duration
    {title}                        block title
    {start:FMT} {end:FMT} {current:FMT}              token-formatted date
    {remaining:FMT} {elapsed:FMT} {total:FMT}        token-formatted duration

Formatted placeholders are substituted before plain ones so "{total:hh}"
never collides with "{total}". Anything else is left as written.
"""

import re
from datetime import timedelta

from .temporal import DurationParts, Moments, ProgressState, Rounding, decompose
from .tokens import format_datetime, format_duration


DATE_FIELDS = ("start", "end", "current")
DURATION_FIELDS = ("remaining", "elapsed", "total")

FORMATTED_PATTERNS = {
    name: re.compile(r"\{" + name + r":(.*?)\}")
    for name in DATE_FIELDS + DURATION_FIELDS
}


def _unit(amount: int, label: str) -> str:
    return f"{amount} {label}{'' if amount == 1 else 's'}"


def format_parts(parts: DurationParts) -> str:
    """
    Render decomposed duration as text.

    Days stand alone; hours and minutes carry the smaller units with them:

        3 days
        2 hours 14 minutes 3 seconds
        5 minutes 0 seconds
        42 seconds
    """
    if parts.days > 0:
        return _unit(parts.days, "day")
    if parts.hours > 0:
        return " ".join([
            _unit(parts.hours, "hour"),
            _unit(parts.minutes, "minute"),
            _unit(parts.seconds, "second"),
        ])
    if parts.minutes > 0:
        return " ".join([
            _unit(parts.minutes, "minute"),
            _unit(parts.seconds, "second"),
        ])
    return _unit(parts.seconds, "second")


def format_duration_text(delta: timedelta, rounding: Rounding = Rounding.FLOOR) -> str:
    """Human-readable duration, e.g. "12 hours 0 minutes 0 seconds"."""
    return format_parts(decompose(delta, rounding))


class TemplateFormatter:
    """
    Renders info templates against a progress state.

    Args:
        rounding: Rounding policy used for plain duration placeholders.
    """

    def __init__(self, rounding: Rounding = Rounding.FLOOR):
        self.rounding = Rounding(rounding)

    def format(
        self,
        template: str,
        state: ProgressState,
        moments: Moments,
        title: str = "",
    ) -> str:
        """
        Substitute every placeholder in ``template``.

        Args:
            template: Info template, e.g. "{percent}% - {remaining} left".
            state: Progress state for this evaluation.
            moments: Start, end and current instants.
            title: Block title.

        Returns:
            The rendered text.
        """
        dates = {
            "start": moments.start,
            "end": moments.end,
            "current": moments.current,
        }
        durations = {
            "remaining": state.remaining,
            "elapsed": state.elapsed,
            "total": state.total,
        }

        text = template

        for name, value in dates.items():
            text = FORMATTED_PATTERNS[name].sub(
                lambda match, value=value: format_datetime(value, match.group(1)),
                text,
            )
        for name, value in durations.items():
            text = FORMATTED_PATTERNS[name].sub(
                lambda match, value=value: format_duration(value, match.group(1)),
                text,
            )

        text = text.replace("{percent}", str(state.percent))
        for name, value in dates.items():
            text = text.replace(f"{{{name}}}", value.date().isoformat())
        text = text.replace("{title}", title or "")

        for name, value in durations.items():
            placeholder = f"{{{name}}}"
            if placeholder in text:
                text = text.replace(
                    placeholder, format_duration_text(value, self.rounding)
                )

        return text

    def format_complete(self, template: str, title: str = "") -> str:
        """Render the on-complete text; only {title} is substituted."""
        return template.replace("{title}", title or "")
