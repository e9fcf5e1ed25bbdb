"""
countdown_to/errors.py

Exceptions raised while turning a countdown block into a rendered state.
"""


class CountdownToError(Exception):
    """Base exception for countdown block errors."""
    pass


class ValidationError(CountdownToError):
    """Block fields are missing, malformed or contradictory."""
    pass


class InvalidTemporalInput(CountdownToError):
    """A date or time string does not parse to a valid instant."""
    pass


class DegenerateInterval(CountdownToError):
    """Start and end resolve to the same instant, or end precedes start."""
    pass


class SettingsError(CountdownToError):
    """Settings file unreadable or settings values invalid."""
    pass
