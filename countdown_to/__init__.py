"""
countdown_to

Countdown and progress blocks rendered from declarative text.

Provides:
- Block parsing and validation (params)
- Progress, phase and duration model (temporal)
- Placeholder templates with date/duration tokens (template, tokens)
- Live instance scheduling with per-instance refresh timers (scheduler)
- A NATS host adapter (plugin)
"""

from .config import Settings, load_settings, save_settings
from .errors import (
    CountdownToError,
    DegenerateInterval,
    InvalidTemporalInput,
    SettingsError,
    ValidationError,
)
from .events import RERENDER_EVENT, Event, EventBus
from .params import BarType, Config, ProgressType, parse
from .scheduler import Instance, InstanceScheduler
from .sink import Appearance, Bar, BarSink, ConsoleSink, Sink
from .temporal import (
    DurationParts,
    Moments,
    Phase,
    ProgressState,
    Rounding,
    compute_progress,
    decompose,
    resolve_instant,
)
from .template import TemplateFormatter, format_duration_text
from .timer import RepeatingTimer

__version__ = "1.0.0"

__all__ = [
    "Appearance",
    "Bar",
    "BarSink",
    "BarType",
    "Config",
    "ConsoleSink",
    "CountdownToError",
    "DegenerateInterval",
    "DurationParts",
    "Event",
    "EventBus",
    "Instance",
    "InstanceScheduler",
    "InvalidTemporalInput",
    "Moments",
    "Phase",
    "ProgressState",
    "ProgressType",
    "RERENDER_EVENT",
    "RepeatingTimer",
    "Rounding",
    "Settings",
    "SettingsError",
    "Sink",
    "TemplateFormatter",
    "ValidationError",
    "compute_progress",
    "decompose",
    "format_duration_text",
    "load_settings",
    "parse",
    "resolve_instant",
    "save_settings",
]
