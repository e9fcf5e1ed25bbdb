"""
countdown_to/sink.py

Output side of a rendered countdown.

The scheduler never draws anything itself. It pushes a bar value and text
into a Sink, which the host implements. ``BarSink`` adapts a drawing object
with a single ``set(progress)`` method, ``ConsoleSink`` prints a text bar.
"""

import sys
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, TextIO

from .params import BarType


@dataclass(frozen=True)
class Appearance:
    """Presentation values passed through to the host untouched."""

    bar_type: BarType
    color: str
    trail_color: str


class Sink(Protocol):
    """Receives everything a countdown renders."""

    def set_appearance(self, appearance: Appearance) -> None:
        ...

    def set_progress(self, fraction: float) -> None:
        ...

    def set_info_text(self, text: str) -> None:
        ...

    def set_error_text(self, text: str) -> None:
        ...

    def set_title(self, text: str) -> None:
        ...


class Bar(Protocol):
    """A visual bar; ``progress`` is in [0, 1]."""

    def set(self, progress: float) -> None:
        ...


class BarSink:
    """
    Sink that forwards the bar value to a Bar and text to callbacks.

    Args:
        bar: Drawing object with a ``set(progress)`` method.
        on_info: Called with info text.
        on_error: Called with error text (default: on_info).
        on_title: Called with the title (default: ignored).
        on_appearance: Called with the Appearance (default: ignored).
    """

    def __init__(
        self,
        bar: Bar,
        on_info: Callable[[str], None],
        on_error: Optional[Callable[[str], None]] = None,
        on_title: Optional[Callable[[str], None]] = None,
        on_appearance: Optional[Callable[[Appearance], None]] = None,
    ):
        self.bar = bar
        self.on_info = on_info
        self.on_error = on_error or on_info
        self.on_title = on_title
        self.on_appearance = on_appearance

    def set_appearance(self, appearance: Appearance) -> None:
        if self.on_appearance:
            self.on_appearance(appearance)

    def set_progress(self, fraction: float) -> None:
        self.bar.set(fraction)

    def set_info_text(self, text: str) -> None:
        self.on_info(text)

    def set_error_text(self, text: str) -> None:
        self.on_error(text)

    def set_title(self, text: str) -> None:
        if self.on_title:
            self.on_title(text)


class ConsoleSink:
    """
    Prints one line per render, e.g. ``Launch [#####-----]  50% 12 hours left``.

    The line is written when info or error text arrives, which is the last
    call of every render.

    Args:
        stream: Output stream (default: stdout).
        width: Number of cells in the text bar.
    """

    def __init__(self, stream: Optional[TextIO] = None, width: int = 20):
        self.stream = stream or sys.stdout
        self.width = width
        self.title = ""
        self.fraction = 0.0
        self.appearance: Optional[Appearance] = None

    def set_appearance(self, appearance: Appearance) -> None:
        self.appearance = appearance

    def set_progress(self, fraction: float) -> None:
        self.fraction = fraction

    def set_title(self, text: str) -> None:
        self.title = text

    def set_info_text(self, text: str) -> None:
        self._write(f"{self.render_bar()} {text}")

    def set_error_text(self, text: str) -> None:
        self._write(text)

    def render_bar(self) -> str:
        filled = int(round(self.fraction * self.width))
        bar = "#" * filled + "-" * (self.width - filled)
        return f"[{bar}] {int(self.fraction * 100):3d}%"

    def _write(self, line: str) -> None:
        prefix = f"{self.title} " if self.title else ""
        self.stream.write(f"{prefix}{line}\n")
        self.stream.flush()
