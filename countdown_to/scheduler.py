"""
countdown_to/scheduler.py

Registry of live countdown instances.

Each mounted block gets an instance record holding its sink, its source text
and, when real-time updates are on, one RepeatingTimer. Every render goes
through the same pipeline:

    parse -> appearance/title -> evaluate -> arm timer

Block errors never reach the caller; they are rendered as error text
through the instance's sink.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .config import Settings
from .errors import CountdownToError
from .events import RERENDER_EVENT, Event, EventBus
from .params import BarType, Config, ProgressType, parse
from .sink import Appearance, Sink
from .temporal import Moments, ProgressState, compute_progress
from .template import TemplateFormatter
from .timer import RepeatingTimer


ERROR_PREFIX = "Error rendering countdown to: "

# Attempts at finding an unused id before giving up
MAX_ID_ATTEMPTS = 100


def random_id() -> str:
    """Opaque 12-character instance id."""
    return uuid.uuid4().hex[:12]


@dataclass
class Instance:
    """
    One mounted countdown block.

    Attributes:
        instance_id: Key in the scheduler registry.
        sink: Where renders go.
        source: Original block text, re-parsed on settings changes.
        config: Result of the last successful parse (None after an error).
        timer: Active refresh timer, if any.
    """

    instance_id: str
    sink: Sink
    source: str
    config: Optional[Config] = None
    timer: Optional[RepeatingTimer] = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class InstanceScheduler:
    """
    Owns live countdown instances and keeps them rendered.

    Args:
        settings: Global defaults (default: built-in Settings()).
        clock: Returns the current naive local time (default: datetime.now).
        id_factory: Produces candidate instance ids (default: random_id).
        logger: Optional logger instance.
    """

    SUBSCRIBER = "countdown_to.scheduler"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings or Settings()
        self.clock = clock or datetime.now
        self.id_factory = id_factory or random_id
        self.formatter = TemplateFormatter(self.settings.rounding)
        self.logger = logger or logging.getLogger("countdown_to.scheduler")
        self._instances: Dict[str, Instance] = {}

    # =========================================================================
    # Registry
    # =========================================================================

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, instance_id: str) -> bool:
        return instance_id in self._instances

    def get(self, instance_id: str) -> Optional[Instance]:
        """Instance record for ``instance_id``, or None."""
        return self._instances.get(instance_id)

    def instance_ids(self) -> List[str]:
        """Ids of all live instances."""
        return list(self._instances.keys())

    def _allocate_id(self) -> str:
        """
        Pick an id not used by any live instance.

        Raises:
            RuntimeError: If the id factory keeps returning live ids.
        """
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self.id_factory()
            if candidate not in self._instances:
                return candidate
        raise RuntimeError(
            f"Could not allocate an unused instance id after {MAX_ID_ATTEMPTS} attempts"
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def mount(self, source: str, sink: Sink) -> str:
        """
        Register a block and render it.

        A block that fails to parse is still registered (its error text is
        on the sink) so it can be unmounted or re-rendered later.

        Args:
            source: Declarative block text.
            sink: Receives the rendered output.

        Returns:
            The new instance id.
        """
        instance_id = self._allocate_id()
        instance = Instance(instance_id=instance_id, sink=sink, source=source)
        self._instances[instance_id] = instance

        self.logger.debug(f"Mounting instance {instance_id}")
        self._render(instance)
        return instance_id

    def unmount(self, instance_id: str) -> bool:
        """
        Cancel an instance's timer and forget it.

        Returns:
            True if the instance was live, False otherwise.
        """
        instance = self._instances.get(instance_id)
        if instance is None:
            return False

        instance.cancel_timer()
        del self._instances[instance_id]
        self.logger.debug(f"Unmounted instance {instance_id}")
        return True

    def teardown(self) -> None:
        """Cancel every timer and clear the registry."""
        count = len(self._instances)
        for instance in self._instances.values():
            instance.cancel_timer()
        self._instances.clear()
        self.logger.info(f"Scheduler torn down ({count} instances)")

    def on_settings_changed(self, settings: Union[Settings, Dict[str, Any], None] = None) -> None:
        """
        Re-render every live instance from its source text.

        Args:
            settings: New global settings, or a mapping of changes merged
                into the current ones; None keeps the current ones.

        Raises:
            SettingsError: If a mapping holds invalid values. Nothing is
                changed or re-rendered in that case.
        """
        if settings is not None:
            if not isinstance(settings, Settings):
                settings = self.settings.merged(settings)
            formatter = TemplateFormatter(settings.rounding)
            self.settings = settings
            self.formatter = formatter

        self.logger.info(f"Settings changed, re-rendering {len(self._instances)} instances")
        for instance in list(self._instances.values()):
            self._render(instance)

    def refresh(self, instance_id: str) -> Optional[ProgressState]:
        """
        Run one evaluate-and-render step now.

        Returns:
            The computed state, or None if the instance is gone or failed.
        """
        return self._tick(instance_id)

    def attach(self, event_bus: EventBus) -> None:
        """Re-render on every ``countdown_to.rerender`` event."""
        event_bus.subscribe(RERENDER_EVENT, self._on_rerender, self.SUBSCRIBER)

    def detach(self, event_bus: EventBus) -> None:
        event_bus.unsubscribe(RERENDER_EVENT, self.SUBSCRIBER)

    async def _on_rerender(self, event: Event) -> None:
        self.on_settings_changed(event.data.get("settings"))

    # =========================================================================
    # Render Pipeline
    # =========================================================================

    def _render(self, instance: Instance) -> None:
        """Parse, push appearance and title, evaluate, then arm the timer."""
        instance.cancel_timer()
        instance.config = None

        try:
            config = parse(instance.source, self.clock())
            real_time = self._real_time(config)
            interval = self._interval(config)
            instance.config = config

            instance.sink.set_appearance(self._appearance(config))
            if config.title:
                instance.sink.set_title(config.title)

            self._evaluate(instance)

            if real_time:
                self._arm(instance, interval)

        except CountdownToError as e:
            self._fail(instance, e)
        except Exception as e:
            self.logger.exception(f"Unexpected error rendering {instance.instance_id}: {e}")
            self._fail(instance, e)

    def _tick(self, instance_id: str) -> Optional[ProgressState]:
        instance = self._instances.get(instance_id)
        if instance is None or instance.config is None:
            return None

        try:
            return self._evaluate(instance)
        except CountdownToError as e:
            self._fail(instance, e)
        except Exception as e:
            self.logger.exception(f"Unexpected error updating {instance_id}: {e}")
            self._fail(instance, e)
        return None

    def _evaluate(self, instance: Instance) -> ProgressState:
        """
        Compute progress for now and push bar value and info text.

        Before the start the bar covers the time from now until the start
        and the upcoming template is used; once the start has passed the
        configured interval takes over.
        """
        config = instance.config
        now = self.clock()
        rounding = self.settings.rounding

        if config.start > now:
            state = compute_progress(now, config.start, now, upcoming=True, rounding=rounding)
            moments = Moments(start=now, end=config.start, current=now)
            template = (
                config.value("infoFormatUpcoming")
                or self.settings.default_info_format_upcoming
            )
        else:
            state = compute_progress(config.start, config.end, now, rounding=rounding)
            moments = Moments(start=config.start, end=config.end, current=now)
            template = config.value("infoFormat") or self.settings.default_info_format

        instance.sink.set_progress(self._bar_value(config, state))

        if state.is_complete:
            on_complete = config.value("onCompleteText") or self.settings.default_on_complete_text
            text = self.formatter.format_complete(on_complete, config.title)
        else:
            text = self.formatter.format(template, state, moments, config.title)

        instance.sink.set_info_text(text)
        self.logger.debug(
            f"Instance {instance.instance_id}: {state.phase.value} {state.fraction:.4f}"
        )
        return state

    def _arm(self, instance: Instance, interval: float) -> None:
        instance_id = instance.instance_id
        timer = RepeatingTimer(
            interval,
            lambda: self._tick(instance_id),
            name=instance_id,
            logger=self.logger,
        )
        try:
            timer.start()
        except RuntimeError:
            self.logger.warning(
                f"No running event loop, real-time updates disabled for {instance_id}"
            )
            return
        instance.timer = timer

    def _fail(self, instance: Instance, error: Exception) -> None:
        self.logger.debug(f"Instance {instance.instance_id} failed: {error}")
        instance.sink.set_error_text(f"{ERROR_PREFIX}{error}")

    # =========================================================================
    # Settings Resolution
    # =========================================================================

    def _real_time(self, config: Config) -> bool:
        if config.update_in_real_time is not None:
            return config.update_in_real_time
        return self.settings.update_in_real_time

    def _interval(self, config: Config) -> float:
        interval = config.update_interval_seconds
        if interval is None:
            interval = self.settings.update_interval_seconds
        return max(interval, self.settings.min_update_interval_seconds)

    def _appearance(self, config: Config) -> Appearance:
        return Appearance(
            bar_type=config.bar_type or BarType.parse(self.settings.default_bar_type),
            color=config.value("color") or self.settings.default_bar_color,
            trail_color=config.value("trailColor") or self.settings.default_trail_color,
        )

    def _bar_value(self, config: Config, state: ProgressState) -> float:
        progress_type = config.progress_type or ProgressType.parse(
            self.settings.default_progress_type
        )
        if progress_type is ProgressType.COUNTDOWN:
            return 1.0 - state.fraction
        return math.floor(state.fraction * 100) / 100
