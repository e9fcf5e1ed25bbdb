"""
tests/unit/test_scheduler.py

Unit tests for InstanceScheduler: render pipeline, registry, settings
changes and timer handling.
"""

import asyncio
import logging
from itertools import cycle

import pytest

from countdown_to.config import Settings
from countdown_to.errors import SettingsError
from countdown_to.events import RERENDER_EVENT, Event, EventBus
from countdown_to.params import BarType
from countdown_to.scheduler import ERROR_PREFIX, InstanceScheduler
from countdown_to.temporal import Phase, Rounding


STATIC = "updateInRealTime: false"

DAY_BLOCK = f"""
title: Launch
startDate: 2025-01-01
endDate: 2025-01-02
{STATIC}
"""


@pytest.fixture
def scheduler(clock):
    return InstanceScheduler(clock=clock)


# =============================================================================
# Rendering
# =============================================================================

class TestRender:
    """Tests for the render pipeline."""

    def test_call_order(self, scheduler, sink):
        scheduler.mount(DAY_BLOCK, sink)

        assert [name for name, _ in sink.calls] == ["appearance", "title", "progress", "info"]

    def test_default_info_text(self, scheduler, sink):
        scheduler.mount(DAY_BLOCK, sink)

        assert sink.last("progress") == 0.5
        assert sink.last("info") == "50% - 12 hours 0 minutes 0 seconds left"
        assert sink.last("title") == "Launch"

    def test_no_title_not_pushed(self, scheduler, sink):
        scheduler.mount("startDate: 2025-01-01\nendDate: 2025-01-02\n" + STATIC, sink)

        assert sink.values("title") == []

    def test_default_appearance(self, scheduler, sink):
        scheduler.mount(DAY_BLOCK, sink)

        appearance = sink.last("appearance")
        assert appearance.bar_type is BarType.LINE
        assert appearance.color == "#4CAF50"
        assert appearance.trail_color == "#e0e0e0"

    def test_block_appearance(self, scheduler, sink):
        block = DAY_BLOCK + "type: Circle\ncolor: #ff0000\nbackgroundColor: #111111\n"
        scheduler.mount(block, sink)

        appearance = sink.last("appearance")
        assert appearance.bar_type is BarType.CIRCLE
        assert appearance.color == "#ff0000"
        assert appearance.trail_color == "#111111"

    def test_custom_info_format(self, scheduler, sink):
        block = DAY_BLOCK + "infoFormat: {title} ends {end:LLL d}\n"
        scheduler.mount(block, sink)

        assert sink.last("info") == "Launch ends Jan 2"

    def test_forward_bar_floored(self, scheduler, sink):
        block = f"startDate: 2025-01-01T11:00\nendDate: 2025-01-01T14:00\n{STATIC}"
        scheduler.mount(block, sink)

        assert sink.last("progress") == 0.33
        assert sink.last("info").startswith("33% - ")

    def test_countdown_bar(self, scheduler, sink):
        block = f"startDate: 2025-01-01T11:00\nendDate: 2025-01-01T14:00\nprogressType: countdown\n{STATIC}"
        scheduler.mount(block, sink)

        assert sink.last("progress") == pytest.approx(2 / 3)

    def test_time_only_block(self, scheduler, sink):
        scheduler.mount(f"startTime: 9\nendTime: 17:00\n{STATIC}", sink)

        assert sink.last("info") == "37% - 5 hours 0 minutes 0 seconds left"


class TestPhases:
    """Tests for upcoming/active/complete handling."""

    def test_upcoming(self, scheduler, sink):
        block = f"startDate: 2025-01-01T14:30\nendDate: 2025-01-02\n{STATIC}"
        scheduler.mount(block, sink)

        assert sink.last("progress") == 0
        assert sink.last("info") == "2 hours 30 minutes 0 seconds until start"

    def test_upcoming_countdown_bar_full(self, scheduler, sink):
        block = f"startDate: 2025-01-01T14:30\nendDate: 2025-01-02\nprogressType: countdown\n{STATIC}"
        scheduler.mount(block, sink)

        assert sink.last("progress") == 1.0

    def test_custom_upcoming_format(self, scheduler, sink):
        block = (
            "startDate: 2025-01-01T12:00:30\nendDate: 2025-01-02\n"
            f"infoFormatUpcoming: starts in {{remaining:ss}}s\n{STATIC}"
        )
        scheduler.mount(block, sink)

        assert sink.last("info") == "starts in 30s"

    def test_upcoming_becomes_active(self, scheduler, sink, clock):
        block = f"startDate: 2025-01-01T13:00\nendDate: 2025-01-01T15:00\n{STATIC}"
        instance_id = scheduler.mount(block, sink)

        clock.advance(hours=2)
        state = scheduler.refresh(instance_id)

        assert state.phase is Phase.ACTIVE
        assert sink.last("info") == "50% - 1 hour 0 minutes 0 seconds left"

    def test_complete_text(self, scheduler, sink, clock):
        instance_id = scheduler.mount(DAY_BLOCK, sink)

        clock.advance(days=1)
        state = scheduler.refresh(instance_id)

        assert state.is_complete
        assert sink.last("progress") == 1.0
        assert sink.last("info") == "Launch is done!"

    def test_custom_complete_text(self, scheduler, sink):
        block = (
            f"title: Sprint\nstartDate: 2024-12-01\nendDate: 2024-12-02\n"
            f"onCompleteText: {{title}} over ({{percent}})\n{STATIC}"
        )
        scheduler.mount(block, sink)

        assert sink.last("info") == "Sprint over ({percent})"

    def test_completed_countdown_bar_empty(self, scheduler, sink):
        block = f"startDate: 2024-12-01\nendDate: 2024-12-02\nprogressType: countdown\n{STATIC}"
        scheduler.mount(block, sink)

        assert sink.last("progress") == 0.0


class TestErrors:
    """Tests for error rendering."""

    def test_missing_start(self, scheduler, sink):
        scheduler.mount("endDate: 2025-01-02", sink)

        assert sink.last("error") == f"{ERROR_PREFIX}Start date or start time is required"
        assert sink.values("progress") == []

    def test_degenerate_interval(self, scheduler, sink):
        scheduler.mount("startDate: 2025-01-02\nendDate: 2025-01-01", sink)

        assert sink.last("error") == (
            f"{ERROR_PREFIX}End date/time must be after start date/time."
        )

    def test_invalid_date(self, scheduler, sink):
        scheduler.mount("startDate: 2025-13-01\nendDate: 2025-12-31", sink)

        assert sink.last("error").startswith(f"{ERROR_PREFIX}Invalid start date or time format")

    def test_invalid_interval(self, scheduler, sink):
        scheduler.mount(DAY_BLOCK + "updateIntervalInSeconds: soon\n", sink)

        assert "must be a number of seconds: soon" in sink.last("error")

    def test_failed_mount_still_registered(self, scheduler, sink):
        instance_id = scheduler.mount("nonsense", sink)

        assert instance_id in scheduler
        assert scheduler.get(instance_id).config is None
        assert scheduler.refresh(instance_id) is None
        assert scheduler.unmount(instance_id) is True

    def test_unexpected_error_rendered(self, scheduler, make_sink, caplog):
        class BrokenSink(make_sink):
            def set_progress(self, fraction):
                raise RuntimeError("display gone")

        sink = BrokenSink()
        with caplog.at_level(logging.ERROR):
            scheduler.mount(DAY_BLOCK, sink)

        assert sink.last("error") == f"{ERROR_PREFIX}display gone"
        assert "Unexpected error" in caplog.text


# =============================================================================
# Registry
# =============================================================================

class TestRegistry:
    """Tests for mount/unmount bookkeeping."""

    def test_ids_unique(self, scheduler, sink, make_sink):
        first = scheduler.mount(DAY_BLOCK, sink)
        second = scheduler.mount(DAY_BLOCK, make_sink())

        assert first != second
        assert len(scheduler) == 2
        assert set(scheduler.instance_ids()) == {first, second}

    def test_id_collision_retried(self, clock, sink, make_sink):
        ids = iter(["a", "a", "b"])
        scheduler = InstanceScheduler(clock=clock, id_factory=lambda: next(ids))

        assert scheduler.mount(DAY_BLOCK, sink) == "a"
        assert scheduler.mount(DAY_BLOCK, make_sink()) == "b"

    def test_id_exhaustion(self, clock, sink, make_sink):
        ids = cycle(["a"])
        scheduler = InstanceScheduler(clock=clock, id_factory=lambda: next(ids))
        scheduler.mount(DAY_BLOCK, sink)

        with pytest.raises(RuntimeError, match="unused instance id"):
            scheduler.mount(DAY_BLOCK, make_sink())

    def test_unmount_unknown(self, scheduler):
        assert scheduler.unmount("missing") is False

    def test_unmount_removes(self, scheduler, sink):
        instance_id = scheduler.mount(DAY_BLOCK, sink)

        assert scheduler.unmount(instance_id) is True
        assert instance_id not in scheduler
        assert scheduler.refresh(instance_id) is None

    def test_teardown(self, scheduler, sink, make_sink):
        scheduler.mount(DAY_BLOCK, sink)
        scheduler.mount(DAY_BLOCK, make_sink())

        scheduler.teardown()

        assert len(scheduler) == 0


# =============================================================================
# Settings
# =============================================================================

class TestSettings:
    """Tests for global settings and re-rendering."""

    def test_global_info_format(self, clock, sink):
        settings = Settings(default_info_format="{percent} percent")
        scheduler = InstanceScheduler(settings=settings, clock=clock)

        scheduler.mount(DAY_BLOCK, sink)

        assert sink.last("info") == "50 percent"

    def test_block_overrides_global(self, clock, sink):
        settings = Settings(default_bar_type="Square", default_progress_type="countdown")
        scheduler = InstanceScheduler(settings=settings, clock=clock)

        scheduler.mount(DAY_BLOCK + "type: semicircle\nprogressType: forward\n", sink)

        assert sink.last("appearance").bar_type is BarType.SEMICIRCLE
        assert sink.last("progress") == 0.5

    def test_ceil_rounding(self, clock, sink):
        scheduler = InstanceScheduler(settings=Settings(duration_rounding="ceil"), clock=clock)
        scheduler.mount(
            f"startDate: 2025-01-01T11:00\nendDate: 2025-01-01T14:00\n"
            f"infoFormat: {{remaining}}\n{STATIC}",
            sink,
        )

        assert sink.last("info") == "1 day"

    def test_settings_changed_rerenders(self, scheduler, sink, make_sink):
        other = make_sink()
        scheduler.mount(DAY_BLOCK, sink)
        scheduler.mount("nonsense", other)

        scheduler.on_settings_changed(Settings(default_info_format="{percent}"))

        assert sink.last("info") == "50"
        assert sink.renders == 2
        assert other.renders == 2

    def test_settings_changed_keeps_settings(self, scheduler, sink):
        scheduler.mount(DAY_BLOCK, sink)
        current = scheduler.settings

        scheduler.on_settings_changed()

        assert scheduler.settings is current
        assert sink.renders == 2

    def test_settings_changed_with_mapping(self, scheduler, sink):
        instance_id = scheduler.mount(DAY_BLOCK, sink)

        scheduler.on_settings_changed({"defaultInfoFormat": "x", "durationRounding": "ceil"})
        scheduler.refresh(instance_id)

        assert isinstance(scheduler.settings, Settings)
        assert scheduler.formatter.rounding is Rounding.CEIL
        assert sink.values("error") == []
        assert sink.values("info")[-2:] == ["x", "x"]

    def test_settings_changed_invalid_mapping(self, scheduler, sink):
        scheduler.mount(DAY_BLOCK, sink)
        current = scheduler.settings

        with pytest.raises(SettingsError):
            scheduler.on_settings_changed({"durationRounding": "nearest"})

        assert scheduler.settings is current
        assert sink.renders == 1

    @pytest.mark.asyncio
    async def test_rerender_event(self, scheduler, sink):
        bus = EventBus()
        scheduler.attach(bus)
        scheduler.mount(DAY_BLOCK, sink)

        await bus.publish(Event(RERENDER_EVENT, {"settings": Settings(default_info_format="x")}))

        assert sink.last("info") == "x"

    @pytest.mark.asyncio
    async def test_detach(self, scheduler, sink):
        bus = EventBus()
        scheduler.attach(bus)
        scheduler.detach(bus)
        scheduler.mount(DAY_BLOCK, sink)

        await bus.publish(Event(RERENDER_EVENT))

        assert sink.renders == 1


# =============================================================================
# Timers
# =============================================================================

class TestTimers:
    """Tests for real-time update timers."""

    REAL_TIME = "startDate: 2025-01-01\nendDate: 2025-01-02\n"

    def test_no_running_loop(self, scheduler, sink, caplog):
        with caplog.at_level(logging.WARNING):
            instance_id = scheduler.mount(self.REAL_TIME, sink)

        assert scheduler.get(instance_id).timer is None
        assert sink.last("info") is not None
        assert "No running event loop" in caplog.text

    def test_static_block_has_no_timer(self, scheduler, sink):
        instance_id = scheduler.mount(DAY_BLOCK, sink)
        assert scheduler.get(instance_id).timer is None

    @pytest.mark.asyncio
    async def test_timer_armed(self, scheduler, sink):
        instance_id = scheduler.mount(self.REAL_TIME + "updateIntervalInSeconds: 5\n", sink)

        timer = scheduler.get(instance_id).timer
        assert timer.running
        assert timer.interval == 5
        scheduler.teardown()
        assert not timer.running

    @pytest.mark.asyncio
    async def test_legacy_interval_key(self, scheduler, sink):
        instance_id = scheduler.mount(self.REAL_TIME + "updateInterval: 7\n", sink)

        assert scheduler.get(instance_id).timer.interval == 7
        scheduler.teardown()

    @pytest.mark.asyncio
    async def test_interval_clamped(self, scheduler, sink):
        instance_id = scheduler.mount(self.REAL_TIME + "updateIntervalInSeconds: 0\n", sink)

        assert scheduler.get(instance_id).timer.interval == 1
        scheduler.teardown()

    @pytest.mark.asyncio
    async def test_global_real_time_off(self, clock, sink):
        scheduler = InstanceScheduler(settings=Settings(update_in_real_time=False), clock=clock)
        instance_id = scheduler.mount(self.REAL_TIME, sink)

        assert scheduler.get(instance_id).timer is None

    @pytest.mark.asyncio
    async def test_block_real_time_on(self, clock, sink):
        scheduler = InstanceScheduler(settings=Settings(update_in_real_time=False), clock=clock)
        instance_id = scheduler.mount(self.REAL_TIME + "updateInRealTime: TRUE\n", sink)

        assert scheduler.get(instance_id).timer.running
        scheduler.teardown()

    @pytest.mark.asyncio
    async def test_unmount_cancels_timer(self, scheduler, sink):
        instance_id = scheduler.mount(self.REAL_TIME, sink)
        task = scheduler.get(instance_id).timer._task

        scheduler.unmount(instance_id)
        await asyncio.sleep(0)

        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_fractional_interval(self, scheduler, sink):
        instance_id = scheduler.mount(self.REAL_TIME + "updateIntervalInSeconds: 1.5\n", sink)

        assert sink.values("error") == []
        assert sink.last("info") == "50% - 12 hours 0 minutes 0 seconds left"
        assert scheduler.get(instance_id).timer.interval == 1.5
        scheduler.teardown()

    @pytest.mark.asyncio
    async def test_rerender_replaces_timer(self, scheduler, sink):
        instance_id = scheduler.mount(self.REAL_TIME, sink)
        first = scheduler.get(instance_id).timer

        scheduler.on_settings_changed()
        second = scheduler.get(instance_id).timer

        assert first is not second
        assert not first.running
        assert second.running
        scheduler.teardown()
