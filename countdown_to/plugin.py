"""
countdown_to/plugin.py

NATS host adapter for countdown blocks.

NATS Subjects:
    Command Handlers:
        countdown_to.command.mount - Mount a block, reply with its instance id
        countdown_to.command.unmount - Unmount an instance
        countdown_to.command.settings - Change global settings

    Events (Published):
        countdown_to.render.<instance_id> - Latest render frame of an instance
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Set

from nats.aio.client import Client as NATS

from .config import Settings, load_settings, save_settings
from .errors import SettingsError
from .events import RERENDER_EVENT, Event, EventBus
from .scheduler import InstanceScheduler
from .sink import Appearance


class NatsSink:
    """
    Sink that publishes render frames over NATS.

    Setters update a frame dict; one publish per event-loop iteration
    carries the whole frame, so a render of several fields costs one message.
    The instance id is bound right after mount, before the first flush runs.

    Args:
        nats_client: Connected NATS client.
        subject_prefix: Frames go to ``<subject_prefix>.<instance_id>``.
        logger: Optional logger instance.
    """

    def __init__(
        self,
        nats_client: NATS,
        subject_prefix: str,
        logger: Optional[logging.Logger] = None,
    ):
        self.nats = nats_client
        self.subject_prefix = subject_prefix
        self.instance_id: Optional[str] = None
        self.frame: Dict[str, Any] = {
            "title": None,
            "appearance": None,
            "progress": None,
            "info": None,
            "error": None,
        }
        self.logger = logger or logging.getLogger("plugin.countdown_to.sink")
        self._flush_scheduled = False
        self._pending: Set[asyncio.Task] = set()

    @property
    def subject(self) -> str:
        return f"{self.subject_prefix}.{self.instance_id}"

    def set_appearance(self, appearance: Appearance) -> None:
        self._update(appearance={
            "type": appearance.bar_type.value,
            "color": appearance.color,
            "trailColor": appearance.trail_color,
        })

    def set_progress(self, fraction: float) -> None:
        self._update(progress=fraction)

    def set_info_text(self, text: str) -> None:
        self._update(info=text, error=None)

    def set_error_text(self, text: str) -> None:
        self._update(error=text, info=None)

    def set_title(self, text: str) -> None:
        self._update(title=text)

    def _update(self, **changes: Any) -> None:
        self.frame.update(changes)
        if not self._flush_scheduled:
            self._flush_scheduled = True
            asyncio.get_running_loop().call_soon(self._flush)

    def _flush(self) -> None:
        self._flush_scheduled = False
        frame = {"instance_id": self.instance_id, **self.frame}
        task = asyncio.get_running_loop().create_task(self._publish(frame))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, frame: Dict[str, Any]) -> None:
        try:
            await self.nats.publish(self.subject, json.dumps(frame).encode())
        except Exception as e:
            self.logger.error(f"Failed to publish frame for {self.instance_id}: {e}")


class CountdownToPlugin:
    """
    Serves countdown blocks to NATS clients.

    Config keys:
        settings_path: JSON/YAML settings file loaded at startup and
            rewritten on settings changes.
        settings: Inline settings mapping (used when no path is given).
    """

    NAMESPACE = "countdown_to"
    VERSION = "1.0.0"

    # NATS subjects - Commands
    SUBJECT_MOUNT = "countdown_to.command.mount"
    SUBJECT_UNMOUNT = "countdown_to.command.unmount"
    SUBJECT_SETTINGS = "countdown_to.command.settings"

    # NATS subjects - Events
    RENDER_PREFIX = "countdown_to.render"

    def __init__(self, nats_client: NATS, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the plugin.

        Args:
            nats_client: Connected NATS client for messaging.
            config: Optional configuration dictionary.
        """
        self.nats = nats_client
        self.config = config or {}
        self.logger = logging.getLogger(f"plugin.{self.NAMESPACE}")

        path = self.config.get("settings_path")
        self.settings_path: Optional[Path] = Path(path) if path else None

        self.settings: Optional[Settings] = None
        self.event_bus: Optional[EventBus] = None
        self.scheduler: Optional[InstanceScheduler] = None

        self._subscriptions = []
        self._initialized = False

    async def initialize(self) -> None:
        """
        Initialize the plugin.

        - Loads settings
        - Creates the event bus and scheduler
        - Subscribes to NATS subjects
        """
        self.logger.info(f"Initializing {self.NAMESPACE} plugin v{self.VERSION}")

        if self.settings_path:
            self.settings = load_settings(self.settings_path)
        else:
            self.settings = Settings.from_dict(self.config.get("settings"))

        self.event_bus = EventBus()
        self.scheduler = InstanceScheduler(settings=self.settings)
        self.scheduler.attach(self.event_bus)

        sub = await self.nats.subscribe(self.SUBJECT_MOUNT, cb=self._handle_mount)
        self._subscriptions.append(sub)

        sub = await self.nats.subscribe(self.SUBJECT_UNMOUNT, cb=self._handle_unmount)
        self._subscriptions.append(sub)

        sub = await self.nats.subscribe(self.SUBJECT_SETTINGS, cb=self._handle_settings)
        self._subscriptions.append(sub)

        self._initialized = True
        self.logger.info(f"{self.NAMESPACE} plugin loaded")

    async def shutdown(self) -> None:
        """
        Shutdown the plugin.

        - Cancels every instance timer
        - Unsubscribes from NATS subjects
        """
        if self.scheduler:
            self.scheduler.teardown()
            if self.event_bus:
                self.scheduler.detach(self.event_bus)

        for sub in self._subscriptions:
            await sub.unsubscribe()
        self._subscriptions.clear()

        if self.event_bus:
            stats = self.event_bus.get_stats()
            self.logger.info(
                f"Re-render events: {stats['events_published']} published, "
                f"{stats['handler_errors']} handler errors"
            )

        self._initialized = False
        self.logger.info(f"{self.NAMESPACE} plugin unloaded")

    # =========================================================================
    # Command Handlers
    # =========================================================================

    async def _handle_mount(self, msg) -> None:
        """
        Mount a countdown block.

        Message format:
        {
            "source": "startDate: 2025-01-01\\nendDate: 2025-01-10",
            "reply_to": "countdown_to.reply.xyz"
        }
        """
        try:
            data = json.loads(msg.data.decode())
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in mount request: {e}")
            return

        reply_to = data.get("reply_to")
        source = data.get("source")
        if not isinstance(source, str) or not source.strip():
            await self._send_reply(reply_to, {
                "success": False,
                "error": "A block source is required",
            })
            return

        sink = NatsSink(self.nats, self.RENDER_PREFIX)
        instance_id = self.scheduler.mount(source, sink)
        sink.instance_id = instance_id

        self.logger.info(f"Mounted countdown {instance_id}")
        await self._send_reply(reply_to, {
            "success": True,
            "instance_id": instance_id,
        })

    async def _handle_unmount(self, msg) -> None:
        """
        Unmount an instance.

        Message format:
        {
            "instance_id": "3f2a9c1b7d0e",
            "reply_to": "countdown_to.reply.xyz"
        }
        """
        try:
            data = json.loads(msg.data.decode())
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in unmount request: {e}")
            return

        instance_id = data.get("instance_id")
        removed = self.scheduler.unmount(instance_id) if instance_id else False

        await self._send_reply(data.get("reply_to"), {
            "success": True,
            "removed": removed,
        })

    async def _handle_settings(self, msg) -> None:
        """
        Merge new global settings and re-render every instance.

        Message format:
        {
            "settings": {"defaultBarType": "Circle"},
            "reply_to": "countdown_to.reply.xyz"
        }
        """
        try:
            data = json.loads(msg.data.decode())
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in settings request: {e}")
            return

        reply_to = data.get("reply_to")
        try:
            settings = self.settings.merged(data.get("settings") or {})
        except SettingsError as e:
            await self._send_reply(reply_to, {"success": False, "error": str(e)})
            return

        self.settings = settings
        if self.settings_path:
            try:
                save_settings(settings, self.settings_path)
            except OSError as e:
                self.logger.error(f"Could not save settings to {self.settings_path}: {e}")

        await self.event_bus.publish(
            Event(RERENDER_EVENT, {"settings": settings}, source=self.NAMESPACE)
        )
        await self._send_reply(reply_to, {
            "success": True,
            "settings": settings.to_dict(),
        })

    # =========================================================================
    # Utility Methods
    # =========================================================================

    async def _send_reply(self, reply_to: Optional[str], response: dict) -> None:
        """
        Send a reply to a command.

        Args:
            reply_to: NATS subject to reply to.
            response: Response dictionary.
        """
        if reply_to:
            await self.nats.publish(reply_to, json.dumps(response).encode())
