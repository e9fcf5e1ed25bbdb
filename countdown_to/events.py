"""
countdown_to/events.py

In-process pub/sub used to broadcast re-render requests.

When global settings change the host publishes ``countdown_to.rerender``;
every attached scheduler re-renders its live instances in response.
"""

import fnmatch
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple


RERENDER_EVENT = "countdown_to.rerender"


@dataclass
class Event:
    """
    Event delivered through the bus.

    Attributes:
        name: Event name (e.g., 'countdown_to.rerender')
        data: Event payload
        source: Name of the publisher
        timestamp: When the event was created
    """

    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    source: str = "host"
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"Event({self.name} from {self.source})"


Handler = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    Pub/sub event bus.

    Features:
    - Subscribe by name or fnmatch pattern
    - Error isolation (one handler fails, others run)
    - Published/dispatched/error counters

    Args:
        logger: Optional logger instance

    Example:
        bus = EventBus()
        bus.subscribe(RERENDER_EVENT, scheduler_handler, 'scheduler')
        await bus.publish(Event(RERENDER_EVENT, {'settings': new_settings}))
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("countdown_to.events")

        # pattern -> list of (subscriber_name, handler)
        self._subscriptions: Dict[str, List[Tuple[str, Handler]]] = defaultdict(list)
        self._stats = {
            "events_published": 0,
            "events_dispatched": 0,
            "handler_errors": 0,
        }

    def subscribe(self, event_pattern: str, handler: Handler, subscriber: str) -> None:
        """
        Subscribe to events matching pattern.

        Args:
            event_pattern: Event name or pattern (supports * wildcard)
            handler: Async function called with the event
            subscriber: Name identifying the subscriber
        """
        self._subscriptions[event_pattern].append((subscriber, handler))
        self.logger.debug(f"{subscriber} subscribed to {event_pattern}")

    def unsubscribe(self, event_pattern: str, subscriber: str) -> None:
        """
        Remove a subscriber's handlers for a pattern.

        Args:
            event_pattern: Pattern previously subscribed to
            subscriber: Name of subscriber
        """
        if event_pattern not in self._subscriptions:
            return

        remaining = [
            (name, handler)
            for name, handler in self._subscriptions[event_pattern]
            if name != subscriber
        ]
        if remaining:
            self._subscriptions[event_pattern] = remaining
        else:
            del self._subscriptions[event_pattern]
        self.logger.debug(f"{subscriber} unsubscribed from {event_pattern}")

    async def publish(self, event: Event) -> None:
        """
        Publish event to every matching subscriber, in subscription order.

        Args:
            event: Event to publish
        """
        self._stats["events_published"] += 1

        handlers = self._find_handlers(event.name)
        if not handlers:
            self.logger.debug(f"No subscribers for: {event.name}")
            return

        self.logger.debug(
            f"Publishing {event.name} from {event.source} "
            f"to {len(handlers)} handler(s)"
        )

        for subscriber, handler in handlers:
            try:
                self._stats["events_dispatched"] += 1
                await handler(event)
            except Exception as e:
                self._stats["handler_errors"] += 1
                self.logger.error(
                    f"Error in {subscriber} handling {event.name}: {e}",
                    exc_info=True,
                )

    def _find_handlers(self, event_name: str) -> List[Tuple[str, Handler]]:
        handlers = []
        for pattern, subscribers in self._subscriptions.items():
            if fnmatch.fnmatch(event_name, pattern):
                handlers.extend(subscribers)
        return handlers

    def get_stats(self) -> Dict[str, int]:
        """Copy of the published/dispatched/error counters."""
        return self._stats.copy()
