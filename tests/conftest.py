"""
Global pytest configuration and fixtures for countdown_to tests

Provides:
- Controllable clock
- Recording sink
- Mock NATS client and messages
- Package logger reset between tests
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, List, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock frozen at 2025-01-01 12:00:00."""
    return FakeClock(datetime(2025, 1, 1, 12, 0, 0))


# ============================================================================
# Sink
# ============================================================================

class RecordingSink:
    """Sink that records every call in order."""

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []

    def set_appearance(self, appearance):
        self.calls.append(("appearance", appearance))

    def set_progress(self, fraction):
        self.calls.append(("progress", fraction))

    def set_info_text(self, text):
        self.calls.append(("info", text))

    def set_error_text(self, text):
        self.calls.append(("error", text))

    def set_title(self, text):
        self.calls.append(("title", text))

    def values(self, kind: str) -> List[Any]:
        return [value for name, value in self.calls if name == kind]

    def last(self, kind: str) -> Any:
        values = self.values(kind)
        return values[-1] if values else None

    @property
    def renders(self) -> int:
        """Number of completed renders (info or error text delivered)."""
        return len(self.values("info")) + len(self.values("error"))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_sink():
    """Factory for additional recording sinks."""
    return RecordingSink


# ============================================================================
# NATS
# ============================================================================

@pytest.fixture
def mock_nats():
    """Create a mock NATS client for testing."""
    nats = AsyncMock()
    nats.publish = AsyncMock()

    # Track subscriptions
    nats._subscriptions = []

    async def mock_subscribe(subject, cb=None):
        sub = MagicMock()
        sub.subject = subject
        sub.callback = cb
        sub.unsubscribe = AsyncMock()
        nats._subscriptions.append(sub)
        return sub

    nats.subscribe = mock_subscribe
    return nats


@pytest.fixture
def mock_message():
    """Factory for creating mock NATS messages."""
    def _make_message(data: dict):
        msg = MagicMock()
        msg.data = json.dumps(data).encode()
        return msg
    return _make_message


@pytest.fixture
def published():
    """Decode every publish() call of a mock NATS client into (subject, payload)."""
    def _published(nats):
        result = []
        for call in nats.publish.call_args_list:
            subject, payload = call.args
            result.append((subject, json.loads(payload.decode())))
        return result
    return _published


# ============================================================================
# Logging
# ============================================================================

@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers and level left on the package logger by setup_logging()."""
    yield
    package_logger = logging.getLogger("countdown_to")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
