"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["GOOGLE_MAPS_API_KEY"] = ""
os.environ["PAN_DURATION_S"] = "0.01"
os.environ["PANO_LOAD_TIMEOUT_S"] = "0.5"
os.environ["STEP_PAUSE_S"] = "0"
os.environ["CONTEXT_UPDATE_INTERVAL_S"] = "60"
os.environ["GREETING_DELAY_S"] = "0"

from anywhere.config import NavigationConfig  # noqa: E402
from anywhere.errors import TransportClosedError  # noqa: E402
from anywhere.navigation.simulated import SimulatedAtlas, SimulatedViewer, demo_world  # noqa: E402
from anywhere.realtime.events import Event, EventBus  # noqa: E402
from anywhere.realtime.session import LiveSession  # noqa: E402
from anywhere.realtime.transport import LiveTransport, TransportCallbacks  # noqa: E402


class FakeTransport(LiveTransport):
    """
    In-memory transport: records outbound frames and lets tests play the
    server side (open, messages, errors, close).
    """

    def __init__(self, auto_open: bool = True):
        self.auto_open = auto_open
        self.setup: Optional[Dict[str, Any]] = None
        self.callbacks: Optional[TransportCallbacks] = None
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self._open = False

    async def open(self, setup: Dict[str, Any], callbacks: TransportCallbacks) -> None:
        self.setup = setup
        self.callbacks = callbacks
        if self.auto_open:
            await self.signal_open()

    async def signal_open(self) -> None:
        self._open = True
        await self.callbacks.on_open()

    async def deliver(self, message: Dict[str, Any]) -> None:
        await self.callbacks.on_message(message)

    async def signal_error(self, error: BaseException) -> None:
        await self.callbacks.on_error(error)

    async def signal_close(self, code: int = 1000, reason: str = "") -> None:
        self._open = False
        await self.callbacks.on_close(code, reason)

    def drop(self) -> None:
        """Simulate the socket dying without a close notification yet."""
        self._open = False

    async def send(self, message: Dict[str, Any]) -> None:
        if not self._open or self.closed:
            raise TransportClosedError("fake transport closed")
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open and not self.closed

    # Helpers ---------------------------------------------------------------

    @property
    def tool_responses(self) -> List[Dict[str, Any]]:
        return [
            response
            for frame in self.sent if "toolResponse" in frame
            for response in frame["toolResponse"]["functionResponses"]
        ]

    @property
    def client_contents(self) -> List[Dict[str, Any]]:
        return [frame["clientContent"] for frame in self.sent if "clientContent" in frame]

    @property
    def realtime_inputs(self) -> List[Dict[str, Any]]:
        return [frame["realtimeInput"] for frame in self.sent if "realtimeInput" in frame]


class EventRecorder:
    """Collects every event published immediately on a bus."""

    def __init__(self, bus: EventBus):
        self.events: List[Event] = []
        bus.subscribe(Event, self._record)

    async def _record(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> List[Any]:
        return [e for e in self.events if isinstance(e, event_type)]


def tool_call_frame(name: str, args: Dict[str, Any], call_id: str = "call-1") -> Dict[str, Any]:
    return {"toolCall": {"functionCalls": [{"name": name, "args": args, "id": call_id}]}}


@pytest.fixture
def fake_transport():
    """Transport that opens as soon as it is asked to."""
    return FakeTransport()


@pytest.fixture
def tool_handler():
    """Tool handler returning a plain success result."""
    return AsyncMock(return_value={"success": True, "message": "ok"})


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    return EventRecorder(event_bus)


@pytest.fixture
def make_session(event_bus):
    """Factory building sessions over a given transport."""
    def _make(transport: LiveTransport, handler, **kwargs) -> LiveSession:
        kwargs.setdefault("connect_timeout_s", 0.5)
        return LiveSession(
            "test-key",
            tool_handler=handler,
            event_bus=event_bus,
            transport_factory=lambda: transport,
            **kwargs,
        )
    return _make


@pytest.fixture
def session(make_session, fake_transport, tool_handler):
    """A session over the fake transport, not yet connected."""
    return make_session(fake_transport, tool_handler)


@pytest.fixture
def nav_config():
    """Fast navigation timings."""
    return NavigationConfig(
        pan_duration_s=0.01,
        pano_load_timeout_s=0.5,
        step_pause_s=0.0,
        max_link_deviation_deg=90.0,
    )


@pytest.fixture
def world():
    return demo_world()


@pytest.fixture
def viewer(world):
    """Simulated viewer at the Eiffel Tower facing south."""
    return SimulatedViewer(world, start_pano="paris-0", heading=180.0, frame_interval_s=0.001)


@pytest.fixture
def atlas(world):
    return SimulatedAtlas(world)
