"""
Event System for the Live Session

A small async event bus replaces per-callback constructor options: the
session publishes typed events and any number of subscribers observe
them. Whether anyone is listening is checkable with has_subscribers().

Event Types:
- AudioResponseEvent: decoded PCM audio from the agent
- TextResponseEvent: cumulative agent text for the current turn
- TranscriptEvent: cumulative user speech transcript
- ConnectionChangedEvent: connection opened or lost
- TurnCompleteEvent: the agent finished its turn
- ErrorEvent: transport-level fault
- ToolCallEvent: a tool call was executed and answered
"""

import asyncio
import time
import uuid
from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from anywhere.audio import OUTPUT_SAMPLE_RATE
from anywhere.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound="Event")
EventHandler = Callable[[T], Awaitable[None]]


class EventPriority(Enum):
    """Priority levels for queued event processing."""
    CRITICAL = 0  # Connection changes, errors
    HIGH = 1      # Turn boundaries
    NORMAL = 2    # Audio, text, transcripts
    LOW = 3       # Observability


@dataclass
class Event(ABC):
    """Base event class for all session events."""
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: float = field(default_factory=time.time)
    priority: EventPriority = EventPriority.NORMAL
    source: str = "live_session"

    @property
    def age_ms(self) -> float:
        """Get event age in milliseconds."""
        return (time.time() - self.timestamp) * 1000


# ============================================================================
# Agent Output Events
# ============================================================================

@dataclass
class AudioResponseEvent(Event):
    """Synthesized speech from the agent (16-bit mono PCM)."""
    audio_data: bytes = b""
    sample_rate: int = OUTPUT_SAMPLE_RATE

    @property
    def duration_ms(self) -> float:
        return len(self.audio_data) / 2 / self.sample_rate * 1000


@dataclass
class TextResponseEvent(Event):
    """Cumulative agent text for the turn in progress."""
    text: str = ""


@dataclass
class TranscriptEvent(Event):
    """Cumulative transcript of the user's speech."""
    text: str = ""
    is_final: bool = True


@dataclass
class TurnCompleteEvent(Event):
    """The agent closed its turn."""
    priority: EventPriority = EventPriority.HIGH


# ============================================================================
# Connection Events
# ============================================================================

@dataclass
class ConnectionChangedEvent(Event):
    """The session connected or disconnected."""
    connected: bool = False
    reason: str = ""
    priority: EventPriority = EventPriority.CRITICAL


@dataclass
class ErrorEvent(Event):
    """A transport-level fault."""
    error: Optional[BaseException] = None
    priority: EventPriority = EventPriority.CRITICAL

    @property
    def message(self) -> str:
        return str(self.error) if self.error else "Unknown error"


# ============================================================================
# Tool Events
# ============================================================================

@dataclass
class ToolCallEvent(Event):
    """A tool call was dispatched; response is what went back on the wire."""
    call_id: str = ""
    name: str = ""
    args: Dict[str, Any] = field(default_factory=dict)
    response: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0
    priority: EventPriority = EventPriority.LOW

    @property
    def is_fire_and_forget(self) -> bool:
        return not self.call_id

    @property
    def failed(self) -> bool:
        return "error" in self.response or self.response.get("success") is False


# ============================================================================
# Event Bus
# ============================================================================

class EventBus:
    """
    Async event bus for session events.

    Features:
    - Async publish/subscribe keyed by event class (subclasses match)
    - Queued, priority-ordered processing via run()
    - Direct in-order dispatch via publish_immediate()
    """

    def __init__(self, max_queue_size: int = 500):
        self._handlers: Dict[type, List[EventHandler]] = {}
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue(maxsize=max_queue_size)
        self._running: bool = False
        self._event_count: int = 0

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        """Subscribe to events of a specific type."""
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: EventHandler) -> None:
        """Unsubscribe a handler from an event type."""
        if event_type in self._handlers:
            self._handlers[event_type] = [
                h for h in self._handlers[event_type] if h != handler
            ]

    def clear(self) -> None:
        """Drop every subscription."""
        self._handlers.clear()

    def has_subscribers(self, event_type: type) -> bool:
        """Check whether an event of this type would reach any handler."""
        return any(
            handlers and issubclass(event_type, registered)
            for registered, handlers in self._handlers.items()
        )

    async def publish(self, event: Event) -> None:
        """Queue an event for processing by run()."""
        self._event_count += 1
        queue_item = (event.priority.value, self._event_count, event)

        try:
            self._queue.put_nowait(queue_item)
        except asyncio.QueueFull:
            logger.warning(f"Event queue full, dropping {type(event).__name__}")

    async def publish_immediate(self, event: Event) -> None:
        """Dispatch an event now, bypassing the queue."""
        await self._dispatch(event)

    async def _dispatch(self, event: Event) -> None:
        handlers = []
        for registered_type, type_handlers in self._handlers.items():
            if isinstance(event, registered_type):
                handlers.extend(type_handlers)

        if not handlers:
            logger.debug(f"No subscribers for {type(event).__name__}")
            return

        for handler in handlers:
            try:
                await handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Handler error for {type(event).__name__}: {e}")

    async def run(self) -> None:
        """Start the queued event processing loop."""
        self._running = True
        logger.debug("Event bus started")

        while self._running:
            try:
                _, _, event = await asyncio.wait_for(
                    self._queue.get(), timeout=0.1
                )
                await self._dispatch(event)
                self._queue.task_done()
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

        logger.debug("Event bus stopped")

    def stop(self) -> None:
        """Stop the event processing loop."""
        self._running = False

    @property
    def queue_size(self) -> int:
        """Get current queue size."""
        return self._queue.qsize()
