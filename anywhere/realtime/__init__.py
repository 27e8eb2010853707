"""
Realtime Conversation Module

Streaming session with the live agent and the orchestration around it.

Architecture:
- Event Bus: typed events instead of constructor callbacks
- Protocol: frame builders and the inbound frame parser
- Transport: one websocket per session
- Readiness: settle-once "stream is open" signal
- Accumulator: cumulative user/agent text per turn
- Session: connection lifecycle, audio, text, tool dispatch
- Explorer Controller: wires session, viewer, audio and UI state

Usage:
    from anywhere.realtime import ExplorerController

    controller = ExplorerController(viewer)
    await controller.connect()
"""

from .events import (
    Event,
    EventBus,
    EventPriority,
    AudioResponseEvent,
    TextResponseEvent,
    TranscriptEvent,
    TurnCompleteEvent,
    ConnectionChangedEvent,
    ErrorEvent,
    ToolCallEvent,
)
from .accumulator import AccumulatorMode, TurnAccumulator, join_fragment
from .readiness import ReadySignal
from .transport import LiveTransport, TransportCallbacks, WebSocketTransport
from .session import LiveSession, PendingToolCall, SessionState, SessionStatus
from .state import ExplorerState, TourCheckpoint
from .explorer_controller import ExplorerController

__all__ = [
    # Events
    "Event",
    "EventBus",
    "EventPriority",
    "AudioResponseEvent",
    "TextResponseEvent",
    "TranscriptEvent",
    "TurnCompleteEvent",
    "ConnectionChangedEvent",
    "ErrorEvent",
    "ToolCallEvent",
    # Accumulator
    "AccumulatorMode",
    "TurnAccumulator",
    "join_fragment",
    # Transport
    "ReadySignal",
    "LiveTransport",
    "TransportCallbacks",
    "WebSocketTransport",
    # Session
    "LiveSession",
    "PendingToolCall",
    "SessionState",
    "SessionStatus",
    # Orchestration
    "ExplorerState",
    "TourCheckpoint",
    "ExplorerController",
]
