"""
Live Streaming Session

Owns one realtime connection to the remote agent and multiplexes three
flows over it:
- outbound microphone audio (16 kHz PCM, base64 on the wire)
- inbound synthesized speech (24 kHz PCM) and streamed text
- tool calls issued by the agent, answered asynchronously with
  correlated responses

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED -> CLOSED

While CONNECTED, is_processing and is_speaking are independent flags.
CLOSED is terminal: a session is never resurrected, the orchestrator
creates a new one to reconnect.

Usage:
    session = LiveSession(api_key, tool_handler=executor.execute)
    session.events.subscribe(AudioResponseEvent, play)
    await session.connect()
    await session.send_audio(pcm_frame)
    await session.disconnect()
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from anywhere.config import settings
from anywhere.core.prompts import SYSTEM_PROMPT, format_context_update
from anywhere.core.viewport import ViewportContext
from anywhere.errors import (
    ConfigurationError,
    ConnectionFailedError,
    InvalidArgumentsError,
    NotConnectedError,
    SessionStateError,
    TransportClosedError,
)
from anywhere.logger import get_logger
from anywhere.navigation.registry import ToolRegistry, tool_registry

from .accumulator import TurnAccumulator
from .events import (
    AudioResponseEvent,
    ConnectionChangedEvent,
    ErrorEvent,
    Event,
    EventBus,
    TextResponseEvent,
    ToolCallEvent,
    TranscriptEvent,
    TurnCompleteEvent,
)
from .protocol import (
    FunctionCall,
    ServerMessage,
    build_setup,
    client_text_frame,
    decode_audio,
    interrupt_frame,
    parse_server_message,
    realtime_audio_frame,
    to_plain_response,
    tool_response_frame,
)
from .readiness import ReadySignal
from .transport import LiveTransport, TransportCallbacks, WebSocketTransport

logger = get_logger(__name__)

ToolCallHandler = Callable[[str, Dict[str, Any]], Awaitable[Any]]
TransportFactory = Callable[[], LiveTransport]


class SessionState(Enum):
    """Connection lifecycle of a session."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class SessionStatus:
    """Snapshot of the session flags."""
    is_connected: bool
    is_processing: bool
    is_speaking: bool


@dataclass(eq=False)
class PendingToolCall:
    """A tool call awaiting its result. Empty call_id means no reply is sent."""
    call_id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)

    @property
    def expects_response(self) -> bool:
        return bool(self.call_id)


class LiveSession:
    """
    One live conversation with the remote agent.

    Features:
    - connect() returns only once the stream is open (bounded wait)
    - Hot-path audio sends never raise on disconnection races
    - Streamed text accumulated into cumulative turn text
    - Every tool call with an id is answered exactly once, even when
      validation or the handler fails
    """

    def __init__(
        self,
        api_key: str,
        tool_handler: ToolCallHandler,
        event_bus: Optional[EventBus] = None,
        registry: Optional[ToolRegistry] = None,
        system_instruction: str = SYSTEM_PROMPT,
        model: Optional[str] = None,
        voice: Optional[str] = None,
        connect_timeout_s: Optional[float] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        """
        Initialize the session.

        Args:
            api_key: Gemini API key
            tool_handler: async (name, args) -> result, called after validation
            event_bus: Bus to publish events on (a private one by default)
            registry: Tool catalogue used for the setup and for validation
            system_instruction: Agent persona and rules
            model: Live model name
            voice: Prebuilt voice name
            connect_timeout_s: Max wait for the stream to open
            transport_factory: Builds the transport for connect()

        Raises:
            ConfigurationError: If api_key is missing or blank
        """
        if not api_key or not api_key.strip():
            raise ConfigurationError("Gemini API key is required")

        self._api_key = api_key
        self._tool_handler = tool_handler
        self._events = event_bus or EventBus()
        self._registry = registry or tool_registry
        self._system_instruction = system_instruction
        self._model = model or settings.gemini.model
        self._voice = voice if voice is not None else settings.gemini.voice
        self._connect_timeout_s = connect_timeout_s or settings.gemini.connect_timeout_s
        self._transport_factory = transport_factory or self._default_transport

        self._state = SessionState.DISCONNECTED
        self._transport: Optional[LiveTransport] = None
        self._ready: Optional[ReadySignal] = None
        self._is_processing = False
        self._is_speaking = False

        self._accumulator = TurnAccumulator()
        self._pending: Set[PendingToolCall] = set()
        self._tool_tasks: Set[asyncio.Task] = set()

        # Stats
        self._messages_sent = 0
        self._messages_received = 0
        self._tool_calls_handled = 0
        self._audio_frames_dropped = 0
        self._malformed_frames = 0

    def _default_transport(self) -> LiveTransport:
        return WebSocketTransport(self._api_key, settings.gemini.url)

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    @property
    def status(self) -> SessionStatus:
        return SessionStatus(
            is_connected=self.is_connected,
            is_processing=self._is_processing,
            is_speaking=self._is_speaking,
        )

    @property
    def accumulator(self) -> TurnAccumulator:
        return self._accumulator

    @property
    def pending_tool_calls(self) -> int:
        return len(self._pending)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.name,
            "model": self._model,
            "messages_sent": self._messages_sent,
            "messages_received": self._messages_received,
            "tool_calls": self._tool_calls_handled,
            "audio_frames_dropped": self._audio_frames_dropped,
            "malformed_frames": self._malformed_frames,
            "pending_tool_calls": len(self._pending),
        }

    # ========================================================================
    # Connection lifecycle
    # ========================================================================

    async def connect(self) -> None:
        """
        Open the stream and wait until it is ready for frames.

        Raises:
            SessionStateError: The session is not fresh
            ConnectionFailedError: Transport error, premature close or timeout
        """
        if self._state is not SessionState.DISCONNECTED:
            raise SessionStateError(
                f"connect() requires a fresh session (state={self._state.name}); create a new LiveSession"
            )

        self._state = SessionState.CONNECTING
        transport = self._transport_factory()
        ready = ReadySignal(self._connect_timeout_s)
        self._transport = transport
        self._ready = ready

        callbacks = TransportCallbacks(
            on_open=partial(self._on_open, transport),
            on_message=partial(self._on_message, transport),
            on_error=partial(self._on_error, transport),
            on_close=partial(self._on_close, transport),
        )
        setup = build_setup(
            model=self._model,
            system_instruction=self._system_instruction,
            function_declarations=self._registry.function_declarations(),
            voice=self._voice,
        )

        logger.info(f"Connecting to live agent ({self._model})...")
        failure: Optional[ConnectionFailedError] = None
        try:
            await transport.open(setup, callbacks)
            await ready.wait()
        except ConnectionFailedError as e:
            failure = e
        except asyncio.CancelledError:
            ready.cancel()
            await self._rollback(transport, "connect cancelled")
            raise
        except Exception as e:
            failure = ConnectionFailedError(str(e) or type(e).__name__)

        if failure is not None:
            ready.cancel()
            logger.error(f"Live connection failed: {failure.reason}")
            await self._rollback(transport, failure.reason)
            raise failure

        logger.info("Live session connected")

    async def disconnect(self) -> None:
        """
        Tear the session down locally. Idempotent.

        In-flight tool calls are abandoned: they may finish, but no
        response is sent for them.
        """
        if self._state in (SessionState.DISCONNECTED, SessionState.CLOSED) and self._transport is None:
            return

        was_live = self._state in (SessionState.CONNECTING, SessionState.CONNECTED)
        transport = self._transport
        if self._ready is not None:
            self._ready.cancel()

        self._reset()
        await self._close_quietly(transport)
        logger.info("Live session disconnected")

        if was_live:
            await self._emit(ConnectionChangedEvent(connected=False, reason="disconnected"))

    def _reset(self) -> None:
        abandoned = len(self._pending)
        if abandoned:
            logger.info(f"Abandoning {abandoned} in-flight tool call(s)")

        self._state = SessionState.CLOSED
        self._transport = None
        self._is_processing = False
        self._is_speaking = False
        self._accumulator.reset()
        self._pending.clear()

    async def _rollback(self, transport: LiveTransport, reason: str) -> None:
        owned = self._transport is transport
        if owned:
            self._reset()
        await self._close_quietly(transport)
        # A concurrent disconnect() already reported the teardown
        if owned:
            await self._emit(ConnectionChangedEvent(connected=False, reason=reason))

    async def _connection_lost(self, reason: str) -> None:
        if self._state is not SessionState.CONNECTED:
            return
        transport = self._transport
        logger.warning(f"Live connection lost: {reason}")
        self._reset()
        await self._close_quietly(transport)
        await self._emit(ConnectionChangedEvent(connected=False, reason=reason))

    @staticmethod
    async def _close_quietly(transport: Optional[LiveTransport]) -> None:
        if transport is None:
            return
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing transport: {e}")

    # ========================================================================
    # Transport callbacks
    # ========================================================================

    async def _on_open(self, transport: LiveTransport) -> None:
        ready = self._ready
        if transport is not self._transport or ready is None or ready.settled:
            logger.warning("Ignoring open signal from an abandoned or already-open stream")
            return

        self._state = SessionState.CONNECTED
        ready.succeed()
        await self._emit(ConnectionChangedEvent(connected=True))

    async def _on_error(self, transport: LiveTransport, error: BaseException) -> None:
        if transport is not self._transport:
            return

        if self._state is SessionState.CONNECTING:
            if self._ready is not None:
                self._ready.fail(ConnectionFailedError(str(error) or type(error).__name__))
            return

        logger.error(f"Live transport error: {error}")
        await self._emit(ErrorEvent(error=error))

    async def _on_close(self, transport: LiveTransport, code: Optional[int], reason: str) -> None:
        if transport is not self._transport:
            return

        if self._state is SessionState.CONNECTING:
            if self._ready is not None:
                self._ready.fail(ConnectionFailedError(f"stream closed before opening (code={code}) {reason}".strip()))
            return

        await self._connection_lost(reason or f"stream closed (code={code})")

    async def _on_message(self, transport: LiveTransport, raw: Dict[str, Any]) -> None:
        if transport is not self._transport or self._state is not SessionState.CONNECTED:
            return

        self._messages_received += 1
        try:
            await self._handle_server_message(parse_server_message(raw))
        except (ValueError, TypeError, AttributeError) as e:
            # binascii.Error (bad base64) is a ValueError
            self._malformed_frames += 1
            logger.warning(f"Dropping malformed server frame: {type(e).__name__}: {e}")

    # ========================================================================
    # Inbound frame handling
    # ========================================================================

    async def _handle_server_message(self, message: ServerMessage) -> None:
        for chunk in message.audio_chunks:
            self._is_speaking = True
            await self._emit(AudioResponseEvent(audio_data=decode_audio(chunk)))

        if message.interrupted:
            # Server-side barge-in: the agent stopped talking
            self._is_speaking = False

        for part in message.parts:
            if part.thought:
                logger.debug(f"[think] {(part.text or '')[:150]}")
                continue
            if part.text:
                text = self._accumulator.append_agent(part.text)
                await self._emit(TextResponseEvent(text=text))
            if part.function_call is not None:
                self._start_tool_call(part.function_call)

        if message.input_transcription:
            text = self._accumulator.append_user(message.input_transcription)
            await self._emit(TranscriptEvent(text=text, is_final=True))

        if message.output_transcription:
            text = self._accumulator.append_agent(message.output_transcription)
            await self._emit(TextResponseEvent(text=text))

        if message.tool_calls:
            self._is_processing = True
            for call in message.tool_calls:
                self._start_tool_call(call)

        if message.cancelled_call_ids:
            logger.warning(f"Agent cancelled tool calls: {message.cancelled_call_ids}")

        if message.go_away:
            logger.warning("Server announced it will close the stream soon")

        if message.turn_complete:
            self._is_processing = False
            self._is_speaking = False
            self._accumulator.complete_turn()
            await self._emit(TurnCompleteEvent())

    # ========================================================================
    # Tool call dispatch
    # ========================================================================

    def _start_tool_call(self, call: FunctionCall) -> None:
        pending = PendingToolCall(call_id=call.call_id, name=call.name, args=dict(call.args))
        self._pending.add(pending)

        task = asyncio.create_task(
            self._run_tool_call(pending, self._transport),
            name=f"tool-{call.name}",
        )
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)

    async def _run_tool_call(self, pending: PendingToolCall, transport: Optional[LiveTransport]) -> None:
        logger.info(f"[tool] {pending.name}({pending.args}) id={pending.call_id or '-'}")

        try:
            self._registry.validate(pending.name, pending.args)
            result = await self._tool_handler(pending.name, dict(pending.args))
            response = to_plain_response(result)
        except InvalidArgumentsError as e:
            logger.warning(f"[tool] {pending.name} rejected: {e}")
            response = {"error": str(e)}
        except asyncio.CancelledError:
            self._pending.discard(pending)
            raise
        except Exception as e:
            logger.exception(f"[tool] {pending.name} raised")
            response = {"error": str(e) or type(e).__name__}

        await self._finish_tool_call(pending, response, transport)

    async def _finish_tool_call(
        self,
        pending: PendingToolCall,
        response: Dict[str, Any],
        transport: Optional[LiveTransport],
    ) -> None:
        if pending not in self._pending:
            logger.debug(f"[tool] {pending.name} finished after disconnect; dropping result")
            return
        self._pending.discard(pending)
        self._tool_calls_handled += 1
        duration_ms = (time.monotonic() - pending.started_at) * 1000

        if pending.expects_response:
            if transport is None or transport is not self._transport or not self.is_connected:
                return
            try:
                await transport.send(tool_response_frame(pending.call_id, pending.name, response))
                self._messages_sent += 1
            except TransportClosedError:
                logger.warning(f"[tool] response for {pending.name} dropped: stream closed")
                await self._connection_lost("closed while sending a tool response")
                return
            except Exception as e:
                logger.error(f"[tool] response for {pending.name} could not be sent: {e}")
                await self._emit(ErrorEvent(error=e))
                return

        logger.info(f"[tool] {pending.name} -> {str(response)[:200]} ({duration_ms:.0f}ms)")
        await self._emit(ToolCallEvent(
            call_id=pending.call_id,
            name=pending.name,
            args=pending.args,
            response=response,
            duration_ms=duration_ms,
        ))

    async def wait_for_tool_calls(self, timeout: Optional[float] = None) -> None:
        """Wait until every in-flight tool call task has finished."""
        tasks = list(self._tool_tasks)
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    # ========================================================================
    # Outbound operations
    # ========================================================================

    async def send_audio(self, frame: bytes) -> bool:
        """
        Send one 16 kHz mono PCM frame.

        Returns:
            True if the frame was handed to the transport, False if it was
            dropped because the session is not (or no longer) connected
        """
        transport = self._transport
        if not self.is_connected or transport is None:
            self._audio_frames_dropped += 1
            return False

        try:
            await transport.send(realtime_audio_frame(frame))
        except TransportClosedError:
            self._audio_frames_dropped += 1
            logger.debug("Audio frame dropped: stream closing")
            await self._connection_lost("closed while sending audio")
            return False

        self._messages_sent += 1
        return True

    async def send_text(self, text: str) -> None:
        """
        Send text as a complete user turn; the agent will respond.

        Raises:
            NotConnectedError: If the session is not connected
        """
        transport = self._transport
        if not self.is_connected or transport is None:
            raise NotConnectedError("send text")

        self._is_processing = True
        try:
            await transport.send(client_text_frame(text, turn_complete=True))
        except TransportClosedError as e:
            await self._connection_lost("closed while sending text")
            raise NotConnectedError("send text") from e

        self._messages_sent += 1
        logger.info(f"[tx] Sent text ({len(text)} chars): {text[:80]}")

    async def send_context_update(self, context: ViewportContext) -> bool:
        """
        Push a viewport snapshot without requesting a reply.

        Silently skipped when disconnected or when the viewer has no
        position yet.

        Returns:
            True if the update was sent
        """
        transport = self._transport
        if not self.is_connected or transport is None or context.position is None:
            return False

        message = format_context_update(
            lat=context.position.lat,
            lng=context.position.lng,
            heading=context.pov.heading,
            pitch=context.pov.pitch,
            address=context.address,
        )
        try:
            await transport.send(client_text_frame(message, turn_complete=False))
        except TransportClosedError:
            await self._connection_lost("closed while sending context")
            return False

        self._messages_sent += 1
        return True

    async def interrupt(self) -> None:
        """
        Barge in: ask the agent to stop and drop in-progress text locally.

        In-flight tool calls keep running.
        """
        transport = self._transport
        if not self.is_connected or transport is None:
            return

        self._is_speaking = False
        self._accumulator.reset()

        try:
            await transport.send(interrupt_frame())
        except TransportClosedError:
            await self._connection_lost("closed while interrupting")
            return
        self._messages_sent += 1

    # ========================================================================
    # Events
    # ========================================================================

    async def _emit(self, event: Event) -> None:
        await self._events.publish_immediate(event)
