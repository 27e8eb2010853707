"""
Explorer Controller

Central orchestrator for a voice-guided tour. Wires the live session to
the viewer, the navigation executor and the audio endpoints, and keeps
the UI-facing ExplorerState current.

Responsibilities:
- Create a brand-new LiveSession for every connect
- Route agent audio to the speaker and microphone frames to the session
- Push viewport context to the agent periodically while connected
- Greet the user once the stream is open
- Execute tool calls through the NavigationExecutor
- Record tour checkpoints as the user moves

Usage:
    controller = ExplorerController(viewer, geocoder=maps, locator=maps)
    if await controller.connect():
        await controller.send_text("Take me to Times Square")
    await controller.disconnect()
"""

import asyncio
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from anywhere.audio import AudioSink, AudioSource
from anywhere.config import ExplorerConfig, settings
from anywhere.core.viewport import Position, ViewportContext
from anywhere.errors import (
    AnywhereError,
    ConfigurationError,
    ConnectionFailedError,
    NotConnectedError,
)
from anywhere.logger import get_logger
from anywhere.navigation.executor import NavigationExecutor
from anywhere.navigation.viewer import Geocoder, PanoramaLocator, ViewerControl

from .events import (
    AudioResponseEvent,
    ConnectionChangedEvent,
    ErrorEvent,
    EventBus,
    TextResponseEvent,
    ToolCallEvent,
    TranscriptEvent,
    TurnCompleteEvent,
)
from .session import LiveSession, ToolCallHandler
from .state import ExplorerState

logger = get_logger(__name__)

SessionFactory = Callable[[EventBus, ToolCallHandler], LiveSession]

GREETING_TEMPLATE = (
    "Hello! I've just connected. I'm currently at {address}. "
    "Please give me a brief welcome and describe what I'm seeing."
)


class ExplorerController:
    """
    Orchestrates one explorer: viewer, agent session, audio and UI state.

    The event bus outlives individual sessions; a session that was torn
    down never publishes again, so subscriptions are made once.
    """

    def __init__(
        self,
        viewer: ViewerControl,
        geocoder: Optional[Geocoder] = None,
        locator: Optional[PanoramaLocator] = None,
        audio_source: Optional[AudioSource] = None,
        audio_sink: Optional[AudioSink] = None,
        api_key: Optional[str] = None,
        config: Optional[ExplorerConfig] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self._viewer = viewer
        self._geocoder = geocoder
        self._audio_source = audio_source
        self._audio_sink = audio_sink
        self._api_key = api_key if api_key is not None else settings.gemini.api_key
        self._config = config or settings.explorer
        self._session_factory = session_factory or self._default_session

        self.state = ExplorerState()
        self._executor = NavigationExecutor(
            viewer,
            geocoder=geocoder,
            locator=locator,
            on_selfie=self._on_selfie,
            on_navigating=self._on_navigating,
        )

        self._event_bus = EventBus()
        self._session: Optional[LiveSession] = None

        # Tasks
        self._event_bus_task: Optional[asyncio.Task] = None
        self._context_task: Optional[asyncio.Task] = None
        self._greeting_task: Optional[asyncio.Task] = None

        self._event_bus.subscribe(AudioResponseEvent, self._handle_audio)
        self._event_bus.subscribe(TextResponseEvent, self._handle_text)
        self._event_bus.subscribe(TranscriptEvent, self._handle_transcript)
        self._event_bus.subscribe(ConnectionChangedEvent, self._handle_connection_changed)
        self._event_bus.subscribe(TurnCompleteEvent, self._handle_turn_complete)
        self._event_bus.subscribe(ErrorEvent, self._handle_error)
        self._event_bus.subscribe(ToolCallEvent, self._handle_tool_call)

        self._sync_viewport()

    def _default_session(self, event_bus: EventBus, tool_handler: ToolCallHandler) -> LiveSession:
        return LiveSession(self._api_key, tool_handler=tool_handler, event_bus=event_bus)

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def session(self) -> Optional[LiveSession]:
        return self._session

    @property
    def events(self) -> EventBus:
        return self._event_bus

    @property
    def executor(self) -> NavigationExecutor:
        return self._executor

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.is_connected

    # ========================================================================
    # Connection lifecycle
    # ========================================================================

    async def connect(self) -> bool:
        """
        Open a new live session.

        Returns:
            True when connected; on failure state.error holds the reason
        """
        if self.is_connected:
            return True

        if self._session is not None:
            await self._teardown_session()

        self.state.error = None
        try:
            session = self._session_factory(self._event_bus, self._execute_tool)
        except ConfigurationError as e:
            logger.error(f"Cannot connect: {e}")
            self.state.error = str(e)
            return False

        if self._event_bus_task is None or self._event_bus_task.done():
            self._event_bus_task = asyncio.create_task(self._event_bus.run(), name="explorer-events")

        self._session = session
        try:
            await session.connect()
        except ConnectionFailedError as e:
            logger.error(f"Failed to connect: {e}")
            self.state.error = str(e)
            self._session = None
            return False

        self._context_task = asyncio.create_task(self._context_loop(), name="explorer-context")

        self._sync_viewport()
        if self._config.auto_greet and self.state.position is not None and self.state.address:
            self._greeting_task = asyncio.create_task(self._greet(), name="explorer-greeting")

        return True

    async def disconnect(self) -> None:
        """Stop capture and playback and close the session."""
        await self._stop_capture()
        if self._audio_sink is not None:
            await self._audio_sink.stop()

        await self._teardown_session()
        self.state.mark_disconnected()

    async def close(self) -> None:
        """Disconnect and stop background processing."""
        await self.disconnect()

        self._event_bus.stop()
        if self._event_bus_task:
            self._event_bus_task.cancel()
            try:
                await asyncio.wait_for(self._event_bus_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._event_bus_task = None

    async def _teardown_session(self) -> None:
        self._cancel_background_tasks()
        session, self._session = self._session, None
        if session is not None:
            await session.disconnect()

    def _cancel_background_tasks(self) -> None:
        for task in (self._context_task, self._greeting_task):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
        self._context_task = None
        self._greeting_task = None

    # ========================================================================
    # User actions
    # ========================================================================

    async def toggle_listening(self) -> bool:
        """
        Start or stop microphone capture.

        Returns:
            Whether the microphone is capturing afterwards
        """
        if not self.is_connected:
            logger.warning("Cannot toggle listening: not connected")
            return False

        if self._audio_source is None:
            self.state.error = "No microphone available"
            return False

        if self.state.is_listening:
            await self._stop_capture()
            return False

        try:
            await self._audio_source.start(self._on_audio_frame)
        except (OSError, RuntimeError) as e:
            logger.error(f"Failed to start capture: {e}")
            self.state.error = str(e) or "Failed to access microphone"
            return False

        self.state.is_listening = True
        return True

    async def _stop_capture(self) -> None:
        if self._audio_source is not None and self._audio_source.is_capturing:
            await self._audio_source.stop()
        self.state.is_listening = False

    async def send_text(self, text: str) -> None:
        """Send a typed user turn. Raises NotConnectedError when disconnected."""
        if self._session is None:
            raise NotConnectedError("send text")
        self.state.current_transcript = text
        await self._session.send_text(text)

    async def interrupt(self) -> None:
        """Barge in on the agent and silence local playback."""
        if self._session is not None:
            await self._session.interrupt()
        if self._audio_sink is not None:
            await self._audio_sink.stop()
        self.state.is_speaking = False

    async def handle_position_change(self, position: Position) -> None:
        """
        Viewer moved to a new pano node.

        Records a checkpoint for the place being left when the agent has
        narrated it, then refreshes the address.
        """
        if self.is_connected and self.state.latest_ai_response:
            self.state.add_checkpoint(self.state.latest_ai_response)

        context = self._viewer.snapshot()
        self.state.position = position
        self.state.pov = context.pov
        self.state.pano_id = context.pano_id
        self.state.address = context.address

        if self.state.address is None and self._geocoder is not None:
            try:
                self.state.address = await self._geocoder.reverse_geocode(position)
            except AnywhereError as e:
                logger.warning(f"Reverse geocoding failed: {e}")

    async def push_context(self) -> bool:
        """Send the current viewport to the agent without asking for a reply."""
        if self._session is None:
            return False
        return await self._session.send_context_update(self.current_context())

    def current_context(self) -> ViewportContext:
        context = self._viewer.snapshot()
        if context.address is None and self.state.address:
            context = replace(context, address=self.state.address)
        return context

    # ========================================================================
    # Background tasks
    # ========================================================================

    async def _context_loop(self) -> None:
        interval = self._config.context_update_interval_s
        while True:
            await asyncio.sleep(interval)
            if not self.is_connected:
                return
            self._sync_viewport()
            try:
                await self.push_context()
            except AnywhereError as e:
                logger.warning(f"Context update failed: {e}")
                return

    async def _greet(self) -> None:
        await asyncio.sleep(self._config.greeting_delay_s)
        session = self._session
        if session is None or not session.is_connected:
            return
        try:
            await session.send_text(GREETING_TEMPLATE.format(address=self.state.address))
        except AnywhereError as e:
            logger.warning(f"Greeting not sent: {e}")

    def _sync_viewport(self) -> None:
        context = self._viewer.snapshot()
        self.state.position = context.position
        self.state.pov = context.pov
        self.state.pano_id = context.pano_id
        self.state.address = context.address or self.state.address

    # ========================================================================
    # Tool execution
    # ========================================================================

    async def _execute_tool(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Executing function: {name} {args}")
        result = await self._executor.execute(name, args)
        self._sync_viewport()
        return result

    def _on_selfie(self, style: Optional[str]) -> None:
        self.state.selfie_requested = True
        self.state.selfie_style = style

    def _on_navigating(self, navigating: bool) -> None:
        self.state.is_navigating = navigating

    async def _on_audio_frame(self, frame: bytes) -> None:
        session = self._session
        if session is not None:
            await session.send_audio(frame)

    # ========================================================================
    # Event Handlers
    # ========================================================================

    async def _handle_audio(self, event: AudioResponseEvent) -> None:
        self.state.is_speaking = True
        if self._audio_sink is not None:
            await self._audio_sink.play(event.audio_data)

    async def _handle_text(self, event: TextResponseEvent) -> None:
        self.state.latest_ai_response = event.text

    async def _handle_transcript(self, event: TranscriptEvent) -> None:
        self.state.current_transcript = event.text

    async def _handle_connection_changed(self, event: ConnectionChangedEvent) -> None:
        self.state.is_connected = event.connected
        if event.connected:
            return

        self.state.mark_disconnected()
        self._cancel_background_tasks()
        await self._stop_capture()

    async def _handle_turn_complete(self, event: TurnCompleteEvent) -> None:
        self.state.is_speaking = False

    async def _handle_error(self, event: ErrorEvent) -> None:
        logger.error(f"Live session error: {event.message}")
        self.state.error = event.message

    async def _handle_tool_call(self, event: ToolCallEvent) -> None:
        status = "failed" if event.failed else "ok"
        logger.debug(f"Tool {event.name} {status} in {event.duration_ms:.0f}ms")

    @property
    def stats(self) -> Dict[str, Any]:
        """Get controller statistics."""
        return {
            "connected": self.is_connected,
            "checkpoints": len(self.state.tour_history),
            "session": self._session.stats if self._session else {},
            "event_queue": self._event_bus.queue_size,
        }
