"""
Tests for the live streaming session.

The transport is replaced by an in-memory fake so every server-side
signal (open, frames, errors, close) is driven from the test.
"""

import asyncio
import base64
from unittest.mock import AsyncMock

import pytest

from anywhere.core.viewport import Position, Pov, ViewportContext
from anywhere.errors import (
    ConfigurationError,
    ConnectionFailedError,
    NotConnectedError,
    SessionStateError,
)
from anywhere.navigation.executor import NavigationExecutor
from anywhere.realtime.accumulator import AccumulatorMode
from anywhere.realtime.events import (
    AudioResponseEvent,
    ConnectionChangedEvent,
    ErrorEvent,
    TextResponseEvent,
    ToolCallEvent,
    TranscriptEvent,
    TurnCompleteEvent,
)
from anywhere.realtime.session import LiveSession, SessionState

from .conftest import FakeTransport, tool_call_frame

EIFFEL = ViewportContext(
    position=Position(lat=48.8584, lng=2.2945),
    pov=Pov(heading=180.0, pitch=0.0),
    address="Eiffel Tower",
)


class BrokenResponseTransport(FakeTransport):
    """Fails to encode tool responses while the stream stays open."""

    async def send(self, message):
        if "toolResponse" in message:
            raise RuntimeError("encoder failure")
        await super().send(message)


# ============================================================================
# Construction
# ============================================================================

class TestConstruction:
    """Credential checks happen before anything else."""

    def test_empty_key_raises(self, tool_handler):
        with pytest.raises(ConfigurationError):
            LiveSession("", tool_handler=tool_handler)

    def test_blank_key_raises(self, tool_handler):
        with pytest.raises(ConfigurationError):
            LiveSession("   ", tool_handler=tool_handler)

    def test_initial_state(self, session):
        assert session.state is SessionState.DISCONNECTED
        assert session.is_connected is False
        assert session.is_processing is False
        assert session.is_speaking is False
        assert session.pending_tool_calls == 0


# ============================================================================
# Connection lifecycle
# ============================================================================

class TestConnect:
    """Tests for connect() and its failure paths."""

    @pytest.mark.asyncio
    async def test_connect_success(self, session, fake_transport, recorder):
        await session.connect()

        assert session.is_connected is True
        assert session.state is SessionState.CONNECTED
        changes = recorder.of_type(ConnectionChangedEvent)
        assert [e.connected for e in changes] == [True]

    @pytest.mark.asyncio
    async def test_setup_configuration(self, session, fake_transport):
        await session.connect()

        setup = fake_transport.setup
        assert setup["model"].startswith("models/")
        assert setup["generationConfig"]["responseModalities"] == ["AUDIO"]
        assert setup["tools"][0] == {"googleSearch": {}}
        names = [d["name"] for d in setup["tools"][1]["functionDeclarations"]]
        assert len(names) == 6
        assert "rotate-view" in names
        assert setup["inputAudioTranscription"] == {}
        assert setup["outputAudioTranscription"] == {}
        assert "tour guide" in setup["systemInstruction"]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_connect_twice_raises(self, session):
        await session.connect()
        with pytest.raises(SessionStateError):
            await session.connect()

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect_raises(self, session):
        await session.connect()
        await session.disconnect()
        with pytest.raises(SessionStateError):
            await session.connect()

    @pytest.mark.asyncio
    async def test_connect_timeout(self, make_session, tool_handler, recorder):
        transport = FakeTransport(auto_open=False)
        session = make_session(transport, tool_handler, connect_timeout_s=0.05)

        with pytest.raises(ConnectionFailedError) as exc_info:
            await session.connect()

        assert "timed out" in str(exc_info.value)
        assert session.is_connected is False
        assert transport.closed is True
        assert [e.connected for e in recorder.of_type(ConnectionChangedEvent)] == [False]

    @pytest.mark.asyncio
    async def test_late_open_after_timeout_is_ignored(self, make_session, tool_handler, recorder):
        transport = FakeTransport(auto_open=False)
        session = make_session(transport, tool_handler, connect_timeout_s=0.05)

        with pytest.raises(ConnectionFailedError):
            await session.connect()

        await transport.signal_open()

        assert session.is_connected is False
        assert not any(e.connected for e in recorder.of_type(ConnectionChangedEvent))

    @pytest.mark.asyncio
    async def test_error_before_open(self, make_session, tool_handler):
        class RefusingTransport(FakeTransport):
            async def open(self, setup, callbacks):
                self.callbacks = callbacks
                await callbacks.on_error(ConnectionError("refused"))

        transport = RefusingTransport()
        session = make_session(transport, tool_handler)

        with pytest.raises(ConnectionFailedError) as exc_info:
            await session.connect()

        assert exc_info.value.reason == "refused"
        assert session.is_connected is False
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_close_before_open(self, make_session, tool_handler):
        class ClosingTransport(FakeTransport):
            async def open(self, setup, callbacks):
                self.callbacks = callbacks
                await callbacks.on_close(1008, "policy violation")

        session = make_session(ClosingTransport(), tool_handler)

        with pytest.raises(ConnectionFailedError) as exc_info:
            await session.connect()

        assert "closed before opening" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_duplicate_open_is_ignored(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.signal_open()

        assert session.is_connected is True
        assert len(recorder.of_type(ConnectionChangedEvent)) == 1


class TestDisconnect:
    """Tests for teardown."""

    @pytest.mark.asyncio
    async def test_disconnect_resets_state(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.deliver({"data": base64.b64encode(b"\x00\x01").decode()})
        assert session.is_speaking is True

        await session.disconnect()

        assert session.is_connected is False
        assert session.is_speaking is False
        assert session.is_processing is False
        assert fake_transport.closed is True
        assert [e.connected for e in recorder.of_type(ConnectionChangedEvent)] == [True, False]

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, session, recorder):
        await session.connect()
        await session.disconnect()
        await session.disconnect()

        assert len(recorder.of_type(ConnectionChangedEvent)) == 2

    @pytest.mark.asyncio
    async def test_disconnect_before_connect(self, session):
        await session.disconnect()
        assert session.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_server_close_while_connected(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.signal_close(1011, "internal error")

        assert session.is_connected is False
        assert session.state is SessionState.CLOSED
        last = recorder.of_type(ConnectionChangedEvent)[-1]
        assert last.connected is False
        assert last.reason == "internal error"

    @pytest.mark.asyncio
    async def test_transport_error_while_connected(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.signal_error(RuntimeError("socket reset"))

        errors = recorder.of_type(ErrorEvent)
        assert len(errors) == 1
        assert errors[0].message == "socket reset"


# ============================================================================
# Outbound operations
# ============================================================================

class TestSendAudio:
    """Audio sends never raise on disconnection."""

    @pytest.mark.asyncio
    async def test_disconnected_send_is_silent(self, session):
        session.accumulator.append_user("hello")

        result = await session.send_audio(b"\x00" * 320)

        assert result is False
        assert session.accumulator.user_text == "hello"
        assert session.accumulator.mode is AccumulatorMode.USER

    @pytest.mark.asyncio
    async def test_send_audio_frame_shape(self, session, fake_transport):
        await session.connect()

        assert await session.send_audio(b"\x01\x02") is True

        audio = fake_transport.realtime_inputs[-1]["audio"]
        assert audio["data"] == "AQI="
        assert audio["mimeType"] == "audio/pcm;rate=16000"

    @pytest.mark.asyncio
    async def test_send_racing_close_returns_false(self, session, fake_transport, recorder):
        await session.connect()
        fake_transport.drop()

        assert await session.send_audio(b"\x01\x02") is False
        assert session.is_connected is False
        assert recorder.of_type(ConnectionChangedEvent)[-1].connected is False


class TestSendText:
    """Tests for text turns."""

    @pytest.mark.asyncio
    async def test_send_text_disconnected_raises(self, session):
        with pytest.raises(NotConnectedError):
            await session.send_text("hello")

    @pytest.mark.asyncio
    async def test_send_text_completes_turn(self, session, fake_transport):
        await session.connect()
        await session.send_text("Take me to Rome")

        content = fake_transport.client_contents[-1]
        assert content["turnComplete"] is True
        assert content["turns"] == [{"role": "user", "parts": [{"text": "Take me to Rome"}]}]
        assert session.is_processing is True


class TestContextUpdate:
    """Tests for viewport context pushes."""

    @pytest.mark.asyncio
    async def test_context_update_does_not_end_turn(self, session, fake_transport):
        await session.connect()

        assert await session.send_context_update(EIFFEL) is True

        content = fake_transport.client_contents[-1]
        assert content["turnComplete"] is False
        text = content["turns"][0]["parts"][0]["text"]
        assert text.startswith("[SYSTEM_UPDATE]")
        assert "Heading: 180.0° (S)" in text
        assert "Address: Eiffel Tower" in text
        assert session.is_processing is False

    @pytest.mark.asyncio
    async def test_context_update_disconnected_is_noop(self, session, fake_transport):
        assert await session.send_context_update(EIFFEL) is False
        assert fake_transport.sent == []

    @pytest.mark.asyncio
    async def test_context_update_without_position(self, session, fake_transport):
        await session.connect()
        context = ViewportContext(position=None, pov=Pov(heading=0.0, pitch=0.0))

        assert await session.send_context_update(context) is False
        assert fake_transport.client_contents == []


class TestInterrupt:
    """Tests for barge-in."""

    @pytest.mark.asyncio
    async def test_interrupt_clears_local_state(self, session, fake_transport):
        await session.connect()
        await fake_transport.deliver({
            "data": "AAA=",
            "serverContent": {"outputTranscription": {"text": "The tower was built"}},
        })
        assert session.is_speaking is True

        await session.interrupt()

        assert fake_transport.realtime_inputs[-1] == {}
        assert session.is_speaking is False
        assert session.accumulator.agent_text == ""
        assert session.accumulator.mode is AccumulatorMode.IDLE

    @pytest.mark.asyncio
    async def test_interrupt_disconnected_is_noop(self, session, fake_transport):
        await session.interrupt()
        assert fake_transport.sent == []


# ============================================================================
# Inbound frames
# ============================================================================

class TestInbound:
    """Tests for inbound frame handling."""

    @pytest.mark.asyncio
    async def test_audio_is_decoded(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.deliver({"data": base64.b64encode(b"\x10\x20\x30\x40").decode()})

        [event] = recorder.of_type(AudioResponseEvent)
        assert event.audio_data == b"\x10\x20\x30\x40"
        assert event.sample_rate == 24000
        assert session.is_speaking is True

    @pytest.mark.asyncio
    async def test_inline_audio_parts(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.deliver({
            "serverContent": {
                "modelTurn": {
                    "parts": [{"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": "AQI="}}]
                }
            }
        })

        [event] = recorder.of_type(AudioResponseEvent)
        assert event.audio_data == b"\x01\x02"

    @pytest.mark.asyncio
    async def test_turn_complete_clears_flags(self, session, fake_transport, recorder):
        await session.connect()
        await session.send_text("hi")
        await fake_transport.deliver({"data": "AAA="})

        await fake_transport.deliver({"serverContent": {"turnComplete": True}})

        assert session.is_processing is False
        assert session.is_speaking is False
        assert len(recorder.of_type(TurnCompleteEvent)) == 1
        assert session.accumulator.mode is AccumulatorMode.IDLE

    @pytest.mark.asyncio
    async def test_transcripts_accumulate(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.deliver({"serverContent": {"inputTranscription": {"text": "what is"}}})
        await fake_transport.deliver({"serverContent": {"inputTranscription": {"text": "that"}}})

        assert [e.text for e in recorder.of_type(TranscriptEvent)] == ["what is", "what is that"]

    @pytest.mark.asyncio
    async def test_agent_text_accumulates_across_sources(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.deliver({"serverContent": {"inputTranscription": {"text": "what is that"}}})
        await fake_transport.deliver({"serverContent": {"outputTranscription": {"text": "That is"}}})
        await fake_transport.deliver({
            "serverContent": {"modelTurn": {"parts": [{"text": "the Eiffel Tower."}]}}
        })

        texts = [e.text for e in recorder.of_type(TextResponseEvent)]
        assert texts == ["That is", "That is the Eiffel Tower."]
        assert session.accumulator.user_text == ""

    @pytest.mark.asyncio
    async def test_thought_parts_are_skipped(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.deliver({
            "serverContent": {"modelTurn": {"parts": [{"text": "planning a route", "thought": True}]}}
        })

        assert recorder.of_type(TextResponseEvent) == []

    @pytest.mark.asyncio
    async def test_snake_case_frames(self, session, fake_transport, recorder):
        await session.connect()
        await fake_transport.deliver({"server_content": {"input_transcription": {"text": "hello"}}})

        assert [e.text for e in recorder.of_type(TranscriptEvent)] == ["hello"]

    @pytest.mark.asyncio
    async def test_bad_audio_is_dropped(self, session, fake_transport, recorder):
        """Undecodable audio loses that frame only."""
        await session.connect()

        await fake_transport.deliver({"data": "abc"})
        await fake_transport.deliver({"serverContent": {"turnComplete": True}})

        assert session.is_connected is True
        assert fake_transport.closed is False
        assert recorder.of_type(AudioResponseEvent) == []
        assert recorder.of_type(ErrorEvent) == []
        assert [e.connected for e in recorder.of_type(ConnectionChangedEvent)] == [True]
        assert len(recorder.of_type(TurnCompleteEvent)) == 1
        assert session.stats["malformed_frames"] == 1

    @pytest.mark.asyncio
    async def test_non_object_frame_is_dropped(self, session, fake_transport, recorder):
        await session.connect()

        await fake_transport.deliver(["not", "an", "object"])
        await fake_transport.deliver({"serverContent": {"outputTranscription": {"text": "still here"}}})

        assert session.is_connected is True
        assert [e.text for e in recorder.of_type(TextResponseEvent)] == ["still here"]
        assert session.stats["malformed_frames"] == 1


# ============================================================================
# Tool dispatch
# ============================================================================

class TestToolDispatch:
    """Every identified call is answered exactly once."""

    @pytest.mark.asyncio
    async def test_success_response(self, session, fake_transport, tool_handler):
        await session.connect()
        await fake_transport.deliver(tool_call_frame("step-forward", {"steps": 2}, "id-1"))
        await session.wait_for_tool_calls(timeout=1.0)

        tool_handler.assert_awaited_once_with("step-forward", {"steps": 2})
        assert fake_transport.tool_responses == [
            {"id": "id-1", "name": "step-forward", "response": {"success": True, "message": "ok"}}
        ]
        assert session.pending_tool_calls == 0

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_response(self, make_session, fake_transport):
        handler = AsyncMock(side_effect=RuntimeError("viewer exploded"))
        session = make_session(fake_transport, handler)
        await session.connect()

        await fake_transport.deliver(tool_call_frame("rotate-view", {"heading": 10, "pitch": 0}, "boom"))
        await session.wait_for_tool_calls(timeout=1.0)

        [response] = fake_transport.tool_responses
        assert response["id"] == "boom"
        assert response["response"] == {"error": "viewer exploded"}
        assert session.is_connected is True

    @pytest.mark.asyncio
    async def test_invalid_arguments_skip_handler(self, session, fake_transport, tool_handler):
        await session.connect()
        await fake_transport.deliver(tool_call_frame("step-forward", {"steps": 6}, "bad"))
        await session.wait_for_tool_calls(timeout=1.0)

        tool_handler.assert_not_awaited()
        [response] = fake_transport.tool_responses
        assert response["id"] == "bad"
        assert "steps" in response["response"]["error"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, session, fake_transport, tool_handler):
        await session.connect()
        await fake_transport.deliver(tool_call_frame("fly", {}, "x"))
        await session.wait_for_tool_calls(timeout=1.0)

        tool_handler.assert_not_awaited()
        assert "unknown tool" in fake_transport.tool_responses[0]["response"]["error"]

    @pytest.mark.asyncio
    async def test_empty_id_gets_no_response(self, session, fake_transport, tool_handler):
        await session.connect()
        await fake_transport.deliver(tool_call_frame("fetch-location-facts", {}, ""))
        await session.wait_for_tool_calls(timeout=1.0)

        tool_handler.assert_awaited_once()
        assert fake_transport.tool_responses == []

    @pytest.mark.asyncio
    async def test_empty_id_failure_gets_no_response(self, make_session, fake_transport):
        handler = AsyncMock(side_effect=RuntimeError("nope"))
        session = make_session(fake_transport, handler)
        await session.connect()

        await fake_transport.deliver(tool_call_frame("fetch-location-facts", {}, ""))
        await session.wait_for_tool_calls(timeout=1.0)

        assert fake_transport.tool_responses == []

    @pytest.mark.asyncio
    async def test_embedded_function_call_is_fire_and_forget(self, session, fake_transport, tool_handler):
        await session.connect()
        await fake_transport.deliver({
            "serverContent": {
                "modelTurn": {
                    "parts": [{"functionCall": {"name": "request-selfie", "args": {}, "id": "ignored"}}]
                }
            }
        })
        await session.wait_for_tool_calls(timeout=1.0)

        tool_handler.assert_awaited_once_with("request-selfie", {})
        assert fake_transport.tool_responses == []

    @pytest.mark.asyncio
    async def test_concurrent_calls_answer_independently(self, make_session, fake_transport):
        gate = asyncio.Event()

        async def handler(name, args):
            if name == "jump-to-location":
                await gate.wait()
            return {"success": True, "message": name}

        session = make_session(fake_transport, handler)
        await session.connect()

        await fake_transport.deliver(tool_call_frame("jump-to-location", {"location": "Rome"}, "slow"))
        await fake_transport.deliver(tool_call_frame("fetch-location-facts", {}, "fast"))
        await asyncio.sleep(0.05)

        assert [r["id"] for r in fake_transport.tool_responses] == ["fast"]

        gate.set()
        await session.wait_for_tool_calls(timeout=1.0)
        assert [r["id"] for r in fake_transport.tool_responses] == ["fast", "slow"]

    @pytest.mark.asyncio
    async def test_disconnect_abandons_pending_calls(self, make_session, fake_transport):
        gate = asyncio.Event()

        async def handler(name, args):
            await gate.wait()
            return {"success": True, "message": "late"}

        session = make_session(fake_transport, handler)
        await session.connect()
        await fake_transport.deliver(tool_call_frame("fetch-location-facts", {}, "pending"))
        await asyncio.sleep(0)
        assert session.pending_tool_calls == 1

        await session.disconnect()
        gate.set()
        await session.wait_for_tool_calls(timeout=1.0)

        assert fake_transport.tool_responses == []
        assert session.pending_tool_calls == 0

    @pytest.mark.asyncio
    async def test_tool_call_event_reaches_subscribers(self, fake_transport, tool_handler):
        """A session on its own bus delivers ToolCallEvent without a run() loop."""
        session = LiveSession(
            "test-key",
            tool_handler=tool_handler,
            transport_factory=lambda: fake_transport,
            connect_timeout_s=0.5,
        )
        observed = []

        async def on_tool(event: ToolCallEvent) -> None:
            observed.append(event)

        session.events.subscribe(ToolCallEvent, on_tool)
        await session.connect()
        for call_id in ("a", "b", "c"):
            await fake_transport.deliver(tool_call_frame("fetch-location-facts", {}, call_id))
        await session.wait_for_tool_calls(timeout=1.0)

        assert sorted(event.call_id for event in observed) == ["a", "b", "c"]
        assert all(event.failed is False for event in observed)
        assert all(event.is_fire_and_forget is False for event in observed)
        assert session.events.queue_size == 0

    @pytest.mark.asyncio
    async def test_response_send_failure_is_reported(self, make_session, tool_handler, recorder):
        transport = BrokenResponseTransport()
        session = make_session(transport, tool_handler)
        await session.connect()

        await transport.deliver(tool_call_frame("fetch-location-facts", {}, "lost"))
        tasks = list(session._tool_tasks)
        await session.wait_for_tool_calls(timeout=1.0)

        assert all(task.exception() is None for task in tasks)
        [error] = recorder.of_type(ErrorEvent)
        assert error.message == "encoder failure"
        assert recorder.of_type(ToolCallEvent) == []
        assert session.is_connected is True


# ============================================================================
# End-to-end
# ============================================================================

class TestEndToEnd:
    """Session, registry and executor working together."""

    @pytest.mark.asyncio
    async def test_context_then_rotate(self, make_session, fake_transport, viewer, nav_config):
        executor = NavigationExecutor(viewer, config=nav_config)
        session = make_session(fake_transport, executor.execute)
        await session.connect()

        assert await session.send_context_update(EIFFEL) is True
        context_text = fake_transport.client_contents[-1]["turns"][0]["parts"][0]["text"]
        assert "Heading: 180.0° (S)" in context_text

        await fake_transport.deliver(tool_call_frame("rotate-view", {"heading": 90, "pitch": 0}, "abc"))
        await session.wait_for_tool_calls(timeout=2.0)

        [response] = fake_transport.tool_responses
        assert response["id"] == "abc"
        assert response["name"] == "rotate-view"
        assert response["response"]["success"] is True
        assert viewer.pov.heading == pytest.approx(90.0)
