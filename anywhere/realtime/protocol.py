"""
Live Wire Protocol

Builders for outbound frames and a parser for inbound frames of the
bidirectional live API. Outbound shapes:

    setup           {"setup": {...}}
    realtime audio  {"realtimeInput": {"audio": {"data": b64, "mimeType": "audio/pcm;rate=16000"}}}
    interrupt       {"realtimeInput": {}}
    client content  {"clientContent": {"turns": [...], "turnComplete": bool}}
    tool response   {"toolResponse": {"functionResponses": [{"id", "name", "response"}]}}

Inbound frames are accepted in camelCase or snake_case.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from anywhere.audio import INPUT_SAMPLE_RATE

INPUT_AUDIO_MIME = f"audio/pcm;rate={INPUT_SAMPLE_RATE}"


# ============================================================================
# Outbound
# ============================================================================

def encode_audio(frame: bytes) -> str:
    return base64.b64encode(frame).decode("ascii")


def decode_audio(data: str) -> bytes:
    return base64.b64decode(data)


def build_setup(
    model: str,
    system_instruction: str,
    function_declarations: List[Dict[str, Any]],
    voice: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the session configuration sent when the stream opens.

    Single AUDIO response modality, search grounding plus the function
    catalogue, and transcription of both directions.
    """
    generation_config: Dict[str, Any] = {"responseModalities": ["AUDIO"]}
    if voice:
        generation_config["speechConfig"] = {
            "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}}
        }

    model_name = model if model.startswith("models/") else f"models/{model}"
    return {
        "model": model_name,
        "generationConfig": generation_config,
        "systemInstruction": {"parts": [{"text": system_instruction}]},
        "tools": [
            {"googleSearch": {}},
            {"functionDeclarations": function_declarations},
        ],
        "inputAudioTranscription": {},
        "outputAudioTranscription": {},
    }


def setup_frame(setup: Dict[str, Any]) -> Dict[str, Any]:
    return {"setup": setup}


def realtime_audio_frame(frame: bytes) -> Dict[str, Any]:
    return {"realtimeInput": {"audio": {"data": encode_audio(frame), "mimeType": INPUT_AUDIO_MIME}}}


def interrupt_frame() -> Dict[str, Any]:
    return {"realtimeInput": {}}


def client_text_frame(text: str, turn_complete: bool) -> Dict[str, Any]:
    return {
        "clientContent": {
            "turns": [{"role": "user", "parts": [{"text": text}]}],
            "turnComplete": turn_complete,
        }
    }


def tool_response_frame(call_id: str, name: str, response: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "toolResponse": {
            "functionResponses": [
                {"id": call_id, "name": name, "response": response}
            ]
        }
    }


def to_plain_response(result: Any) -> Dict[str, Any]:
    """
    Convert a handler result into a JSON-safe response object.

    Dicts that survive a JSON round trip are sent as-is, other JSON values
    are wrapped as {"output": value}, and anything unserializable falls back
    to {"output": str(result)}.
    """
    try:
        plain = json.loads(json.dumps(result))
    except (TypeError, ValueError):
        return {"output": str(result)}
    if isinstance(plain, dict):
        return plain
    return {"output": plain}


# ============================================================================
# Inbound
# ============================================================================

@dataclass
class FunctionCall:
    """A tool invocation requested by the agent. Empty id means no reply."""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    call_id: str = ""


@dataclass
class ContentPart:
    """One part of a model turn."""
    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    thought: bool = False


@dataclass
class ServerMessage:
    """A parsed inbound frame. Every field is optional."""
    audio_chunks: List[str] = field(default_factory=list)
    turn_complete: bool = False
    interrupted: bool = False
    parts: List[ContentPart] = field(default_factory=list)
    input_transcription: Optional[str] = None
    output_transcription: Optional[str] = None
    tool_calls: List[FunctionCall] = field(default_factory=list)
    cancelled_call_ids: List[str] = field(default_factory=list)
    setup_complete: bool = False
    go_away: bool = False
    usage: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.audio_chunks or self.turn_complete or self.interrupted or self.parts
            or self.input_transcription or self.output_transcription or self.tool_calls
            or self.cancelled_call_ids or self.setup_complete or self.go_away
            or self.usage is not None
        )


def _get(obj: Dict[str, Any], camel: str, snake: str) -> Any:
    if camel in obj:
        return obj[camel]
    return obj.get(snake)


def _parse_function_call(raw: Dict[str, Any], default_id: str = "") -> Optional[FunctionCall]:
    name = raw.get("name")
    if not name:
        return None
    args = raw.get("args")
    if args is None:
        args = {}
    call_id = raw.get("id") or default_id
    return FunctionCall(name=name, args=args, call_id=call_id)


def parse_server_message(message: Dict[str, Any]) -> ServerMessage:
    """
    Parse one decoded JSON frame from the server.

    Audio is collected from the top-level "data" field and from inline
    audio parts of the model turn; both are kept base64-encoded.
    """
    parsed = ServerMessage()

    data = message.get("data")
    if isinstance(data, str) and data:
        parsed.audio_chunks.append(data)

    parsed.setup_complete = _get(message, "setupComplete", "setup_complete") is not None
    parsed.go_away = _get(message, "goAway", "go_away") is not None
    parsed.usage = _get(message, "usageMetadata", "usage_metadata")

    server_content = _get(message, "serverContent", "server_content")
    if isinstance(server_content, dict):
        parsed.turn_complete = bool(_get(server_content, "turnComplete", "turn_complete"))
        parsed.interrupted = bool(server_content.get("interrupted"))

        model_turn = _get(server_content, "modelTurn", "model_turn") or {}
        for part in model_turn.get("parts") or []:
            inline = _get(part, "inlineData", "inline_data")
            if inline:
                mime = _get(inline, "mimeType", "mime_type") or ""
                if mime.startswith("audio/") and inline.get("data"):
                    parsed.audio_chunks.append(inline["data"])
                continue

            content = ContentPart(thought=bool(part.get("thought")))
            if part.get("text"):
                content.text = part["text"]
            raw_call = _get(part, "functionCall", "function_call")
            if raw_call:
                # Calls embedded in model output never expect an ack
                content.function_call = _parse_function_call(raw_call)
                if content.function_call:
                    content.function_call.call_id = ""
            if content.text is not None or content.function_call is not None:
                parsed.parts.append(content)

        input_tx = _get(server_content, "inputTranscription", "input_transcription")
        if isinstance(input_tx, dict) and input_tx.get("text"):
            parsed.input_transcription = input_tx["text"]

        output_tx = _get(server_content, "outputTranscription", "output_transcription")
        if isinstance(output_tx, dict) and output_tx.get("text"):
            parsed.output_transcription = output_tx["text"]

    tool_call = _get(message, "toolCall", "tool_call")
    if isinstance(tool_call, dict):
        for raw_call in _get(tool_call, "functionCalls", "function_calls") or []:
            call = _parse_function_call(raw_call)
            if call:
                parsed.tool_calls.append(call)

    cancellation = _get(message, "toolCallCancellation", "tool_call_cancellation")
    if isinstance(cancellation, dict):
        parsed.cancelled_call_ids = list(cancellation.get("ids") or [])

    return parsed
