"""
Live Transport

The session talks to the remote agent through a LiveTransport: one
persistent bidirectional stream whose lifecycle is reported through
async callbacks (open, message, error, close). Messages are delivered
strictly in arrival order because the pump awaits each callback.

WebSocketTransport implements the transport over the Gemini Live
BidiGenerateContent websocket using the websockets library.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.protocol import State

from anywhere.errors import TransportClosedError
from anywhere.logger import get_logger
from anywhere.realtime.protocol import setup_frame

logger = get_logger(__name__)

SETUP_COMPLETE_TIMEOUT_S = 15.0


@dataclass
class TransportCallbacks:
    """Async hooks a transport invokes over its lifetime."""
    on_open: Callable[[], Awaitable[None]]
    on_message: Callable[[Dict[str, Any]], Awaitable[None]]
    on_error: Callable[[BaseException], Awaitable[None]]
    on_close: Callable[[Optional[int], str], Awaitable[None]]


class LiveTransport(ABC):
    """
    One bidirectional streaming connection.

    open() only starts connecting; readiness is signalled by on_open.
    """

    @abstractmethod
    async def open(self, setup: Dict[str, Any], callbacks: TransportCallbacks) -> None:
        """Begin connecting and configure the stream with setup."""

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        """
        Transmit one frame.

        Raises:
            TransportClosedError: The stream is closing or closed
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the stream. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True once open was signalled and until the stream starts closing."""

    @property
    def is_closing(self) -> bool:
        return not self.is_open


class WebSocketTransport(LiveTransport):
    """
    Gemini Live websocket transport.

    Usage:
        transport = WebSocketTransport(api_key, url)
        await transport.open(setup, callbacks)
        await transport.send({"realtimeInput": {...}})
        await transport.close()
    """

    def __init__(
        self,
        api_key: str,
        url: str,
        ping_interval: float = 25.0,
        ping_timeout: float = 15.0,
        max_size: int = 10 * 1024 * 1024,
        setup_timeout_s: float = SETUP_COMPLETE_TIMEOUT_S,
    ):
        self._api_key = api_key
        self._url = url
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._max_size = max_size
        self._setup_timeout_s = setup_timeout_s

        self._ws: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None
        self._opened = False
        self._closing = False

    @property
    def endpoint(self) -> str:
        return f"{self._url}?key={self._api_key}"

    @property
    def is_open(self) -> bool:
        if not self._opened or self._closing or self._ws is None:
            return False
        return self._ws.state is State.OPEN

    async def open(self, setup: Dict[str, Any], callbacks: TransportCallbacks) -> None:
        if self._task is not None:
            raise RuntimeError("WebSocketTransport.open() called twice")
        self._task = asyncio.create_task(self._run(setup, callbacks), name="live-transport")

    async def _run(self, setup: Dict[str, Any], callbacks: TransportCallbacks) -> None:
        close_code: Optional[int] = None
        close_reason = ""

        try:
            async with websockets.connect(
                self.endpoint,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                max_size=self._max_size,
            ) as ws:
                self._ws = ws
                await ws.send(json.dumps(setup_frame(setup)))
                logger.debug("Setup sent, waiting for setupComplete")

                raw = await asyncio.wait_for(ws.recv(), timeout=self._setup_timeout_s)
                first = json.loads(raw)
                if "setupComplete" not in first and "setup_complete" not in first:
                    raise ConnectionError(f"Expected setupComplete, got: {list(first.keys())}")

                self._opened = True
                await callbacks.on_open()

                async for raw in ws:
                    try:
                        message = json.loads(raw)
                    except json.JSONDecodeError:
                        logger.warning("Dropping undecodable frame")
                        continue
                    await callbacks.on_message(message)

                close_code, close_reason = ws.close_code, ws.close_reason or ""

        except asyncio.CancelledError:
            raise
        except websockets.ConnectionClosed as e:
            close_code = e.rcvd.code if e.rcvd else None
            close_reason = e.rcvd.reason if e.rcvd else str(e)
            if not self._closing:
                await callbacks.on_error(e)
        except Exception as e:
            close_reason = str(e)
            if not self._closing:
                await callbacks.on_error(e)
        finally:
            self._ws = None

        logger.info(f"Live stream closed: code={close_code} reason={close_reason!r}")
        await callbacks.on_close(close_code, close_reason)

    async def send(self, message: Dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or self._closing or ws.state is not State.OPEN:
            raise TransportClosedError("Live stream is closing or closed")
        try:
            await ws.send(json.dumps(message))
        except websockets.ConnectionClosed as e:
            raise TransportClosedError(str(e)) from e

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True

        ws = self._ws
        if ws is not None:
            # Ends the receive loop, which then reports on_close
            await ws.close()
        elif self._task is not None and not self._task.done():
            self._task.cancel()
