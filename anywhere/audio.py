"""
Audio Endpoints

Microphone capture and speaker playback are platform concerns, so the
orchestrator only sees these interfaces. Capture delivers 16 kHz mono
16-bit PCM frames; playback receives 24 kHz PCM from the agent.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from anywhere.logger import get_logger

logger = get_logger(__name__)

INPUT_SAMPLE_RATE = 16000
OUTPUT_SAMPLE_RATE = 24000

FrameCallback = Callable[[bytes], Awaitable[None]]


class AudioSource(ABC):
    """Microphone capture."""

    @abstractmethod
    async def start(self, on_frame: FrameCallback) -> None:
        """Begin capturing; on_frame is awaited for every PCM frame."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop capturing. Safe to call when not capturing."""

    @property
    @abstractmethod
    def is_capturing(self) -> bool:
        ...


class AudioSink(ABC):
    """Speaker playback."""

    @abstractmethod
    async def play(self, pcm: bytes) -> None:
        """Queue a chunk for playback."""

    @abstractmethod
    async def stop(self) -> None:
        """Drop queued audio immediately (barge-in)."""


class NullAudioSink(AudioSink):
    """Discards audio, keeping count of how much was received."""

    def __init__(self, sample_rate: int = OUTPUT_SAMPLE_RATE):
        self._sample_rate = sample_rate
        self.bytes_received = 0

    @property
    def seconds_received(self) -> float:
        return self.bytes_received / 2 / self._sample_rate

    async def play(self, pcm: bytes) -> None:
        self.bytes_received += len(pcm)

    async def stop(self) -> None:
        logger.debug("Playback stopped")
