"""
Anywhere - Voice-Guided Street-Level Explorer

A realtime AI tour guide that pilots a panoramic street viewer through a
live, bidirectional audio conversation with the Gemini Live API.

This package provides:
- A streaming session multiplexing microphone audio, agent speech,
  streamed text and tool calls over one websocket
- A tool registry and navigation executor driving the viewer
- An orchestrator keeping UI state, tour history and context updates
- CLI interface for a text-only conversation against a simulated viewer
"""

__version__ = "1.0.0"

from anywhere.config import settings

__all__ = ["settings", "__version__"]
