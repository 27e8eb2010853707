"""
Core Module

Pure helpers shared by the realtime session and the navigation tools.
"""

from anywhere.core.geometry import (
    heading_to_cardinal,
    normalize_heading,
    shortest_heading_delta,
    clamp_pitch,
)
from anywhere.core.prompts import SYSTEM_PROMPT, format_context_update

__all__ = [
    "heading_to_cardinal",
    "normalize_heading",
    "shortest_heading_delta",
    "clamp_pitch",
    "SYSTEM_PROMPT",
    "format_context_update",
]
