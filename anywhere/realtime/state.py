"""
Explorer State

UI-facing flags and the tour history. Owned and mutated by the
ExplorerController; everything else reads it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from anywhere.core.viewport import Position, Pov


@dataclass
class TourCheckpoint:
    """A visited place with the narration given there."""
    position: Position
    pov: Pov
    address: Optional[str]
    ai_narration: Optional[str]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position.to_dict(),
            "pov": self.pov.to_dict(),
            "address": self.address,
            "aiNarration": self.ai_narration,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ExplorerState:
    """Everything the interface renders."""
    position: Optional[Position] = None
    pov: Pov = field(default_factory=lambda: Pov(heading=0.0, pitch=0.0))
    address: Optional[str] = None
    pano_id: Optional[str] = None

    is_connected: bool = False
    is_listening: bool = False
    is_speaking: bool = False
    is_navigating: bool = False
    current_transcript: str = ""
    latest_ai_response: str = ""
    error: Optional[str] = None

    selfie_requested: bool = False
    selfie_style: Optional[str] = None
    tour_history: List[TourCheckpoint] = field(default_factory=list)

    def add_checkpoint(self, narration: Optional[str] = None) -> Optional[TourCheckpoint]:
        """Record the current place. Nothing is recorded before a position is known."""
        if self.position is None:
            return None
        checkpoint = TourCheckpoint(
            position=self.position,
            pov=self.pov,
            address=self.address,
            ai_narration=narration,
        )
        self.tour_history.append(checkpoint)
        return checkpoint

    def remove_checkpoint(self, checkpoint_id: str) -> bool:
        before = len(self.tour_history)
        self.tour_history = [c for c in self.tour_history if c.id != checkpoint_id]
        return len(self.tour_history) != before

    def clear_tour(self) -> None:
        self.tour_history = []

    def mark_disconnected(self) -> None:
        self.is_connected = False
        self.is_listening = False
        self.is_speaking = False
