"""
Viewport Value Types

Immutable snapshots of what the camera viewer shows. They are produced by
the viewer, read by the navigation tools and sent to the agent as
context; nothing here is persisted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from anywhere.core.geometry import heading_to_cardinal, normalize_heading


@dataclass(frozen=True)
class Position:
    """Geographic position in degrees."""
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class Pov:
    """
    Camera orientation.

    Attributes:
        heading: Degrees clockwise from North (0-360)
        pitch: Degrees above the horizon (-90 to 90)
    """
    heading: float
    pitch: float

    @property
    def cardinal(self) -> str:
        return heading_to_cardinal(self.heading)

    def normalized(self) -> "Pov":
        return Pov(heading=normalize_heading(self.heading), pitch=self.pitch)

    def to_dict(self) -> Dict[str, float]:
        return {"heading": self.heading, "pitch": self.pitch}


@dataclass(frozen=True)
class PanoLink:
    """A directional link from the current pano node to a neighbour."""
    pano_id: str
    heading: Optional[float] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"heading": self.heading, "description": self.description}


@dataclass(frozen=True)
class ViewportContext:
    """
    Snapshot describing what the viewer currently shows.

    Position is None while no panorama has loaded yet.
    """
    position: Optional[Position]
    pov: Pov
    address: Optional[str] = None
    pano_id: Optional[str] = None
    links: List[PanoLink] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict() if self.position else None,
            "pov": self.pov.to_dict(),
            "cardinal": self.pov.cardinal,
            "address": self.address,
            "panoId": self.pano_id,
            "availableDirections": [link.to_dict() for link in self.links],
        }
