"""
Viewer Capabilities

The navigation executor never reaches into a global control surface. It
receives these interfaces at construction:

- ViewerControl: the panoramic camera (snapshot, animated pan, pano load)
- Geocoder: place name <-> coordinates
- PanoramaLocator: coordinates -> nearest outdoor pano node

The viewer owns its mutable state (current pano and orientation); callers
only issue commands and read snapshots.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from anywhere.core.viewport import PanoLink, Position, Pov, ViewportContext

__all__ = [
    "Geocoder",
    "GeocodeResult",
    "PanoLink",
    "PanoramaLocation",
    "PanoramaLocator",
    "Position",
    "Pov",
    "ViewerControl",
    "ViewportContext",
]


@dataclass(frozen=True)
class GeocodeResult:
    """A resolved place."""
    position: Position
    formatted_address: str


@dataclass(frozen=True)
class PanoramaLocation:
    """The pano node nearest to a requested position."""
    pano_id: str
    position: Position
    description: Optional[str] = None


class ViewerControl(ABC):
    """Command interface of the panoramic camera viewer."""

    @abstractmethod
    def snapshot(self) -> ViewportContext:
        """Current position, orientation, address and outgoing links."""

    @abstractmethod
    async def pan_to(self, heading: float, pitch: float, duration_s: float) -> None:
        """
        Animate the camera from its current orientation.

        heading may lie outside 0-360 (current heading plus a signed
        shortest-path delta); the viewer interpolates toward it and stores
        the normalized value. Returns when the animation completes.
        """

    @abstractmethod
    async def set_pano(self, pano_id: str) -> None:
        """Load a pano node. Returns once the viewer reports it changed."""

    def static_image_url(self, width: int = 1920, height: int = 1080) -> Optional[str]:
        """Still image of the current view, or None if unavailable."""
        return None


class Geocoder(ABC):
    """Forward and reverse geocoding."""

    @abstractmethod
    async def geocode(self, query: str) -> Optional[GeocodeResult]:
        """Resolve a place name; None when nothing matches."""

    @abstractmethod
    async def reverse_geocode(self, position: Position) -> Optional[str]:
        """Formatted address of a position; None when unknown."""


class PanoramaLocator(ABC):
    """Finds pano nodes near a position."""

    @abstractmethod
    async def find_panorama(self, position: Position, radius_m: int) -> Optional[PanoramaLocation]:
        """Nearest outdoor pano within radius_m; None when there is no coverage."""
