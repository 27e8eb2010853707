"""
Simulated Viewer

An in-memory panorama graph standing in for the browser street viewer.
Used by the command line demo and the test suite.

- SimulatedViewer: camera over a graph of PanoNodes with eased pans
- SimulatedAtlas: geocoding and pano lookup over the same graph
- demo_world(): a small Paris street plus an isolated dead-end node
"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from anywhere.core.geometry import (
    clamp_pitch,
    distance_m,
    ease_in_out,
    normalize_heading,
)
from anywhere.core.viewport import PanoLink, Position, Pov, ViewportContext
from anywhere.errors import ToolExecutionError
from anywhere.logger import get_logger

from .maps import static_image_url
from .viewer import GeocodeResult, Geocoder, PanoramaLocation, PanoramaLocator, ViewerControl

logger = get_logger(__name__)

PositionListener = Callable[[Position], Awaitable[None]]


@dataclass
class PanoNode:
    """One capture point and its outgoing links."""
    pano_id: str
    position: Position
    links: List[PanoLink] = field(default_factory=list)
    address: Optional[str] = None
    aliases: List[str] = field(default_factory=list)


class SimulatedViewer(ViewerControl):
    """
    Viewer over an in-memory pano graph.

    Pans are animated in frames along an ease-in-out curve; each frame
    stores the normalized heading, like the real viewer does.
    """

    def __init__(
        self,
        nodes: Iterable[PanoNode],
        start_pano: str,
        heading: float = 0.0,
        pitch: float = 0.0,
        load_delay_s: float = 0.0,
        frame_interval_s: float = 1 / 30,
        maps_api_key: Optional[str] = None,
    ):
        self._nodes: Dict[str, PanoNode] = {node.pano_id: node for node in nodes}
        if start_pano not in self._nodes:
            raise ValueError(f"Unknown start pano: {start_pano}")

        self._current = self._nodes[start_pano]
        self._pov = Pov(heading=normalize_heading(heading), pitch=clamp_pitch(pitch))
        self._load_delay_s = load_delay_s
        self._frame_interval_s = frame_interval_s
        self._maps_api_key = maps_api_key
        self._listeners: List[PositionListener] = []

        self.visited: List[str] = [start_pano]

    @property
    def nodes(self) -> Dict[str, PanoNode]:
        return self._nodes

    @property
    def pov(self) -> Pov:
        return self._pov

    def add_position_listener(self, listener: PositionListener) -> None:
        self._listeners.append(listener)

    def snapshot(self) -> ViewportContext:
        node = self._current
        return ViewportContext(
            position=node.position,
            pov=self._pov,
            address=node.address,
            pano_id=node.pano_id,
            links=list(node.links),
        )

    async def pan_to(self, heading: float, pitch: float, duration_s: float) -> None:
        start = self._pov
        frames = max(1, int(duration_s / self._frame_interval_s)) if duration_s > 0 else 1

        for frame in range(1, frames + 1):
            if duration_s > 0:
                await asyncio.sleep(self._frame_interval_s)
            t = ease_in_out(frame / frames)
            self._pov = Pov(
                heading=normalize_heading(start.heading + (heading - start.heading) * t),
                pitch=start.pitch + (clamp_pitch(pitch) - start.pitch) * t,
            )

    async def set_pano(self, pano_id: str) -> None:
        node = self._nodes.get(pano_id)
        if node is None:
            raise ToolExecutionError(f"Unknown panorama: {pano_id}")

        if self._load_delay_s > 0:
            await asyncio.sleep(self._load_delay_s)

        self._current = node
        self.visited.append(pano_id)
        logger.debug(f"Loaded pano {pano_id} at {node.position.lat:.5f},{node.position.lng:.5f}")

        for listener in list(self._listeners):
            await listener(node.position)

    def static_image_url(self, width: int = 1920, height: int = 1080) -> Optional[str]:
        if not self._maps_api_key:
            return None
        return static_image_url(self._current.position, self._pov, self._maps_api_key, width, height)


class SimulatedAtlas(Geocoder, PanoramaLocator):
    """Geocoding over the nodes of a simulated world."""

    def __init__(self, nodes: Iterable[PanoNode]):
        self._nodes = list(nodes)

    async def geocode(self, query: str) -> Optional[GeocodeResult]:
        needle = query.strip().lower()
        for node in self._nodes:
            names = [node.address or ""] + node.aliases
            if any(needle and needle in name.lower() for name in names):
                return GeocodeResult(position=node.position, formatted_address=node.address or query)
        return None

    async def reverse_geocode(self, position: Position) -> Optional[str]:
        nearest = self._nearest(position)
        return nearest[0].address if nearest else None

    async def find_panorama(self, position: Position, radius_m: int) -> Optional[PanoramaLocation]:
        nearest = self._nearest(position)
        if nearest is None or nearest[1] > radius_m:
            return None
        node = nearest[0]
        return PanoramaLocation(pano_id=node.pano_id, position=node.position)

    def _nearest(self, position: Position) -> Optional[Tuple[PanoNode, float]]:
        best: Optional[Tuple[PanoNode, float]] = None
        for node in self._nodes:
            d = distance_m(position.lat, position.lng, node.position.lat, node.position.lng)
            if best is None or d < best[1]:
                best = (node, d)
        return best


def _chain(nodes: List[PanoNode], forward_heading: float) -> List[PanoNode]:
    """Link consecutive nodes both ways along a straight street."""
    backward = normalize_heading(forward_heading + 180.0)
    linked = []
    for i, node in enumerate(nodes):
        links = list(node.links)
        if i + 1 < len(nodes):
            links.append(PanoLink(pano_id=nodes[i + 1].pano_id, heading=forward_heading))
        if i > 0:
            links.append(PanoLink(pano_id=nodes[i - 1].pano_id, heading=backward))
        linked.append(replace(node, links=links))
    return linked


def demo_world() -> List[PanoNode]:
    """
    Four nodes walking south-east away from the Eiffel Tower and one
    isolated node in Times Square with no outgoing links.
    """
    street = _chain(
        [
            PanoNode(
                "paris-0",
                Position(48.8584, 2.2945),
                address="Eiffel Tower, Av. Gustave Eiffel, 75007 Paris, France",
                aliases=["eiffel tower", "tour eiffel"],
            ),
            PanoNode("paris-1", Position(48.8582, 2.2948), address="Av. Gustave Eiffel, 75007 Paris, France"),
            PanoNode("paris-2", Position(48.8580, 2.2951), address="Quai Branly, 75007 Paris, France"),
            PanoNode(
                "paris-3",
                Position(48.8578, 2.2954),
                address="Champ de Mars, 75007 Paris, France",
                aliases=["champ de mars"],
            ),
        ],
        forward_heading=135.0,
    )
    times_square = PanoNode(
        "nyc-0",
        Position(40.7580, -73.9855),
        address="Times Square, New York, NY 10036, USA",
        aliases=["times square"],
    )
    return street + [times_square]
