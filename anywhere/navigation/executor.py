"""
Navigation Executor

Maps each validated tool call onto viewer commands and produces a
structured result:

    {"success": bool, "message": str, "data": {...}?, "error": str?}

Handler-level failures (no path ahead, unknown place) are reported as
success=false results. Anything unexpected propagates to the session's
dispatch boundary, which turns it into an error payload.
"""

import asyncio
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from anywhere.config import NavigationConfig, settings
from anywhere.core.geometry import (
    clamp,
    clamp_pitch,
    normalize_heading,
    shortest_heading_delta,
)
from anywhere.core.viewport import PanoLink, Pov, ViewportContext
from anywhere.errors import LocationNotFoundError, ToolExecutionError
from anywhere.logger import get_logger

from .registry import (
    FETCH_LOCATION_FACTS,
    FOCUS_ON_OBJECT,
    JUMP_TO_LOCATION,
    REQUEST_SELFIE,
    ROTATE_VIEW,
    STEP_FORWARD,
    tool_registry,
)
from .viewer import Geocoder, PanoramaLocator, ViewerControl

logger = get_logger(__name__)

SelfieCallback = Callable[[Optional[str]], None]
NavigatingListener = Callable[[bool], None]

# Pitch band used by the focus heuristic
FOCUS_MIN_PITCH = -30.0
FOCUS_MAX_PITCH = 60.0


@dataclass
class ToolResult:
    """Outcome of one tool execution."""
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(success=False, message=error, data=data, error=error)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        return result


def _declared_args(name: str, args: Dict[str, Any]) -> Dict[str, Any]:
    declaration = tool_registry.get(name)
    if declaration is None:
        return dict(args)
    return {key: args[key] for key in declaration.params if args.get(key) is not None}


def _plural(count: int) -> str:
    return "step" if count == 1 else "steps"


# ============================================================================
# Focus heuristic
# ============================================================================

def _pattern(*words: str) -> "re.Pattern[str]":
    return re.compile(r"\b(" + "|".join(words) + r")\b")


_FAR_LEFT = _pattern(r"far left", r"hard left", r"extreme left")
_FAR_RIGHT = _pattern(r"far right", r"hard right", r"extreme right")
_LEFT = _pattern("left")
_RIGHT = _pattern("right")
_BEHIND = _pattern("behind", "back", "rear", "opposite")
_UP = _pattern("up", "above", "sky", "top", "roof", "rooftop", "ceiling", "overhead")
_TALL = _pattern("tower", "steeple", "spire", "skyscraper", "dome", "tall", "high", "mountain", "statue")
_DOWN = _pattern("down", "below", "ground", "floor", "pavement", "sidewalk")
_LOW = _pattern("street", "road", "car", "bench", "sign", "door", "entrance", "fountain")


@dataclass
class FocusTarget:
    """Orientation computed from a free-text description."""
    heading: float
    pitch: float
    heading_offset: float = 0.0
    cues: List[str] = field(default_factory=list)


def compute_focus_target(description: str, current: Pov) -> FocusTarget:
    """
    Guess where an object is from directional keywords.

    Horizontal cues offset the current heading (left -45, right +45,
    far left/right -90/+90, behind +180); vertical cues nudge the pitch by
    15-30 degrees within the -30..60 band. No visual grounding is involved.
    """
    text = description.lower()
    offset = 0.0
    cues: List[str] = []

    if _FAR_LEFT.search(text):
        offset, cue = -90.0, "far left"
    elif _FAR_RIGHT.search(text):
        offset, cue = 90.0, "far right"
    elif _LEFT.search(text):
        offset, cue = -45.0, "left"
    elif _RIGHT.search(text):
        offset, cue = 45.0, "right"
    else:
        cue = ""
    if cue:
        cues.append(cue)

    if _BEHIND.search(text):
        offset += 180.0
        cues.append("behind")

    pitch = current.pitch
    if _UP.search(text):
        pitch += 30.0
        cues.append("up")
    elif _TALL.search(text):
        pitch += 15.0
        cues.append("tall")
    elif _DOWN.search(text):
        pitch -= 30.0
        cues.append("down")
    elif _LOW.search(text):
        pitch -= 15.0
        cues.append("low")

    return FocusTarget(
        heading=normalize_heading(current.heading + offset),
        pitch=clamp(pitch, FOCUS_MIN_PITCH, FOCUS_MAX_PITCH),
        heading_offset=offset,
        cues=cues,
    )


# ============================================================================
# Executor
# ============================================================================

class NavigationExecutor:
    """
    Executes the six tool operations against injected viewer capabilities.

    Usage:
        executor = NavigationExecutor(viewer, geocoder=maps, locator=maps)
        result = await executor.execute("step-forward", {"steps": 2})
    """

    def __init__(
        self,
        viewer: ViewerControl,
        geocoder: Optional[Geocoder] = None,
        locator: Optional[PanoramaLocator] = None,
        config: Optional[NavigationConfig] = None,
        search_radius_m: Optional[int] = None,
        on_selfie: Optional[SelfieCallback] = None,
        on_navigating: Optional[NavigatingListener] = None,
    ):
        self._viewer = viewer
        self._geocoder = geocoder
        self._locator = locator
        self._config = config or settings.navigation
        self._search_radius_m = search_radius_m or settings.maps.search_radius_m
        self._on_selfie = on_selfie
        self._on_navigating = on_navigating
        self._navigating = 0

        self._handlers = {
            ROTATE_VIEW: self._rotate_view,
            STEP_FORWARD: self._step_forward,
            JUMP_TO_LOCATION: self._jump_to_location,
            FOCUS_ON_OBJECT: self._focus_on_object,
            FETCH_LOCATION_FACTS: self._fetch_location_facts,
            REQUEST_SELFIE: self._request_selfie,
        }

    @property
    def is_navigating(self) -> bool:
        return self._navigating > 0

    async def execute(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a validated tool call.

        Returns:
            The serialized ToolResult
        """
        handler = self._handlers.get(name)
        if handler is None:
            return ToolResult.failure(f"Unknown function: {name}").to_dict()

        try:
            result = await handler(**_declared_args(name, args))
        except ToolExecutionError as e:
            logger.warning(f"{name} failed: {e}")
            result = ToolResult.failure(str(e))
        return result.to_dict()

    @contextmanager
    def _navigation(self) -> Iterator[None]:
        self._navigating += 1
        if self._navigating == 1 and self._on_navigating:
            self._on_navigating(True)
        try:
            yield
        finally:
            self._navigating -= 1
            if self._navigating == 0 and self._on_navigating:
                self._on_navigating(False)

    # ========================================================================
    # Viewer helpers
    # ========================================================================

    async def _pan(self, target_heading: float, target_pitch: float) -> Tuple[float, float, float]:
        current = self._viewer.snapshot().pov
        delta = shortest_heading_delta(current.heading, target_heading)
        pitch = clamp_pitch(target_pitch)
        duration = self._config.pan_duration_s

        try:
            await asyncio.wait_for(
                self._viewer.pan_to(current.heading + delta, pitch, duration),
                timeout=duration + self._config.pano_load_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Pan animation did not report completion within {duration:.1f}s")

        return normalize_heading(target_heading), pitch, delta

    async def _load_pano(self, pano_id: str) -> None:
        timeout = self._config.pano_load_timeout_s
        try:
            await asyncio.wait_for(self._viewer.set_pano(pano_id), timeout=timeout)
        except asyncio.TimeoutError:
            # The viewer may still finish loading; carry on like it did
            logger.warning(f"Pano {pano_id} did not report loading within {timeout:.1f}s")

    def _aligned_link(self, links: List[PanoLink], heading: float) -> Optional[PanoLink]:
        best: Optional[PanoLink] = None
        best_diff = float("inf")
        for link in links:
            if link.heading is None:
                continue
            diff = abs(shortest_heading_delta(heading, link.heading))
            if diff <= self._config.max_link_deviation_deg and diff < best_diff:
                best, best_diff = link, diff
        return best

    def _context(self) -> ViewportContext:
        return self._viewer.snapshot()

    # ========================================================================
    # Handlers
    # ========================================================================

    async def _rotate_view(self, heading: float, pitch: float) -> ToolResult:
        with self._navigation():
            final_heading, final_pitch, delta = await self._pan(heading, pitch)

        return ToolResult(
            success=True,
            message=f"Camera rotated to heading {final_heading:.1f}°, pitch {final_pitch:.1f}°",
            data={"heading": final_heading, "pitch": final_pitch, "delta": delta},
        )

    async def _step_forward(self, steps: float) -> ToolResult:
        requested = int(clamp(round(steps), 1, self._config.max_steps))
        completed = 0
        blocked = False
        message = ""

        with self._navigation():
            for _ in range(requested):
                snapshot = self._viewer.snapshot()
                if not snapshot.links:
                    blocked = True
                    if completed == 0:
                        message = (
                            "Cannot move forward: no navigable paths available from this location. "
                            "This may be a dead end, or street-level coverage is limited here. "
                            "Try turning to face a different direction or jumping to a nearby location."
                        )
                    else:
                        message = (
                            f"Reached a dead end after {completed} {_plural(completed)}. "
                            "No further paths available in this direction."
                        )
                    break

                link = self._aligned_link(snapshot.links, snapshot.pov.heading)
                if link is None:
                    blocked = True
                    if completed == 0:
                        message = (
                            "Cannot move forward: no valid path found in the current direction. "
                            "Try turning to face a different direction where a path is visible."
                        )
                    else:
                        message = (
                            f"Moved {completed} {_plural(completed)} but then reached a point "
                            "with no clear path forward."
                        )
                    break

                await self._load_pano(link.pano_id)
                completed += 1
                if completed < requested:
                    await asyncio.sleep(self._config.step_pause_s)

        if not message:
            message = f"Successfully moved forward {completed} {_plural(completed)}."

        data = {"stepsCompleted": completed, "stepsRequested": requested, "blocked": blocked}
        if completed == 0:
            return ToolResult.failure(message, data=data)
        return ToolResult(success=True, message=message, data=data)

    async def _jump_to_location(self, location: str) -> ToolResult:
        query = location.strip()
        if self._geocoder is None or self._locator is None:
            raise ToolExecutionError("Jumping is unavailable: geocoding is not configured")

        with self._navigation():
            place = await self._geocoder.geocode(query)
            if place is None:
                raise LocationNotFoundError(f"Location not found: {query}")

            pano = await self._locator.find_panorama(place.position, self._search_radius_m)
            if pano is None:
                raise LocationNotFoundError(f"No street-level coverage at {query}")

            await self._load_pano(pano.pano_id)

        return ToolResult(
            success=True,
            message=f"Jumped to {place.formatted_address}",
            data={
                "location": query,
                "address": place.formatted_address,
                "position": pano.position.to_dict(),
                "panoId": pano.pano_id,
            },
        )

    async def _focus_on_object(self, description: str) -> ToolResult:
        current = self._viewer.snapshot().pov
        target = compute_focus_target(description, current)

        with self._navigation():
            final_heading, final_pitch, _ = await self._pan(target.heading, target.pitch)

        if target.cues:
            message = (
                f"Turned toward \"{description.strip()}\" "
                f"(heading {final_heading:.1f}°, pitch {final_pitch:.1f}°)"
            )
        else:
            message = (
                f"No directional cue in \"{description.strip()}\"; kept heading "
                f"{final_heading:.1f}° at pitch {final_pitch:.1f}°"
            )

        return ToolResult(
            success=True,
            message=message,
            data={"heading": final_heading, "pitch": final_pitch, "cues": target.cues},
        )

    async def _fetch_location_facts(self) -> ToolResult:
        return ToolResult(
            success=True,
            message="Use Google Search to find information about this location",
            data=self._context().to_dict(),
        )

    async def _request_selfie(self, style: Optional[str] = None) -> ToolResult:
        if self._on_selfie is not None:
            self._on_selfie(style)

        return ToolResult(
            success=True,
            message=(
                "Selfie dialog opened. The user can now upload their photo "
                "and generate a souvenir image."
            ),
            data={"style": style, "imageUrl": self._viewer.static_image_url()},
        )
