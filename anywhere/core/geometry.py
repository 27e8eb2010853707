"""
Heading and Geometry Utilities

Pure functions for compass bearings and camera orientation:
- heading_to_cardinal: 8-point compass label for a bearing
- normalize_heading: wrap any angle into [0, 360)
- shortest_heading_delta: signed rotation in [-180, 180] between two bearings
- clamp_pitch: keep pitch inside the viewer's vertical range
- ease_in_out: easing curve used for smooth pans
- distance_m: great-circle distance between two coordinates
"""

import math
from typing import List

CARDINAL_DIRECTIONS: List[str] = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]

MIN_PITCH = -90.0
MAX_PITCH = 90.0
EARTH_RADIUS_M = 6_371_000.0


def normalize_heading(heading: float) -> float:
    """Wrap a heading in degrees into [0, 360)."""
    return ((heading % 360.0) + 360.0) % 360.0


def heading_to_cardinal(heading: float) -> str:
    """
    Convert a heading in degrees to an 8-point cardinal label.

    Negative and >360 inputs are normalized first, so -10 reads as 350 (N).

    >>> heading_to_cardinal(46)
    'NE'
    """
    index = int(_round_half_up(normalize_heading(heading) / 45.0)) % 8
    return CARDINAL_DIRECTIONS[index]


def shortest_heading_delta(current: float, target: float) -> float:
    """
    Signed rotation from current to target along the shortest arc.

    The result is always within [-180, 180]; a half-turn keeps its sign
    as computed (10 -> 190 is +180).
    """
    delta = target - current
    # Bring raw deltas from arbitrary (unnormalized) inputs into one turn first
    delta = delta % 360.0 if delta >= 0 else -((-delta) % 360.0)
    if delta > 180.0:
        delta -= 360.0
    if delta < -180.0:
        delta += 360.0
    return delta


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_pitch(pitch: float) -> float:
    """Clamp pitch to [-90, 90]."""
    return clamp(pitch, MIN_PITCH, MAX_PITCH)


def ease_in_out(t: float) -> float:
    """Quadratic ease-in-out for t in [0, 1]."""
    t = clamp(t, 0.0, 1.0)
    if t < 0.5:
        return 2.0 * t * t
    return 1.0 - ((-2.0 * t + 2.0) ** 2) / 2.0


def _round_half_up(value: float) -> float:
    # round() uses banker's rounding; 22.5 -> NE must round up
    return float(int(value + 0.5))


def distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))
