"""
Navigation Module

The tool catalogue the agent may call and the executor that carries the
calls out against an injected viewer.
"""

from .registry import (
    TOOL_DECLARATIONS,
    ParamSpec,
    ToolDeclaration,
    ToolRegistry,
    tool_registry,
)
from .viewer import (
    GeocodeResult,
    Geocoder,
    PanoramaLocation,
    PanoramaLocator,
    ViewerControl,
)
from .executor import NavigationExecutor, ToolResult, compute_focus_target
from .maps import GoogleMapsClient, static_image_url
from .simulated import PanoNode, SimulatedAtlas, SimulatedViewer, demo_world

__all__ = [
    "TOOL_DECLARATIONS",
    "ParamSpec",
    "ToolDeclaration",
    "ToolRegistry",
    "tool_registry",
    "GeocodeResult",
    "Geocoder",
    "PanoramaLocation",
    "PanoramaLocator",
    "ViewerControl",
    "NavigationExecutor",
    "ToolResult",
    "compute_focus_target",
    "GoogleMapsClient",
    "static_image_url",
    "PanoNode",
    "SimulatedAtlas",
    "SimulatedViewer",
    "demo_world",
]
