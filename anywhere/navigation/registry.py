"""
Tool Registry

Declares the fixed catalogue of operations the remote agent may invoke
and validates call arguments before anything executes.

Catalogue:
    rotate-view(heading, pitch)     heading 0-360, pitch -90..90
    step-forward(steps)             1-5
    jump-to-location(location)      non-empty after trim
    focus-on-object(description)    non-empty after trim
    fetch-location-facts()          no arguments
    request-selfie(style?)          string if present

Usage:
    from anywhere.navigation.registry import tool_registry

    tool_registry.validate("step-forward", {"steps": 3})
    declarations = tool_registry.function_declarations()
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from anywhere.errors import InvalidArgumentsError

ROTATE_VIEW = "rotate-view"
STEP_FORWARD = "step-forward"
JUMP_TO_LOCATION = "jump-to-location"
FOCUS_ON_OBJECT = "focus-on-object"
FETCH_LOCATION_FACTS = "fetch-location-facts"
REQUEST_SELFIE = "request-selfie"


@dataclass(frozen=True)
class ParamSpec:
    """
    Schema for one tool parameter.

    Attributes:
        kind: "number" or "string"
        description: Text shown to the agent
        required: Whether the argument must be present
        minimum: Inclusive lower bound for numbers
        maximum: Inclusive upper bound for numbers
        non_empty: Strings must contain something besides whitespace
    """
    kind: str
    description: str
    required: bool = True
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    non_empty: bool = False

    def to_schema(self) -> Dict[str, Any]:
        return {"type": self.kind, "description": self.description}


@dataclass(frozen=True)
class ToolDeclaration:
    """Immutable catalogue entry for one remote-invocable operation."""
    name: str
    description: str
    params: Mapping[str, ParamSpec] = field(default_factory=dict)

    @property
    def required_params(self) -> List[str]:
        return [name for name, spec in self.params.items() if spec.required]

    def to_function_declaration(self) -> Dict[str, Any]:
        """Render as a function declaration for the live session setup."""
        parameters: Dict[str, Any] = {
            "type": "object",
            "properties": {name: spec.to_schema() for name, spec in self.params.items()},
        }
        if self.required_params:
            parameters["required"] = self.required_params
        return {
            "name": self.name,
            "description": self.description,
            "parameters": parameters,
        }


TOOL_DECLARATIONS: List[ToolDeclaration] = [
    ToolDeclaration(
        name=ROTATE_VIEW,
        description=(
            "Smoothly rotate the camera to a new heading and pitch. Use when the user asks to "
            "'turn', 'look' or 'face' a direction, look up or down, or turn around."
        ),
        params={
            "heading": ParamSpec(
                kind="number",
                description="Target heading in degrees (0-360). 0=North, 90=East, 180=South, 270=West.",
                minimum=0.0,
                maximum=360.0,
            ),
            "pitch": ParamSpec(
                kind="number",
                description="Target pitch in degrees (-90 to 90). 0=horizon, positive looks up.",
                minimum=-90.0,
                maximum=90.0,
            ),
        },
    ),
    ToolDeclaration(
        name=STEP_FORWARD,
        description=(
            "Advance along the street in the direction the camera faces. Use for 'go forward', "
            "'keep walking', 'move ahead'. Each step is roughly 10-20 meters."
        ),
        params={
            "steps": ParamSpec(
                kind="number",
                description="Number of panorama positions to advance (1-5).",
                minimum=1.0,
                maximum=5.0,
            ),
        },
    ),
    ToolDeclaration(
        name=JUMP_TO_LOCATION,
        description=(
            "Instantly travel to a named place anywhere in the world: landmarks, cities, "
            "addresses or points of interest."
        ),
        params={
            "location": ParamSpec(
                kind="string",
                description="Place name, e.g. 'Eiffel Tower' or '221B Baker Street, London'.",
                non_empty=True,
            ),
        },
    ),
    ToolDeclaration(
        name=FOCUS_ON_OBJECT,
        description=(
            "Turn toward an object or feature described in words, e.g. 'the church steeple' "
            "or 'the red car on the left'."
        ),
        params={
            "description": ParamSpec(
                kind="string",
                description="Description of what to look at in the current view.",
                non_empty=True,
            ),
        },
    ),
    ToolDeclaration(
        name=FETCH_LOCATION_FACTS,
        description=(
            "Get the current viewport (position, heading, address) to ground a search for facts, "
            "history and trivia about this place."
        ),
    ),
    ToolDeclaration(
        name=REQUEST_SELFIE,
        description=(
            "Open the souvenir photo flow that composites the user into the current scene."
        ),
        params={
            "style": ParamSpec(
                kind="string",
                description="Optional style: polaroid, vintage, professional, fun or natural.",
                required=False,
            ),
        },
    ),
]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _bounds_text(spec: ParamSpec) -> str:
    if spec.minimum is not None and spec.maximum is not None:
        return f"between {spec.minimum:g} and {spec.maximum:g}"
    if spec.minimum is not None:
        return f"at least {spec.minimum:g}"
    return f"at most {spec.maximum:g}"


class ToolRegistry:
    """
    Lookup and argument validation for the tool catalogue.
    """

    def __init__(self, declarations: Optional[List[ToolDeclaration]] = None):
        declarations = TOOL_DECLARATIONS if declarations is None else declarations
        self._declarations: Dict[str, ToolDeclaration] = {d.name: d for d in declarations}

    def __contains__(self, name: str) -> bool:
        return name in self._declarations

    def __len__(self) -> int:
        return len(self._declarations)

    @property
    def names(self) -> List[str]:
        return list(self._declarations)

    def get(self, name: str) -> Optional[ToolDeclaration]:
        return self._declarations.get(name)

    def function_declarations(self) -> List[Dict[str, Any]]:
        return [d.to_function_declaration() for d in self._declarations.values()]

    def validate(self, name: str, args: Any) -> None:
        """
        Validate call arguments against the declaration.

        Raises:
            InvalidArgumentsError: Unknown tool, non-object args, missing or
                mistyped field, or a bound violation
        """
        declaration = self._declarations.get(name)
        if declaration is None:
            raise InvalidArgumentsError(name, f"unknown tool '{name}'")

        if not isinstance(args, Mapping):
            raise InvalidArgumentsError(name, f"expected an object, got {type(args).__name__}")

        for param_name, spec in declaration.params.items():
            if param_name not in args or args[param_name] is None:
                if spec.required:
                    raise InvalidArgumentsError(
                        name, f"'{param_name}' is required ({spec.kind})", field=param_name
                    )
                continue
            self._check_value(name, param_name, spec, args[param_name])

    @staticmethod
    def _check_value(tool: str, param_name: str, spec: ParamSpec, value: Any) -> None:
        if spec.kind == "number":
            if not _is_number(value):
                raise InvalidArgumentsError(
                    tool, f"'{param_name}' must be a number, got {type(value).__name__}", field=param_name
                )
            below = spec.minimum is not None and value < spec.minimum
            above = spec.maximum is not None and value > spec.maximum
            if below or above:
                raise InvalidArgumentsError(
                    tool, f"'{param_name}' must be {_bounds_text(spec)}, got {value:g}", field=param_name
                )
        elif spec.kind == "string":
            if not isinstance(value, str):
                raise InvalidArgumentsError(
                    tool, f"'{param_name}' must be a string, got {type(value).__name__}", field=param_name
                )
            if spec.non_empty and not value.strip():
                raise InvalidArgumentsError(
                    tool, f"'{param_name}' must be a non-empty string", field=param_name
                )


tool_registry = ToolRegistry()
