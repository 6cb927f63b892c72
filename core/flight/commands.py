"""Text command encoding for the Tello SDK.

Every block maps to one SDK command line ("takeoff", "up 50", "flip f").
Encoding is pure: it never talks to the vehicle and never range-checks
parameters. Out-of-range values are left for the firmware to reject.
A separate, opt-in ``validate()`` step exists for hosts that want
the SDK limits enforced before anything is sent.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from numbers import Number
from typing import Any, Optional, Union


class Action(str, Enum):
    TAKEOFF = "takeoff"
    LAND = "land"
    EMERGENCY = "emergency"
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    FORWARD = "forward"
    BACK = "back"
    CW = "cw"
    CCW = "ccw"
    FLIP = "flip"


class FlipDirection(str, Enum):
    FRONT = "f"
    BACK = "b"
    LEFT = "l"
    RIGHT = "r"

    @property
    def message_key(self) -> str:
        return f"flip_{self.name.lower()}"


class ParameterKind(str, Enum):
    NONE = "none"
    DISTANCE = "distance"    # cm
    ANGLE = "angle"          # degrees
    DIRECTION = "direction"  # FlipDirection code


# SDK limits, only used by validate()
DISTANCE_RANGE_CM = (20, 500)
ANGLE_RANGE_DEG = (1, 3600)


class CommandValidationError(ValueError):
    """A parameter is outside what the vehicle accepts."""


@dataclass(frozen=True)
class CommandSpec:
    """One vehicle action as shown in the block palette."""

    action: Action
    parameter_kind: ParameterKind = ParameterKind.NONE
    default_value: Any = None
    argument: Optional[str] = None  # host argument name

    @property
    def opcode(self) -> str:
        return self.action.value

    @property
    def takes_parameter(self) -> bool:
        return self.parameter_kind is not ParameterKind.NONE


def _distance(action: Action) -> CommandSpec:
    return CommandSpec(action, ParameterKind.DISTANCE, 50, "X")


def _angle(action: Action) -> CommandSpec:
    return CommandSpec(action, ParameterKind.ANGLE, 90, "X")


# Palette order
COMMAND_SPECS: tuple[CommandSpec, ...] = (
    CommandSpec(Action.TAKEOFF),
    CommandSpec(Action.LAND),
    CommandSpec(Action.EMERGENCY),
    _distance(Action.UP),
    _distance(Action.DOWN),
    _distance(Action.LEFT),
    _distance(Action.RIGHT),
    _distance(Action.FORWARD),
    _distance(Action.BACK),
    _angle(Action.CW),
    _angle(Action.CCW),
    CommandSpec(Action.FLIP, ParameterKind.DIRECTION, FlipDirection.FRONT.value, "DIRECTION"),
)

_SPECS_BY_ACTION = {spec.action: spec for spec in COMMAND_SPECS}


def get_spec(action: Union[Action, str]) -> CommandSpec:
    """Look up a spec by Action or opcode string. Unknown opcodes raise ValueError."""
    return _SPECS_BY_ACTION[Action(action)]


def format_number(value: Any) -> str:
    """Render a parameter the way the SDK expects to read it.

    Integral numbers lose their fractional part (50.0 -> "50"), other
    floats are written in plain decimal without an exponent. Strings
    are passed through as typed; anything else goes through str().
    """
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool) or not isinstance(value, Number):
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return str(value)
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), "f")
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def format_direction(value: Any) -> str:
    if isinstance(value, FlipDirection):
        return value.value
    # Anything else goes to the vehicle untouched
    return str(value).strip()


def encode(action: Union[Action, str], value: Any = None) -> str:
    """Build the SDK command line for an action.

    Args:
        action: The Action or its opcode string.
        value: Distance in cm, angle in degrees, or flip direction.
            Ignored for parameterless actions.

    Returns:
        The command text, e.g. ``"up 50"`` or ``"flip f"``.
    """
    spec = get_spec(action)
    if spec.parameter_kind is ParameterKind.NONE:
        return spec.opcode
    if spec.parameter_kind is ParameterKind.DIRECTION:
        return f"{spec.opcode} {format_direction(value)}"
    return f"{spec.opcode} {format_number(value)}"


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        raise CommandValidationError(f"Expected a number, got {value!r}")
    if isinstance(value, Number):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        raise CommandValidationError(f"Expected a number, got {value!r}") from None


def validate(action: Union[Action, str], value: Any = None) -> None:
    """Check a parameter against the SDK limits. Raises CommandValidationError."""
    spec = get_spec(action)
    kind = spec.parameter_kind

    if kind is ParameterKind.DIRECTION:
        code = format_direction(value)
        if code not in {d.value for d in FlipDirection}:
            raise CommandValidationError(f"Unknown flip direction: {value!r}")
        return

    if kind is ParameterKind.DISTANCE:
        low, high = DISTANCE_RANGE_CM
        unit = "cm"
    elif kind is ParameterKind.ANGLE:
        low, high = ANGLE_RANGE_DEG
        unit = "degrees"
    else:
        return

    number = _as_number(value)
    if not low <= number <= high:
        raise CommandValidationError(
            f"{spec.opcode}: {format_number(value)} {unit} outside {low}-{high}"
        )
