"""Command mnemonics and wire text builders.

Each builder is pure: it validates its arguments and returns the command text
without the line terminator. Validation errors are raised before anything is
written to the port.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Sequence

from ..errors import ValidationError
from ..models.pose import Pose

# Path slot used by interpolated single-point moves.
INTERPOLATION_SLOT = 1
# Path moves store their points from this slot upwards.
PATH_SLOT_OFFSET = 1


class Command(str, Enum):
    """Drive unit command mnemonics."""

    MOVE_POSITION = "MP"
    PATH_CLEAR = "PC"
    PATH_DEFINE = "PD"
    MOVE_STRAIGHT = "MS"
    MOVE_CONTINUOUS = "MC"
    WHERE = "WH"
    GRIP_OPEN = "GO"
    GRIP_CLOSE = "GC"
    SPEED = "SP"
    TOOL_LENGTH = "TL"
    GRIP_PRESSURE = "GP"
    MOVE_JOINT = "MJ"
    ORIGIN = "OG"
    NEST = "NT"
    RESET = "RS"
    ERROR_READ = "ER"


def fmt(value: float) -> str:
    """Render a number as the device's one-decimal fixed point literal."""
    return f"{value:.1f}"


def build_command(command: Command, *args: str) -> str:
    """Join a mnemonic and its already formatted arguments."""
    if not args:
        return command.value
    return f"{command.value} " + ", ".join(args)


def _pose_args(pose: Pose) -> list[str]:
    return [fmt(pose.x), fmt(pose.y), fmt(pose.z), fmt(pose.p), fmt(pose.r)]


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValidationError(f"{name} must be between {low} and {high}, got {value}")


def build_move_position(pose: Pose) -> str:
    """Build an ``MP`` absolute move."""
    return build_command(Command.MOVE_POSITION, *_pose_args(pose))


def build_interpolated_move(
    pose: Pose, interpolate_points: int, gripper_open: bool
) -> list[str]:
    """Build the three-command burst for an interpolated absolute move.

    The destination is stored in :data:`INTERPOLATION_SLOT` and executed with
    ``MS`` through ``interpolate_points`` intermediate points, keeping the
    gripper in its current state.
    """
    if interpolate_points < 1:
        raise ValidationError(
            f"Interpolation points must be positive, got {interpolate_points}"
        )
    return [
        build_command(Command.PATH_CLEAR, str(INTERPOLATION_SLOT)),
        build_path_define(INTERPOLATION_SLOT, pose),
        build_command(
            Command.MOVE_STRAIGHT,
            str(INTERPOLATION_SLOT),
            str(int(interpolate_points)),
            # Keep the gripper as it is during the move: O = open, C = closed.
            "O" if gripper_open else "C",
        ),
    ]


def build_path_define(slot: int, pose: Pose) -> str:
    """Build a ``PD`` command storing ``pose`` in a path slot."""
    return build_command(Command.PATH_DEFINE, str(slot), *_pose_args(pose))


def build_path(points: Sequence[Pose]) -> tuple[list[str], str]:
    """Build the slot store commands and the execute command of a path move.

    Slots are 1-based: point ``i`` goes to slot ``i + 1`` and the final
    ``MC`` spans slot 1 through slot ``len(points)``.

    Returns:
        ``(store_commands, execute_command)``.
    """
    if not points:
        raise ValidationError("A path needs at least one point")
    stores = [
        build_path_define(index + PATH_SLOT_OFFSET, point)
        for index, point in enumerate(points)
    ]
    execute = build_command(
        Command.MOVE_CONTINUOUS,
        str(PATH_SLOT_OFFSET),
        str(len(points) - 1 + PATH_SLOT_OFFSET),
    )
    return stores, execute


def build_gripper(open_: bool) -> str:
    return Command.GRIP_OPEN.value if open_ else Command.GRIP_CLOSE.value


def normalize_speed(speed: float) -> int:
    """Validate a speed level and truncate it toward zero.

    Args:
        speed: Speed level 0-9; fractional input is truncated.
    """
    _check_range("Speed", speed, 0, 9)
    return int(speed)


def build_set_speed(speed: float) -> str:
    return build_command(Command.SPEED, str(normalize_speed(speed)))


def build_set_tool_length(length: float) -> str:
    """Build a ``TL`` command. The device takes whole millimetres."""
    if not math.isfinite(length):
        raise ValidationError(f"Tool length must be a finite number, got {length}")
    return build_command(Command.TOOL_LENGTH, str(int(length)))


def build_set_grip_pressure(
    starting_force: int, retained_force: int, retention_time: int
) -> str:
    """Build a ``GP`` command.

    Args:
        starting_force: Starting gripping force 0-15.
        retained_force: Retained gripping force 0-15.
        retention_time: Starting force retention time 0-99.
    """
    _check_range("Starting grip force", starting_force, 0, 15)
    _check_range("Retained gripping force", retained_force, 0, 15)
    _check_range("Start gripping force retention time", retention_time, 0, 99)
    return build_command(
        Command.GRIP_PRESSURE,
        str(int(starting_force)),
        str(int(retained_force)),
        str(int(retention_time)),
    )


def build_rotate_axis(dx: float, dy: float, dz: float, dp: float, dr: float) -> str:
    """Build an ``MJ`` relative joint rotation."""
    return build_command(
        Command.MOVE_JOINT, fmt(dx), fmt(dy), fmt(dz), fmt(dp), fmt(dr)
    )


def build_where() -> str:
    return Command.WHERE.value


def build_home() -> str:
    return Command.ORIGIN.value


def build_nest() -> str:
    return Command.NEST.value


def build_reset() -> str:
    return Command.RESET.value


def build_error_read() -> str:
    return Command.ERROR_READ.value
