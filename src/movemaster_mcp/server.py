"""MCP server entry point for Movemaster-style robot arms.

Exposes tools and resources via the Model Context Protocol using the
official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_PORT, LOG_LEVEL
from .errors import MovemasterError
from .models.pose import Pose, clean_up_r_value
from .robot import Robot

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "movemaster",
    instructions="MCP server for Movemaster-style serial robot arms",
)

# Global connection state
_robot: Robot | None = None


def _get_robot() -> Robot:
    """Get the connected robot, raising if not connected."""
    if _robot is None or not _robot.is_connected():
        raise RuntimeError(
            "Not connected to robot. Use the 'connect' tool first."
        )
    return _robot


async def _run(operation: Awaitable[Any], check: bool = False) -> dict[str, Any] | None:
    """Await a robot operation, turning engine failures into an error dict."""
    robot = _get_robot()
    try:
        if check:
            await robot.with_check(operation)
        else:
            await operation
    except MovemasterError as e:
        logger.error("Operation failed: %s", e)
        return {"error": str(e), "type": type(e).__name__}
    return None


def _pose_result(robot: Robot) -> dict[str, Any]:
    pose = robot.position
    return {"ok": True, "position": pose.to_dict() if pose else None}


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_ports() -> dict[str, Any]:
    """List the serial ports available on this machine."""
    return {"ports": Robot.list_ports()}


@mcp.tool()
async def connect(port: str | None = None) -> dict[str, Any]:
    """Open the serial connection to the arm's drive unit.

    Args:
        port: Serial device (e.g. /dev/ttyUSB0, COM3). Defaults to the
              MOVEMASTER_PORT environment variable.
    """
    global _robot
    port = port or DEFAULT_PORT
    if not port:
        return {"error": "No port given and MOVEMASTER_PORT is not set"}

    if _robot is not None and _robot.is_connected():
        return {"connected": True, "message": "Already connected"}

    robot = Robot()
    try:
        await robot.connect(port)
    except MovemasterError as e:
        return {"error": str(e), "type": type(e).__name__}
    _robot = robot
    return {"connected": True, "port": port}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial connection to the arm."""
    global _robot
    if _robot is None:
        return {"disconnected": True}
    _robot.disconnect()
    _robot = None
    return {"disconnected": True}


# ─── POSITION TOOLS ───────────────────────────────────────────────────

@mcp.tool()
async def get_position(refresh: bool = True) -> dict[str, Any]:
    """Read the tool point pose.

    Args:
        refresh: Query the arm (WH). When false, return the cached pose if one
                 is known.
    """
    robot = _get_robot()
    try:
        pose = await robot.get_pose(force_refresh=refresh)
    except MovemasterError as e:
        return {"error": str(e), "type": type(e).__name__}
    return {"position": pose.to_dict()}


@mcp.tool()
async def move_to(
    x: float,
    y: float,
    z: float,
    p: float,
    r: float,
    interpolate_points: int = 0,
    check: bool = True,
) -> dict[str, Any]:
    """Move to an absolute pose (mm / degrees).

    Args:
        interpolate_points: Intermediate points for a straight-line move
                            (0 = direct move).
        check: Query the arm's error register after the move.
    """
    robot = _get_robot()
    error = await _run(robot.move_to(Pose(x, y, z, p, r), interpolate_points), check)
    return error or _pose_result(robot)


@mcp.tool()
async def move_to_xyz(
    x: float,
    y: float,
    z: float,
    interpolate_points: int = 0,
    check: bool = True,
) -> dict[str, Any]:
    """Move to absolute x/y/z keeping the current pitch and roll."""
    robot = _get_robot()
    error = await _run(robot.move_to_xyz(x, y, z, interpolate_points), check)
    return error or _pose_result(robot)


@mcp.tool()
async def move_delta(
    dx: float = 0.0,
    dy: float = 0.0,
    dz: float = 0.0,
    dp: float | None = None,
    dr: float | None = None,
    interpolate_points: int = 0,
    check: bool = True,
) -> dict[str, Any]:
    """Move relative to the current pose.

    Args:
        dp: Pitch delta. When both dp and dr are omitted only the linear
            axes move.
        dr: Roll delta.
    """
    robot = _get_robot()
    if dp is None and dr is None:
        operation = robot.move_delta_xyz(dx, dy, dz, interpolate_points)
    else:
        operation = robot.move_delta(dx, dy, dz, dp or 0.0, dr or 0.0, interpolate_points)
    error = await _run(operation, check)
    return error or _pose_result(robot)


@mcp.tool()
async def move_path(points: list[dict[str, float]], check: bool = True) -> dict[str, Any]:
    """Move through a sequence of poses.

    Args:
        points: List of {"x", "y", "z", "p", "r"} dicts, visited in order.
    """
    robot = _get_robot()
    try:
        poses = [Pose.from_dict(point) for point in points]
    except (KeyError, TypeError, ValueError) as e:
        return {"error": f"Invalid point: {e}"}
    error = await _run(robot.move_path(poses), check)
    return error or _pose_result(robot)


@mcp.tool()
async def rotate_axis(
    dx: float = 0.0,
    dy: float = 0.0,
    dz: float = 0.0,
    dp: float = 0.0,
    dr: float = 0.0,
    check: bool = True,
) -> dict[str, Any]:
    """Rotate the joints relative to their current angles (degrees)."""
    robot = _get_robot()
    error = await _run(robot.rotate_axis(dx, dy, dz, dp, dr), check)
    return error or _pose_result(robot)


@mcp.tool()
def clean_up_r(x: float, y: float, r_target: float) -> dict[str, float]:
    """Compensate a roll target for the base rotation towards (x, y)."""
    return {"r": clean_up_r_value(x, y, r_target)}


# ─── DEVICE TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
async def home(check: bool = True) -> dict[str, Any]:
    """Move all axes to their zero position (OG)."""
    error = await _run(_get_robot().move_to_home_position(), check)
    return error or {"ok": True}


@mcp.tool()
async def nest(check: bool = True) -> dict[str, Any]:
    """Return to the mechanical origin (NT). Needed after power on."""
    error = await _run(_get_robot().nest(), check)
    return error or {"ok": True}


@mcp.tool()
async def reset() -> dict[str, Any]:
    """Reset the control box (RS)."""
    error = await _run(_get_robot().reset())
    return error or {"ok": True}


@mcp.tool()
async def check_error() -> dict[str, Any]:
    """Read the arm's error register (ER)."""
    robot = _get_robot()
    try:
        code = await robot.check_error_code()
    except MovemasterError as e:
        return {"error": str(e), "type": type(e).__name__}
    return {"code": int(code), "name": code.name, "ok": code == 0}


@mcp.tool()
async def set_gripper(open: bool, check: bool = True) -> dict[str, Any]:
    """Open or close the gripper."""
    robot = _get_robot()
    error = await _run(robot.set_gripper(open), check)
    return error or {"gripper_open": not robot.gripper_closed}


@mcp.tool()
async def set_speed(speed: float, check: bool = True) -> dict[str, Any]:
    """Set the speed level (0-9, fractional values are truncated)."""
    robot = _get_robot()
    error = await _run(robot.set_speed(speed), check)
    return error or {"speed": robot.speed}


@mcp.tool()
async def set_tool_length(length: float, check: bool = True) -> dict[str, Any]:
    """Set the tool length in millimetres."""
    robot = _get_robot()
    error = await _run(robot.set_tool_length(length), check)
    return error or {"tool_length": robot.tool_length}


@mcp.tool()
async def set_grip_pressure(
    starting_force: int,
    retained_force: int,
    retention_time: int,
    check: bool = True,
) -> dict[str, Any]:
    """Define the gripper pressure.

    Args:
        starting_force: Starting gripping force (0-15).
        retained_force: Retained gripping force (0-15).
        retention_time: Starting force retention time (0-99).
    """
    error = await _run(
        _get_robot().set_grip_pressure(starting_force, retained_force, retention_time),
        check,
    )
    return error or {"ok": True}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("movemaster://state")
def resource_state() -> str:
    """Cached device state of the current connection."""
    if _robot is None:
        return json.dumps({"connected": False})
    return json.dumps(_robot.state.to_dict())


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=LOG_LEVEL)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
