"""Device state owned by a single engine instance."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .pose import Pose


class ErrorCode(IntEnum):
    """Codes reported by the ``ER`` query."""

    OK = 0
    HARDWARE_ERROR = 1
    COMMAND_OR_POSITION_ERROR = 2
    UNKNOWN = 99


@dataclass
class DeviceState:
    """Last-known state of the arm as seen by this engine.

    ``tool_length`` and ``speed`` are ``None`` until configured, so "never
    set" is distinguishable from zero.
    """

    pose: Pose | None = None
    gripper_open: bool = False
    tool_length: float | None = None
    speed: int | None = None
    connection_open: bool = False

    def to_dict(self) -> dict:
        return {
            "pose": self.pose.to_dict() if self.pose else None,
            "gripper_open": self.gripper_open,
            "tool_length": self.tool_length,
            "speed": self.speed,
            "connection_open": self.connection_open,
        }
