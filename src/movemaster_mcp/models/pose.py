"""Pose value type for the arm's tool point."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Pose:
    """Tool point position and orientation.

    ``x``, ``y`` and ``z`` are linear axes in millimetres, ``p`` (pitch) and
    ``r`` (roll) are in degrees. Instances are immutable, so a cached pose can
    be handed out without the caller being able to alter the cache.
    """

    x: float
    y: float
    z: float
    p: float
    r: float

    def translated(self, dx: float, dy: float, dz: float) -> Pose:
        """Return a new pose offset on the linear axes only."""
        return Pose(self.x + dx, self.y + dy, self.z + dz, self.p, self.r)

    def offset(self, dx: float, dy: float, dz: float, dp: float, dr: float) -> Pose:
        """Return a new pose offset on all five axes."""
        return Pose(
            self.x + dx,
            self.y + dy,
            self.z + dz,
            self.p + dp,
            self.r + dr,
        )

    def with_xyz(self, x: float, y: float, z: float) -> Pose:
        return Pose(x, y, z, self.p, self.r)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "p": self.p, "r": self.r}

    @classmethod
    def from_dict(cls, data: dict) -> Pose:
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            z=float(data["z"]),
            p=float(data["p"]),
            r=float(data["r"]),
        )


def clean_up_r_value(x: float, y: float, r_target: float) -> float:
    """Compensate a roll target for the base rotation towards ``(x, y)``.

    This is a convenience formula, not an inverse kinematics solution.
    """
    return r_target + math.degrees(math.atan2(x, y))
