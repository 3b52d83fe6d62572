"""Data models for poses and device state."""

from .pose import Pose, clean_up_r_value
from .state import DeviceState, ErrorCode
