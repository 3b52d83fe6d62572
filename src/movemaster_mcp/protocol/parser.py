"""Response parsing for device messages."""

from __future__ import annotations

import logging
import re

from ..errors import MalformedResponse
from ..models.pose import Pose
from ..models.state import ErrorCode

logger = logging.getLogger(__name__)

POSE_FIELDS = 5
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_number(field: str) -> float:
    """Parse one numeric field of a ``WH`` response.

    The device pads with whitespace, writes an explicit ``+`` sign and may
    omit the zero before the decimal point (``.500``).
    """
    cleaned = field.strip().replace("+", "", 1)
    if cleaned.startswith("."):
        cleaned = f"0{cleaned}"
    elif cleaned.startswith("-."):
        cleaned = f"-0{cleaned[1:]}"
    try:
        return float(cleaned)
    except ValueError as e:
        raise MalformedResponse(f"Invalid numeric field {field!r}") from e


def parse_pose(response: str) -> Pose:
    """Parse a ``WH`` response into a :class:`Pose`.

    Fields beyond the fifth are ignored.

    Raises:
        MalformedResponse: Fewer than five fields, or a field is not numeric.
    """
    parts = response.split(",")
    if len(parts) < POSE_FIELDS:
        raise MalformedResponse(f"Invalid position response format: {response!r}")
    x, y, z, p, r = (parse_number(part) for part in parts[:POSE_FIELDS])
    return Pose(x=x, y=y, z=z, p=p, r=r)


def parse_error_code(response: str) -> ErrorCode:
    """Map an ``ER`` response onto :class:`ErrorCode`.

    Only the leading integer counts; anything unparseable is ``UNKNOWN``.
    """
    match = _LEADING_INT.match(response)
    if match is None:
        logger.error("Invalid error code received: %r", response)
        return ErrorCode.UNKNOWN
    value = int(match.group(1))
    if value in (ErrorCode.OK, ErrorCode.HARDWARE_ERROR, ErrorCode.COMMAND_OR_POSITION_ERROR):
        return ErrorCode(value)
    return ErrorCode.UNKNOWN
