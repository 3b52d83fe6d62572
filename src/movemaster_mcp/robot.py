"""High-level engine for one arm on one serial port.

The engine owns the connection, the command channel and the cached device
state. Every public operation is a coroutine; operations that send several
commands in sequence hold the engine lock so no other operation can
interleave with the burst.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextvars import ContextVar
from typing import AsyncIterator, Awaitable, Callable, Sequence, TypeVar

from .config import DEFAULT_LINE_CONFIG, RESPONSE_TIMEOUT_S, SETTLE_DELAY_S, LineConfig
from .errors import CommandError, NoCachedPose, PortNotOpen
from .models.pose import Pose
from .models.state import DeviceState, ErrorCode
from .protocol import commands
from .protocol.channel import CommandChannel
from .protocol.parser import parse_error_code, parse_pose
from .transport.serial_connection import SerialConnection, list_ports

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Engine whose lock the current task holds.
_lock_owner: ContextVar["Robot | None"] = ContextVar("movemaster_lock_owner", default=None)


class Robot:
    """Drives a Movemaster-style arm over a serial link.

    Usage::

        robot = Robot()
        await robot.connect("/dev/ttyUSB0")
        pose = await robot.get_pose()
        await robot.with_check(robot.move_delta_xyz(0, 0, 10))
        robot.disconnect()
    """

    def __init__(
        self,
        transport_factory: Callable[[], SerialConnection] = SerialConnection,
        *,
        line_config: LineConfig = DEFAULT_LINE_CONFIG,
        response_timeout: float = RESPONSE_TIMEOUT_S,
        settle_delay: float = SETTLE_DELAY_S,
    ) -> None:
        self._transport_factory = transport_factory
        self._line_config = line_config
        self._response_timeout = response_timeout
        self._settle_delay = settle_delay
        self._transport: SerialConnection | None = None
        self._channel: CommandChannel | None = None
        self._lock = asyncio.Lock()
        self._state = DeviceState()

    # ─── CONNECTION ──────────────────────────────────────────────────

    async def connect(self, port: str) -> None:
        """Open ``port`` and attach a fresh command channel to it.

        Connecting again replaces the previous connection, which also clears
        a channel that was desynchronized by a timeout.
        """
        if self._transport is not None:
            self.disconnect()

        loop = asyncio.get_running_loop()
        transport = self._transport_factory()
        channel = CommandChannel(
            transport,
            response_timeout=self._response_timeout,
            settle_delay=self._settle_delay,
        )

        def on_data(data: bytes) -> None:
            # Called from the transport's reader thread.
            loop.call_soon_threadsafe(channel.feed, data)

        transport.open(port, self._line_config, on_data)
        self._transport = transport
        self._channel = channel
        self._state.connection_open = True

    def disconnect(self) -> None:
        """Close the channel and the port. Pending requests fail with Disconnected."""
        if self._channel is not None:
            self._channel.close()
            self._channel = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        else:
            logger.info("No port to close.")
        self._state.connection_open = False

    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.connected

    @staticmethod
    def list_ports() -> list[str]:
        return list_ports()

    @contextlib.asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        """Hold the engine lock for the current task.

        Re-entering from a task that already holds it is a no-op, so
        :meth:`with_check` can keep the lock across an operation and its
        ``ER`` query.
        """
        if _lock_owner.get() is self:
            yield
            return
        async with self._lock:
            token = _lock_owner.set(self)
            try:
                yield
            finally:
                _lock_owner.reset(token)

    def _require_channel(self) -> CommandChannel:
        if self._channel is None or not self.is_connected():
            raise PortNotOpen("Port is not open")
        return self._channel

    # ─── STATE ───────────────────────────────────────────────────────

    @property
    def state(self) -> DeviceState:
        """A snapshot of the cached device state."""
        s = self._state
        return DeviceState(
            pose=s.pose,
            gripper_open=s.gripper_open,
            tool_length=s.tool_length,
            speed=s.speed,
            connection_open=s.connection_open,
        )

    @property
    def position(self) -> Pose | None:
        return self._state.pose

    @property
    def gripper_closed(self) -> bool:
        return not self._state.gripper_open

    @property
    def tool_length(self) -> float | None:
        return self._state.tool_length

    @property
    def speed(self) -> int | None:
        return self._state.speed

    async def get_pose(self, force_refresh: bool = True) -> Pose:
        """Return the arm's pose.

        Args:
            force_refresh: Query the device with ``WH`` even if a pose is
                cached. When False and a pose is cached, no I/O happens.

        Raises:
            MalformedResponse: The device answer has fewer than five numeric
                fields.
        """
        if not force_refresh and self._state.pose is not None:
            return self._state.pose
        async with self._exclusive():
            return await self._read_pose()

    async def _read_pose(self) -> Pose:
        channel = self._require_channel()
        response = await channel.send_with_answer(commands.build_where())
        pose = parse_pose(response)
        self._state.pose = pose
        return pose

    # ─── ERROR CHECK ─────────────────────────────────────────────────

    async def check_error_code(self) -> ErrorCode:
        """Query ``ER`` and map the answer onto :class:`ErrorCode`."""
        async with self._exclusive():
            channel = self._require_channel()
            response = await channel.send_with_answer(commands.build_error_read())
        code = parse_error_code(response)
        if code is ErrorCode.OK:
            logger.debug("No error detected.")
        else:
            logger.error("Device reported %s (%r)", code.name, response)
        return code

    async def with_check(self, operation: Awaitable[T]) -> T:
        """Await ``operation``, then fail if the device reports an error.

        A failure raised by ``operation`` itself propagates unchanged and no
        ``ER`` query is sent.
        No other operation on this engine runs between the two.

        Raises:
            CommandError: The ``ER`` query returned anything but OK.
        """
        async with self._exclusive():
            result = await operation
            code = await self.check_error_code()
        if code is not ErrorCode.OK:
            raise CommandError(code)
        return result

    # ─── MOTION ──────────────────────────────────────────────────────

    async def move_to(self, pose: Pose, interpolate_points: int = 0) -> None:
        """Move to an absolute pose.

        Args:
            pose: Target pose.
            interpolate_points: When non-zero, move along a straight line
                through this many intermediate points.
        """
        async with self._exclusive():
            if interpolate_points:
                burst = commands.build_interpolated_move(
                    pose, interpolate_points, self._state.gripper_open
                )
            else:
                burst = [commands.build_move_position(pose)]
            channel = self._require_channel()
            for command in burst:
                await channel.send_no_answer(command)
            self._state.pose = pose

    async def move_to_xyz(
        self, x: float, y: float, z: float, interpolate_points: int = 0
    ) -> None:
        """Move to absolute linear coordinates keeping the cached pitch and roll."""
        async with self._exclusive():
            await self.move_to(self._cached_pose().with_xyz(x, y, z), interpolate_points)

    async def move_delta_xyz(
        self, dx: float, dy: float, dz: float, interpolate_points: int = 0
    ) -> None:
        """Move relative to the cached pose on the linear axes only."""
        async with self._exclusive():
            await self.move_to(
                self._cached_pose().translated(dx, dy, dz), interpolate_points
            )

    async def move_delta(
        self,
        dx: float,
        dy: float,
        dz: float,
        dp: float,
        dr: float,
        interpolate_points: int = 0,
    ) -> None:
        """Move relative to the cached pose on all five axes."""
        async with self._exclusive():
            await self.move_to(
                self._cached_pose().offset(dx, dy, dz, dp, dr), interpolate_points
            )

    def _cached_pose(self) -> Pose:
        if self._state.pose is None:
            raise NoCachedPose("Actual position not set")
        return self._state.pose

    async def move_path(self, points: Sequence[Pose]) -> None:
        """Store ``points`` in path slots 1..N and run through them with ``MC``."""
        stores, execute = commands.build_path(points)
        async with self._exclusive():
            channel = self._require_channel()
            for command in stores:
                await channel.send_no_answer(command)
                await channel.settle()
            await channel.send_no_answer(execute)
            self._state.pose = points[-1]

    async def rotate_axis(
        self, dx: float, dy: float, dz: float, dp: float, dr: float
    ) -> Pose:
        """Rotate the joints relative to their current angles.

        The resulting pose is read back from the device.
        """
        command = commands.build_rotate_axis(dx, dy, dz, dp, dr)
        async with self._exclusive():
            channel = self._require_channel()
            await channel.send_no_answer(command)
            return await self._read_pose()

    async def move_to_home_position(self) -> None:
        """Move all axes to zero. The cached pose is dropped."""
        async with self._exclusive():
            await self._send_simple(commands.build_home())
            self._state.pose = None

    async def nest(self) -> None:
        """Return to the mechanical origin. Required right after power on."""
        async with self._exclusive():
            await self._send_simple(commands.build_nest())
            self._state.pose = None

    async def reset(self) -> None:
        """Reset the control box."""
        await self._send_simple(commands.build_reset())

    # ─── TOOL / SETTINGS ─────────────────────────────────────────────

    async def set_gripper(self, open_: bool) -> None:
        await self._send_simple(commands.build_gripper(open_))
        self._state.gripper_open = open_

    async def set_speed(self, speed: float) -> None:
        """Set the speed level 0-9. Fractional values are truncated."""
        level = commands.normalize_speed(speed)
        await self._send_simple(commands.build_set_speed(level))
        self._state.speed = level

    async def set_tool_length(self, length: float) -> None:
        await self._send_simple(commands.build_set_tool_length(length))
        self._state.tool_length = length

    async def set_grip_pressure(
        self, starting_force: int, retained_force: int, retention_time: int
    ) -> None:
        """Define the gripper pressure.

        Args:
            starting_force: Starting gripping force 0-15.
            retained_force: Retained gripping force 0-15.
            retention_time: Starting force retention time 0-99.
        """
        await self._send_simple(
            commands.build_set_grip_pressure(starting_force, retained_force, retention_time)
        )

    async def _send_simple(self, command: str) -> None:
        async with self._exclusive():
            await self._require_channel().send_no_answer(command)
