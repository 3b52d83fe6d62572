"""Serial connection to the arm's drive unit.

Uses ``pyserial``. Received bytes are read on a daemon thread and passed to
the ``on_data`` callback given to :meth:`SerialConnection.open`; the callback
is responsible for handing them over to whichever thread consumes them.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

import serial
import serial.tools.list_ports

from ..config import DEFAULT_LINE_CONFIG, READ_TIMEOUT_S, LineConfig
from ..errors import PortNotOpen, WriteFailed

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes], None]


def list_ports() -> list[str]:
    """Return the device paths of the serial ports on this machine."""
    return [port.device for port in serial.tools.list_ports.comports()]


class SerialConnection:
    """Manages the serial connection to the drive unit.

    Usage::

        conn = SerialConnection()
        conn.open("/dev/ttyUSB0", DEFAULT_LINE_CONFIG, on_data)
        conn.write(b"WH\\r\\n")
        conn.close()
    """

    def __init__(self) -> None:
        self._serial: serial.Serial | None = None
        self._port = ""
        self._on_data: DataCallback | None = None
        self._reader_thread: threading.Thread | None = None
        self._reader_running = False

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def port(self) -> str:
        return self._port

    def open(
        self,
        port: str,
        line_config: LineConfig = DEFAULT_LINE_CONFIG,
        on_data: DataCallback | None = None,
    ) -> None:
        """Open the port and start delivering received bytes to ``on_data``.

        Raises:
            PortNotOpen: If the port cannot be opened.
        """
        if self.connected:
            self.close()

        ser = serial.Serial()
        ser.port = port.strip()
        ser.baudrate = line_config.baudrate
        ser.bytesize = line_config.bytesize
        ser.stopbits = line_config.stopbits
        ser.parity = line_config.parity
        ser.xonxoff = line_config.xonxoff
        ser.timeout = READ_TIMEOUT_S
        # Applied by pyserial when the port opens.
        ser.rts = line_config.rts
        ser.dtr = line_config.dtr

        try:
            ser.open()
        except serial.SerialException as e:
            raise PortNotOpen(f"Could not open serial port {port!r}: {e}") from e

        self._serial = ser
        self._port = ser.port
        self._on_data = on_data
        self._start_reader()
        logger.info("Connected to port: %s", self._port)

    def close(self) -> None:
        """Stop the reader thread and close the port."""
        if self._serial is None:
            logger.info("No port to close.")
            return

        self._reader_running = False
        thread = self._reader_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._reader_thread = None

        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing port: %s", e)
        else:
            logger.info("Port closed successfully.")
        finally:
            self._serial = None
            self._on_data = None

    def write(self, data: bytes) -> int:
        """Write raw bytes to the port.

        Raises:
            PortNotOpen: If not connected.
            WriteFailed: If the write fails.
        """
        ser = self._serial
        if ser is None or not ser.is_open:
            raise PortNotOpen("Port is not open")
        try:
            written = ser.write(data)
            ser.flush()
        except serial.SerialException as e:
            logger.error("Error writing to port: %s", e)
            raise WriteFailed(f"Error writing to port: {e}") from e
        return written or 0

    def _start_reader(self) -> None:
        self._reader_running = True
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            name=f"serial-reader-{self._port}",
            daemon=True,
        )
        self._reader_thread.start()

    def _reader_loop(self) -> None:
        ser = self._serial
        while self._reader_running and ser is not None and ser.is_open:
            try:
                data = ser.read(ser.in_waiting or 1)
            except (serial.SerialException, OSError) as e:
                logger.error("Serial read error: %s", e)
                break
            on_data = self._on_data
            if data and on_data is not None:
                try:
                    on_data(data)
                except RuntimeError as e:
                    # Event loop closed under us.
                    logger.error("Dropping received data, consumer gone: %s", e)
                    break
        self._reader_running = False
