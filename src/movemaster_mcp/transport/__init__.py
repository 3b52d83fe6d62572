"""Transport layer: serial port access for the drive unit."""

from .serial_connection import SerialConnection, list_ports
