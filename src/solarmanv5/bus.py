"""TCP bus to a Solarman V5 data logger.

Wraps pyserial's ``socket://`` URL handler so the logger link reads
like any other serial port.  The receive method is frame-aware: it
reads the 3-byte prefix (START, LEN) to learn the payload length,
then reads the remaining header, payload, checksum and END bytes.

Example:
    >>> from solarmanv5.bus import LoggerBus
    >>> bus = LoggerBus("192.168.1.10", 8899, timeout_ms=5000)
    >>> bus.send(frame_bytes)
    >>> reply = bus.receive()
"""

import logging

import serial

from solarmanv5.protocol import V5_HEADER_LEN

log = logging.getLogger(__name__)


class LoggerBus:
    """Single TCP connection to a data logger.

    Duck-typed -- tests can substitute any object with matching
    ``send(data)``, ``receive()`` and ``close()`` methods.  There is no
    reconnect: a dropped connection surfaces as ``OSError`` or as an
    empty receive.

    Args:
        host: Logger IP address or hostname.
        port: Logger TCP port (usually ``8899``).
        timeout_ms: Receive timeout in milliseconds.

    Example:
        >>> bus = LoggerBus("192.168.1.10", 8899, timeout_ms=5000)
        >>> bus.send(codec.encode(modbus_request))
        >>> codec.decode(bus.receive())
    """

    # START + LEN (3 bytes).
    _PREFIX_LEN = 3

    def __init__(self, host: str, port: int, timeout_ms: int):
        """Connect to the logger.

        Raises:
            serial.SerialException: If the connection cannot be opened.
        """
        self._url = "socket://{}:{}".format(host, port)
        self._ser = serial.serial_for_url(self._url, timeout=timeout_ms / 1000.0)
        log.debug("connected to %s", self._url)

    def send(self, data: bytes) -> None:
        """Discard any stale input, then write *data*."""
        self._ser.reset_input_buffer()
        self._ser.write(data)
        self._ser.flush()

    def receive(self) -> bytes:
        """Receive one complete V5 frame.

        A reply shorter than its LEN field promises is returned as
        received once the timeout expires, so the codec can reject or
        tolerate the length mismatch.

        Returns:
            bytes: Frame bytes, or ``b""`` on timeout before any of the
                frame body arrived.
        """
        prefix = self._ser.read(self._PREFIX_LEN)
        if len(prefix) < self._PREFIX_LEN:
            log.debug("timeout reading frame prefix from %s", self._url)
            return b""

        payload_len = int.from_bytes(prefix[1:3], "little")
        remaining = V5_HEADER_LEN + payload_len - self._PREFIX_LEN
        tail = self._ser.read(remaining)
        if not tail:
            log.debug("timeout reading frame body from %s", self._url)
            return b""
        if len(tail) < remaining:
            log.debug(
                "short frame from %s: got %d of %d bytes",
                self._url, len(tail), remaining,
            )

        return prefix + tail

    def close(self) -> None:
        """Close the connection."""
        self._ser.close()
