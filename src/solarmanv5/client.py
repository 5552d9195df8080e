"""Request/response exchange with a data logger.

Pairs a :class:`~solarmanv5.protocol.SolarmanV5` codec with a bus:
one Modbus RTU request goes out wrapped in a V5 frame, one reply comes
back and is unwrapped.

Example:
    >>> from solarmanv5.client import Client
    >>> client = Client(bus, SolarmanV5("1234567890"))
    >>> client.request(bytes.fromhex("01 03 00 00 00 01 84 0a"))
    b'\\x01\\x03\\x02\\x00\\x0a\\x38\\x43'
"""

import logging

log = logging.getLogger(__name__)


class Client:
    """Sends Modbus RTU frames to one logger and returns the replies.

    Args:
        bus: Object with ``send(data)`` and ``receive()`` methods.
        codec: ``SolarmanV5`` instance for the logger behind *bus*.
    """

    def __init__(self, bus, codec):
        self._bus = bus
        self._codec = codec

    def request(self, modbus_frame):
        """Send one Modbus RTU request and return the reply frame.

        Args:
            modbus_frame: Complete Modbus RTU request, CRC included.

        Returns:
            bytes: The Modbus RTU reply, or None on timeout.

        Raises:
            V5FrameError: If the logger reply fails validation.
        """
        frame = self._codec.encode(modbus_frame)
        self._bus.send(frame)
        raw = self._bus.receive()

        if not raw:
            log.debug(
                "timeout waiting for logger %d, seq %d",
                self._codec.serial_number, self._codec.sequence_number,
            )
            return None

        try:
            return self._codec.decode(raw)
        except ValueError as exc:
            log.debug("bad frame from logger %d: %s",
                      self._codec.serial_number, exc)
            raise
