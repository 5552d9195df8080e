"""Shared pytest fixtures for solarmanv5 tests."""

from solarmanv5.protocol import (
    V5_CONTROL_REPLY,
    V5_FRAME_TYPE,
    encode_reply,
    v5_checksum,
)

SERIAL = 1234567890
# Modbus RTU reply: slave 1, read holding registers, 1 register = 10.
MODBUS_REPLY = bytes.fromhex("01 03 02 00 0a 38 43")
MODBUS_REQUEST = bytes.fromhex("01 03 00 00 00 01 84 0a")


def make_reply(seq: int, modbus: bytes, serial: int = SERIAL,
               control: int = V5_CONTROL_REPLY,
               frame_type: int = V5_FRAME_TYPE) -> bytes:
    """Build a V5 reply frame for logger *serial* (default SERIAL)."""
    return encode_reply(seq, serial, modbus, control=control,
                        frame_type=frame_type)


def restamp(frame: bytearray) -> bytes:
    """Recompute the checksum of a hand-edited frame."""
    frame[-2] = v5_checksum(frame)
    return bytes(frame)


def overstate_len(frame: bytes) -> bytes:
    """Claim one more payload byte in LEN than *frame* carries."""
    edited = bytearray(frame)
    payload_len = int.from_bytes(edited[1:3], "little") + 1
    edited[1:3] = payload_len.to_bytes(2, "little")
    return restamp(edited)


class FakeBus:
    """Test double for LoggerBus: canned responses, records sent data."""

    def __init__(self, responses: list[bytes]):
        """Initialize with canned responses."""
        self._responses = list(responses)
        self.sent = []
        self.closed = False

    def send(self, data: bytes) -> None:
        """Record *data* for later inspection."""
        self.sent.append(data)

    def receive(self) -> bytes:
        """Return the next canned response, or empty bytes if exhausted."""
        if self._responses:
            return self._responses.pop(0)
        return b""

    def close(self) -> None:
        self.closed = True
