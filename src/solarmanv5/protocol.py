"""Frame encoding and decoding for the Solarman V5 logger protocol.

Solarman V5 wraps a Modbus RTU frame in a fixed header and a one-byte
sum checksum: START, LEN, CONTROL, SEQ, SERIAL, FRAME_TYPE, SENSOR,
three TIME fields, MODBUS, CHECKSUM, END.

Example:
    >>> from solarmanv5.protocol import SolarmanV5
    >>> codec = SolarmanV5("1234567890")
    >>> raw = codec.encode(bytes.fromhex("01 03 00 00 00 01 84 0a"))
    >>> raw[0], raw[-1]
    (165, 21)
    >>> codec.sequence_number
    2
"""

import logging
import struct

log = logging.getLogger(__name__)

# -- Protocol constants ------------------------------------------------------

V5_START = 0xA5
V5_END = 0x15
V5_CONTROL_REQUEST = 0x1045
V5_CONTROL_REPLY = 0x1510
V5_FRAME_TYPE = 0x02

# START + LEN + CONTROL + SEQ + SERIAL + CHECKSUM + END; LEN counts the rest.
V5_HEADER_LEN = 13
# FRAME_TYPE + SENSOR + 3 x TIME, counted by LEN on top of the Modbus frame.
V5_REQUEST_PAYLOAD_OVERHEAD = 15
# FRAME_TYPE + STATUS + 3 x TIME in a logger reply.
V5_REPLY_PAYLOAD_OVERHEAD = 14
# Logger replies carry the Modbus frame from here on.
V5_REPLY_MODBUS_OFFSET = 25
MODBUS_MIN_FRAME_LEN = 5
# Largest Modbus frame whose request LEN still fits in 16 bits.
MODBUS_MAX_FRAME_LEN = 0xFFFF - V5_REQUEST_PAYLOAD_OVERHEAD

SEQ_MIN = 1
SEQ_MAX = 255

# -- Errors ------------------------------------------------------------------


class V5FrameError(ValueError):
    """Base class for every Solarman V5 frame validation failure."""


class LengthMismatchError(V5FrameError):
    """Buffer length disagrees with the LEN field."""


class InvalidMarkerError(V5FrameError):
    """START or END byte is wrong."""


class InvalidChecksumError(V5FrameError):
    """Checksum byte does not match the frame contents."""


class SequenceMismatchError(V5FrameError):
    """Reply does not echo the sequence number of the last request."""


class SerialMismatchError(V5FrameError):
    """Reply comes from a different data logger."""


class InvalidControlCodeError(V5FrameError):
    """Control code is not the logger reply code."""


class InvalidFrameTypeError(V5FrameError):
    """Frame type byte is not 0x02."""


class PayloadTooShortError(V5FrameError):
    """Embedded Modbus RTU frame is too short to be valid."""


# -- Checksum ----------------------------------------------------------------


def v5_checksum(frame):
    """Compute the V5 checksum of a complete frame.

    Sums every byte between the START marker and the trailing
    CHECKSUM + END pair, modulo 256.

    Args:
        frame: Bytes-like object holding the whole frame, including the
            (possibly placeholder) checksum and END bytes.

    Returns:
        int: Checksum value 0-255.

    Example:
        >>> v5_checksum(bytes([0xA5, 0x01, 0x02, 0x00, 0x15]))
        3
    """
    return sum(frame[1:len(frame) - 2]) & 0xFF


# -- Logger replies ----------------------------------------------------------


def encode_reply(seq, serial, modbus_frame, control=V5_CONTROL_REPLY,
                 frame_type=V5_FRAME_TYPE):
    """Build a V5 reply frame the way a data logger does.

    The reply header after SERIAL is FRAME_TYPE, STATUS and three
    4-byte times, so the Modbus frame lands at V5_REPLY_MODBUS_OFFSET.
    Used by the logger simulator and by tests.

    Args:
        seq: Sequence number to echo (int, 0-65535).
        serial: Logger serial number (int).
        modbus_frame: Modbus RTU reply bytes.
        control: Control code, overridable to build bad replies.
        frame_type: Frame type byte, overridable to build bad replies.

    Returns:
        bytes: Complete V5 reply frame.

    Example:
        >>> encode_reply(2, 1234567890, bytes.fromhex("01 03 02 00 0a 38 43"))[:5].hex(" ")
        'a5 15 00 10 15'
    """
    frame = bytearray()
    frame += struct.pack(
        "<BHHHI",
        V5_START,
        V5_REPLY_PAYLOAD_OVERHEAD + len(modbus_frame),
        control,
        seq,
        serial,
    )
    # FRAME_TYPE, STATUS, TOTAL_WORKING, POWER_ON, OFFSET
    frame += struct.pack("<BBIII", frame_type, 0x01, 0, 0, 0)
    frame += modbus_frame
    frame += bytes([0x00, V5_END])
    frame[-2] = v5_checksum(frame)
    return bytes(frame)


# -- Sequence numbers --------------------------------------------------------


class SequenceCounter:
    """Rolling request sequence number in the range 1-255.

    Starts at 1.  ``next()`` advances and returns the new value,
    wrapping from 255 back to 1; 0 is never produced.

    Example:
        >>> seq = SequenceCounter()
        >>> seq.value
        1
        >>> seq.next()
        2
    """

    def __init__(self):
        self._value = SEQ_MIN

    @property
    def value(self) -> int:
        """The most recently issued sequence number."""
        return self._value

    def next(self) -> int:
        """Advance the counter and return the new value."""
        self._value += 1
        if self._value > SEQ_MAX:
            self._value = SEQ_MIN
        return self._value


# -- Codec -------------------------------------------------------------------


def _serial_to_bytes(serial_number):
    """Convert a logger serial number to its 4-byte LE wire form.

    Accepts an int or a string of ASCII decimal digits.  Bools, floats
    and strings with signs, spaces or underscores are rejected.

    Raises:
        ValueError: If *serial_number* is not a decimal integer that
            fits in an unsigned 32-bit value.
    """
    if isinstance(serial_number, str):
        if not (serial_number.isascii() and serial_number.isdigit()):
            raise ValueError(
                "serial number must be a decimal number, got {!r}".format(
                    serial_number
                )
            )
        value = int(serial_number)
    elif isinstance(serial_number, int) and not isinstance(serial_number, bool):
        value = serial_number
    else:
        raise ValueError(
            "serial number must be int or str, got {}".format(
                type(serial_number).__name__
            )
        )
    if not (0 <= value <= 0xFFFFFFFF):
        raise ValueError(
            "serial number must fit in 32 bits, got {}".format(value)
        )
    return struct.pack("<I", value)


class SolarmanV5:
    """Solarman V5 codec bound to a single data logger.

    Holds the logger serial number and the request sequence counter.
    Performs no I/O: callers send the output of :meth:`encode` and hand
    the logger's reply to :meth:`decode`.  One request may be in flight
    per instance.

    Args:
        serial_number: Logger serial number (decimal str or int).
        ignore_protocol_errors: Tolerate a LEN/buffer length mismatch
            and a wrong sequence number instead of raising.

    Raises:
        ValueError: If *serial_number* does not fit in 32 bits.

    Example:
        >>> codec = SolarmanV5("1234567890", ignore_protocol_errors=True)
        >>> reply_modbus = codec.decode(reply_bytes)
    """

    def __init__(self, serial_number, ignore_protocol_errors=False):
        self._serial = _serial_to_bytes(serial_number)
        self._ignore_protocol_errors = bool(ignore_protocol_errors)
        self._sequence = SequenceCounter()

    @property
    def serial_number(self) -> int:
        return struct.unpack("<I", self._serial)[0]

    @property
    def serial_bytes(self) -> bytes:
        return self._serial

    @property
    def sequence_number(self) -> int:
        return self._sequence.value

    @property
    def ignore_protocol_errors(self) -> bool:
        return self._ignore_protocol_errors

    def encode(self, modbus_frame):
        """Embed a Modbus RTU request into a V5 request frame.

        Advances the sequence counter.  The Modbus frame is not
        inspected, only its length: LEN is 16 bits wide, so at most
        MODBUS_MAX_FRAME_LEN bytes fit.

        Args:
            modbus_frame: Complete Modbus RTU request, CRC included.

        Returns:
            bytes: The V5 frame ready to send to the logger.

        Raises:
            ValueError: If *modbus_frame* is longer than
                MODBUS_MAX_FRAME_LEN.  The counter is not advanced.

        Example:
            >>> codec = SolarmanV5(1)
            >>> codec.encode(b"\\x01\\x03\\x00\\x00\\x00").hex(" ")[:17]
            'a5 14 00 45 10 02'
        """
        if len(modbus_frame) > MODBUS_MAX_FRAME_LEN:
            raise ValueError(
                "Modbus frame too long: {} bytes, maximum is {}".format(
                    len(modbus_frame), MODBUS_MAX_FRAME_LEN
                )
            )

        seq = self._sequence.next()
        frame = bytearray()
        frame += struct.pack(
            "<BHHH",
            V5_START,
            V5_REQUEST_PAYLOAD_OVERHEAD + len(modbus_frame),
            V5_CONTROL_REQUEST,
            seq,
        )
        frame += self._serial
        # FRAME_TYPE, SENSOR, DELIVERY, POWER_ON, OFFSET
        frame += struct.pack("<BHIII", V5_FRAME_TYPE, 0, 0, 0, 0)
        frame += modbus_frame
        frame += bytes([0x00, V5_END])
        frame[-2] = v5_checksum(frame)

        log.debug("encode seq=%d: %s", seq, frame.hex(" "))
        return bytes(frame)

    def decode(self, frame):
        """Validate a V5 reply frame and return the embedded Modbus frame.

        Checks, in order: length, START/END markers, checksum, sequence
        number, serial number, control code, frame type and Modbus
        frame length.  Only the length and sequence checks are relaxed
        by ``ignore_protocol_errors``; with the length check relaxed,
        bytes past the LEN boundary are ignored.

        Args:
            frame: Raw bytes received from the logger.

        Returns:
            bytes: The embedded Modbus RTU reply.

        Raises:
            V5FrameError: The matching subclass for the first failed
                check.

        Example:
            >>> codec.decode(reply).hex(" ")
            '01 03 02 00 0a 38 43'
        """
        if len(frame) < 3:
            raise LengthMismatchError(
                "frame too short: {} bytes, cannot read LEN".format(len(frame))
            )

        payload_len = struct.unpack_from("<H", frame, 1)[0]
        frame_len = V5_HEADER_LEN + payload_len

        if len(frame) != frame_len:
            if not self._ignore_protocol_errors:
                raise LengthMismatchError(
                    "length mismatch: LEN field says {} payload bytes, "
                    "but frame is {} bytes (expected {})".format(
                        payload_len, len(frame), frame_len
                    )
                )
            log.warning(
                "ignoring length mismatch: frame is %d bytes, expected %d",
                len(frame), frame_len,
            )
            frame = frame[:frame_len]

        if len(frame) < frame_len:
            raise InvalidMarkerError(
                "frame truncated: {} bytes, END byte expected at offset {}".format(
                    len(frame), frame_len - 1
                )
            )

        if frame[0] != V5_START or frame[-1] != V5_END:
            raise InvalidMarkerError(
                "bad START/END bytes: got 0x{:02X}/0x{:02X}".format(
                    frame[0], frame[-1]
                )
            )

        checksum = v5_checksum(frame)
        if frame[-2] != checksum:
            raise InvalidChecksumError(
                "checksum mismatch: received 0x{:02X}, computed 0x{:02X}".format(
                    frame[-2], checksum
                )
            )

        if frame[5] != self._sequence.value:
            if not self._ignore_protocol_errors:
                raise SequenceMismatchError(
                    "sequence mismatch: expected {}, got {}".format(
                        self._sequence.value, frame[5]
                    )
                )
            log.warning(
                "ignoring sequence mismatch: expected %d, got %d",
                self._sequence.value, frame[5],
            )

        if bytes(frame[7:11]) != self._serial:
            raise SerialMismatchError(
                "serial mismatch: expected {}, got {}".format(
                    self._serial.hex(), bytes(frame[7:11]).hex()
                )
            )

        control = struct.unpack_from("<H", frame, 3)[0]
        if control != V5_CONTROL_REPLY:
            raise InvalidControlCodeError(
                "bad control code: expected 0x{:04X}, got 0x{:04X}".format(
                    V5_CONTROL_REPLY, control
                )
            )

        if frame[11] != V5_FRAME_TYPE:
            raise InvalidFrameTypeError(
                "bad frame type: expected 0x{:02X}, got 0x{:02X}".format(
                    V5_FRAME_TYPE, frame[11]
                )
            )

        modbus_frame = bytes(frame[V5_REPLY_MODBUS_OFFSET:frame_len - 2])
        if len(modbus_frame) < MODBUS_MIN_FRAME_LEN:
            raise PayloadTooShortError(
                "Modbus frame too short: {} bytes, minimum is {}".format(
                    len(modbus_frame), MODBUS_MIN_FRAME_LEN
                )
            )

        log.debug("decode seq=%d: %s", frame[5], modbus_frame.hex(" "))
        return modbus_frame
