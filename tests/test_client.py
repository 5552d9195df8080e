"""Tests for solarmanv5.client."""

import pytest

from conftest import (
    MODBUS_REPLY,
    MODBUS_REQUEST,
    SERIAL,
    FakeBus,
    make_reply,
    overstate_len,
)
from solarmanv5.client import Client
from solarmanv5.protocol import (
    InvalidChecksumError,
    InvalidMarkerError,
    LengthMismatchError,
    SequenceMismatchError,
    SolarmanV5,
)


class TestRequest:
    """Tests for Client.request."""

    def test_success(self):
        """A matching reply yields the embedded Modbus frame."""
        codec = SolarmanV5(SERIAL)
        bus = FakeBus([make_reply(2, MODBUS_REPLY)])
        client = Client(bus, codec)

        assert client.request(MODBUS_REQUEST) == MODBUS_REPLY
        assert len(bus.sent) == 1
        assert bus.sent[0][26:-2] == MODBUS_REQUEST
        assert bus.sent[0][5] == 2

    def test_timeout(self):
        """An empty receive returns None."""
        client = Client(FakeBus([b""]), SolarmanV5(SERIAL))
        assert client.request(MODBUS_REQUEST) is None

    def test_consecutive_requests_use_new_sequence(self):
        codec = SolarmanV5(SERIAL)
        bus = FakeBus([make_reply(2, MODBUS_REPLY), make_reply(3, MODBUS_REPLY)])
        client = Client(bus, codec)

        client.request(MODBUS_REQUEST)
        client.request(MODBUS_REQUEST)
        assert [f[5] for f in bus.sent] == [2, 3]

    def test_stale_reply_raises(self):
        """A reply to an earlier request fails the sequence check."""
        bus = FakeBus([make_reply(1, MODBUS_REPLY)])
        client = Client(bus, SolarmanV5(SERIAL))
        with pytest.raises(SequenceMismatchError):
            client.request(MODBUS_REQUEST)

    def test_stale_reply_tolerated(self):
        bus = FakeBus([make_reply(1, MODBUS_REPLY)])
        client = Client(bus, SolarmanV5(SERIAL, ignore_protocol_errors=True))
        assert client.request(MODBUS_REQUEST) == MODBUS_REPLY

    def test_overstated_len_raises(self):
        """A reply shorter than its LEN reaches the codec, not a timeout."""
        reply = overstate_len(make_reply(2, MODBUS_REPLY))
        client = Client(FakeBus([reply]), SolarmanV5(SERIAL))
        with pytest.raises(LengthMismatchError):
            client.request(MODBUS_REQUEST)

    def test_overstated_len_missing_end_when_tolerant(self):
        """Tolerance cuts at LEN, where the END byte never arrived."""
        reply = overstate_len(make_reply(2, MODBUS_REPLY))
        client = Client(FakeBus([reply]), SolarmanV5(SERIAL, True))
        with pytest.raises(InvalidMarkerError):
            client.request(MODBUS_REQUEST)

    def test_corrupt_reply_raises(self):
        reply = bytearray(make_reply(2, MODBUS_REPLY))
        reply[-2] ^= 0x55
        client = Client(FakeBus([bytes(reply)]), SolarmanV5(SERIAL))
        with pytest.raises(InvalidChecksumError):
            client.request(MODBUS_REQUEST)
