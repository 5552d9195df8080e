"""Integration tests: client + logger simulator over a real TCP socket.

Starts ``tools/logger_simulator.py`` in a subprocess on a free local
port (marker: ``integration``).

Run with::

    pytest -m integration
"""

import os
import socket
import subprocess
import sys
import time

import pytest

from conftest import MODBUS_REQUEST, SERIAL
from solarmanv5.bus import LoggerBus
from solarmanv5.client import Client
from solarmanv5.protocol import SerialMismatchError, SolarmanV5

pytestmark = pytest.mark.integration

TOOLS_DIR = os.path.join(os.path.dirname(__file__), "..", "tools")


def _find_free_port() -> int:
    """Find an available TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _wait_for_port(port: int) -> None:
    """Block until something accepts connections on *port*."""
    for _ in range(50):
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=0.1):
                return
        except OSError:
            time.sleep(0.05)
    raise RuntimeError("simulator did not start on port {}".format(port))


@pytest.fixture
def simulator():
    """Start the logger simulator and yield its port."""
    port = _find_free_port()
    sim = subprocess.Popen(
        [sys.executable, os.path.join(TOOLS_DIR, "logger_simulator.py"),
         str(port), str(SERIAL)],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    try:
        _wait_for_port(port)
        yield port
    finally:
        sim.terminate()
        sim.wait()


def test_request_roundtrip(simulator):
    """The simulator echoes the Modbus frame back in a V5 reply."""
    bus = LoggerBus("127.0.0.1", simulator, timeout_ms=2000)
    try:
        client = Client(bus, SolarmanV5(SERIAL))
        assert client.request(MODBUS_REQUEST) == MODBUS_REQUEST
        assert client.request(bytes(range(40))) == bytes(range(40))
    finally:
        bus.close()


def test_wrong_serial_times_out(simulator):
    """The simulator drops requests addressed to another logger."""
    bus = LoggerBus("127.0.0.1", simulator, timeout_ms=300)
    try:
        client = Client(bus, SolarmanV5(SERIAL + 1))
        assert client.request(MODBUS_REQUEST) is None
    finally:
        bus.close()


def test_reply_serial_is_checked(simulator):
    """A codec bound to another serial rejects the simulator's replies."""
    bus = LoggerBus("127.0.0.1", simulator, timeout_ms=2000)
    try:
        request = SolarmanV5(SERIAL).encode(MODBUS_REQUEST)
        bus.send(request)
        other = SolarmanV5(SERIAL + 1, ignore_protocol_errors=True)
        with pytest.raises(SerialMismatchError):
            other.decode(bus.receive())
    finally:
        bus.close()
