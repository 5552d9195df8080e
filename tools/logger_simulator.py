#!/usr/bin/env python3
"""Virtual data logger simulator for solarmanv5.

Listens on a TCP port and answers Solarman V5 request frames with V5
reply frames that echo the request's Modbus RTU frame back.  Requests
for another serial number or with a bad checksum are dropped.

Usage:
    python logger_simulator.py <port> <serial>

Args:
    port: TCP port to listen on (e.g. 8899).
    serial: Logger serial number to answer as.

Example:
    python logger_simulator.py 8899 1234567890
"""

import socket
import struct
import sys

# Add src to path so we can import solarmanv5
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

from solarmanv5.protocol import (
    V5_CONTROL_REQUEST,
    V5_END,
    V5_HEADER_LEN,
    V5_START,
    encode_reply,
    v5_checksum,
)

# Offset of the Modbus frame inside a request.
REQUEST_MODBUS_OFFSET = 26


def _recv_exact(conn, n):
    """Receive exactly n bytes, or b'' if the peer went away."""
    data = b""
    while len(data) < n:
        chunk = conn.recv(n - len(data))
        if not chunk:
            return b""
        data += chunk
    return data


def serve(conn, serial):
    """Answer requests on *conn* until the peer disconnects."""
    serial_bytes = struct.pack("<I", serial)
    while True:
        prefix = _recv_exact(conn, 3)
        if not prefix:
            return
        payload_len = struct.unpack_from("<H", prefix, 1)[0]
        rest = _recv_exact(conn, V5_HEADER_LEN + payload_len - 3)
        if not rest:
            return
        frame = prefix + rest

        if frame[0] != V5_START or frame[-1] != V5_END:
            continue
        if frame[-2] != v5_checksum(frame):
            continue
        if struct.unpack_from("<H", frame, 3)[0] != V5_CONTROL_REQUEST:
            continue
        if frame[7:11] != serial_bytes:
            continue

        seq = frame[5]
        modbus_frame = frame[REQUEST_MODBUS_OFFSET:-2]
        conn.sendall(encode_reply(seq, serial, modbus_frame))


def run(port, serial):
    """Run the simulator loop, one client connection at a time.

    Args:
        port: TCP port to listen on (int).
        serial: Logger serial number to answer as (int).
    """
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", port))
    server.listen(1)

    print("simulator: serial={} listening on {}".format(serial, port),
          flush=True)

    try:
        while True:
            conn, _ = server.accept()
            with conn:
                try:
                    serve(conn, serial)
                except OSError:
                    pass
    except KeyboardInterrupt:
        pass
    finally:
        server.close()


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("usage: logger_simulator.py <port> <serial>", file=sys.stderr)
        sys.exit(1)
    run(int(sys.argv[1]), int(sys.argv[2]))
