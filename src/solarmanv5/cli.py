"""Command-line tool -- send one Modbus RTU frame to a data logger.

Reads logger settings from a TOML config file, wraps the given frame
in a Solarman V5 request, and prints the Modbus reply as hex.

Example:
    Run from the command line::

        solarmanv5 logger.toml "01 03 00 00 00 01 84 0a" -v
"""

import argparse
import logging
import sys

from solarmanv5.bus import LoggerBus
from solarmanv5.client import Client
from solarmanv5.config import load_config
from solarmanv5.protocol import SolarmanV5

log = logging.getLogger(__name__)


def run(cfg: dict, bus, modbus_frame: bytes) -> bytes | None:
    """Exchange *modbus_frame* with the logger described by *cfg*.

    Returns the Modbus reply, or None on timeout.

    Example:
        >>> run({"serial": 1234567890, "ignore_protocol_errors": False},
        ...     bus, bytes.fromhex("01 03 00 00 00 01 84 0a"))
        b'\\x01\\x03\\x02\\x00\\x0a\\x38\\x43'
    """
    codec = SolarmanV5(cfg["serial"], cfg["ignore_protocol_errors"])
    return Client(bus, codec).request(modbus_frame)


def main() -> None:
    """CLI entry point -- parse args, load config, run one exchange.

    Exits with status 1 on timeout, frame errors, bad config or socket
    errors.
    """
    parser = argparse.ArgumentParser(description="Solarman V5 Modbus client")
    parser.add_argument("config", help="path to TOML config file")
    parser.add_argument("frame", help="Modbus RTU frame as hex, CRC included")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    try:
        modbus_frame = bytes.fromhex(args.frame)
        cfg = load_config(args.config)
    except (ValueError, OSError) as exc:
        log.error("%s", exc)
        sys.exit(1)

    log.info(
        "connecting: host=%s port=%d serial=%d", cfg["host"], cfg["port"],
        cfg["serial"],
    )
    try:
        bus = LoggerBus(cfg["host"], cfg["port"], cfg["timeout_ms"])
    except OSError as exc:
        log.error("cannot connect: %s", exc)
        sys.exit(1)

    try:
        reply = run(cfg, bus, modbus_frame)
    except (ValueError, OSError) as exc:
        log.error("%s", exc)
        sys.exit(1)
    finally:
        bus.close()

    if reply is None:
        log.error("no reply within %d ms", cfg["timeout_ms"])
        sys.exit(1)

    print(reply.hex(" "))


if __name__ == "__main__":
    main()
