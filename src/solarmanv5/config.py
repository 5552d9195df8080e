"""Project-wide configuration constants and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.

Example:
    >>> from solarmanv5.config import load_config, TIMEOUT_MS
    >>> cfg = load_config("logger.toml")
    >>> cfg["port"]
    8899
"""

import tomllib

# TCP port data loggers listen on.
DEFAULT_PORT = 8899

# Receive timeout in milliseconds for a logger reply.
TIMEOUT_MS = 5000


def load_config(path: str) -> dict:
    """Read a TOML config file and validate its keys.

    Required keys: ``host`` (str), ``serial`` (int or decimal str).
    Optional keys: ``port`` (int, default DEFAULT_PORT),
    ``timeout_ms`` (int, default TIMEOUT_MS),
    ``ignore_protocol_errors`` (bool, default false).

    Returns:
        dict: Keys ``host``, ``port``, ``serial`` (int), ``timeout_ms``
            and ``ignore_protocol_errors``.

    Raises:
        ValueError: If any required key is missing or has the wrong type.

    Example:
        >>> cfg = load_config("logger.toml")
        >>> cfg["serial"]
        1234567890
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    _require_str(raw, "host")
    serial = _require_serial(raw)

    port = raw.get("port", DEFAULT_PORT)
    if not _is_int(port):
        raise ValueError("port must be int, got %s" % type(port).__name__)
    if not (1 <= port <= 65535):
        raise ValueError("port must be in range 1-65535, got %d" % port)

    timeout_ms = raw.get("timeout_ms", TIMEOUT_MS)
    if not _is_int(timeout_ms):
        raise ValueError(
            "timeout_ms must be int, got %s" % type(timeout_ms).__name__
        )
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be positive, got %d" % timeout_ms)

    ignore = raw.get("ignore_protocol_errors", False)
    if not isinstance(ignore, bool):
        raise ValueError(
            "ignore_protocol_errors must be bool, got %s" % type(ignore).__name__
        )

    return {
        "host": raw["host"],
        "port": port,
        "serial": serial,
        "timeout_ms": timeout_ms,
        "ignore_protocol_errors": ignore,
    }


def _is_int(value: object) -> bool:
    """True for ints but not bools."""
    return isinstance(value, int) and not isinstance(value, bool)


def _require_serial(raw: dict[str, object]) -> int:
    """Validate ``serial`` and return it as an int.

    TOML integers and decimal strings are both accepted, since
    logger labels print the serial as a plain number.
    """
    if "serial" not in raw:
        raise ValueError("missing required key: serial")
    value = raw["serial"]
    if isinstance(value, str):
        if not (value.isascii() and value.isdigit()):
            raise ValueError("serial must be a decimal number, got '%s'" % value)
        value = int(value)
    elif not _is_int(value):
        raise ValueError(
            "serial must be int or str, got %s" % type(value).__name__
        )
    if not (0 <= value <= 0xFFFFFFFF):
        raise ValueError("serial must fit in 32 bits, got %d" % value)
    return value


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))
