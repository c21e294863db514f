"""
Duration string parsing.

Accepts the compact form used in the config file: a sequence of decimal
numbers each followed by a unit, e.g. "30s", "1m30s", "250ms", "1.5h".
Valid units are "ns", "us" (or "µs"), "ms", "s", "m", "h".
"""
import re
from typing import Optional

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class DurationError(ValueError):
    """Raised when a duration string cannot be parsed"""
    pass


def parse_duration(text: Optional[str]) -> float:
    """
    Parse a duration string into seconds.

    Args:
        text: Duration such as "30s" or "1h15m"

    Returns:
        Duration in seconds (may be fractional or negative)

    Raises:
        DurationError: If the string is empty or malformed
    """
    if text is None:
        raise DurationError("duration is empty")

    raw = text.strip()
    if not raw:
        raise DurationError("duration is empty")

    sign = 1.0
    body = raw
    if body[0] in "+-":
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]

    # A bare zero needs no unit
    if body == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(body):
        match = _COMPONENT.match(body, pos)
        if not match:
            raise DurationError(f"invalid duration {raw!r}")
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        pos = match.end()

    if pos == 0:
        raise DurationError(f"invalid duration {raw!r}")

    return sign * total


def format_duration(seconds: float) -> str:
    """Render seconds back into a short human string for log lines."""
    if seconds >= 1 and float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{seconds:g}s"
