"""Duration strings used in node configuration.

Accepts the compact unit notation workflow editors emit ("30s", "1m30s",
"250ms", "1.5h"). A bare integer, as a number or a digit string, is a
count of milliseconds. Durations are handled internally as float seconds.
"""

from __future__ import annotations

import re

_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT_PATTERN = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_INTEGER_PATTERN = re.compile(r"[+-]?\d+")


def parse_duration(value: str | int | float) -> float:
    """Parse a duration into seconds.

    Args:
        value: Unit string such as "1h30m" or "100ms", or an integer count of
            milliseconds (int or digit-only string). Floats are taken as
            milliseconds as well.

    Returns:
        Duration in seconds.

    Raises:
        ValueError: If the value is not a recognised duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, int | float):
        return float(value) / 1000.0

    text = value.strip()
    if not text:
        raise ValueError("invalid duration: empty string")
    if _INTEGER_PATTERN.fullmatch(text):
        return int(text) / 1000.0

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    total = 0.0
    position = 0
    for match in _COMPONENT_PATTERN.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return sign * total


def _format_number(number: float) -> str:
    text = f"{number:.9f}".rstrip("0").rstrip(".")
    return text or "0"


def format_duration(seconds: float) -> str:
    """Render seconds in the same notation parse_duration accepts.

    Examples: 0 -> "0s", 0.1 -> "100ms", 1.5 -> "1.5s", 90 -> "1m30s",
    3600 -> "1h0m0s".
    """
    if seconds == 0:
        return "0s"
    if seconds < 0:
        return "-" + format_duration(-seconds)
    if seconds < 1e-6:
        return f"{_format_number(seconds * 1e9)}ns"
    if seconds < 1e-3:
        return f"{_format_number(seconds * 1e6)}µs"
    if seconds < 1:
        return f"{_format_number(seconds * 1e3)}ms"

    hours, remainder = divmod(seconds, 3600.0)
    minutes, secs = divmod(remainder, 60.0)
    secs_text = _format_number(round(secs, 9))
    if hours:
        return f"{int(hours)}h{int(minutes)}m{secs_text}s"
    if minutes:
        return f"{int(minutes)}m{secs_text}s"
    return f"{secs_text}s"
