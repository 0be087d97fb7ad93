"""
Lenient value conversion for the configuration store's typed getters.

Documents and environment variables hold loosely typed values; every
converter returns the target type's zero value instead of raising when a
value cannot be interpreted.
"""

import re
from datetime import timedelta
from typing import Any, List

_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_TRAILING_ZERO_DECIMAL = re.compile(r"^([-+]?\d+)\.0*$")


def to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return ""


def to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        return _parse_int(value.strip())
    return 0


def _parse_int(text: str) -> int:
    match = _TRAILING_ZERO_DECIMAL.match(text)
    if match:
        text = match.group(1)
    try:
        return int(text, 0)
    except ValueError:
        pass
    # int(x, 0) rejects leading zeros such as "08"
    try:
        return int(text, 10)
    except ValueError:
        return 0


def to_float(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip() in _TRUE_STRINGS
    return False


def to_duration(value: Any) -> timedelta:
    """
    Interpret a value as a duration.

    Numbers are seconds. Strings are either plain numbers (seconds) or
    unit-suffixed durations such as ``"1h30m"``, ``"250ms"`` or ``"-1.5s"``.

    Bare numbers are deliberately not nanoseconds, unlike Go's
    ``time.Duration`` casting: a document written for a Go service with
    ``timeout: 30000000000`` must be rewritten as ``timeout: 30s``.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        return timedelta(0)
    if isinstance(value, (int, float)):
        return _seconds(value)
    if isinstance(value, str):
        return _parse_duration(value.strip())
    return timedelta(0)


def _seconds(value: float) -> timedelta:
    try:
        return timedelta(seconds=value)
    except (OverflowError, ValueError):
        return timedelta(0)


def _parse_duration(text: str) -> timedelta:
    if not text:
        return timedelta(0)

    try:
        return _seconds(float(text))
    except ValueError:
        pass

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    total = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if not match:
            return timedelta(0)
        total += _DURATION_UNITS[match.group(2)] * float(match.group(1))
        position = match.end()

    # A bare sign or an empty remainder is not a duration
    if position == 0:
        return timedelta(0)

    return _seconds(total * sign)


def to_string_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [to_string(item) for item in value]
    if isinstance(value, str):
        return value.split()
    return []
