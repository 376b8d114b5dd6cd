"""
Duration and data-size parsing plus display formatting.

The coordinator reports durations either as human readable strings
(``"1.50s"``, ``"250.00ms"``) or as raw nanosecond counts, and data sizes as
strings (``"12.5MB"``) or raw byte counts. Everything is normalised to
milliseconds and bytes.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from query_monitor.core.errors import ParseError

logger = logging.getLogger(__name__)

_VALUE_WITH_UNIT = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]+)\s*$")
_BARE_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")

# Multipliers to milliseconds.
DURATION_UNITS: dict[str, float] = {
    "ns": 1e-6,
    "us": 1e-3,
    "ms": 1.0,
    "s": 1000.0,
    "m": 60_000.0,
    "h": 3_600_000.0,
    "d": 86_400_000.0,
}

# Multipliers to bytes (binary).
DATA_SIZE_UNITS: dict[str, float] = {
    "b": 1.0,
    "kb": 1024.0,
    "mb": 1024.0**2,
    "gb": 1024.0**3,
    "tb": 1024.0**4,
    "pb": 1024.0**5,
}


def _split_value(value: Any, kind: str) -> tuple[float, str | None]:
    """Return (magnitude, lower-cased unit or None for a bare number)."""
    if isinstance(value, bool):
        raise ParseError(value, kind)
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            raise ParseError(value, kind)
        return float(value), None
    if not isinstance(value, str):
        raise ParseError(value, kind)

    bare = _BARE_NUMBER.match(value)
    if bare:
        return float(bare.group(1)), None

    match = _VALUE_WITH_UNIT.match(value)
    if not match:
        raise ParseError(value, kind)
    return float(match.group(1)), match.group(2).lower()


def parse_duration(value: Any) -> float:
    """
    Parse a duration into milliseconds.

    Args:
        value: ``<number><unit>`` string (ns, us, ms, s, m, h, d; any case)
            or a bare number of nanoseconds.

    Returns:
        Duration in milliseconds.

    Raises:
        ParseError: If the value is malformed or uses an unknown unit.

    Example:
        >>> parse_duration("1.5s")
        1500.0
        >>> parse_duration(2_000_000)
        2.0
    """
    magnitude, unit = _split_value(value, "duration")
    if unit is None:
        return magnitude * DURATION_UNITS["ns"]
    multiplier = DURATION_UNITS.get(unit)
    if multiplier is None:
        raise ParseError(value, "duration")
    return magnitude * multiplier


def parse_data_size(value: Any) -> float:
    """
    Parse a data size into bytes.

    Args:
        value: ``<number><unit>`` string (B, kB, MB, GB, TB, PB; any case,
            1024-based) or a bare number of bytes.

    Returns:
        Size in bytes.

    Raises:
        ParseError: If the value is malformed or uses an unknown unit.
    """
    magnitude, unit = _split_value(value, "data size")
    if unit is None:
        return magnitude
    multiplier = DATA_SIZE_UNITS.get(unit)
    if multiplier is None:
        raise ParseError(value, "data size")
    return magnitude * multiplier


def duration_or_zero(value: Any) -> float:
    """Parse a duration, treating malformed input as an unknown (zero) metric."""
    try:
        return parse_duration(value)
    except ParseError as e:
        logger.debug("Treating unparseable duration as 0: %s", e)
        return 0.0


def data_size_or_zero(value: Any) -> float:
    """Parse a data size, treating malformed input as an unknown (zero) metric."""
    try:
        return parse_data_size(value)
    except ParseError as e:
        logger.debug("Treating unparseable data size as 0: %s", e)
        return 0.0


# =============================================================================
# Display formatting
# =============================================================================


def precision_round(n: float) -> str:
    if n < 10:
        return f"{n:.2f}"
    if n < 100:
        return f"{n:.1f}"
    return str(int(round(n)))


def format_duration(duration_ms: float) -> str:
    """Format milliseconds using the largest sensible unit (ms up to weeks)."""
    value = float(duration_ms)
    unit = "ms"
    if value > 1000:
        value /= 1000
        unit = "s"
    if unit == "s" and value > 60:
        value /= 60
        unit = "m"
    if unit == "m" and value > 60:
        value /= 60
        unit = "h"
    if unit == "h" and value > 24:
        value /= 24
        unit = "d"
    if unit == "d" and value > 7:
        value /= 7
        unit = "w"
    return precision_round(value) + unit


def format_data_size(size_bytes: float) -> str:
    """Format a byte count with binary prefixes."""
    value = float(size_bytes)
    if value == 0:
        return "0B"
    unit = "B"
    for prefix in ("kB", "MB", "GB", "TB", "PB"):
        if value < 1024:
            break
        value /= 1024
        unit = prefix
    return precision_round(value) + unit


def format_count(count: float) -> str:
    """Format a count with decimal suffixes (K, M, B, T, Q)."""
    value = float(count)
    unit = ""
    for suffix in ("K", "M", "B", "T", "Q"):
        if value <= 1000:
            break
        value /= 1000
        unit = suffix
    return precision_round(value) + unit


def compute_rate(amount: float, duration_ms: float) -> float:
    """Per-second rate of ``amount`` over ``duration_ms`` (0 for empty spans)."""
    if duration_ms <= 0:
        return 0.0
    return amount / duration_ms * 1000.0
