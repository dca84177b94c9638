"""Capability-string parsing and counter-to-throughput conversion."""

from __future__ import annotations

import math

# sysfs reports link speed as e.g. "400 Gb/sec (4X NDR)"
SYSFS_UNIT = "Gb/sec"
UNIT_LABEL = "Gbps"
COMPACT_UNIT_LABEL = "G"

BITS_PER_BYTE = 8
BITS_PER_GIGABIT = 1e9


class MalformedRate(ValueError):
    """A capability string that does not start with ``<number> <unit>``."""


def normalize_label(text: str, compact: bool = False) -> str:
    """Rewrite the sysfs unit to the display unit."""
    return text.replace(SYSFS_UNIT, COMPACT_UNIT_LABEL if compact else UNIT_LABEL)


def parse_capability(text: str, compact: bool = False) -> tuple[float, str]:
    """Parse a port capability string into ``(max_rate_gbps, label)``.

    >>> parse_capability("400 Gb/sec (4X NDR)")
    (400.0, '400 Gbps (4X NDR)')

    Raises:
        MalformedRate: fewer than two tokens, or a non-numeric magnitude.
    """
    fields = text.split()
    if len(fields) < 2:
        raise MalformedRate(f"invalid rate string: {text!r}")
    try:
        max_rate = float(fields[0])
    except ValueError as e:
        raise MalformedRate(f"invalid rate magnitude in {text!r}") from e
    return max_rate, normalize_label(text.strip(), compact)


def sample(prev: int, curr: int, interval_seconds: float) -> float:
    """Convert a byte-counter delta over ``interval_seconds`` to Gbps.

    The result is not clamped: a counter that went backwards yields a
    negative rate and it is up to the caller to treat that as a reset.
    """
    if not math.isfinite(interval_seconds) or interval_seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval_seconds}")
    return (curr - prev) * BITS_PER_BYTE / BITS_PER_GIGABIT / interval_seconds


def percent_of_capacity(rate: float, max_rate: float) -> float:
    """Fraction of link capacity in ``[0, 1]``; 0 when the capacity is unknown."""
    if max_rate <= 0:
        return 0.0
    return min(max(rate / max_rate, 0.0), 1.0)
