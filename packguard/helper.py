"""General helper functions: look-up table interpolation and bit strings."""

from __future__ import annotations

from collections.abc import Sequence

__all__ = ["interpolate", "byte_to_bitstr"]


def interpolate(a: Sequence[float], b: Sequence[float], value_a: float) -> float:
    """Return the value of table ``b`` at position ``value_a`` of table ``a``.

    The values of ``a`` must be monotonically increasing or decreasing. Positions
    outside the range of ``a`` are clamped to the first or last value of ``b``.
    """
    if len(a) != len(b):
        raise ValueError("look-up tables must have the same length")
    if not a:
        raise ValueError("look-up tables must not be empty")

    ascending = a[0] < a[-1]
    points = list(zip(a, b))
    previous = None
    for point_a, point_b in points:
        reached = value_a <= point_a if ascending else value_a >= point_a
        if reached:
            if previous is None:
                return float(point_b)
            prev_a, prev_b = previous
            return prev_b + (point_b - prev_b) * (value_a - prev_a) / (point_a - prev_a)
        previous = (point_a, point_b)
    return float(b[-1])


def byte_to_bitstr(b: int) -> str:
    """Return the 8-character bit string of a byte, most significant bit first."""
    if not 0 <= b <= 0xFF:
        raise ValueError(f"value {b} does not fit into one byte")
    return format(b, "08b")