"""Byte count conversion helpers."""

from __future__ import annotations


GIBIBYTE = 1_073_741_824  # 2**30
GIGABYTE = 1_000_000_000  # 10**9


def bytes_to_gb(n: int, rounded: bool = False) -> float:
    result = n / GIGABYTE
    if rounded:
        # round() on a float is half-to-even.
        return float(round(result))
    return result


def bytes_to_gib(n: int, rounded: bool = False) -> float:
    result = n / GIBIBYTE
    if rounded:
        return float(round(result))
    return result
