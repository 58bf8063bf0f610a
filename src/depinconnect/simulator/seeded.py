"""
Seeded pseudo-random primitives.

Values are pure functions of ``(seed, index)``: the same device or node id
always yields the same simulated data across processes and restarts.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Sequence

T = TypeVar("T")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def string_hash(text: str) -> int:
    """31-multiplier shift-add string hash, wrapped to signed 32-bit."""
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    return h - 0x1_0000_0000 if h & 0x8000_0000 else h


def to_base36(value: int) -> str:
    """Render an integer in base 36 with a leading "-" for negatives."""
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def seeded_random(seed: str, index: int = 0) -> float:
    """Deterministic value in [0, 1) for ``(seed, index)``."""
    return abs(math.sin(string_hash(f"{seed}{index}"))) % 1


def seeded_random_in_range(seed: str, lo: float, hi: float, index: int = 0) -> float:
    return lo + seeded_random(seed, index) * (hi - lo)


def seeded_random_boolean(seed: str, probability: float = 0.5, index: int = 0) -> bool:
    return seeded_random(seed, index) < probability


def seeded_int(seed: str, lo: int, hi: int, index: int = 0) -> int:
    """Integer in [lo, hi)."""
    return math.floor(seeded_random_in_range(seed, lo, hi, index))


def seeded_choice(seed: str, options: Sequence[T], index: int = 0) -> T:
    if not options:
        raise ValueError("options must not be empty")
    return options[math.floor(seeded_random(seed, index) * len(options)) % len(options)]


def round_half_up(value: float, digits: int = 2) -> float:
    """Round with halves going up (0.125 -> 0.13, -0.125 -> -0.12)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor
