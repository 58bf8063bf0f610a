"""Helpers for turning scraped dashboard text into numbers."""

from __future__ import annotations

import re

_NUMBER = re.compile(r"[-+]?\d[\d,]*(?:\.\d+)?|[-+]?\.\d+")
_SUFFIXES = {"k": 1e3, "m": 1e6, "b": 1e9}


def parse_number(text: str | None, default: float = 0.0) -> float:
    """
    Extract the first number from dashboard text.

    "1,234.5 IO" -> 1234.5, "87%" -> 87.0, "2.5k" -> 2500.0. Returns
    ``default`` when no number is present.
    """
    if not text:
        return default
    match = _NUMBER.search(text)
    if match is None:
        return default
    value = float(match.group(0).replace(",", ""))
    tail = text[match.end() : match.end() + 1].lower()
    return value * _SUFFIXES.get(tail, 1.0)


def parse_int(text: str | None, default: int = 0) -> int:
    return int(parse_number(text, float(default)))
