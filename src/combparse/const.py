"""
General use constants.
"""

from __future__ import annotations
from typing import Final

DIGITS: Final[str] = "0123456789abcdefghijklmnopqrstuvwxyz"
"""Digits of all supported radixes, in order. A radix `r` uses `DIGITS[:r]`."""
MIN_RADIX: Final[int] = 2
MAX_RADIX: Final[int] = len(DIGITS)

MAX_NATURAL: Final[int] = 2**64 - 1
"""The largest value the `natural` parser accepts."""

STRING_QUOTES: Final[frozenset[str]] = frozenset({"'", '"', "`"})
"""Quotes that start a string inside of a block comment."""
ESCAPING_QUOTES: Final[frozenset[str]] = frozenset({"'", '"'})
"""String quotes inside of which a backslash escapes the next character."""

FEEDBACK_INFO: Final[str] = "INFO"
FEEDBACK_WARNING: Final[str] = "WARNING"
FEEDBACK_PROBLEM: Final[str] = "PROBLEM?"
FEEDBACK_ERROR: Final[str] = "ERROR"
