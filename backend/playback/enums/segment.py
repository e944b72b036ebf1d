"""
Utterance segment enumeration.

Each pair is spoken as two segments, always in this order.
"""

from __future__ import annotations

from enum import Enum


class Segment(str, Enum):
    """Which half of a pair an utterance speaks."""

    WORD = "WORD"
    MEANING = "MEANING"
