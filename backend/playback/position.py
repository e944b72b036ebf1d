"""
Pure position tracking for the playback sequence.

This module contains NO side effects and NO timing primitives.
It is a deterministic function over:
- the index that just finished speaking
- the sequence length
- the loop flag

The caller must never pass total == 0; an empty sequence has no next index.
"""

from __future__ import annotations

from dataclasses import dataclass


# =============================================================================
# Advance Decision
# =============================================================================

@dataclass(frozen=True)
class Advance:
    """
    Result of moving past one completed row.

    wrapped:
        next_index went back to the first row.
    sequence_complete:
        wrapped and looping is off; the caller must not schedule next_index.
    """
    next_index: int
    wrapped: bool
    sequence_complete: bool


# =============================================================================
# Public API
# =============================================================================

def advance(current_index: int, total: int, loop: bool) -> Advance:
    """
    Compute the row that follows current_index.

    next_index = (current_index + 1) mod total
    """
    next_index = (current_index + 1) % total
    wrapped = next_index == 0
    return Advance(
        next_index=next_index,
        wrapped=wrapped,
        sequence_complete=wrapped and not loop,
    )
