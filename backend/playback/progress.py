"""
Observable playback state for progress displays.

Derived, read-only view over PlaybackState. Consumers never see the full
reducer state (run ids, stopping flag, pending utterances).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from playback.models import Pair
from playback.state_dataclass import PlaybackState


@dataclass(frozen=True)
class PlaybackSnapshot:
    """What a progress display needs, nothing more."""
    current_index: int
    playing: bool
    total: int
    progress_percent: float
    phase: str
    loop: bool
    current_pair: Pair | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_index": self.current_index,
            "playing": self.playing,
            "total": self.total,
            "progress_percent": self.progress_percent,
            "phase": self.phase,
            "loop": self.loop,
            "current_pair": (
                self.current_pair.to_dict() if self.current_pair is not None else None
            ),
        }


def progress_percent(current_index: int, total: int) -> float:
    """(current_index + 1) / total * 100 once a row is selected, else 0."""
    if total > 0 and current_index >= 0:
        return (current_index + 1) / total * 100
    return 0.0


def snapshot(state: PlaybackState) -> PlaybackSnapshot:
    total = len(state.rows)
    current_pair = (
        state.rows[state.current_index]
        if 0 <= state.current_index < total
        else None
    )
    return PlaybackSnapshot(
        current_index=state.current_index,
        playing=state.playing,
        total=total,
        progress_percent=progress_percent(state.current_index, total),
        phase=state.phase.value,
        loop=state.loop,
        current_pair=current_pair,
    )
