"""
Authoritative playback state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from constants import DEFAULT_LOOP
from playback.enums.phase import Phase
from playback.models import Pair, Utterance
from playback.speech_config import SpeechConfig


# =============================================================================
# Playback State
# =============================================================================

@dataclass(frozen=True)
class PlaybackState:
    """Immutable snapshot of all sequencer-owned state."""

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    rows: tuple[Pair, ...] = ()

    # -1 means no row selected
    current_index: int = -1
    playing: bool = False
    loop: bool = DEFAULT_LOOP

    # ------------------------------------------------------------------
    # Control phase
    # ------------------------------------------------------------------
    phase: Phase = Phase.IDLE

    # Set by every cancelling operation; cleared only when a new speaking
    # action starts. Engine events arriving while set are dropped.
    stopping: bool = False

    # ------------------------------------------------------------------
    # Run/version tracking
    # ------------------------------------------------------------------
    # Bumped on every new speaking action (play, seek while playing).
    run_id: int = 0

    # Monotonic per-submission counter; never reused.
    utterance_seq: int = 0

    # The one submission allowed to drive a transition, if any.
    active_utterance_id: int | None = None

    # Meaning half of the pair being spoken, built together with the word.
    pending_meaning: Utterance | None = None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    config: SpeechConfig = field(default_factory=SpeechConfig)

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
