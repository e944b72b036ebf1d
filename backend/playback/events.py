"""
Unified event definitions for the playback reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no side effects.

Engine and timer events carry the run_id they were issued under, so the
reducer can drop anything that belongs to a superseded run.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from playback.enums.segment import Segment
from playback.models import Pair, Voice
from playback.speech_config import SpeechConfig


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (phase, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Session input
    # ------------------------------------------------------------------
    ROWS_LOADED = "ROWS_LOADED"
    CONFIGURE = "CONFIGURE"
    SET_LOOP = "SET_LOOP"

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------
    PLAY = "PLAY"
    PAUSE = "PAUSE"
    STOP = "STOP"
    SEEK = "SEEK"
    DISPOSE = "DISPOSE"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    SPEAK_PAIR_DUE = "SPEAK_PAIR_DUE"
    MEANING_DUE = "MEANING_DUE"

    # ------------------------------------------------------------------
    # Speech engine
    # ------------------------------------------------------------------
    UTTERANCE_END = "UTTERANCE_END"
    UTTERANCE_ERROR = "UTTERANCE_ERROR"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Session Input Events
# =============================================================================

@dataclass(frozen=True)
class RowsLoaded(Event):
    """A new pair sequence replaces the current one."""
    rows: tuple[Pair, ...]


@dataclass(frozen=True)
class Configure(Event):
    """Speech configuration replaced."""
    config: SpeechConfig


@dataclass(frozen=True)
class SetLoop(Event):
    """Wrap-around policy changed."""
    loop: bool


# =============================================================================
# Control Events
# =============================================================================

@dataclass(frozen=True)
class Play(Event):
    """Caller requested playback from the resume point."""


@dataclass(frozen=True)
class Pause(Event):
    """Caller requested pause; the resume point is kept."""


@dataclass(frozen=True)
class Stop(Event):
    """Caller requested stop; the resume point is cleared."""


@dataclass(frozen=True)
class Seek(Event):
    """Caller selected a row."""
    index: int


@dataclass(frozen=True)
class Dispose(Event):
    """Owner is tearing the sequencer down."""


# =============================================================================
# Timer Events
# =============================================================================

@dataclass(frozen=True)
class TimerEvent(Event):
    """
    Base class for events injected by the runtime when a timer expires.

    The reducer MUST ignore timer events whose run_id is not the active run.
    """
    run_id: int
    row_index: int


@dataclass(frozen=True)
class SpeakPairDue(TimerEvent):
    """
    Time to build both utterances for row_index and speak the word.

    Voices are resolved by the runtime at fire time so the reducer can stay
    pure while still reading the selector fresh for each pair.
    """
    word_voice: Voice | None = None
    meaning_voice: Voice | None = None


@dataclass(frozen=True)
class MeaningDue(TimerEvent):
    """The word-to-meaning gap elapsed."""


# =============================================================================
# Speech Engine Events
# =============================================================================

@dataclass(frozen=True)
class UtteranceEvent(Event):
    """
    Base class for terminal engine notifications.

    The reducer MUST ignore events while stopping, events whose run_id is
    stale, and events for any utterance other than the active one.
    """
    run_id: int
    utterance_id: int
    segment: Segment
    row_index: int


@dataclass(frozen=True)
class UtteranceEnd(UtteranceEvent):
    """The engine finished speaking the utterance."""


@dataclass(frozen=True)
class UtteranceError(UtteranceEvent):
    """
    The engine failed the utterance.

    submitted is False when speak() itself raised, i.e. the engine never
    accepted the request.
    """
    reason: str
    submitted: bool = True
