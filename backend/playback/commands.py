"""
Side-effect command definitions for the playback sequencer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from playback.enums.segment import Segment
from playback.events import EventType
from playback.models import Utterance

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Speech engine
    SPEAK_UTTERANCE = "SPEAK_UTTERANCE"
    CANCEL_SPEECH = "CANCEL_SPEECH"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Speech Commands
# =============================================================================

@dataclass(frozen=True)
class SpeakUtterance(Command):
    """
    Request to submit one utterance to the engine.

    The adapter must answer with exactly one UtteranceEnd or UtteranceError
    carrying the same (run_id, utterance_id), unless canceled first.
    """
    run_id: int
    utterance_id: int
    segment: Segment
    row_index: int
    utterance: Utterance
    command_type: CommandType = CommandType.SPEAK_UTTERANCE


@dataclass(frozen=True)
class CancelSpeech(Command):
    """Request to discard every active or queued utterance."""
    reason: str = ""
    command_type: CommandType = CommandType.CANCEL_SPEECH


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start (or replace) a named timer.

    On expiration, the runtime must inject the specified timeout event,
    stamped with run_id and row_index.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    run_id: int
    row_index: int
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
