"""
Authoritative playback phase enumeration.

Rules:
- This enum defines ONLY the sequencer's control phases.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    """
    Control phases of a single playback sequencer.

    IDLE:
        Nothing scheduled or speaking. Also the phase after pause() and after
        a non-looping run reaches the end; current_index is the resume point.

    STARTING:
        play() or seek() scheduled the first pair behind the debounce delay.

    SPEAKING_WORD / SPEAKING_MEANING:
        One utterance is submitted to the engine and awaiting its end.

    WAITING_GAP_TO_MEANING / WAITING_GAP_TO_NEXT:
        The gap timer is running.

    STOPPED:
        stop() was called; current_index is reset.

    DISPOSED:
        Terminal. Every event is ignored.
    """

    IDLE = "IDLE"
    STARTING = "STARTING"
    SPEAKING_WORD = "SPEAKING_WORD"
    WAITING_GAP_TO_MEANING = "WAITING_GAP_TO_MEANING"
    SPEAKING_MEANING = "SPEAKING_MEANING"
    WAITING_GAP_TO_NEXT = "WAITING_GAP_TO_NEXT"
    STOPPED = "STOPPED"
    DISPOSED = "DISPOSED"
