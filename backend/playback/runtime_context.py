"""
Runtime dependency protocols.

The sequencer runtime is constructed with two capabilities:
- a speech adapter (submit / cancel / release)
- a scheduler (one-shot delayed callbacks)

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero playback logic
- Zero state mutation
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from playback.enums.segment import Segment
from playback.models import Utterance, Voice


# ---------------------------------------------------------------------
# Scheduler Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class TimerHandleProtocol(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class SchedulerProtocol(Protocol):
    """
    One-shot delayed callbacks on the sequencer's execution context.

    Contract:
    - callback runs on the same thread/loop as control calls
    - cancel() on the returned handle guarantees callback never runs
    """

    def call_later(
        self,
        delay_s: float,
        callback: Callable[[], None],
    ) -> TimerHandleProtocol: ...


# ---------------------------------------------------------------------
# Speech Adapter Protocol
# ---------------------------------------------------------------------

@runtime_checkable
class SpeechAdapterProtocol(Protocol):
    """
    Run-scoped speech submission.

    Contract:
    - speak() returns immediately; completion arrives later as an
      UtteranceEnd or UtteranceError event carrying the same ids
    - speak() may raise if the engine rejects the request outright
    - cancel_all() is synchronous and idempotent
    """

    def speak(
        self,
        *,
        run_id: int,
        utterance_id: int,
        segment: Segment,
        row_index: int,
        utterance: Utterance,
    ) -> None: ...

    def cancel_all(self) -> None: ...

    def list_voices(self) -> list[Voice]: ...

    def close(self) -> None:
        """
        Release engine resources. The adapter is unusable afterward.
        """
