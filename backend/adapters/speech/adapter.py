"""
Speech engine adapter.

Bridges a host SpeechEngine (plain callbacks) to the sequencer (events).

Role in the system:
- Receives fully built utterances from the runtime, tagged with the run and
  utterance ids the reducer assigned.
- Submits them to the host engine.
- Converts engine callbacks into UtteranceEnd / UtteranceError events.

Architectural constraints:
- No playback decisions, no gap timers, no stale filtering. Dropping late
  callbacks is the reducer's job, and it needs to see them to do it.
- At most one terminal event per submission, even if a misbehaving engine
  calls back twice.
"""
from __future__ import annotations

import time
from typing import Callable

from adapters.speech.base import SpeechEngine
from playback.enums.segment import Segment
from playback.events import (
    Event,
    EventType,
    UtteranceEnd,
    UtteranceError,
)
from playback.models import Utterance, Voice


class SpeechEngineAdapter:
    """
    Run-scoped wrapper around one host speech engine.

    Design:
    - Fire-and-forget: speak() submits and returns
    - All output delivered via emit_event
    """

    def __init__(
        self,
        *,
        engine: SpeechEngine,
        emit_event: Callable[[Event], None],
    ) -> None:
        self._engine = engine
        self._emit_event = emit_event
        self._closed = False

    # ------------------------------------------------------------------
    # Public API (SpeechAdapterProtocol)
    # ------------------------------------------------------------------

    def speak(
        self,
        *,
        run_id: int,
        utterance_id: int,
        segment: Segment,
        row_index: int,
        utterance: Utterance,
    ) -> None:
        """
        Submit one utterance.

        Raises whatever the engine raises on outright rejection; the runtime
        owns the reporting of that failure.
        """
        if self._closed:
            raise RuntimeError("speech adapter is closed")

        settled = False

        def _on_end() -> None:
            nonlocal settled
            if settled:
                return
            settled = True
            self._emit_event(
                UtteranceEnd(
                    event_type=EventType.UTTERANCE_END,
                    ts_ms=self._now_ms(),
                    run_id=run_id,
                    utterance_id=utterance_id,
                    segment=segment,
                    row_index=row_index,
                )
            )

        def _on_error(info: str) -> None:
            nonlocal settled
            if settled:
                return
            settled = True
            self._emit_event(
                UtteranceError(
                    event_type=EventType.UTTERANCE_ERROR,
                    ts_ms=self._now_ms(),
                    run_id=run_id,
                    utterance_id=utterance_id,
                    segment=segment,
                    row_index=row_index,
                    reason=str(info),
                )
            )

        self._engine.speak(utterance, on_end=_on_end, on_error=_on_error)

    def cancel_all(self) -> None:
        self._engine.cancel_all()

    def list_voices(self) -> list[Voice]:
        return self._engine.list_voices()

    def close(self) -> None:
        """Idempotent: the engine is closed once."""
        if self._closed:
            return
        self._closed = True
        self._engine.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now_ms() -> int:
        """Wall-clock timestamp in milliseconds (coarse)."""
        return int(time.time() * 1000)
