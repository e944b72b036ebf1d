"""
Controller façade.

One-to-one delegation onto the Sequencer for UI-style callers:
handle_play / handle_pause / handle_stop / handle_row_click, plus
configure(), set_loop(), load_rows() and dispose().

No call here ever raises for empty rows or a bad index; the reducer ignores
those and logs why.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from adapters.speech.base import SpeechEngine
from playback.models import Pair, Voice
from playback.progress import PlaybackSnapshot
from playback.runtime import Sequencer, StateListener
from playback.runtime_context import SchedulerProtocol
from playback.speech_config import SpeechConfig
from playback.state_dataclass import PlaybackState


class SpeechController:
    """Thin control surface over one Sequencer."""

    def __init__(self, sequencer: Sequencer) -> None:
        self._sequencer = sequencer

    @property
    def sequencer(self) -> Sequencer:
        return self._sequencer

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def handle_play(self) -> None:
        self._sequencer.play()

    def handle_pause(self) -> None:
        self._sequencer.pause()

    def handle_stop(self) -> None:
        self._sequencer.stop()

    def handle_row_click(self, index: int) -> None:
        self._sequencer.seek(index)

    def load_rows(self, rows: list[Pair] | tuple[Pair, ...]) -> None:
        self._sequencer.load_rows(rows)

    def set_loop(self, loop: bool) -> None:
        self._sequencer.set_loop(loop)

    def configure(self, **changes: Any) -> SpeechConfig:
        """
        Apply a partial config change and return the resulting config.

        Accepts any SpeechConfig.with_changes() keyword; omitted fields keep
        their current value. Takes effect from the next utterance built.
        """
        config = self._sequencer.state.config.with_changes(**changes)
        self._sequencer.configure(config)
        return config

    def list_voices(self) -> list[Voice]:
        return self._sequencer.list_voices()

    def dispose(self) -> None:
        self._sequencer.dispose()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def current_index(self) -> int:
        return self._sequencer.state.current_index

    @property
    def playing(self) -> bool:
        return self._sequencer.state.playing

    @property
    def rows(self) -> tuple[Pair, ...]:
        return self._sequencer.state.rows

    @property
    def total(self) -> int:
        return len(self._sequencer.state.rows)

    @property
    def progress_percent(self) -> float:
        return self._sequencer.snapshot.progress_percent

    @property
    def snapshot(self) -> PlaybackSnapshot:
        return self._sequencer.snapshot


def create_controller(
    *,
    engine: SpeechEngine,
    scheduler: SchedulerProtocol,
    config: SpeechConfig | None = None,
    loop: bool | None = None,
    session_id: str = "local",
    on_state: StateListener | None = None,
) -> SpeechController:
    """Build a Sequencer with the given config and wrap it in a façade."""
    initial = PlaybackState()
    if config is not None:
        initial = replace(initial, config=config)
    if loop is not None:
        initial = replace(initial, loop=loop)

    sequencer = Sequencer(
        engine=engine,
        scheduler=scheduler,
        initial_state=initial,
        session_id=session_id,
        on_state=on_state,
    )
    return SpeechController(sequencer)
