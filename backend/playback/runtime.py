"""
Runtime execution shell for one playback sequencer.

Responsibilities:
- Own playback state
- Call the pure reducer
- Execute commands with side effects (speech engine, timers, logging)
- Schedule and cancel the single playback timer
- Convert timer expiry and engine callbacks into events
- Publish the observable snapshot when it changes

Non-responsibilities:
- Playback decisions (reducer)
- Transport concerns (gateway / WebSocket)
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable

from adapters.speech.adapter import SpeechEngineAdapter
from adapters.speech.base import SpeechEngine
from observability import metrics
from observability.logger import log_event
from playback.commands import (
    CancelSpeech,
    CancelTimer,
    Command,
    LogEvent,
    SpeakUtterance,
    StartTimer,
)
from playback.events import (
    Configure,
    Dispose,
    Event,
    EventType,
    MeaningDue,
    Pause,
    Play,
    RowsLoaded,
    Seek,
    SetLoop,
    SpeakPairDue,
    Stop,
    UtteranceEnd,
    UtteranceError,
    UtteranceEvent,
)
from playback.models import Pair, Voice
from playback.progress import PlaybackSnapshot, snapshot
from playback.reducer import reduce
from playback.runtime_context import (
    SchedulerProtocol,
    SpeechAdapterProtocol,
    TimerHandleProtocol,
)
from playback.speech_config import SpeechConfig, VoiceSelector
from playback.state_dataclass import PlaybackState


StateListener = Callable[[PlaybackSnapshot], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Sequencer:
    """
    Runtime execution boundary for one word/meaning playback sequence.

    Architectural role:
    Sequencer is the bridge between the pure playback layer
    (reducer + immutable state) and the imperative world
    (speech engine, scheduler, logging, time).

    Guarantees:
    - Reducer is called exactly once per incoming event
    - State is swapped in before any command executes
    - Commands execute in reducer-emitted order
    - Events raised while commands execute (synchronous engine callbacks,
      submission failures) are queued and processed after the current
      event finishes: transitions never interleave
    - At most one timer handle is live at any instant

    Threading:
    Every public method must be called on the scheduler's execution context.
    Engines with worker threads marshal their callbacks back onto it.
    """

    def __init__(
        self,
        *,
        engine: SpeechEngine,
        scheduler: SchedulerProtocol,
        initial_state: PlaybackState | None = None,
        session_id: str = "local",
        on_state: StateListener | None = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._state = initial_state if initial_state is not None else PlaybackState()
        self._scheduler = scheduler
        self._session_id = session_id
        self._on_state = on_state
        self._now_ms = now_ms

        self._adapter: SpeechAdapterProtocol = SpeechEngineAdapter(
            engine=engine,
            emit_event=self.handle_event,
        )

        self._timers: dict[str, TimerHandleProtocol] = {}
        self._inbox: deque[Event] = deque()
        self._dispatching = False
        self._closed = False

        # utterance_id -> metrics timer id (submit -> end latency)
        self._utterance_timers: dict[int, str] = {}

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        """
        Current immutable playback state.

        Read-only: state only changes through handle_event().
        """
        return self._state

    @property
    def snapshot(self) -> PlaybackSnapshot:
        return snapshot(self._state)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def live_timer_count(self) -> int:
        return len(self._timers)

    def list_voices(self) -> list[Voice]:
        return self._adapter.list_voices()

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    def handle_event(self, event: Event) -> None:
        """
        Process an event through the playback pipeline.

        This method is the *only* entry point for events affecting playback
        state. All event sources converge here:
        - Control calls (play, pause, stop, seek, configure, ...)
        - Speech adapter (utterance end / error)
        - Timers (speak-pair due, meaning due)

        Re-entrant calls enqueue and return; the outermost call drains.
        """
        self._inbox.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._inbox:
                self._dispatch(self._inbox.popleft())
        finally:
            self._dispatching = False

    def _dispatch(self, event: Event) -> None:
        before = snapshot(self._state)

        self._finish_utterance_metric(event)

        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            self._execute_command(cmd)

        after = snapshot(self._state)
        if after != before and self._on_state is not None:
            self._on_state(after)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def load_rows(self, rows: list[Pair] | tuple[Pair, ...]) -> None:
        self.handle_event(
            RowsLoaded(event_type=EventType.ROWS_LOADED, ts_ms=self._now_ms(), rows=tuple(rows))
        )

    def play(self) -> None:
        self.handle_event(Play(event_type=EventType.PLAY, ts_ms=self._now_ms()))

    def pause(self) -> None:
        self.handle_event(Pause(event_type=EventType.PAUSE, ts_ms=self._now_ms()))

    def stop(self) -> None:
        self.handle_event(Stop(event_type=EventType.STOP, ts_ms=self._now_ms()))

    def seek(self, index: int) -> None:
        self.handle_event(Seek(event_type=EventType.SEEK, ts_ms=self._now_ms(), index=index))

    def set_loop(self, loop: bool) -> None:
        self.handle_event(SetLoop(event_type=EventType.SET_LOOP, ts_ms=self._now_ms(), loop=loop))

    def configure(self, config: SpeechConfig) -> None:
        """Replace the whole speech config; see SpeechConfig.with_changes()."""
        self.handle_event(
            Configure(event_type=EventType.CONFIGURE, ts_ms=self._now_ms(), config=config)
        )

    def dispose(self) -> None:
        """
        Cancel everything and release the engine.

        Idempotent. Every later event is ignored by the reducer.
        """
        if self._closed:
            return
        self.handle_event(Dispose(event_type=EventType.DISPOSE, ts_ms=self._now_ms()))
        self.shutdown()

    def shutdown(self) -> None:
        """
        Release runtime resources.

        Cancels the timer, drops pending metrics and closes the adapter.
        Called by dispose() and by the gateway on disconnect.
        """
        if self._closed:
            return
        self._closed = True

        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        for timer_id in self._utterance_timers.values():
            metrics.discard_timer(timer_id)
        self._utterance_timers.clear()
        self._inbox.clear()

        self._adapter.close()

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._session_id,
            })

        elif isinstance(cmd, SpeakUtterance):
            self._speak(cmd)

        elif isinstance(cmd, CancelSpeech):
            for timer_id in self._utterance_timers.values():
                metrics.discard_timer(timer_id)
            self._utterance_timers.clear()

            self._adapter.cancel_all()
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "speech_cancel_executed",
                "session_id": self._session_id,
                "run_id": self._state.run_id,
                "reason": cmd.reason,
            })

        elif isinstance(cmd, StartTimer):
            self._start_timer(cmd)

        elif isinstance(cmd, CancelTimer):
            if self._cancel_timer(cmd.timer_id):
                log_event({
                    "ts_ms": self._now_ms(),
                    "event_type": "timer_cancelled",
                    "session_id": self._session_id,
                    "timer_id": cmd.timer_id,
                })

        else:
            raise ValueError(f"Unknown command type: {type(cmd).__name__}")

    def _speak(self, cmd: SpeakUtterance) -> None:
        timer_id = metrics.start_timer("utterance_duration")
        self._utterance_timers[cmd.utterance_id] = timer_id

        try:
            self._adapter.speak(
                run_id=cmd.run_id,
                utterance_id=cmd.utterance_id,
                segment=cmd.segment,
                row_index=cmd.row_index,
                utterance=cmd.utterance,
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            metrics.discard_timer(self._utterance_timers.pop(cmd.utterance_id))
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "speak_submit_failed",
                "session_id": self._session_id,
                "run_id": cmd.run_id,
                "utterance_id": cmd.utterance_id,
                "segment": cmd.segment.value,
                "row_index": cmd.row_index,
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
            self.handle_event(
                UtteranceError(
                    event_type=EventType.UTTERANCE_ERROR,
                    ts_ms=self._now_ms(),
                    run_id=cmd.run_id,
                    utterance_id=cmd.utterance_id,
                    segment=cmd.segment,
                    row_index=cmd.row_index,
                    reason=f"{type(exc).__name__}: {exc}",
                    submitted=False,
                )
            )
            return

        log_event({
            "ts_ms": self._now_ms(),
            "event_type": "speak_submitted",
            "session_id": self._session_id,
            "run_id": cmd.run_id,
            "utterance_id": cmd.utterance_id,
            "segment": cmd.segment.value,
            "row_index": cmd.row_index,
            "language_tag": cmd.utterance.language_tag,
            "voice_id": cmd.utterance.voice.voice_id if cmd.utterance.voice else None,
        })

    def _finish_utterance_metric(self, event: Event) -> None:
        if not isinstance(event, UtteranceEvent):
            return
        timer_id = self._utterance_timers.pop(event.utterance_id, None)
        if timer_id is None:
            return
        if isinstance(event, UtteranceEnd):
            metrics.stop_timer(
                timer_id,
                session_id=self._session_id,
                phase=self._state.phase.value,
                details={
                    "segment": event.segment.value,
                    "row_index": event.row_index,
                    "run_id": event.run_id,
                },
            )
        else:
            metrics.discard_timer(timer_id)

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(self, cmd: StartTimer) -> None:
        """
        Start or replace a timer that emits a timeout event.

        The callback re-enters handle_event(), keeping the single event
        entry point invariant.
        """
        # Replacing is idempotent
        self._cancel_timer(cmd.timer_id)

        handle: TimerHandleProtocol | None = None

        def _fire() -> None:
            if self._timers.get(cmd.timer_id) is handle:
                self._timers.pop(cmd.timer_id, None)
            event = self._construct_timeout_event(cmd)
            self.handle_event(event)

        handle = self._scheduler.call_later(cmd.duration_ms / 1000.0, _fire)
        self._timers[cmd.timer_id] = handle

        log_event({
            "ts_ms": self._now_ms(),
            "event_type": "timer_started",
            "session_id": self._session_id,
            "timer_id": cmd.timer_id,
            "duration_ms": cmd.duration_ms,
            "timeout_event_type": cmd.timeout_event_type.value,
            "run_id": cmd.run_id,
            "row_index": cmd.row_index,
        })

    def _cancel_timer(self, timer_id: str) -> bool:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: returns False if there was nothing to cancel.
        """
        handle = self._timers.pop(timer_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _construct_timeout_event(self, cmd: StartTimer) -> Event:
        """
        Construct the timeout event for an expired timer.

        Voices are resolved here, from the config current at fire time.
        """
        ts = self._now_ms()

        if cmd.timeout_event_type is EventType.SPEAK_PAIR_DUE:
            selector = self._state.config.voice_selector
            return SpeakPairDue(
                event_type=EventType.SPEAK_PAIR_DUE,
                ts_ms=ts,
                run_id=cmd.run_id,
                row_index=cmd.row_index,
                word_voice=self._pick_voice(selector, self._state.config.word_language),
                meaning_voice=self._pick_voice(selector, self._state.config.meaning_language),
            )

        if cmd.timeout_event_type is EventType.MEANING_DUE:
            return MeaningDue(
                event_type=EventType.MEANING_DUE,
                ts_ms=ts,
                run_id=cmd.run_id,
                row_index=cmd.row_index,
            )

        # This should never happen if the reducer is correct
        raise ValueError(
            f"Unknown timeout event type: {cmd.timeout_event_type} "
            f"for timer_id: {cmd.timer_id}"
        )

    def _pick_voice(
        self,
        selector: VoiceSelector | None,
        language_tag: str,
    ) -> Voice | None:
        """None selector, None result or a failing selector all mean engine default."""
        if selector is None:
            return None
        try:
            return selector(language_tag)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "voice_selector_failed",
                "session_id": self._session_id,
                "language_tag": language_tag,
                "error": str(exc),
            })
            return None
