"""
Pure playback reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (phase, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from constants import PLAY_DEBOUNCE_MS, TIMER_PLAYBACK
from playback.commands import (
    CancelSpeech,
    CancelTimer,
    Command,
    LogEvent,
    SpeakUtterance,
    StartTimer,
)
from playback.enums.phase import Phase
from playback.enums.segment import Segment
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
from playback.models import Utterance
from playback.position import advance
from playback.state_dataclass import PlaybackState


# =============================================================================
# Invariants
# =============================================================================
# - run_id is bumped ONLY when a new speaking action starts (play, seek while
#   playing). Cancellation never bumps it.
# - Every StartTimer is preceded by a CancelTimer for the same slot, so at
#   most one timer is ever outstanding.
# - At most one utterance is active; only its terminal event may transition.
# - The stopping flag is checked before anything else in engine handlers.


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: PlaybackState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "phase": state.phase.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "run_id": state.run_id,
            "current_index": state.current_index,
            "playing": state.playing,
            "stopping": state.stopping,
            "total": len(state.rows),
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    phase_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "phase_changed":
                phase_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + phase_change_logs)


def _ignore(
    state: PlaybackState, event: Event, reason: str
) -> tuple[PlaybackState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _phase_log(
    old: PlaybackState,
    new: PlaybackState,
    event: Event,
    source: str,
) -> tuple[Command, ...]:
    if old.phase is new.phase:
        return ()
    return (
        _log(
            new,
            event,
            "phase_changed",
            {
                "from_phase": old.phase.value,
                "to_phase": new.phase.value,
                "source": source,
            },
        ),
    )


def _cancel_in_flight(reason: str) -> tuple[Command, ...]:
    """Engine cancel + timer clear, in that order."""
    return (
        CancelSpeech(reason=reason),
        CancelTimer(timer_id=TIMER_PLAYBACK),
    )


def _schedule(
    *,
    duration_ms: int,
    timeout_event_type: EventType,
    run_id: int,
    row_index: int,
) -> tuple[Command, ...]:
    """Replace the single playback timer."""
    return (
        CancelTimer(timer_id=TIMER_PLAYBACK),
        StartTimer(
            timer_id=TIMER_PLAYBACK,
            duration_ms=duration_ms,
            timeout_event_type=timeout_event_type,
            run_id=run_id,
            row_index=row_index,
        ),
    )


def _halt(state: PlaybackState, *, phase: Phase) -> PlaybackState:
    """State half of pause/stop/dispose: everything in flight is abandoned."""
    return replace(
        state,
        phase=phase,
        playing=False,
        stopping=True,
        active_utterance_id=None,
        pending_meaning=None,
    )


def _start_run(state: PlaybackState, index: int) -> PlaybackState:
    """State half of play/seek-while-playing: a fresh run begins at index."""
    return replace(
        state,
        phase=Phase.STARTING,
        playing=True,
        stopping=False,
        current_index=index,
        run_id=state.run_id + 1,
        active_utterance_id=None,
        pending_meaning=None,
        last_error=None,
    )


def _engine_gate(state: PlaybackState, event: UtteranceEvent) -> str | None:
    """Return an ignore reason for a stale engine event, else None."""
    prefix = event.event_type.value.lower()
    if state.stopping:
        return f"{prefix}_while_stopping"
    if event.run_id != state.run_id:
        return f"{prefix}_stale_run"
    if event.utterance_id != state.active_utterance_id:
        return f"{prefix}_not_active"
    return None


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    state: PlaybackState,
    event: Event,
) -> tuple[PlaybackState, tuple[Command, ...]]:
    """
    Compute the next state and the side effects it requires.

    Dispatch is by event type; phase is consulted inside each handler.
    """
    if state.phase is Phase.DISPOSED:
        return _ignore(state, event, "disposed")

    # ------------------------------------------------------------------
    # Session input
    # ------------------------------------------------------------------

    if isinstance(event, RowsLoaded):
        new_state = replace(
            _halt(state, phase=Phase.IDLE),
            rows=tuple(event.rows),
            current_index=-1,
            last_error=None,
        )
        return new_state, _logs_last(
            _cancel_in_flight("rows_loaded")
            + (_log(new_state, event, "rows_loaded", {"total": len(new_state.rows)}),)
            + _phase_log(state, new_state, event, "rows_loaded")
        )

    if isinstance(event, Configure):
        new_state = replace(state, config=event.config)
        return new_state, (
            _log(new_state, event, "configure", event.config.to_log_dict()),
        )

    if isinstance(event, SetLoop):
        new_state = replace(state, loop=event.loop)
        return new_state, (_log(new_state, event, "set_loop", {"loop": event.loop}),)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    if isinstance(event, Play):
        if not state.rows:
            return _ignore(state, event, "play_without_rows")

        start_index = state.current_index if state.current_index >= 0 else 0
        if start_index >= len(state.rows):
            start_index = 0

        new_state = _start_run(state, start_index)
        return new_state, _logs_last(
            _cancel_in_flight("play_restart")
            + _schedule(
                duration_ms=PLAY_DEBOUNCE_MS,
                timeout_event_type=EventType.SPEAK_PAIR_DUE,
                run_id=new_state.run_id,
                row_index=start_index,
            )
            + (_log(new_state, event, "play", {"start_index": start_index}),)
            + _phase_log(state, new_state, event, "play")
        )

    if isinstance(event, Pause):
        new_state = _halt(state, phase=Phase.IDLE)
        return new_state, _logs_last(
            _cancel_in_flight("pause")
            + (_log(new_state, event, "pause", {"resume_index": new_state.current_index}),)
            + _phase_log(state, new_state, event, "pause")
        )

    if isinstance(event, Stop):
        new_state = replace(_halt(state, phase=Phase.STOPPED), current_index=-1)
        return new_state, _logs_last(
            _cancel_in_flight("stop")
            + (_log(new_state, event, "stop"),)
            + _phase_log(state, new_state, event, "stop")
        )

    if isinstance(event, Seek):
        if not 0 <= event.index < len(state.rows):
            return _ignore(state, event, "seek_out_of_range")

        if not state.playing:
            new_state = replace(state, current_index=event.index)
            return new_state, (
                _log(new_state, event, "seek_reposition", {"index": event.index}),
            )

        new_state = _start_run(state, event.index)
        return new_state, _logs_last(
            _cancel_in_flight("seek")
            + _schedule(
                duration_ms=PLAY_DEBOUNCE_MS,
                timeout_event_type=EventType.SPEAK_PAIR_DUE,
                run_id=new_state.run_id,
                row_index=event.index,
            )
            + (_log(new_state, event, "seek_jump", {"index": event.index}),)
            + _phase_log(state, new_state, event, "seek")
        )

    if isinstance(event, Dispose):
        new_state = _halt(state, phase=Phase.DISPOSED)
        return new_state, _logs_last(
            _cancel_in_flight("dispose")
            + (_log(new_state, event, "dispose"),)
            + _phase_log(state, new_state, event, "dispose")
        )

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    if isinstance(event, SpeakPairDue):
        if event.run_id != state.run_id:
            return _ignore(state, event, "speak_pair_due_stale_run")
        if state.stopping or not state.playing:
            return _ignore(state, event, "speak_pair_due_not_playing")
        if not 0 <= event.row_index < len(state.rows):
            return _ignore(state, event, "speak_pair_due_out_of_range")

        pair = state.rows[event.row_index]
        cfg = state.config
        word = Utterance(
            text=pair.word,
            language_tag=cfg.word_language,
            rate=cfg.rate,
            pitch=cfg.pitch,
            voice=event.word_voice,
        )
        meaning = Utterance(
            text=pair.meaning,
            language_tag=cfg.meaning_language,
            rate=cfg.rate,
            pitch=cfg.pitch,
            voice=event.meaning_voice,
        )

        utterance_id = state.utterance_seq + 1
        new_state = replace(
            state,
            phase=Phase.SPEAKING_WORD,
            current_index=event.row_index,
            utterance_seq=utterance_id,
            active_utterance_id=utterance_id,
            pending_meaning=meaning,
        )
        return new_state, _logs_last((
            SpeakUtterance(
                run_id=new_state.run_id,
                utterance_id=utterance_id,
                segment=Segment.WORD,
                row_index=event.row_index,
                utterance=word,
            ),
            _log(
                new_state,
                event,
                "speak_word",
                {"row_index": event.row_index, "utterance_id": utterance_id},
            ),
        ) + _phase_log(state, new_state, event, "speak_pair"))

    if isinstance(event, MeaningDue):
        if event.run_id != state.run_id:
            return _ignore(state, event, "meaning_due_stale_run")
        if state.stopping or not state.playing:
            return _ignore(state, event, "meaning_due_not_playing")
        if (
            state.phase is not Phase.WAITING_GAP_TO_MEANING
            or state.pending_meaning is None
        ):
            return _ignore(state, event, "meaning_due_without_pending_meaning")

        utterance_id = state.utterance_seq + 1
        new_state = replace(
            state,
            phase=Phase.SPEAKING_MEANING,
            utterance_seq=utterance_id,
            active_utterance_id=utterance_id,
            pending_meaning=None,
        )
        return new_state, _logs_last((
            SpeakUtterance(
                run_id=new_state.run_id,
                utterance_id=utterance_id,
                segment=Segment.MEANING,
                row_index=event.row_index,
                utterance=state.pending_meaning,
            ),
            _log(
                new_state,
                event,
                "speak_meaning",
                {"row_index": event.row_index, "utterance_id": utterance_id},
            ),
        ) + _phase_log(state, new_state, event, "meaning_due"))

    # ------------------------------------------------------------------
    # Speech engine
    # ------------------------------------------------------------------

    if isinstance(event, UtteranceEnd):
        reason = _engine_gate(state, event)
        if reason is not None:
            return _ignore(state, event, reason)

        if event.segment is Segment.WORD:
            new_state = replace(
                state,
                phase=Phase.WAITING_GAP_TO_MEANING,
                active_utterance_id=None,
            )
            return new_state, _logs_last(
                _schedule(
                    duration_ms=state.config.gap_ms,
                    timeout_event_type=EventType.MEANING_DUE,
                    run_id=state.run_id,
                    row_index=event.row_index,
                )
                + (_log(new_state, event, "word_end", {"gap_ms": state.config.gap_ms}),)
                + _phase_log(state, new_state, event, "word_end")
            )

        if not state.rows:
            return _ignore(state, event, "meaning_end_without_rows")

        step = advance(state.current_index, len(state.rows), state.loop)

        if step.sequence_complete:
            new_state = replace(
                state,
                phase=Phase.IDLE,
                playing=False,
                active_utterance_id=None,
            )
            return new_state, _logs_last(
                (_log(new_state, event, "sequence_complete"),)
                + _phase_log(state, new_state, event, "sequence_complete")
            )

        new_state = replace(
            state,
            phase=Phase.WAITING_GAP_TO_NEXT,
            current_index=step.next_index,
            active_utterance_id=None,
        )
        return new_state, _logs_last(
            _schedule(
                duration_ms=state.config.gap_ms,
                timeout_event_type=EventType.SPEAK_PAIR_DUE,
                run_id=state.run_id,
                row_index=step.next_index,
            )
            + (
                _log(
                    new_state,
                    event,
                    "meaning_end_advance",
                    {
                        "next_index": step.next_index,
                        "wrapped": step.wrapped,
                        "gap_ms": state.config.gap_ms,
                    },
                ),
            )
            + _phase_log(state, new_state, event, "meaning_end")
        )

    if isinstance(event, UtteranceError):
        reason = _engine_gate(state, event)
        if reason is not None:
            return _ignore(state, event, reason)

        # Stall: phase and timers stay as they are until the next control call.
        new_state = replace(
            state,
            active_utterance_id=None,
            last_error=event.reason,
        )
        return new_state, (
            _log(
                new_state,
                event,
                "utterance_error_stall",
                {
                    "segment": event.segment.value,
                    "row_index": event.row_index,
                    "reason": event.reason,
                    "submitted": event.submitted,
                },
            ),
        )

    return _ignore(state, event, "unhandled_event")
