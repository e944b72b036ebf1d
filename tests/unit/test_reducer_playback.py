"""
Pure playback reducer tests.

Reducer-only guarantees:
- Control calls produce the right cancel / schedule commands
- Run ID and stopping flag drop stale engine and timer events
- Every schedule replaces the single timer slot
"""

from dataclasses import replace

from constants import PLAY_DEBOUNCE_MS, TIMER_PLAYBACK
from playback.commands import (
    CancelSpeech,
    CancelTimer,
    LogEvent,
    SpeakUtterance,
    StartTimer,
)
from playback.enums.phase import Phase
from playback.enums.segment import Segment
from playback.events import (
    Dispose,
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
)
from playback.models import Pair, Utterance
from playback.reducer import reduce
from playback.speech_config import SpeechConfig
from playback.state_dataclass import PlaybackState


ROWS = (
    Pair(word="apple", meaning="りんご"),
    Pair(word="save", meaning="保存する"),
)


def _loaded(**overrides) -> PlaybackState:
    return replace(PlaybackState(rows=ROWS), **overrides)


def _speaking_word(**overrides) -> PlaybackState:
    base = _loaded(
        phase=Phase.SPEAKING_WORD,
        playing=True,
        current_index=0,
        run_id=3,
        utterance_seq=5,
        active_utterance_id=5,
        pending_meaning=Utterance(text="りんご", language_tag="ja-JP", rate=1.0, pitch=1.0),
    )
    return replace(base, **overrides)


def _decisions(cmds) -> list[str]:
    return [c.event["decision"] for c in cmds if isinstance(c, LogEvent)]


def _ignore_reason(cmds) -> str:
    (log,) = cmds
    assert isinstance(log, LogEvent)
    assert log.event["decision"] == "ignore"
    return log.event["details"]["reason"]


def _end(state: PlaybackState, *, segment: Segment, run_id=None, utterance_id=None) -> UtteranceEnd:
    return UtteranceEnd(
        event_type=EventType.UTTERANCE_END,
        ts_ms=0,
        run_id=state.run_id if run_id is None else run_id,
        utterance_id=state.active_utterance_id if utterance_id is None else utterance_id,
        segment=segment,
        row_index=state.current_index,
    )


def _assert_timer_replaced(cmds) -> None:
    for i, cmd in enumerate(cmds):
        if isinstance(cmd, StartTimer):
            assert i > 0
            prev = cmds[i - 1]
            assert isinstance(prev, CancelTimer)
            assert prev.timer_id == cmd.timer_id == TIMER_PLAYBACK


# ---------------------------------------------------------------------
# Control surface
# ---------------------------------------------------------------------

def test_play_without_rows_is_ignored():
    state = PlaybackState()

    new_state, cmds = reduce(state, Play(event_type=EventType.PLAY, ts_ms=0))

    assert new_state == state
    assert _ignore_reason(cmds) == "play_without_rows"


def test_play_cancels_then_schedules_debounced_first_pair():
    state = _loaded(stopping=True)

    new_state, cmds = reduce(state, Play(event_type=EventType.PLAY, ts_ms=0))

    assert new_state.playing is True
    assert new_state.stopping is False
    assert new_state.current_index == 0
    assert new_state.run_id == state.run_id + 1
    assert new_state.phase is Phase.STARTING

    assert isinstance(cmds[0], CancelSpeech)
    starts = [c for c in cmds if isinstance(c, StartTimer)]
    assert len(starts) == 1
    assert starts[0].duration_ms == PLAY_DEBOUNCE_MS
    assert starts[0].timeout_event_type is EventType.SPEAK_PAIR_DUE
    assert starts[0].run_id == new_state.run_id
    assert starts[0].row_index == 0
    _assert_timer_replaced(cmds)

    # phase change log is last
    assert _decisions(cmds)[-1] == "phase_changed"


def test_play_resumes_at_selected_row():
    state = _loaded(current_index=1)

    new_state, cmds = reduce(state, Play(event_type=EventType.PLAY, ts_ms=0))

    assert new_state.current_index == 1
    (start,) = [c for c in cmds if isinstance(c, StartTimer)]
    assert start.row_index == 1


def test_pause_keeps_index_and_sets_stopping():
    state = _speaking_word()

    new_state, cmds = reduce(state, Pause(event_type=EventType.PAUSE, ts_ms=0))

    assert new_state.playing is False
    assert new_state.stopping is True
    assert new_state.current_index == 0
    assert new_state.active_utterance_id is None
    assert new_state.run_id == state.run_id
    assert new_state.phase is Phase.IDLE
    assert isinstance(cmds[0], CancelSpeech)
    assert isinstance(cmds[1], CancelTimer)
    assert not any(isinstance(c, StartTimer) for c in cmds)


def test_stop_clears_index():
    state = _speaking_word(current_index=1)

    new_state, _ = reduce(state, Stop(event_type=EventType.STOP, ts_ms=0))

    assert new_state.current_index == -1
    assert new_state.playing is False
    assert new_state.phase is Phase.STOPPED


def test_seek_while_playing_starts_new_run():
    state = _speaking_word()

    new_state, cmds = reduce(state, Seek(event_type=EventType.SEEK, ts_ms=0, index=1))

    assert new_state.current_index == 1
    assert new_state.run_id == state.run_id + 1
    assert new_state.stopping is False
    assert new_state.active_utterance_id is None
    assert isinstance(cmds[0], CancelSpeech)
    (start,) = [c for c in cmds if isinstance(c, StartTimer)]
    assert start.row_index == 1
    assert start.duration_ms == PLAY_DEBOUNCE_MS
    assert "seek_jump" in _decisions(cmds)


def test_seek_while_idle_only_repositions():
    state = _loaded()

    new_state, cmds = reduce(state, Seek(event_type=EventType.SEEK, ts_ms=0, index=1))

    assert new_state == replace(state, current_index=1)
    assert _decisions(cmds) == ["seek_reposition"]


def test_seek_out_of_range_is_ignored():
    state = _loaded()

    for index in (-1, 2, 99):
        new_state, cmds = reduce(state, Seek(event_type=EventType.SEEK, ts_ms=0, index=index))
        assert new_state == state
        assert _ignore_reason(cmds) == "seek_out_of_range"


def test_rows_loaded_resets_session():
    state = _speaking_word()
    rows = (Pair(word="cat", meaning="ねこ"),)

    new_state, cmds = reduce(
        state, RowsLoaded(event_type=EventType.ROWS_LOADED, ts_ms=0, rows=rows)
    )

    assert new_state.rows == rows
    assert new_state.current_index == -1
    assert new_state.playing is False
    assert new_state.stopping is True
    assert any(isinstance(c, CancelSpeech) for c in cmds)


def test_set_loop_updates_flag():
    state = _loaded(loop=True)

    new_state, _ = reduce(state, SetLoop(event_type=EventType.SET_LOOP, ts_ms=0, loop=False))

    assert new_state.loop is False


def test_dispose_is_terminal():
    state = _speaking_word()

    disposed, cmds = reduce(state, Dispose(event_type=EventType.DISPOSE, ts_ms=0))

    assert disposed.phase is Phase.DISPOSED
    assert any(isinstance(c, CancelSpeech) for c in cmds)

    after, cmds = reduce(disposed, Play(event_type=EventType.PLAY, ts_ms=0))

    assert after == disposed
    assert _ignore_reason(cmds) == "disposed"


# ---------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------

def test_speak_pair_due_builds_both_utterances_from_config():
    config = SpeechConfig(rate=1.5, pitch=0.8, word_language="en-GB", meaning_language="ja-JP")
    state = _loaded(phase=Phase.STARTING, playing=True, current_index=0, run_id=2, config=config)

    new_state, cmds = reduce(
        state,
        SpeakPairDue(event_type=EventType.SPEAK_PAIR_DUE, ts_ms=0, run_id=2, row_index=0),
    )

    (speak,) = [c for c in cmds if isinstance(c, SpeakUtterance)]
    assert speak.segment is Segment.WORD
    assert speak.run_id == 2
    assert speak.utterance == Utterance(text="apple", language_tag="en-GB", rate=1.5, pitch=0.8)
    assert speak.utterance_id == new_state.active_utterance_id == 1

    assert new_state.phase is Phase.SPEAKING_WORD
    assert new_state.pending_meaning == Utterance(
        text="りんご", language_tag="ja-JP", rate=1.5, pitch=0.8
    )


def test_speak_pair_due_for_old_run_is_ignored():
    state = _loaded(phase=Phase.STARTING, playing=True, current_index=0, run_id=4)

    new_state, cmds = reduce(
        state,
        SpeakPairDue(event_type=EventType.SPEAK_PAIR_DUE, ts_ms=0, run_id=3, row_index=0),
    )

    assert new_state == state
    assert _ignore_reason(cmds) == "speak_pair_due_stale_run"


def test_speak_pair_due_while_paused_is_ignored():
    state = _loaded(phase=Phase.IDLE, playing=False, stopping=True, current_index=0, run_id=4)

    _, cmds = reduce(
        state,
        SpeakPairDue(event_type=EventType.SPEAK_PAIR_DUE, ts_ms=0, run_id=4, row_index=0),
    )

    assert _ignore_reason(cmds) == "speak_pair_due_not_playing"


def test_meaning_due_speaks_pending_meaning():
    state = _speaking_word(phase=Phase.WAITING_GAP_TO_MEANING, active_utterance_id=None)

    new_state, cmds = reduce(
        state,
        MeaningDue(event_type=EventType.MEANING_DUE, ts_ms=0, run_id=3, row_index=0),
    )

    (speak,) = [c for c in cmds if isinstance(c, SpeakUtterance)]
    assert speak.segment is Segment.MEANING
    assert speak.utterance.text == "りんご"
    assert new_state.phase is Phase.SPEAKING_MEANING
    assert new_state.pending_meaning is None
    assert new_state.active_utterance_id == 6


# ---------------------------------------------------------------------
# Speech engine
# ---------------------------------------------------------------------

def test_word_end_schedules_meaning_after_gap():
    state = _speaking_word(config=SpeechConfig(gap_seconds=0.4))

    new_state, cmds = reduce(state, _end(state, segment=Segment.WORD))

    assert new_state.phase is Phase.WAITING_GAP_TO_MEANING
    (start,) = [c for c in cmds if isinstance(c, StartTimer)]
    assert start.duration_ms == 400
    assert start.timeout_event_type is EventType.MEANING_DUE
    _assert_timer_replaced(cmds)


def test_meaning_end_advances_to_next_row():
    state = _speaking_word(phase=Phase.SPEAKING_MEANING, pending_meaning=None)

    new_state, cmds = reduce(state, _end(state, segment=Segment.MEANING))

    assert new_state.current_index == 1
    assert new_state.phase is Phase.WAITING_GAP_TO_NEXT
    (start,) = [c for c in cmds if isinstance(c, StartTimer)]
    assert start.timeout_event_type is EventType.SPEAK_PAIR_DUE
    assert start.row_index == 1


def test_meaning_end_of_last_row_without_loop_completes():
    state = _speaking_word(
        phase=Phase.SPEAKING_MEANING, current_index=1, loop=False, pending_meaning=None
    )

    new_state, cmds = reduce(state, _end(state, segment=Segment.MEANING))

    assert new_state.playing is False
    assert new_state.current_index == 1
    assert new_state.phase is Phase.IDLE
    assert not any(isinstance(c, (StartTimer, SpeakUtterance)) for c in cmds)
    assert "sequence_complete" in _decisions(cmds)


def test_meaning_end_of_last_row_with_loop_wraps():
    state = _speaking_word(
        phase=Phase.SPEAKING_MEANING, current_index=1, loop=True, pending_meaning=None
    )

    new_state, _ = reduce(state, _end(state, segment=Segment.MEANING))

    assert new_state.current_index == 0
    assert new_state.playing is True


def test_end_while_stopping_is_ignored_first():
    state = _speaking_word(stopping=True)

    new_state, cmds = reduce(state, _end(state, segment=Segment.WORD, run_id=99))

    assert new_state == state
    assert _ignore_reason(cmds) == "utterance_end_while_stopping"


def test_end_from_old_run_is_ignored():
    state = _speaking_word()

    _, cmds = reduce(state, _end(state, segment=Segment.WORD, run_id=2))

    assert _ignore_reason(cmds) == "utterance_end_stale_run"


def test_end_for_inactive_utterance_is_ignored():
    state = _speaking_word()

    _, cmds = reduce(state, _end(state, segment=Segment.WORD, utterance_id=4))

    assert _ignore_reason(cmds) == "utterance_end_not_active"


def test_error_stalls_without_scheduling():
    state = _speaking_word()

    new_state, cmds = reduce(
        state,
        UtteranceError(
            event_type=EventType.UTTERANCE_ERROR,
            ts_ms=0,
            run_id=3,
            utterance_id=5,
            segment=Segment.WORD,
            row_index=0,
            reason="interrupted",
        ),
    )

    assert new_state.playing is True
    assert new_state.phase is Phase.SPEAKING_WORD
    assert new_state.active_utterance_id is None
    assert new_state.last_error == "interrupted"
    assert all(isinstance(c, LogEvent) for c in cmds)
    assert _decisions(cmds) == ["utterance_error_stall"]


def test_log_events_carry_required_fields():
    state = _loaded()

    _, cmds = reduce(state, Play(event_type=EventType.PLAY, ts_ms=123))

    for cmd in cmds:
        if not isinstance(cmd, LogEvent):
            continue
        payload = cmd.event
        for key in (
            "ts_ms", "phase", "event_type", "decision", "run_id",
            "current_index", "playing", "stopping", "details",
        ):
            assert key in payload
        assert payload["ts_ms"] == 123
