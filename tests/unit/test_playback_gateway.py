# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import threading
import json
from typing import Any

import pytest

from config import AppConfig
from fakes import FakeSpeechEngine
from observability import logger
from playback.models import Voice
from session.connection_status import ConnectionStatus
from session.gateway import PlaybackGateway


TSV = "apple\tりんご\nsave\t保存する\n"


def _app_config() -> AppConfig:
    return AppConfig(
        env="test",
        log_level="INFO",
        host="127.0.0.1",
        port=8000,
        speech_engine="fake",
        pyttsx3_driver=None,
        speech_rate=1.0,
        speech_pitch=1.0,
        gap_seconds=0.0,
        word_language="en-US",
        meaning_language="ja-JP",
        playback_loop=False,
    )


@pytest.fixture(autouse=True)
def logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture every JSONL line emitted anywhere in the stack."""
    captured: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: captured.append(json.loads(line)))
    return captured


def _event_types(logs: list[dict[str, Any]]) -> list[str]:
    return [e.get("event_type") for e in logs]


def _gateway(engine: FakeSpeechEngine) -> PlaybackGateway:
    return PlaybackGateway(config=_app_config(), engine_factory=lambda: engine)


def _send(gw: PlaybackGateway, msg: dict[str, Any]):
    return gw.on_json_message(json.dumps(msg))


def test_connect_sends_session_init_then_state(logs: list[dict[str, Any]]):
    engine = FakeSpeechEngine()

    async def scenario():
        gw = _gateway(engine)
        result = await gw.on_ws_connect()
        await gw.on_ws_disconnect()
        return gw, result

    gw, result = asyncio.run(scenario())

    init_msg, state_msg = result.outbound_json
    assert init_msg["type"] == "SESSION_INIT"
    assert init_msg["session_id"] == gw.session.session_id
    assert init_msg["config"]["has_voice_selector"] is True
    assert state_msg["type"] == "PLAYBACK_STATE"
    assert state_msg["total"] == 0
    assert state_msg["current_index"] == -1
    assert "SESSION_STARTED" in _event_types(logs)


def test_load_rows_from_tsv_publishes_state():
    engine = FakeSpeechEngine()

    async def scenario():
        gw = _gateway(engine)
        await gw.on_ws_connect()
        result = await _send(gw, {"type": "LOAD_ROWS", "tsv": TSV})
        await gw.on_ws_disconnect()
        return result

    result = asyncio.run(scenario())

    state_msg = result.outbound_json[-1]
    assert state_msg["type"] == "PLAYBACK_STATE"
    assert state_msg["total"] == 2
    assert state_msg["playing"] is False


def test_load_rows_from_objects_and_play_speaks_first_word():
    engine = FakeSpeechEngine()

    async def scenario():
        gw = _gateway(engine)
        await gw.on_ws_connect()
        await _send(gw, {
            "type": "LOAD_ROWS",
            "rows": [{"word": "apple", "meaning": "りんご"}],
        })
        play = await _send(gw, {"type": "PLAY"})

        # Debounce timer fires on the loop and publishes the speaking phase
        pushed = await asyncio.wait_for(gw.wait_outbound(), timeout=1.0)
        await gw.on_ws_disconnect()
        return play, pushed

    play, pushed = asyncio.run(scenario())

    assert play.outbound_json[-1]["playing"] is True
    assert play.outbound_json[-1]["phase"] == "STARTING"
    assert pushed.outbound_json[-1]["phase"] == "SPEAKING_WORD"
    assert engine.texts == ["apple"]


@pytest.mark.parametrize(
    "msg",
    [
        {"type": "LOAD_ROWS", "rows": "apple"},
        {"type": "LOAD_ROWS", "rows": [{"word": "apple"}]},
        {"type": "LOAD_ROWS", "tsv": 5},
        {"type": "SEEK", "index": "1"},
        {"type": "SEEK", "index": True},
        {"type": "SET_LOOP", "loop": "yes"},
        {"type": "CONFIGURE", "rate": "fast"},
        {"type": "CONFIGURE", "word_language": ""},
    ],
)
def test_invalid_payloads_are_logged_and_dropped(msg: dict[str, Any], logs: list[dict[str, Any]]):
    engine = FakeSpeechEngine()

    async def scenario():
        gw = _gateway(engine)
        await gw.on_ws_connect()
        result = await _send(gw, msg)
        state = gw.session.controller.snapshot
        await gw.on_ws_disconnect()
        return result, state

    result, state = asyncio.run(scenario())

    assert result.outbound_json == ()
    assert state.total == 0
    invalid = [e for e in logs if e.get("event_type") == "INVALID_PAYLOAD"]
    assert invalid[0]["msg_type"] == msg["type"]


def test_malformed_json_and_unknown_type_are_logged(logs: list[dict[str, Any]]):
    async def scenario():
        gw = _gateway(FakeSpeechEngine())
        await gw.on_ws_connect()
        first = await gw.on_json_message("{not json")
        second = await gw.on_json_message("[1, 2]")
        third = await _send(gw, {"type": "RECORD"})
        await gw.on_ws_disconnect()
        return first, second, third

    results = asyncio.run(scenario())

    assert all(r.outbound_json == () for r in results)
    types = _event_types(logs)
    assert "JSON_DECODE_ERROR" in types
    assert "INVALID_PAYLOAD" in types
    assert "UNKNOWN_MESSAGE_TYPE" in types


def test_configure_clamps_and_applies():
    async def scenario():
        gw = _gateway(FakeSpeechEngine())
        await gw.on_ws_connect()
        await _send(gw, {"type": "CONFIGURE", "rate": 9, "gap_seconds": 0.5, "meaning_language": "ko-KR"})
        config = gw.session.controller.sequencer.state.config
        await gw.on_ws_disconnect()
        return config

    config = asyncio.run(scenario())

    assert config.rate == 2.0
    assert config.gap_ms == 500
    assert config.meaning_language == "ko-KR"
    assert config.voice_selector is not None


def test_set_loop_and_seek_while_idle():
    async def scenario():
        gw = _gateway(FakeSpeechEngine())
        await gw.on_ws_connect()
        await _send(gw, {"type": "LOAD_ROWS", "tsv": TSV})
        await _send(gw, {"type": "SET_LOOP", "loop": True})
        result = await _send(gw, {"type": "SEEK", "index": 1})
        await gw.on_ws_disconnect()
        return result

    result = asyncio.run(scenario())

    state_msg = result.outbound_json[-1]
    assert state_msg["current_index"] == 1
    assert state_msg["loop"] is True
    assert state_msg["playing"] is False


def test_list_voices_replies_with_voices(logs: list[dict[str, Any]]):
    engine = FakeSpeechEngine(voices=[Voice(voice_id="kyoko", name="Kyoko", language_tag="ja-JP")])

    async def scenario():
        gw = _gateway(engine)
        await gw.on_ws_connect()
        result = await _send(gw, {"type": "LIST_VOICES"})
        await gw.on_ws_disconnect()
        return result

    (msg,) = asyncio.run(scenario()).outbound_json

    assert msg["type"] == "VOICES"
    assert msg["voices"] == [{"voice_id": "kyoko", "name": "Kyoko", "language_tag": "ja-JP"}]
    metric = [e for e in logs if e.get("event_type") == "METRIC_TIMER"]
    assert [m["metric"] for m in metric] == ["voice_enumeration", "voice_enumeration"]
    assert [m["phase"] for m in metric] == ["connect", "list_voices"]


def test_session_end_disposes_and_drops_later_messages(logs: list[dict[str, Any]]):
    engine = FakeSpeechEngine()

    async def scenario():
        gw = _gateway(engine)
        await gw.on_ws_connect()
        await _send(gw, {"type": "LOAD_ROWS", "tsv": TSV})
        await _send(gw, {"type": "SESSION_END"})
        late = await _send(gw, {"type": "PLAY"})
        await gw.on_ws_disconnect()
        return late

    late = asyncio.run(scenario())

    assert engine.closed
    assert late.outbound_json == ()
    assert engine.submissions == []
    types = _event_types(logs)
    assert types.count("SESSION_ENDED") == 1
    assert "MESSAGE_AFTER_SESSION_END" in types


def test_disconnect_cancels_playback_and_marks_down(logs: list[dict[str, Any]]):
    engine = FakeSpeechEngine()

    async def scenario():
        gw = _gateway(engine)
        await gw.on_ws_connect()
        await _send(gw, {"type": "LOAD_ROWS", "tsv": TSV})
        await _send(gw, {"type": "PLAY"})
        await gw.on_ws_disconnect(reason="client_disconnect")
        await asyncio.sleep(0.05)
        return gw

    gw = asyncio.run(scenario())

    assert gw.session.connection_status is ConnectionStatus.DOWN
    assert gw.session.ended
    assert engine.closed
    assert engine.submissions == []
    disconnected = [e for e in logs if e.get("event_type") == "WS_DISCONNECTED"]
    assert disconnected[0]["reason"] == "client_disconnect"


def test_message_before_connect_is_logged(logs: list[dict[str, Any]]):
    gw = _gateway(FakeSpeechEngine())

    result = asyncio.run(gw.on_json_message('{"type": "PLAY"}'))

    assert result.outbound_json == ()
    assert _event_types(logs) == ["MESSAGE_WITHOUT_SESSION"]


def test_configure_rejects_non_finite_numbers(logs: list[dict[str, Any]]):
    async def scenario():
        gw = _gateway(FakeSpeechEngine())
        await gw.on_ws_connect()
        # 1e400 parses to inf
        result = await gw.on_json_message('{"type": "CONFIGURE", "gap_seconds": 1e400}')
        config = gw.session.controller.sequencer.state.config
        await gw.on_ws_disconnect()
        return result, config

    result, config = asyncio.run(scenario())

    assert result.outbound_json == ()
    assert config.gap_ms == 0
    invalid = [e for e in logs if e.get("event_type") == "INVALID_PAYLOAD"]
    assert invalid[0]["error"] == "gap_seconds must be finite"


def test_voices_are_enumerated_off_the_loop_at_connect():
    engine = FakeSpeechEngine(voices=[Voice(voice_id="alex", name="Alex", language_tag="en-US")])

    async def scenario():
        loop_thread = threading.get_ident()
        gw = _gateway(engine)
        await gw.on_ws_connect()
        await _send(gw, {"type": "LOAD_ROWS", "tsv": TSV})
        await _send(gw, {"type": "PLAY"})
        pushed = await asyncio.wait_for(gw.wait_outbound(), timeout=1.0)
        await gw.on_ws_disconnect()
        return loop_thread, pushed

    loop_thread, pushed = asyncio.run(scenario())

    assert pushed.outbound_json[-1]["phase"] == "SPEAKING_WORD"
    assert engine.list_voices_calls == 1
    assert loop_thread not in engine.list_voices_threads
    assert engine.submissions[0].utterance.voice == Voice(
        voice_id="alex", name="Alex", language_tag="en-US"
    )


def test_export_rows_replies_with_tsv():
    async def scenario():
        gw = _gateway(FakeSpeechEngine())
        await gw.on_ws_connect()
        await _send(gw, {"type": "LOAD_ROWS", "tsv": TSV})
        result = await _send(gw, {"type": "EXPORT_ROWS"})
        await gw.on_ws_disconnect()
        return result

    (msg,) = asyncio.run(scenario()).outbound_json

    assert msg["type"] == "ROWS"
    assert msg["total"] == 2
    assert msg["tsv"] == "apple\tりんご\nsave\t保存する"
