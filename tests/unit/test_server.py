# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

from config import AppConfig
from fakes import FakeSpeechEngine
from observability import logger
from playback.models import Voice
from server.app import build_speech_engine, create_app


def _app_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "env": "test",
        "log_level": "INFO",
        "host": "127.0.0.1",
        "port": 8000,
        "speech_engine": "pyttsx3",
        "pyttsx3_driver": None,
        "speech_rate": 1.0,
        "speech_pitch": 1.0,
        "gap_seconds": 0.0,
        "word_language": "en-US",
        "meaning_language": "ja-JP",
        "playback_loop": False,
    }
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture(autouse=True)
def logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    captured: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: captured.append(json.loads(line)))
    return captured


@pytest.fixture
def engines() -> list[FakeSpeechEngine]:
    return []


@pytest.fixture
def client(engines: list[FakeSpeechEngine]) -> TestClient:
    def factory() -> FakeSpeechEngine:
        engine = FakeSpeechEngine(voices=[Voice(voice_id="alex", name="Alex", language_tag="en-US")])
        engines.append(engine)
        return engine

    return TestClient(create_app(config=_app_config(), engine_factory=factory))


def _receive_until(ws: Any, msg_type: str, predicate=lambda msg: True, limit: int = 20) -> dict[str, Any]:
    for _ in range(limit):
        msg = ws.receive_json()
        if msg["type"] == msg_type and predicate(msg):
            return msg
    raise AssertionError(f"no {msg_type} message received")


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_websocket_session_flow(client: TestClient, engines: list[FakeSpeechEngine]):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "SESSION_INIT"
        assert ws.receive_json()["type"] == "PLAYBACK_STATE"

        ws.send_text(json.dumps({"type": "LOAD_ROWS", "tsv": "apple\tりんご\nsave\t保存する"}))
        loaded = _receive_until(ws, "PLAYBACK_STATE", lambda m: m["total"] == 2)
        assert loaded["current_index"] == -1

        ws.send_text(json.dumps({"type": "LIST_VOICES"}))
        voices = _receive_until(ws, "VOICES")
        assert voices["voices"][0]["voice_id"] == "alex"

        ws.send_text(json.dumps({"type": "PLAY"}))
        speaking = _receive_until(ws, "PLAYBACK_STATE", lambda m: m["phase"] == "SPEAKING_WORD")
        assert speaking["current_pair"] == {"word": "apple", "meaning": "りんご"}

    (engine,) = engines
    assert engine.texts == ["apple"]
    assert engine.submissions[0].utterance.voice == Voice(
        voice_id="alex", name="Alex", language_tag="en-US"
    )


def test_each_connection_gets_its_own_engine(client: TestClient, engines: list[FakeSpeechEngine]):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()

    assert len(engines) == 2
    assert engines[0] is not engines[1]


def test_binary_frames_are_logged(client: TestClient, logs: list[dict[str, Any]]):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.receive_json()
        ws.send_bytes(b"\x00\x01")
        ws.send_text(json.dumps({"type": "LIST_VOICES"}))
        _receive_until(ws, "VOICES")

    binary = [e for e in logs if e.get("event_type") == "BINARY_NOT_SUPPORTED"]
    assert binary[0]["payload_len"] == 2


def test_unknown_engine_is_rejected():
    with pytest.raises(RuntimeError):
        build_speech_engine(_app_config(speech_engine="espeak-ng-native"))
