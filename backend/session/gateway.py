"""
Playback gateway.

Responsibilities:
- Owns PlayerSession lifecycle
- Tracks connection_status independently of playback phase
- Builds the session's engine, sequencer and controller
- Routes inbound JSON control messages -> controller calls
- Publishes playback snapshots as outbound PLAYBACK_STATE messages

NOT responsible for:
- Playback decisions (reducer)
- Executing side effects (sequencer runtime)
- Socket I/O (routes)
"""

from __future__ import annotations

import asyncio
import json
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

from adapters.speech.base import SpeechEngine
from adapters.speech.voices import VoiceCatalog, make_voice_selector
from constants import PAYLOAD_PREVIEW_CHARS
from observability.logger import log_event
from observability.metrics import timed
from playback.controller import create_controller
from playback.models import Pair, Voice
from playback.progress import PlaybackSnapshot
from playback.scheduler import AsyncioScheduler
from playback.speech_config import SpeechConfig
from session.connection_status import ConnectionStatus
from session.player_session import PlayerSession
from wordlist.tsv import parse_tsv, to_tsv

if TYPE_CHECKING:
    from config import AppConfig


EngineFactory = Callable[[], SpeechEngine]

# CONFIGURE keys accepted from clients, mapped to SpeechConfig fields
_NUMERIC_CONFIG_KEYS = ("rate", "pitch", "gap_seconds")
_TEXT_CONFIG_KEYS = ("word_language", "meaning_language")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


class InvalidPayload(ValueError):
    """Inbound message has the right type but unusable fields."""


def _parse_rows(data: dict[str, Any]) -> list[Pair]:
    if "tsv" in data:
        tsv = data["tsv"]
        if not isinstance(tsv, str):
            raise InvalidPayload("tsv must be a string")
        return parse_tsv(tsv)

    rows = data.get("rows")
    if not isinstance(rows, list):
        raise InvalidPayload("rows must be a list")

    pairs: list[Pair] = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            raise InvalidPayload(f"rows[{i}] must be an object")
        word = row.get("word")
        meaning = row.get("meaning")
        if not isinstance(word, str) or not isinstance(meaning, str):
            raise InvalidPayload(f"rows[{i}] needs string word and meaning")
        pairs.append(Pair(word=word, meaning=meaning))
    return pairs


def _parse_config_changes(data: dict[str, Any]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for key in _NUMERIC_CONFIG_KEYS:
        if key not in data:
            continue
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidPayload(f"{key} must be a number")
        if not math.isfinite(value):
            raise InvalidPayload(f"{key} must be finite")
        changes[key] = float(value)
    for key in _TEXT_CONFIG_KEYS:
        if key not in data:
            continue
        value = data[key]
        if not isinstance(value, str) or not value.strip():
            raise InvalidPayload(f"{key} must be a non-empty string")
        changes[key] = value.strip()
    return changes


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to client
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# PlaybackGateway
# ------------------------------------------------------------------

class PlaybackGateway:
    """One gateway == one player session == one sequencer."""

    def __init__(
        self,
        *,
        config: AppConfig,
        engine_factory: EngineFactory,
    ) -> None:
        self._config = config
        self._engine_factory = engine_factory
        self.session: PlayerSession | None = None
        self._voices: VoiceCatalog | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> GatewayResult:
        """Called when a WebSocket connection is established."""
        session_id = _new_session_id()

        self.session = PlayerSession(session_id=session_id)
        self.session.connection_status = ConnectionStatus.UP

        engine = self._engine_factory()
        self._voices = make_voice_selector(engine)

        # Enumeration blocks until the engine is up; keep it off the loop
        with timed("voice_enumeration", session_id=session_id, phase="connect"):
            await asyncio.to_thread(self._voices.refresh)

        speech_config = SpeechConfig.from_app_config(
            self._config,
            voice_selector=self._voices,
        )
        controller = create_controller(
            engine=engine,
            scheduler=AsyncioScheduler(asyncio.get_running_loop()),
            config=speech_config,
            loop=self._config.playback_loop,
            session_id=session_id,
            on_state=self._publish_state,
        )
        self.session.attach_controller(controller)

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_STARTED",
            **self.session.log_context(),
        })

        init_msg: dict[str, Any] = {
            "type": "SESSION_INIT",
            "session_id": session_id,
            "config": speech_config.to_log_dict(),
        }
        state_msg = self._state_message(controller.snapshot)

        return GatewayResult(
            outbound_json=(init_msg, state_msg) + self._drain_control_out()
        )

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Called when the WebSocket disconnects."""
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return GatewayResult()

        self._end_session()
        self.session.connection_status = ConnectionStatus.DOWN

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "reason": reason,
            **self.session.log_context(),
        })

        # Nothing can be delivered any more
        self._drain_control_out()
        return GatewayResult()

    # ------------------------------------------------------------------
    # Inbound control
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route inbound JSON to controller calls."""
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:PAYLOAD_PREVIEW_CHARS],
            })
            return GatewayResult()

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session.session_id,
                "error": str(e),
                "payload_preview": payload[:PAYLOAD_PREVIEW_CHARS],
            })
            return GatewayResult()

        if not isinstance(data, dict):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVALID_PAYLOAD",
                "session_id": self.session.session_id,
                "error": "message must be a JSON object",
                "payload_preview": payload[:PAYLOAD_PREVIEW_CHARS],
            })
            return GatewayResult()

        msg_type = data.get("type")
        controller = self.session.controller

        if self.session.ended or controller is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_AFTER_SESSION_END",
                "session_id": self.session.session_id,
                "msg_type": msg_type,
            })
            return GatewayResult()

        try:
            if msg_type == "LOAD_ROWS":
                controller.load_rows(_parse_rows(data))
            elif msg_type == "PLAY":
                controller.handle_play()
            elif msg_type == "PAUSE":
                controller.handle_pause()
            elif msg_type == "STOP":
                controller.handle_stop()
            elif msg_type == "SEEK":
                index = data.get("index")
                if isinstance(index, bool) or not isinstance(index, int):
                    raise InvalidPayload("index must be an integer")
                controller.handle_row_click(index)
            elif msg_type == "CONFIGURE":
                controller.configure(**_parse_config_changes(data))
            elif msg_type == "SET_LOOP":
                loop = data.get("loop")
                if not isinstance(loop, bool):
                    raise InvalidPayload("loop must be a boolean")
                controller.set_loop(loop)
            elif msg_type == "LIST_VOICES":
                voices = await self._list_voices()
                self.session.enqueue_control({
                    "type": "VOICES",
                    "ts_ms": _now_ms(),
                    "voices": [v.to_dict() for v in voices],
                })
            elif msg_type == "EXPORT_ROWS":
                self.session.enqueue_control({
                    "type": "ROWS",
                    "ts_ms": _now_ms(),
                    "total": controller.total,
                    "tsv": to_tsv(controller.rows),
                })
            elif msg_type == "SESSION_END":
                self._end_session()
            else:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "UNKNOWN_MESSAGE_TYPE",
                    "msg_type": msg_type,
                    "session_id": self.session.session_id,
                })
                return GatewayResult()
        except InvalidPayload as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVALID_PAYLOAD",
                "session_id": self.session.session_id,
                "msg_type": msg_type,
                "error": str(e),
            })
            return GatewayResult()

        return GatewayResult(outbound_json=self._drain_control_out())

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def wait_outbound(self) -> GatewayResult:
        """
        Wait for messages produced outside of an inbound call (timers,
        engine callbacks) and return them.
        """
        if self.session is None:
            return GatewayResult()
        await self.session.wait_control()
        return GatewayResult(outbound_json=self._drain_control_out())

    async def _list_voices(self) -> list[Voice]:
        """Re-enumerate the engine off the loop; the selector keeps the result."""
        if self._voices is None or self.session is None:
            return []
        with timed(
            "voice_enumeration",
            session_id=self.session.session_id,
            phase="list_voices",
        ):
            return await asyncio.to_thread(self._voices.refresh)

    def _publish_state(self, snapshot: PlaybackSnapshot) -> None:
        if self.session is None:
            return
        self.session.enqueue_control(self._state_message(snapshot))

    @staticmethod
    def _state_message(snapshot: PlaybackSnapshot) -> dict[str, Any]:
        return {
            "type": "PLAYBACK_STATE",
            "ts_ms": _now_ms(),
            **snapshot.to_dict(),
        }

    def _drain_control_out(self) -> tuple[dict[str, Any], ...]:
        if self.session is None:
            return ()
        return self.session.drain_control()

    def _end_session(self) -> None:
        """Dispose the sequencer once; later control messages are dropped."""
        if self.session is None or self.session.ended:
            return
        self.session.ended = True
        if self.session.controller is not None:
            self.session.controller.dispose()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_ENDED",
            **self.session.log_context(),
        })
