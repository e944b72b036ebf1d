"""
Player session container.

- Owns the connection status (mutable, gateway-controlled)
- Holds the session's speech controller
- Buffers outbound control messages for the transport
- Owned and mutated by PlaybackGateway
- NOT a state machine; contains no playback logic
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from playback.controller import SpeechController
from session.connection_status import ConnectionStatus


@dataclass
class PlayerSession:
    """Mutable runtime container for a single player connection."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Connection / gateway-controlled state
    # ------------------------------------------------------------------

    connection_status: ConnectionStatus = ConnectionStatus.DOWN
    ended: bool = False

    # ------------------------------------------------------------------
    # Playback (owns the sequencer and, through it, the engine)
    # ------------------------------------------------------------------

    controller: SpeechController | None = None

    def __post_init__(self) -> None:
        self._control_out: deque[dict[str, Any]] = deque()
        self._control_ready = asyncio.Event()

    # ------------------------------------------------------------------
    # Wiring helpers (called by PlaybackGateway)
    # ------------------------------------------------------------------

    def attach_controller(self, controller: SpeechController) -> None:
        self.controller = controller

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "connection_status": self.connection_status.value,
        }

    # ------------------------------------------------------------------
    # Outbound control queue
    # ------------------------------------------------------------------

    def enqueue_control(self, msg: dict[str, Any]) -> None:
        """
        Enqueue a control message for delivery to the client.

        Messages are buffered in FIFO order and later retrieved via
        drain_control(). Wakes any wait_control() caller.
        """
        self._control_out.append(msg)
        self._control_ready.set()

    def drain_control(self) -> tuple[dict[str, Any], ...]:
        """
        Drain all pending control messages.

        Returns a FIFO-ordered tuple; empty if nothing is pending.
        After this call, the control queue is empty.
        """
        self._control_ready.clear()
        if not self._control_out:
            return ()
        out = tuple(self._control_out)
        self._control_out.clear()
        return out

    async def wait_control(self) -> None:
        """Block until at least one control message has been enqueued."""
        await self._control_ready.wait()
