"""
Route registration for the playback API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import GatewayResult, PlaybackGateway


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        """
        One connection = one session = one gateway.

        Inbound messages are handled on this task; state published by
        timers and engine callbacks is pushed by a companion task.
        """
        await ws.accept()

        gateway = PlaybackGateway(
            config=app.state.config,
            engine_factory=app.state.engine_factory,
        )
        send_lock = asyncio.Lock()
        pusher: asyncio.Task[None] | None = None

        try:
            result = await gateway.on_ws_connect()
            await _flush_gateway_result(ws, result, send_lock)

            pusher = asyncio.create_task(_push_outbound(ws, gateway, send_lock))

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    result = await gateway.on_json_message(msg["text"])
                    await _flush_gateway_result(ws, result, send_lock)

                elif msg.get("bytes") is not None:
                    log_event({
                        "event_type": "BINARY_NOT_SUPPORTED",
                        "session_id": gateway.session.session_id if gateway.session else None,
                        "payload_len": len(msg["bytes"]),
                    })

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            if pusher is not None:
                pusher.cancel()
                await asyncio.gather(pusher, return_exceptions=True)


async def _push_outbound(
    ws: WebSocket,
    gateway: PlaybackGateway,
    send_lock: asyncio.Lock,
) -> None:
    while True:
        result = await gateway.wait_outbound()
        await _flush_gateway_result(ws, result, send_lock)


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
    send_lock: asyncio.Lock,
) -> None:
    async with send_lock:
        for msg in result.outbound_json:
            await ws.send_text(json.dumps(msg))
