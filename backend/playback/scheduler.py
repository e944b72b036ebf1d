"""
asyncio-backed scheduler.

Timers are plain loop callbacks: they run on the loop thread, between other
callbacks, so they never interleave with a control call or an engine event.
"""

from __future__ import annotations

import asyncio
from typing import Callable


class AsyncioScheduler:
    """
    SchedulerProtocol implementation over an asyncio event loop.

    If no loop is given, the running loop is looked up on each call, so the
    scheduler may be constructed outside of a coroutine.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(
        self,
        delay_s: float,
        callback: Callable[[], None],
    ) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_s), callback)
