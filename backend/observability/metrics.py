"""
Duration metrics for playback.

Each measured span becomes exactly one METRIC_TIMER line in the JSONL log.
Nothing is aggregated in process.

Two ways to measure:
- timed(): for a span that is a block of code (voice enumeration).
- start_timer() / stop_timer(): for a span that ends in a later callback
  (utterance submitted -> engine reports its end). A span that ends any
  other way (canceled, engine error) must be dropped with discard_timer(),
  or it stays in the registry forever.

value_ms is measured on the monotonic clock; ts_ms is wall-clock so the
line sorts with the rest of the log.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from observability.logger import log_event


@dataclass(frozen=True)
class _Span:
    metric: str
    started_ns: int


# timer_id -> open span
_open_spans: dict[str, _Span] = {}


def start_timer(name: str) -> str:
    """Open a span for metric `name` and return its opaque id."""
    timer_id = f"span_{uuid.uuid4().hex[:12]}"
    _open_spans[timer_id] = _Span(metric=name, started_ns=time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    session_id: str | None = None,
    phase: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Close a span and log it.

    Returns the duration in ms, or None when the id is unknown (already
    stopped or discarded); nothing is logged in that case.
    """
    span = _open_spans.pop(timer_id, None)
    if span is None:
        return None

    elapsed_ms = (time.monotonic_ns() - span.started_ns) // 1_000_000
    log_event({
        "ts_ms": int(time.time() * 1000),
        "event_type": "METRIC_TIMER",
        "metric": span.metric,
        "value_ms": elapsed_ms,
        "session_id": session_id,
        "phase": phase,
        "details": details or {},
    })
    return elapsed_ms


def discard_timer(timer_id: str) -> bool:
    """Drop a span without logging it. True if it was open."""
    return _open_spans.pop(timer_id, None) is not None


def active_timer_count() -> int:
    return len(_open_spans)


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    phase: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Measure the enclosed block.

    The span is logged even if the block raises; the exception propagates.

        with timed("voice_enumeration", session_id=session.session_id):
            voices = controller.list_voices()
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, session_id=session_id, phase=phase, details=details)
