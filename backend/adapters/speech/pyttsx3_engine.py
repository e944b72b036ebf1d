"""
pyttsx3-backed host speech engine.

pyttsx3 is blocking (runAndWait) and thread-affine, so the driver lives on
one worker thread that owns it end to end. The event loop thread only
enqueues jobs and receives completions.

Cancellation:
- cancel_all() bumps a generation counter, drains queued jobs and asks the
  driver to stop the current utterance.
- The worker also stops the driver from its own "started-word" callback
  once it sees the generation moved on.
- Completions are posted with loop.call_soon_threadsafe and re-check the
  generation on the loop thread, so a canceled utterance never calls back.

Pitch is not exposed by pyttsx3 drivers and is ignored.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Any, Callable

import pyttsx3

from adapters.speech.base import OnEnd, OnError, SpeechEngine
from adapters.speech.voices import match_voice, normalize_language_tag
from constants import (
    PYTTSX3_BASE_WPM,
    PYTTSX3_QUEUE_POLL_S,
    PYTTSX3_VOICES_TIMEOUT_S,
)
from observability.logger import log_event
from playback.models import Utterance, Voice


@dataclass(frozen=True)
class _Job:
    generation: int
    utterance: Utterance
    on_end: OnEnd
    on_error: OnError
    loop: asyncio.AbstractEventLoop


def voice_from_driver(raw: Any) -> Voice:
    """Convert a pyttsx3 voice object into a Voice."""
    languages = getattr(raw, "languages", None) or []
    language_tag = None
    for lang in languages:
        language_tag = normalize_language_tag(lang)
        if language_tag:
            break
    return Voice(
        voice_id=str(raw.id),
        name=str(getattr(raw, "name", None) or raw.id),
        language_tag=language_tag,
    )


class Pyttsx3Engine(SpeechEngine):
    """
    SpeechEngine over a pyttsx3 driver.

    Must be used from a single asyncio event loop; callbacks are delivered
    on that loop.
    """

    def __init__(
        self,
        *,
        driver_name: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        init: Callable[..., Any] | None = None,
    ) -> None:
        self._driver_name = driver_name
        self._loop = loop
        self._init = init if init is not None else pyttsx3.init

        self._queue: Queue[_Job | None] = Queue()
        self._lock = threading.Lock()
        self._generation = 0
        self._speaking_generation: int | None = None
        self._driver: Any = None

        self._voices: list[Voice] = []
        self._voices_ready = threading.Event()
        self._init_error: str | None = None

        self._thread: threading.Thread | None = None
        self._closed = threading.Event()

    # ------------------------------------------------------------------
    # SpeechEngine API (loop thread)
    # ------------------------------------------------------------------

    def speak(
        self,
        utterance: Utterance,
        *,
        on_end: OnEnd,
        on_error: OnError,
    ) -> None:
        if self._closed.is_set():
            raise RuntimeError("pyttsx3 engine is closed")
        if self._init_error is not None:
            raise RuntimeError(f"pyttsx3 init failed: {self._init_error}")

        loop = self._resolve_loop()
        self._ensure_worker()
        with self._lock:
            generation = self._generation
        self._queue.put(
            _Job(
                generation=generation,
                utterance=utterance,
                on_end=on_end,
                on_error=on_error,
                loop=loop,
            )
        )
        if self._init_error is not None:
            # Worker died between the check above and the put
            self._fail_pending(self._init_error)

    def cancel_all(self) -> None:
        with self._lock:
            self._generation += 1
            driver = self._driver if self._speaking_generation is not None else None

        self._drain_queue()

        if driver is not None:
            try:
                driver.stop()
            except RuntimeError as exc:
                # The started-word hook stops it on the worker instead
                log_event({
                    "event_type": "pyttsx3_stop_failed",
                    "error": str(exc),
                })

    def list_voices(self) -> list[Voice]:
        self._ensure_worker()
        if not self._voices_ready.wait(timeout=PYTTSX3_VOICES_TIMEOUT_S):
            log_event({
                "event_type": "pyttsx3_voices_timeout",
                "timeout_s": PYTTSX3_VOICES_TIMEOUT_S,
            })
            return []
        return list(self._voices)

    def close(self) -> None:
        """
        Cancel everything and tell the worker to exit.

        Does not wait for the thread: close() runs on the event loop, and the
        worker may still be inside driver init or runAndWait.
        """
        if self._closed.is_set():
            return
        self._closed.set()
        self.cancel_all()
        self._queue.put(None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _ensure_worker(self) -> None:
        # speak() runs on the loop, list_voices() usually in a to_thread worker
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run,
                name="pyttsx3-worker",
                daemon=True,
            )
            self._thread.start()

    def _drain_queue(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                break

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        try:
            driver = self._init(self._driver_name)
            self._voices = [voice_from_driver(v) for v in driver.getProperty("voices") or []]
            default_voice_id = driver.getProperty("voice")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._init_error = f"{type(exc).__name__}: {exc}"
            log_event({
                "event_type": "pyttsx3_init_failed",
                "driver": self._driver_name,
                "error": self._init_error,
            })
            self._fail_pending(self._init_error)
            return
        finally:
            self._voices_ready.set()

        def _on_started_word(name: Any, location: int, length: int) -> None:  # pylint: disable=unused-argument
            with self._lock:
                stale = self._speaking_generation != self._generation
            if stale:
                driver.stop()

        driver.connect("started-word", _on_started_word)
        with self._lock:
            self._driver = driver

        while not self._closed.is_set():
            try:
                job = self._queue.get(timeout=PYTTSX3_QUEUE_POLL_S)
            except Empty:
                continue
            if job is None:
                break

            with self._lock:
                if job.generation != self._generation:
                    continue
                self._speaking_generation = job.generation

            try:
                self._apply_properties(driver, job.utterance, default_voice_id)
                driver.say(job.utterance.text)
                driver.runAndWait()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._post(job, error=f"{type(exc).__name__}: {exc}")
            else:
                self._post(job)
            finally:
                with self._lock:
                    self._speaking_generation = None

        with self._lock:
            self._driver = None

    def _apply_properties(
        self,
        driver: Any,
        utterance: Utterance,
        default_voice_id: Any,
    ) -> None:
        driver.setProperty("rate", int(round(PYTTSX3_BASE_WPM * utterance.rate)))

        voice = utterance.voice or match_voice(self._voices, utterance.language_tag)
        driver.setProperty("voice", voice.voice_id if voice is not None else default_voice_id)

    def _post(self, job: _Job, *, error: str | None = None) -> None:
        """Hand a completion to the loop thread; dropped there if canceled."""

        def _settle() -> None:
            if job.generation != self._generation:
                return
            if error is None:
                job.on_end()
            else:
                job.on_error(error)

        try:
            job.loop.call_soon_threadsafe(_settle)
        except RuntimeError:
            # Loop already closed: nobody is left to notify
            log_event({
                "event_type": "pyttsx3_completion_dropped",
                "reason": "loop_closed",
            })

    def _fail_pending(self, reason: str) -> None:
        while True:
            try:
                job = self._queue.get_nowait()
            except Empty:
                break
            if job is not None:
                self._post(job, error=reason)
