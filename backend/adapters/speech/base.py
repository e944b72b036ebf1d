"""
Host speech engine contract.

This module defines the *interface only*: no sequencing, no gaps, no
retries, timers, or playback decisions live here.

Key invariants:
- speak() is fire-and-forget. The engine reports the outcome of each
  accepted utterance through exactly one of on_end() / on_error(info).
- After cancel_all(), callbacks of canceled utterances SHOULD NOT fire.
  Engines that cannot guarantee this are still usable: the sequencer drops
  late callbacks structurally.
- Callbacks MUST be delivered on the caller's execution context (the event
  loop thread), never on an engine worker thread.
- The engine never calls the sequencer directly; the adapter wraps the
  callbacks into events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from playback.models import Utterance, Voice


OnEnd = Callable[[], None]
OnError = Callable[[str], None]


class SpeechEngine(ABC):
    """
    Abstract interface for a host text-to-speech capability.

    Implementations are responsible for:
    - Speaking one utterance at a time, in submission order
    - Honoring the utterance's language tag, rate, pitch and voice where the
      platform supports them
    - Supporting best-effort cancellation via cancel_all()

    Non-responsibilities:
    - No word/meaning pairing (the sequencer builds utterances)
    - No gap timing between utterances
    - No knowledge of run ids or playback phases
    """

    @abstractmethod
    def speak(
        self,
        utterance: Utterance,
        *,
        on_end: OnEnd,
        on_error: OnError,
    ) -> None:
        """
        Queue an utterance for speaking and return immediately.

        Contract:
        - Must invoke exactly ONE of on_end() / on_error(info) later, unless
          canceled first.
        - MAY raise synchronously if the request is rejected outright; in
          that case neither callback fires.
        - MUST NOT block the event loop.
        """
        raise NotImplementedError

    @abstractmethod
    def cancel_all(self) -> None:
        """
        Discard every active or queued utterance.

        Contract:
        - Synchronous from the caller's point of view.
        - Idempotent: repeated calls are safe.
        """
        raise NotImplementedError

    @abstractmethod
    def list_voices(self) -> list[Voice]:
        """Enumerate the voices the host offers."""
        raise NotImplementedError

    def close(self) -> None:
        """
        Release engine resources.

        Default is cancel_all(); engines owning threads or handles override.
        """
        self.cancel_all()
