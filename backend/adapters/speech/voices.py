"""
Voice lookup by language tag.

Matching order:
1. first voice whose language tag equals the requested tag (case-insensitive,
   '_' and '-' treated alike)
2. first voice whose primary subtag matches ("en" for "en-US")
3. none: the engine picks its default voice
"""

from __future__ import annotations

from typing import Iterable

from adapters.speech.base import SpeechEngine
from playback.models import Voice


def normalize_language_tag(tag: str | bytes | None) -> str | None:
    """
    Canonical lowercase BCP-47-ish form.

    Some pyttsx3 drivers report languages as bytes with a leading priority
    byte (espeak: b"\\x05en-us"); those are decoded and stripped.
    """
    if tag is None:
        return None
    if isinstance(tag, bytes):
        tag = tag.decode("utf-8", errors="ignore")
    tag = "".join(ch for ch in tag if ch.isprintable()).strip()
    if not tag:
        return None
    return tag.replace("_", "-").lower()


def _primary(tag: str) -> str:
    return tag.split("-", 1)[0]


def match_voice(voices: Iterable[Voice], language_tag: str) -> Voice | None:
    wanted = normalize_language_tag(language_tag)
    if wanted is None:
        return None

    candidates = [v for v in voices if normalize_language_tag(v.language_tag)]

    for voice in candidates:
        if normalize_language_tag(voice.language_tag) == wanted:
            return voice

    primary = _primary(wanted)
    for voice in candidates:
        tag = normalize_language_tag(voice.language_tag)
        if tag is not None and _primary(tag) == primary:
            return voice

    return None


class VoiceCatalog:
    """
    Language tag -> voice selector over one engine's voices.

    refresh() enumerates the engine and may block (pyttsx3 waits for its
    worker to start the driver), so callers on the event loop run it in a
    thread before playback starts. An empty enumeration (driver still
    starting, timed out) never replaces a known list.

    Calling the catalog enumerates lazily only if refresh() was never run.
    """

    def __init__(self, engine: SpeechEngine) -> None:
        self._engine = engine
        self._voices: list[Voice] = []
        self._loaded = False

    @property
    def voices(self) -> list[Voice]:
        return list(self._voices)

    def refresh(self) -> list[Voice]:
        voices = list(self._engine.list_voices())
        self._loaded = True
        if voices:
            self._voices = voices
        return self.voices

    def __call__(self, language_tag: str) -> Voice | None:
        if not self._loaded:
            self.refresh()
        return match_voice(self._voices, language_tag)


def make_voice_selector(engine: SpeechEngine) -> VoiceCatalog:
    """Build a selector over the engine's voices; see VoiceCatalog."""
    return VoiceCatalog(engine)
