"""
Per-sequencer speech configuration.

Rules:
- Immutable. configure() replaces the whole object.
- The reducer reads it when an utterance is built, never earlier.
- Out-of-range values are clamped, not rejected.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Optional

from constants import (
    DEFAULT_GAP_S,
    DEFAULT_MEANING_LANGUAGE,
    DEFAULT_PITCH,
    DEFAULT_RATE,
    DEFAULT_WORD_LANGUAGE,
    GAP_MIN_S,
    RATE_MAX,
    RATE_MIN,
)
from playback.models import Voice

if TYPE_CHECKING:
    from config import AppConfig


VoiceSelector = Callable[[str], Optional[Voice]]

_UNSET: Any = object()


def _finite_or(value: float, default: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else default


def clamp_rate(rate: float) -> float:
    return min(RATE_MAX, max(RATE_MIN, _finite_or(rate, DEFAULT_RATE)))


def clamp_gap(gap_seconds: float) -> float:
    """Non-finite gaps (inf, nan) fall back to the default gap."""
    return max(GAP_MIN_S, _finite_or(gap_seconds, DEFAULT_GAP_S))


@dataclass(frozen=True)
class SpeechConfig:
    """
    Speech parameters applied to every utterance the sequencer builds.

    voice_selector:
        Optional language tag -> voice lookup. None (or a selector returning
        None) leaves the choice to the engine's default voice for the tag.
    """

    rate: float = DEFAULT_RATE
    pitch: float = DEFAULT_PITCH
    gap_seconds: float = DEFAULT_GAP_S
    word_language: str = DEFAULT_WORD_LANGUAGE
    meaning_language: str = DEFAULT_MEANING_LANGUAGE
    voice_selector: VoiceSelector | None = None

    def __post_init__(self) -> None:
        # Frozen: normalize through object.__setattr__
        object.__setattr__(self, "rate", clamp_rate(self.rate))
        object.__setattr__(self, "pitch", _finite_or(self.pitch, DEFAULT_PITCH))
        object.__setattr__(self, "gap_seconds", clamp_gap(self.gap_seconds))

    @property
    def gap_ms(self) -> int:
        return int(round(self.gap_seconds * 1000))

    def with_changes(
        self,
        *,
        rate: float = _UNSET,
        pitch: float = _UNSET,
        gap_seconds: float = _UNSET,
        word_language: str = _UNSET,
        meaning_language: str = _UNSET,
        voice_selector: VoiceSelector | None = _UNSET,
    ) -> SpeechConfig:
        """
        Return a copy with the given fields replaced.

        Omitted fields keep their current value; voice_selector=None clears
        the selector.
        """
        changes: dict[str, Any] = {}
        if rate is not _UNSET:
            changes["rate"] = rate
        if pitch is not _UNSET:
            changes["pitch"] = float(pitch)
        if gap_seconds is not _UNSET:
            changes["gap_seconds"] = gap_seconds
        if word_language is not _UNSET:
            changes["word_language"] = word_language
        if meaning_language is not _UNSET:
            changes["meaning_language"] = meaning_language
        if voice_selector is not _UNSET:
            changes["voice_selector"] = voice_selector
        return replace(self, **changes)

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "rate": self.rate,
            "pitch": self.pitch,
            "gap_seconds": self.gap_seconds,
            "word_language": self.word_language,
            "meaning_language": self.meaning_language,
            "has_voice_selector": self.voice_selector is not None,
        }

    @staticmethod
    def from_app_config(
        config: AppConfig,
        *,
        voice_selector: VoiceSelector | None = None,
    ) -> SpeechConfig:
        return SpeechConfig(
            rate=config.speech_rate,
            pitch=config.speech_pitch,
            gap_seconds=config.gap_seconds,
            word_language=config.word_language,
            meaning_language=config.meaning_language,
            voice_selector=voice_selector,
        )
