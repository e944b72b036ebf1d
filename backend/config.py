"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No playback logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    DEFAULT_GAP_S,
    DEFAULT_LOOP,
    DEFAULT_MEANING_LANGUAGE,
    DEFAULT_PITCH,
    DEFAULT_RATE,
    DEFAULT_WORD_LANGUAGE,
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the gateway, which builds per-session speech config.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    host: str
    port: int

    # ------------------------------------------------------------------
    # Speech engine
    # ------------------------------------------------------------------

    speech_engine: str
    pyttsx3_driver: str | None

    # ------------------------------------------------------------------
    # Playback defaults
    # ------------------------------------------------------------------

    speech_rate: float
    speech_pitch: float
    gap_seconds: float
    word_language: str
    meaning_language: str
    playback_loop: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "127.0.0.1"),
            port=int(os.environ.get("PORT", "8000")),

            speech_engine=os.environ.get("SPEECH_ENGINE", "pyttsx3"),
            pyttsx3_driver=os.environ.get("PYTTSX3_DRIVER"),

            speech_rate=float(os.environ.get("SPEECH_RATE", DEFAULT_RATE)),
            speech_pitch=float(os.environ.get("SPEECH_PITCH", DEFAULT_PITCH)),
            gap_seconds=float(os.environ.get("SPEECH_GAP_S", DEFAULT_GAP_S)),
            word_language=os.environ.get("WORD_LANGUAGE", DEFAULT_WORD_LANGUAGE),
            meaning_language=os.environ.get(
                "MEANING_LANGUAGE", DEFAULT_MEANING_LANGUAGE
            ),
            playback_loop=_env_bool("PLAYBACK_LOOP", DEFAULT_LOOP),
        )
