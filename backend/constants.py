"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for all behavioral constants of the playback service.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Sequencer timing
# =============================================================================

# Delay between a play()/seek() and the first word utterance. Lets the engine
# settle the cancel issued by the same call before a new submission arrives.
PLAY_DEBOUNCE_MS: Final[int] = 10

# The sequencer owns exactly one timer slot; every schedule replaces it.
TIMER_PLAYBACK: Final[str] = "playback"

# =============================================================================
# Speech configuration bounds and defaults
# =============================================================================

RATE_MIN: Final[float] = 0.5
RATE_MAX: Final[float] = 2.0
GAP_MIN_S: Final[float] = 0.0

DEFAULT_RATE: Final[float] = 1.0
DEFAULT_PITCH: Final[float] = 1.0
DEFAULT_GAP_S: Final[float] = 0.25

DEFAULT_WORD_LANGUAGE: Final[str] = "en-US"
DEFAULT_MEANING_LANGUAGE: Final[str] = "ja-JP"

DEFAULT_LOOP: Final[bool] = True

# =============================================================================
# Host engine (pyttsx3)
# =============================================================================

# pyttsx3 expresses rate in words per minute; rate 1.0 maps to this value.
PYTTSX3_BASE_WPM: Final[int] = 200

# How long the worker thread blocks on its job queue before re-checking
# its shutdown flag.
PYTTSX3_QUEUE_POLL_S: Final[float] = 0.1

# Upper bound on waiting for the worker to enumerate voices.
PYTTSX3_VOICES_TIMEOUT_S: Final[float] = 5.0

# =============================================================================
# Gateway
# =============================================================================

PAYLOAD_PREVIEW_CHARS: Final[int] = 100
