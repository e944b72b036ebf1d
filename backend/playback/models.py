"""
Value objects shared by the sequencer, the engine adapter and the gateway.

Rules:
- Pure data, frozen.
- No behavior beyond trivial serialization helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Pair:
    """
    One word/meaning drill item.

    Position in the containing sequence is the playback order; two pairs with
    equal text at different positions are still distinct rows.
    """
    word: str
    meaning: str

    def to_dict(self) -> dict[str, str]:
        return {"word": self.word, "meaning": self.meaning}


@dataclass(frozen=True)
class Voice:
    """A voice offered by the host engine."""
    voice_id: str
    name: str
    language_tag: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "voice_id": self.voice_id,
            "name": self.name,
            "language_tag": self.language_tag,
        }


@dataclass(frozen=True)
class Utterance:
    """
    One synthesize-and-speak request for a single text + language.

    Built from the speech config at construction time and never mutated, so
    later configuration changes cannot reach an utterance already built.
    """
    text: str
    language_tag: str
    rate: float
    pitch: float
    voice: Voice | None = None
