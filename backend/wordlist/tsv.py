"""
Tab-separated word list codec.

Format: one pair per line, word<TAB>meaning[<TAB>extra...]

Parsing rules:
- blank / whitespace-only lines are skipped
- cells are trimmed, and one pair of surrounding quotes (" or ') is removed
- runs of tabs count as a single separator
- rows missing the word or the meaning are dropped
- columns after the second are ignored
"""

from __future__ import annotations

import re
from typing import Iterable

from playback.models import Pair


_LINE_SPLIT = re.compile(r"\r?\n")
_CELL_SPLIT = re.compile(r"\t+")


def _clean(cell: str) -> str:
    s = cell.strip()
    if (s.startswith('"') and s.endswith('"')) or (
        s.startswith("'") and s.endswith("'")
    ):
        return s[1:-1].strip()
    return s


def parse_tsv(text: str | None) -> list[Pair]:
    if not text:
        return []

    pairs: list[Pair] = []
    for line in _LINE_SPLIT.split(text):
        raw = line.strip()
        if not raw:
            continue

        cells = [_clean(c) for c in _CELL_SPLIT.split(raw)]
        word = cells[0] if len(cells) > 0 else ""
        meaning = cells[1] if len(cells) > 1 else ""
        if not word or not meaning:
            continue

        pairs.append(Pair(word=word, meaning=meaning))
    return pairs


def to_tsv(pairs: Iterable[Pair]) -> str:
    return "\n".join(f"{p.word.strip()}\t{p.meaning.strip()}" for p in pairs)
