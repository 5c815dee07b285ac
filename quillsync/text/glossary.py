"""Glossary substitution applied to source text before it is chunked."""

from __future__ import annotations

import re
from typing import Iterable

from ..models.job import GlossaryEntry

# Texts above this size are scanned in windows so a single search never
# covers the whole document.
LARGE_TEXT_CHARS = 100_000
WINDOW_CHARS = 50_000


def _build_pattern(entries: Iterable[GlossaryEntry]) -> tuple[re.Pattern | None, dict[str, str], int]:
    mapping: dict[str, str] = {}
    for entry in entries:
        if entry.term and entry.translation:
            mapping[entry.term] = entry.translation
    if not mapping:
        return None, mapping, 0

    # Longest first so "北京大学" wins over "北京" at the same position
    terms = sorted(mapping, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(t) for t in terms))
    return pattern, mapping, len(terms[0])


def apply_glossary(text: str, entries: Iterable[GlossaryEntry]) -> str:
    """Replace every glossary term in ``text`` with its translation.

    Matching is single-pass and longest-term-first, so a translation is never
    re-substituted by a shorter term.
    """
    if not text:
        return text
    pattern, mapping, longest = _build_pattern(entries)
    if pattern is None:
        return text

    def replace(match: re.Match) -> str:
        return mapping[match.group(0)]

    if len(text) <= LARGE_TEXT_CHARS:
        return pattern.sub(replace, text)

    parts = []
    pos = 0
    for window_start in range(0, len(text), WINDOW_CHARS):
        window_end = min(window_start + WINDOW_CHARS, len(text))
        # Extend the search so a term starting inside the window can finish
        search_end = min(window_end + longest - 1, len(text))
        for match in pattern.finditer(text, max(pos, window_start), search_end):
            if match.start() >= window_end:
                break
            parts.append(text[pos:match.start()])
            parts.append(mapping[match.group(0)])
            pos = match.end()
    parts.append(text[pos:])
    return "".join(parts)
