"""Split source documents into prompt-sized chunks.

Strategies:
1. ``chapter``: split on chapter headings such as ``第12章 标题``
2. ``word-count``: pack paragraphs up to a word budget, splitting overlong
   paragraphs on sentence boundaries
3. ``auto``: chapters when headings exist, word-count for long texts,
   otherwise the whole text as one chunk
"""

from __future__ import annotations

import re

from ..config import AUTO_CHUNK_THRESHOLD, DEFAULT_CHUNK_SIZE
from ..constants import CHAPTER_HEADING_PATTERN

_CHAPTER_RE = re.compile(CHAPTER_HEADING_PATTERN)
_CJK_RE = re.compile(r"[一-龥]")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?。？！])\s+")

STRATEGIES = ("auto", "chapter", "word-count")


def count_words(text: str) -> int:
    """Count words, treating every CJK character as one word."""
    if not text:
        return 0
    cjk = len(_CJK_RE.findall(text))
    latin = len(_CJK_RE.sub("", text).split())
    return cjk + latin


def chunk_by_chapters(text: str) -> list[str]:
    matches = list(_CHAPTER_RE.finditer(text))
    if not matches:
        return [text.strip()]

    chunks = []
    preamble = text[: matches[0].start()].strip()
    if preamble:
        chunks.append(preamble)

    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        chunk = text[match.start():end].strip()
        if chunk:
            chunks.append(chunk)
    return chunks


def _split_long_paragraph(paragraph: str, target: int) -> list[str]:
    chunks = []
    current: list[str] = []
    current_words = 0

    for sentence in _SENTENCE_RE.split(paragraph):
        words = count_words(sentence)
        if current_words + words <= target:
            current.append(sentence)
            current_words += words
        elif current:
            chunks.append(" ".join(current))
            current = [sentence]
            current_words = words
        else:
            # A single sentence over budget goes through as-is
            chunks.append(sentence)

    if current:
        chunks.append(" ".join(current))
    return chunks


def chunk_by_word_count(text: str, target: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    chunks = []
    current: list[str] = []
    current_words = 0

    for paragraph in _PARAGRAPH_RE.split(text):
        words = count_words(paragraph)

        if words > target:
            if current:
                chunks.append("\n\n".join(current))
                current, current_words = [], 0
            chunks.extend(_split_long_paragraph(paragraph, target))
        elif current_words + words <= target:
            current.append(paragraph)
            current_words += words
        else:
            if current:
                chunks.append("\n\n".join(current))
            current = [paragraph]
            current_words = words

    if current:
        chunks.append("\n\n".join(current))
    return chunks


def chunk_text(
    text: str, strategy: str = "auto", chunk_size: int = DEFAULT_CHUNK_SIZE
) -> list[str]:
    """Split ``text`` into an ordered list of non-empty chunks."""
    if not text or not text.strip():
        return []
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown chunking strategy: {strategy!r}")

    if strategy == "chapter":
        chunks = chunk_by_chapters(text)
    elif strategy == "word-count":
        chunks = chunk_by_word_count(text, chunk_size)
    elif _CHAPTER_RE.search(text):
        chunks = chunk_by_chapters(text)
    elif count_words(text) > AUTO_CHUNK_THRESHOLD:
        chunks = chunk_by_word_count(text, chunk_size)
    else:
        chunks = [text]

    return [c for c in chunks if c.strip()]
