"""Keyword/entity extraction and the hash-bucket pseudo-embedding.

Everything here is local and deterministic: no model calls, no network.
`HashEmbedder` stands in for a real embedding model. Anything that maps text
to a fixed-length list of floats can replace it in `SemanticIndex`.
"""

from __future__ import annotations

import math
import re
from typing import Callable

DEFAULT_DIMENSIONS = 384

STOP_WORDS = frozenset({
    "the", "and", "but", "for", "are", "with", "his", "they", "this", "have",
    "from", "not", "been", "that", "will", "what", "can", "all",
})

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SENTENCE_RE = re.compile(r"[.!?]+")

_ENTITY_PATTERNS = [
    re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b"),  # "John Smith"
    re.compile(r"\b[A-Z]{2,}\b"),  # "API", "URL"
    re.compile(r"\b[\w-]+\.(?:com|org|net|io|dev)\b"),  # domains
    re.compile(r"\b[\w.+-]+@[\w-]+\.\w+\b"),  # emails
]

# Longest first; a stem must keep at least 3 characters.
_SUFFIXES = ("ments", "ment", "ing", "ed", "s")

Embedder = Callable[[str], list[float]]


def stem(word: str) -> str:
    """Strip one common English suffix so inflected forms share a posting."""
    if word.endswith(("ss", "us")):
        return word
    for suffix in _SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            return word[: -len(suffix)]
    return word


def extract_keywords(text: str, stem_words: bool = True) -> list[str]:
    """Lowercased content words in order of appearance, duplicates kept."""
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    keywords = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    if stem_words:
        keywords = [stem(w) for w in keywords]
    return keywords


def extract_entities(text: str) -> list[str]:
    """Capitalized words, name-like bigrams, acronyms, domains and emails."""
    entities: list[str] = []
    for raw in text.split():
        word = re.sub(r"\W", "", raw)
        if len(word) > 2 and word[0].isupper():
            entities.append(word)
    for pattern in _ENTITY_PATTERNS:
        entities.extend(pattern.findall(text))
    return list(dict.fromkeys(entities))


def split_sentences(text: str) -> list[str]:
    return _SENTENCE_RE.split(text)


def string_hash(value: str) -> int:
    """Java-style 31-multiplier string hash, as a signed 32-bit integer."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def normalize(vector: list[float]) -> list[float]:
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        return 0.0
    dot = norm_a = norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


class HashEmbedder:
    """Hash-bucket, reciprocal-position-weighted, L2-normalized vectors."""

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS, stem_words: bool = True) -> None:
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self.dimensions = dimensions
        self.stem_words = stem_words

    def __call__(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for i, word in enumerate(extract_keywords(text, self.stem_words)):
            vector[abs(string_hash(word)) % self.dimensions] += 1 / (i + 1)
        return normalize(vector)
