"""Tokenization helpers shared by keyword extraction and relevance scoring."""

import re
from typing import Iterable, List

# Fixed English stop-word set
STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "this", "that", "these", "those", "i", "you", "he", "she", "it", "we",
    "they",
})

MIN_TOKEN_LENGTH = 3

_NON_WORD_RE = re.compile(r"[^\w\s]")
_ALPHA_RE = re.compile(r"^[a-zA-Z]+$")


def is_stop_word(word: str) -> bool:
    return word.lower() in STOP_WORDS


def tokenize(text: str) -> List[str]:
    """
    Lowercase, split on non-word characters, drop short tokens and stop words.

    Input order is preserved; duplicates are dropped after first occurrence.
    """
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    return dedupe(w for w in words if len(w) >= MIN_TOKEN_LENGTH and w not in STOP_WORDS)


def alphabetic_terms(text: str) -> List[str]:
    """``tokenize`` restricted to purely alphabetic terms"""
    return [t for t in tokenize(text) if _ALPHA_RE.match(t)]


def dedupe(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))
