"""Keyword extraction and rubric coverage helpers."""

from __future__ import annotations

import re
from typing import Any

from labmarks.grading.policy import MAX_KEYWORDS, MIN_KEYWORD_LENGTH, STOP_WORDS

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9 .,:;_%()\-]")
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def normalize(text: Any) -> str:
    """Lowercase, collapse whitespace and drop characters outside the rubric alphabet."""
    if text is None:
        return ""
    collapsed = _WHITESPACE_RE.sub(" ", str(text).lower())
    return _DISALLOWED_RE.sub("", collapsed).strip()


def tokenize(text: Any) -> list[str]:
    if text is None:
        return []
    return [token for token in _TOKEN_SPLIT_RE.split(str(text).lower()) if token]


def extract_keywords(text: Any) -> list[str]:
    seen: dict[str, None] = {}
    for token in tokenize(text):
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS:
            continue
        seen.setdefault(token, None)
        if len(seen) == MAX_KEYWORDS:
            break
    return list(seen)


def coverage(rubric_text: Any, candidate_text: Any) -> float:
    """Fraction of rubric keywords that occur in the candidate text."""
    keywords = extract_keywords(rubric_text)
    if not keywords:
        return 0.0
    haystack = "" if candidate_text is None else str(candidate_text).lower()
    hits = sum(1 for keyword in keywords if keyword in haystack)
    return hits / len(keywords)
