"""
Relevance Scoring

Deterministic text relevance between query terms and a document's title
and body. Used by the fallback path when LLM selection is unavailable.

Per term:
- whole-word hits in the title weigh TITLE_WORD_WEIGHT each
- whole-word hits in the body weigh BODY_WORD_WEIGHT each
- a substring hit anywhere in the title / body adds a fixed bonus

Across terms, MULTI_TERM_BONUS is added per distinct matching term once two
or more distinct terms match. The total is averaged over the term count and
divided by SCALE, then capped at 1.
"""

import re
from typing import Dict, List, Pattern, Sequence

from ..common.schemas.search import Document
from .text import alphabetic_terms


class RelevanceScorer:
    """Keyword relevance in [0, 1]; pure function of text and terms."""

    TITLE_WORD_WEIGHT = 5.0
    BODY_WORD_WEIGHT = 1.0
    TITLE_SUBSTRING_BONUS = 3.0
    BODY_SUBSTRING_BONUS = 0.5
    MULTI_TERM_BONUS = 1.5
    SCALE = 12.0

    def __init__(self) -> None:
        self._patterns: Dict[str, Pattern[str]] = {}

    @staticmethod
    def extract_terms(text: str) -> List[str]:
        """Query terms: lowercase alphabetic tokens, stop words removed"""
        return alphabetic_terms(text)

    def score(self, document: Document, query_terms: Sequence[str]) -> float:
        terms = [t.lower() for t in query_terms if t and t.strip()]
        if not terms:
            return 0.0

        title = (document.title or "").lower()
        body = (document.body_text or "").lower()

        total = 0.0
        matched = set()
        for term in terms:
            pattern = self._word_pattern(term)
            title_hits = len(pattern.findall(title))
            body_hits = len(pattern.findall(body))
            total += title_hits * self.TITLE_WORD_WEIGHT
            total += body_hits * self.BODY_WORD_WEIGHT

            in_title = term in title
            in_body = term in body
            if in_title:
                total += self.TITLE_SUBSTRING_BONUS
            if in_body:
                total += self.BODY_SUBSTRING_BONUS
            if in_title or in_body:
                matched.add(term)

        if len(matched) > 1:
            total += self.MULTI_TERM_BONUS * len(matched)

        normalized = total / len(terms)
        return min(1.0, normalized / self.SCALE)

    def _word_pattern(self, term: str) -> Pattern[str]:
        pattern = self._patterns.get(term)
        if pattern is None:
            pattern = re.compile(r"\b" + re.escape(term) + r"\b")
            self._patterns[term] = pattern
        return pattern
