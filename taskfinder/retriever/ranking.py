"""
Ranking

Combines relevance and date-proximity scores with configurable weights
and orders the results.
"""

from dataclasses import replace
from typing import List, Sequence

from ..common.schemas.search import DEFAULT_MAX_RESULTS, RankingCriteria, ScoredDocument

DATE_AWARE_WEIGHTS = (0.3, 0.7)  # (semantic, date) when a target date is given
RELEVANCE_ONLY_WEIGHTS = (1.0, 0.0)


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def create_ranking_criteria(
    has_target_date: bool, max_results: int = DEFAULT_MAX_RESULTS
) -> RankingCriteria:
    """Date proximity dominates when the user expressed a temporal intent"""
    semantic, date = DATE_AWARE_WEIGHTS if has_target_date else RELEVANCE_ONLY_WEIGHTS
    return RankingCriteria(semantic_weight=semantic, date_weight=date, max_results=max_results)


class Ranker:
    """Score combination and ordering."""

    create_criteria = staticmethod(create_ranking_criteria)

    def combine(
        self, scored: Sequence[ScoredDocument], criteria: RankingCriteria
    ) -> List[ScoredDocument]:
        """
        Clamp both scores into [0, 1] and compute the weighted sum.

        Keeps input order and length; returns new instances.
        """
        combined = []
        for item in scored:
            relevance = clamp(item.relevance_score)
            proximity = clamp(item.date_proximity_score)
            combined.append(replace(
                item,
                relevance_score=relevance,
                date_proximity_score=proximity,
                combined_score=relevance * criteria.semantic_weight + proximity * criteria.date_weight,
            ))
        return combined

    def order_by_score(self, scored: Sequence[ScoredDocument]) -> List[ScoredDocument]:
        """Combined score descending, ties broken by relevance descending (stable)"""
        return sorted(
            scored,
            key=lambda s: (s.combined_score, s.relevance_score),
            reverse=True,
        )

    def rank(
        self, scored: Sequence[ScoredDocument], criteria: RankingCriteria
    ) -> List[ScoredDocument]:
        """combine -> order -> truncate to criteria.max_results"""
        return self.order_by_score(self.combine(scored, criteria))[: criteria.max_results]
