"""
Retriever - Task Search and Ranking

Key Components:
- QueryEnhancer: Keyword extraction and date parsing
- RelevanceScorer: Keyword relevance of a document
- DateProximityScorer: Exponential decay around a target date
- Ranker: Weighted score combination and ordering
- DocumentSelector: LLM selection with deterministic fallback

Pipeline:
1. Fetch candidates from the document store
2. Enhance the query
3. Select with the LLM, or rank locally on failure
"""

from .query_enhancer import QueryEnhancer
from .relevance import RelevanceScorer
from .date_proximity import DateProximityScorer
from .ranking import Ranker, create_ranking_criteria
from .selector import DocumentSelector

__all__ = [
    "QueryEnhancer",
    "RelevanceScorer",
    "DateProximityScorer",
    "Ranker",
    "create_ranking_criteria",
    "DocumentSelector",
]
