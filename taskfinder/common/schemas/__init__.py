"""
Task Finder Schemas

Search-time data types and the prompt templates sent to the language model.
"""

from .search import (
    DEFAULT_MAX_RESULTS,
    Document,
    Query,
    ScoredDocument,
    RankingCriteria,
    DateAnalysis,
    SearchOutcome,
    DocumentSelection,
    DateAnalysisPayload,
)
from .prompts import PromptManager, PromptType, format_prompt, validate_prompt, DEFAULT_TEMPLATES

__all__ = [
    "DEFAULT_MAX_RESULTS",
    "Document",
    "Query",
    "ScoredDocument",
    "RankingCriteria",
    "DateAnalysis",
    "SearchOutcome",
    "DocumentSelection",
    "DateAnalysisPayload",
    "PromptManager",
    "PromptType",
    "format_prompt",
    "validate_prompt",
    "DEFAULT_TEMPLATES",
]
