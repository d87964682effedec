"""
Task Finder

Locates and orders task documents from an external document store, given a
free-text description and an optional target date.

Pipeline:
1. Fetch candidate documents (Notion database)
2. Enhance the query: semantic keywords and target date resolution
3. LLM-assisted document selection and scoring
4. Deterministic fallback: text relevance + date proximity ranking

Usage:
    from taskfinder import Query, create_document_selector

    selector = create_document_selector()
    outcome = await selector.find_tasks(
        Query(description="fix login bug", user_id="u1",
              collection_id="db-id", date_input="last week")
    )
"""

__version__ = "0.1.0"

from .common.schemas.search import Document, Query, ScoredDocument, SearchOutcome
from .finder import create_document_selector
from .retriever.selector import DocumentSelector

__all__ = [
    "Document",
    "Query",
    "ScoredDocument",
    "SearchOutcome",
    "DocumentSelector",
    "create_document_selector",
]
