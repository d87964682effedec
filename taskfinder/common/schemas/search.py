"""
Search Schemas

Runtime types flowing through the search pipeline, plus the pydantic
shapes that language model replies must satisfy.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MAX_RESULTS = 10


# ============================================================================
# Runtime types
# ============================================================================

@dataclass(frozen=True)
class Document:
    """Read-only snapshot of a candidate page from the document store"""
    id: str
    title: str
    body_text: str  # Derived from structured properties
    created_at: datetime
    archived: bool = False
    url: Optional[str] = None


@dataclass(frozen=True)
class Query:
    """A task search request"""
    description: str
    user_id: str
    collection_id: str
    target_date: Optional[datetime] = None
    max_results: Optional[int] = None
    include_content: bool = True
    date_input: Optional[str] = None  # Raw date expression, e.g. "3 days ago"

    @property
    def limit(self) -> int:
        """Effective result limit"""
        return self.max_results or DEFAULT_MAX_RESULTS

    @property
    def conversation_key(self) -> Tuple[str, str]:
        return (self.user_id, self.collection_id)

    def with_changes(self, **changes) -> "Query":
        return replace(self, **changes)


@dataclass(frozen=True)
class ScoredDocument:
    """A document with its ranking scores (never mutated; re-ranking copies)"""
    document: Document
    relevance_score: float
    date_proximity_score: float = 0.0
    combined_score: float = 0.0
    justification: Optional[str] = None

    @property
    def document_id(self) -> str:
        return self.document.id


@dataclass(frozen=True)
class RankingCriteria:
    """Weights for combining relevance and date proximity"""
    semantic_weight: float
    date_weight: float
    max_results: int = DEFAULT_MAX_RESULTS


@dataclass(frozen=True)
class DateAnalysis:
    """Interpretation of a date expression"""
    target_date: datetime
    confidence: float
    interpretation: str


@dataclass
class SearchOutcome:
    """Result of DocumentSelector.find_tasks"""
    results: List[ScoredDocument]
    total_candidate_count: int
    elapsed_time_ms: int
    query: Query
    processing_trace: List[str] = field(default_factory=list)
    used_fallback: bool = False
    llm_tokens_used: int = 0

    @property
    def document_ids(self) -> List[str]:
        return [r.document.id for r in self.results]


# ============================================================================
# Language model reply shapes
# ============================================================================

class DocumentSelection(BaseModel):
    """One entry of a document-selection reply"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    document_id: str = Field(..., alias="documentId", min_length=1, strict=True)
    relevance_score: float = Field(..., alias="relevanceScore", ge=0.0, le=1.0, strict=True)
    justification: str = Field(default="", strict=True)


class DateAnalysisPayload(BaseModel):
    """Date-analysis reply"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    target_date: datetime = Field(..., alias="targetDate")
    confidence: float = Field(..., ge=0.0, le=1.0)
    interpretation: str = ""
