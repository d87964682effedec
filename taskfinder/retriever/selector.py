"""
Document Selector

Top-level task search:
1. Fetch candidates from the document store
2. Enhance the query (keywords, target date)
3. Ask the language model to select and score documents
4. On any failure of step 3, rank locally by text relevance and date proximity

Every stage is recorded in the outcome's processing trace.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..common.conversation_cache import ConversationCache
from ..common.errors import LLMUnavailableError, MalformedResponseError, SearchFailedError
from ..common.llm_utils import parse_llm_json_array
from ..common.retry import ResilientCaller
from ..common.schemas.prompts import PromptManager, PromptType
from ..common.schemas.search import (
    Document,
    DocumentSelection,
    Query,
    ScoredDocument,
    SearchOutcome,
)
from ..store.base import DocumentStore
from .date_proximity import DateProximityScorer
from .query_enhancer import QueryEnhancer
from .ranking import Ranker
from .relevance import RelevanceScorer

logger = logging.getLogger("taskfinder.retriever.selector")

DEFAULT_EXCERPT_CHARS = 500
SELECTION_MAX_TOKENS = 2000
SELECTION_TEMPERATURE = 0.3


class DocumentSelector:
    """
    Finds and orders task documents for a query.

    The LLM path is tried first. Its failures (transport errors, exhausted
    retries, malformed replies, template errors) are absorbed and the
    deterministic ranking path is used instead. Only a failed candidate
    fetch, or a failing fallback, surfaces as SearchFailedError.
    """

    def __init__(
        self,
        store: DocumentStore,
        llm=None,
        enhancer: Optional[QueryEnhancer] = None,
        prompts: Optional[PromptManager] = None,
        caller: Optional[ResilientCaller] = None,
        cache: Optional[ConversationCache] = None,
        relevance: Optional[RelevanceScorer] = None,
        proximity: Optional[DateProximityScorer] = None,
        ranker: Optional[Ranker] = None,
        excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
        max_tokens: int = SELECTION_MAX_TOKENS,
        temperature: float = SELECTION_TEMPERATURE,
    ):
        """
        Args:
            store: Source of candidate documents
            llm: Object with ``async complete(messages, max_tokens, temperature)``;
                None disables LLM selection
            enhancer: Query enhancer (built from llm/prompts/caller/cache if omitted)
            prompts: Template source
            caller: Retry wrapper for model calls
            cache: Conversation history shared with the enhancer
            relevance: Text relevance scorer for the fallback path
            proximity: Date proximity scorer
            ranker: Score combination and ordering
            excerpt_chars: Body characters sent per candidate
            max_tokens: Token limit for the selection reply
            temperature: Sampling temperature for selection
        """
        self._store = store
        self._llm = llm
        self._prompts = prompts or PromptManager()
        self._caller = caller or ResilientCaller()
        self._cache = cache
        self._enhancer = enhancer or QueryEnhancer(
            llm=llm, prompts=self._prompts, caller=self._caller, cache=cache
        )
        self._relevance = relevance or RelevanceScorer()
        self._proximity = proximity or DateProximityScorer()
        self._ranker = ranker or Ranker()
        self._excerpt_chars = excerpt_chars
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def has_llm(self) -> bool:
        if self._llm is None:
            return False
        return getattr(self._llm, "is_available", True)

    async def close(self) -> None:
        """Release resources held by the document store"""
        await self._store.close()

    async def __aenter__(self) -> "DocumentSelector":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def find_tasks(self, query: Query) -> SearchOutcome:
        """
        Run a full search.

        Returns:
            SearchOutcome with at most ``query.limit`` results

        Raises:
            SearchFailedError: candidates could not be fetched, or the
                fallback ranking failed
        """
        started = time.perf_counter()
        trace: List[str] = ["Starting task search"]

        trace.append(f"Fetching candidates from collection {query.collection_id}")
        try:
            fetched = await self._store.fetch_candidates(query.collection_id)
        except Exception as e:
            trace.append(f"Candidate fetch failed: {e}")
            logger.error("Candidate fetch failed for %s: %s", query.collection_id, e)
            raise SearchFailedError(
                f"Task search failed: could not fetch candidates from "
                f"collection {query.collection_id}: {e}",
                trace=trace,
            ) from e

        candidates = [d for d in fetched if not d.archived]
        trace.append(f"Fetched {len(fetched)} candidates")
        archived = len(fetched) - len(candidates)
        if archived:
            trace.append(f"Skipped {archived} archived documents")

        if not candidates:
            trace.append("No candidates found")
            return self._outcome([], 0, started, query, trace)

        enhanced = await self._enhance(query, trace)

        tokens_used = 0
        llm_error: Optional[BaseException] = None
        if self.has_llm:
            trace.append(f"Requesting LLM selection for {len(candidates)} candidates")
            try:
                results, tokens_used = await self._select_with_llm(enhanced, candidates)
                trace.append(f"LLM selection returned {len(results)} results")
                trace.append(f"Returning top {len(results)} results")
                return self._outcome(
                    results, len(candidates), started, enhanced, trace,
                    tokens_used=tokens_used,
                )
            except Exception as e:
                llm_error = e
                trace.append(f"LLM selection failed: {e}")
                logger.warning("LLM selection failed, falling back to text ranking: %s", e)
        else:
            trace.append("No language model configured, skipping LLM selection")

        trace.append("Falling back to text ranking")
        try:
            results = self._rank_locally(enhanced, candidates, trace)
        except Exception as e:
            trace.append(f"Fallback ranking failed: {e}")
            cause = f"LLM selection failed ({llm_error}); " if llm_error else ""
            raise SearchFailedError(
                f"Task search failed: {cause}fallback ranking failed ({e})",
                trace=trace,
            ) from e

        return self._outcome(
            results, len(candidates), started, enhanced, trace,
            used_fallback=True, tokens_used=tokens_used,
        )

    async def _enhance(self, query: Query, trace: List[str]) -> Query:
        try:
            enhanced, keywords = await self._enhancer.enhance_with_keywords(query)
        except Exception as e:
            trace.append(f"Query enhancement failed: {e}")
            logger.warning("Query enhancement failed, using original query: %s", e)
            return query

        trace.append(f"Enhanced query with {len(keywords)} keywords")
        if enhanced.target_date is not None and query.target_date is None:
            trace.append(f"Resolved target date {enhanced.target_date.isoformat()}")
        return enhanced

    # ------------------------------------------------------------------
    # LLM path
    # ------------------------------------------------------------------

    async def _select_with_llm(
        self, query: Query, candidates: Sequence[Document]
    ) -> Tuple[List[ScoredDocument], int]:
        if not self.has_llm:
            raise LLMUnavailableError("No language model configured")

        prompt = self._prompts.render(
            PromptType.DOCUMENT_SELECTION,
            query=query.description,
            dateContext=self._date_context(query),
            documents=self._format_candidates(candidates, query.include_content),
            maxResults=query.limit,
        )
        key = query.conversation_key
        history = self._cache.get(key) if self._cache is not None else []
        user_turn = {"role": "user", "content": prompt}
        messages = history + [user_turn]
        reply = await self._caller.call(
            lambda: self._llm.complete(
                messages,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        )

        by_id = {d.id: d for d in candidates}
        selections = self._parse_selections(reply.content, by_id)
        if self._cache is not None:
            self._cache.append(key, user_turn, {"role": "assistant", "content": reply.content})

        scored = [
            ScoredDocument(
                document=by_id[s.document_id],
                relevance_score=s.relevance_score,
                combined_score=s.relevance_score,
                justification=s.justification or None,
            )
            for s in selections
        ]

        if query.target_date is not None:
            scored = self._ranker.combine(
                self._with_proximity(scored, query),
                self._ranker.create_criteria(True, query.limit),
            )

        ordered = self._ranker.order_by_score(scored)
        return ordered[: query.limit], getattr(reply, "tokens_used", 0) or 0

    @staticmethod
    def _parse_selections(
        raw: str, by_id: Dict[str, Document]
    ) -> List[DocumentSelection]:
        """
        Validate a selection reply.

        Entries that fail validation or name an unknown document are
        dropped. A reply whose entries are all dropped is malformed.
        """
        entries = parse_llm_json_array(raw)

        selections: List[DocumentSelection] = []
        seen = set()
        discarded = 0
        for entry in entries:
            try:
                selection = DocumentSelection.model_validate(entry)
            except ValidationError:
                discarded += 1
                continue
            if selection.document_id not in by_id or selection.document_id in seen:
                discarded += 1
                continue
            seen.add(selection.document_id)
            selections.append(selection)

        if discarded:
            logger.warning("Discarded %d invalid selection entries", discarded)
        if entries and not selections:
            raise MalformedResponseError("No valid entries in selection reply", raw=raw)
        return selections

    def _format_candidates(self, candidates: Sequence[Document], include_content: bool) -> str:
        blocks = []
        for doc in candidates:
            lines = [f"ID: {doc.id}", f"Title: {doc.title}"]
            if include_content:
                lines.append(f"Content: {self._excerpt(doc.body_text)}")
            lines.append(f"Created: {doc.created_at.isoformat()}")
            blocks.append("\n".join(lines))
        return "\n---\n".join(blocks)

    def _excerpt(self, text: str) -> str:
        text = text or ""
        if len(text) <= self._excerpt_chars:
            return text
        return text[: self._excerpt_chars] + "..."

    @staticmethod
    def _date_context(query: Query) -> str:
        if query.target_date is None:
            return ""
        return (
            f"Target Date: {query.target_date.isoformat()} "
            "(prioritize documents created near this date)"
        )

    # ------------------------------------------------------------------
    # Fallback path
    # ------------------------------------------------------------------

    def _rank_locally(
        self, query: Query, candidates: Sequence[Document], trace: List[str]
    ) -> List[ScoredDocument]:
        terms = self._relevance.extract_terms(query.description)
        scored = [
            ScoredDocument(document=doc, relevance_score=self._relevance.score(doc, terms))
            for doc in candidates
        ]

        has_date = query.target_date is not None
        if has_date:
            trace.append("Applying date proximity ranking")
            scored = self._with_proximity(scored, query)
        else:
            trace.append("No date specified, using relevance-only ranking")

        results = self._ranker.rank(
            scored, self._ranker.create_criteria(has_date, query.limit)
        )
        trace.append(f"Returning top {len(results)} results")
        return results

    def _with_proximity(
        self, scored: Sequence[ScoredDocument], query: Query
    ) -> List[ScoredDocument]:
        return [
            ScoredDocument(
                document=s.document,
                relevance_score=s.relevance_score,
                date_proximity_score=self._proximity.score(
                    s.document.created_at, query.target_date
                ),
                combined_score=s.combined_score,
                justification=s.justification,
            )
            for s in scored
        ]

    @staticmethod
    def _outcome(
        results: List[ScoredDocument],
        total: int,
        started: float,
        query: Query,
        trace: List[str],
        used_fallback: bool = False,
        tokens_used: int = 0,
    ) -> SearchOutcome:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return SearchOutcome(
            results=results,
            total_candidate_count=total,
            elapsed_time_ms=elapsed_ms,
            query=query,
            processing_trace=trace,
            used_fallback=used_fallback,
            llm_tokens_used=tokens_used,
        )
