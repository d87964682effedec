"""
Tests for DocumentSelector

End-to-end search scenarios: LLM selection, fallback ranking, empty
collections and store failures.
"""

import json
import math
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, Mock

from taskfinder.common.llm_client import Completion
from taskfinder.common.schemas.search import Document, Query

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_doc(doc_id, title, body="", days_old=0, archived=False):
    return Document(
        id=doc_id,
        title=title,
        body_text=body,
        created_at=NOW - timedelta(days=days_old),
        archived=archived,
    )


def selection_reply(*entries, tokens=50):
    return Completion(
        content=json.dumps([
            {"documentId": doc_id, "relevanceScore": score, "justification": f"matches {doc_id}"}
            for doc_id, score in entries
        ]),
        tokens_used=tokens,
    )


@pytest.fixture
def documents():
    return [
        make_doc("a", "Fix login bug", "Users cannot log in", days_old=20),
        make_doc("b", "Quarterly planning", "Budget review", days_old=5),
        make_doc("c", "Login page redesign", "New layout", days_old=0),
    ]


@pytest.fixture
def store(documents):
    store = Mock()
    store.fetch_candidates = AsyncMock(return_value=documents)
    return store


@pytest.fixture
def llm():
    client = Mock()
    client.is_available = True
    client.complete = AsyncMock()
    return client


@pytest.fixture
def caller():
    from taskfinder.common.retry import ResilientCaller

    async def no_sleep(_):
        return None

    return ResilientCaller(sleep=no_sleep)


@pytest.fixture
def selector(store, llm, caller):
    """Selector whose LLM is used for selection only"""
    from taskfinder.retriever.query_enhancer import QueryEnhancer
    from taskfinder.retriever.selector import DocumentSelector

    return DocumentSelector(store=store, llm=llm, enhancer=QueryEnhancer(), caller=caller)


@pytest.fixture
def offline_selector(store):
    from taskfinder.retriever.selector import DocumentSelector
    return DocumentSelector(store=store)


def make_query(description="login bug", **kwargs):
    return Query(description=description, user_id="user-1", collection_id="db-1", **kwargs)


class TestEmptyCollection:
    @pytest.mark.asyncio
    async def test_zero_candidates_skip_llm(self, store, llm, caller):
        from taskfinder.retriever.selector import DocumentSelector

        store.fetch_candidates.return_value = []
        selector = DocumentSelector(store=store, llm=llm, caller=caller)

        outcome = await selector.find_tasks(make_query())

        assert outcome.results == []
        assert outcome.total_candidate_count == 0
        assert "No candidates found" in outcome.processing_trace
        llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_archived_candidates(self, store, llm, selector):
        store.fetch_candidates.return_value = [make_doc("x", "Old login task", archived=True)]

        outcome = await selector.find_tasks(make_query())

        assert outcome.results == []
        assert outcome.total_candidate_count == 0
        llm.complete.assert_not_awaited()


class TestLLMSelection:
    @pytest.mark.asyncio
    async def test_selection_ordered_by_score(self, selector, llm, store):
        llm.complete.return_value = selection_reply(("a", 0.7), ("c", 0.9))

        outcome = await selector.find_tasks(make_query())

        assert outcome.document_ids == ["c", "a"]
        assert outcome.results[0].combined_score == pytest.approx(0.9)
        assert outcome.results[0].justification == "matches c"
        assert outcome.total_candidate_count == 3
        assert outcome.used_fallback is False
        assert outcome.llm_tokens_used == 50
        assert "LLM selection returned 2 results" in outcome.processing_trace
        store.fetch_candidates.assert_awaited_once_with("db-1")

    @pytest.mark.asyncio
    async def test_unknown_ids_discarded(self, selector, llm):
        llm.complete.return_value = selection_reply(("zzz", 0.99), ("a", 0.6))

        outcome = await selector.find_tasks(make_query())

        assert outcome.document_ids == ["a"]
        assert outcome.used_fallback is False

    @pytest.mark.asyncio
    async def test_invalid_entries_discarded(self, selector, llm):
        llm.complete.return_value = Completion(content=json.dumps([
            {"documentId": "a", "relevanceScore": 1.5},
            {"documentId": "b", "relevanceScore": "high"},
            {"relevanceScore": 0.4},
            {"documentId": "c", "relevanceScore": 0.8},
        ]))

        outcome = await selector.find_tasks(make_query())

        assert outcome.document_ids == ["c"]

    @pytest.mark.asyncio
    async def test_duplicate_ids_keep_first(self, selector, llm):
        llm.complete.return_value = selection_reply(("a", 0.4), ("a", 0.9))

        outcome = await selector.find_tasks(make_query())

        assert outcome.document_ids == ["a"]
        assert outcome.results[0].relevance_score == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_empty_selection_is_valid(self, selector, llm):
        llm.complete.return_value = Completion(content="[]")

        outcome = await selector.find_tasks(make_query())

        assert outcome.results == []
        assert outcome.used_fallback is False

    @pytest.mark.asyncio
    async def test_target_date_recombines_scores(self, selector, llm):
        llm.complete.return_value = selection_reply(("a", 0.9), ("c", 0.5))

        outcome = await selector.find_tasks(make_query(target_date=NOW))

        assert outcome.document_ids == ["c", "a"]
        by_id = {r.document_id: r for r in outcome.results}
        assert by_id["c"].combined_score == pytest.approx(0.5 * 0.3 + 1.0 * 0.7)
        assert by_id["a"].combined_score == pytest.approx(0.9 * 0.3 + math.exp(-2.0) * 0.7)

    @pytest.mark.asyncio
    async def test_results_truncated(self, selector, llm):
        llm.complete.return_value = selection_reply(("a", 0.7), ("b", 0.2), ("c", 0.9))

        outcome = await selector.find_tasks(make_query(max_results=2))

        assert outcome.document_ids == ["c", "a"]

    @pytest.mark.asyncio
    async def test_prompt_contents(self, store, llm, caller):
        from taskfinder.retriever.query_enhancer import QueryEnhancer
        from taskfinder.retriever.selector import DocumentSelector

        store.fetch_candidates.return_value = [make_doc("long", "Write docs", "x" * 600)]
        llm.complete.return_value = Completion(content="[]")
        selector = DocumentSelector(
            store=store, llm=llm, enhancer=QueryEnhancer(), caller=caller, excerpt_chars=500
        )

        await selector.find_tasks(make_query("write docs", target_date=NOW, max_results=4))

        prompt = llm.complete.call_args.args[0][0]["content"]
        assert "ID: long" in prompt
        assert "Content: " + "x" * 500 + "..." in prompt
        assert "x" * 501 not in prompt
        assert "Target Date: 2024-03-15T12:00:00+00:00" in prompt
        assert "Select up to 4" in prompt

    @pytest.mark.asyncio
    async def test_prompt_without_content(self, selector, llm):
        llm.complete.return_value = Completion(content="[]")

        await selector.find_tasks(make_query(include_content=False))

        prompt = llm.complete.call_args.args[0][0]["content"]
        assert "Title: Fix login bug" in prompt
        assert "Content:" not in prompt
        assert "Target Date" not in prompt

    @pytest.mark.asyncio
    async def test_rate_limit_retried_within_selection(self, selector, llm):
        class RateLimited(Exception):
            status_code = 429

        llm.complete.side_effect = [RateLimited("rate limit"), selection_reply(("b", 0.5))]

        outcome = await selector.find_tasks(make_query())

        assert outcome.document_ids == ["b"]
        assert llm.complete.await_count == 2


class TestFallback:
    @pytest.mark.asyncio
    async def test_llm_always_failing(self, store, llm, caller):
        from taskfinder.retriever.selector import DocumentSelector

        llm.complete.side_effect = RuntimeError("service unavailable")
        selector = DocumentSelector(store=store, llm=llm, caller=caller)

        outcome = await selector.find_tasks(make_query())

        assert outcome.document_ids == ["a", "c", "b"]
        assert outcome.used_fallback is True
        assert "Falling back to text ranking" in outcome.processing_trace
        assert any(s.startswith("LLM selection failed") for s in outcome.processing_trace)
        scores = [r.combined_score for r in outcome.results]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_malformed_reply(self, selector, llm):
        llm.complete.return_value = Completion(content="I think document a is the best match")

        outcome = await selector.find_tasks(make_query())

        assert outcome.used_fallback is True
        assert outcome.document_ids[0] == "a"

    @pytest.mark.asyncio
    async def test_all_entries_invalid(self, selector, llm):
        llm.complete.return_value = selection_reply(("zzz", 0.9), ("yyy", 0.8))

        outcome = await selector.find_tasks(make_query())

        assert outcome.used_fallback is True

    @pytest.mark.asyncio
    async def test_object_instead_of_array(self, selector, llm):
        llm.complete.return_value = Completion(content='{"documentId": "a", "relevanceScore": 0.9}')

        outcome = await selector.find_tasks(make_query())

        assert outcome.used_fallback is True

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, selector, llm):
        class RateLimited(Exception):
            status_code = 429

        llm.complete.side_effect = RateLimited("rate limit")

        outcome = await selector.find_tasks(make_query())

        assert outcome.used_fallback is True
        assert llm.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_no_llm_configured(self, offline_selector):
        outcome = await offline_selector.find_tasks(make_query())

        assert outcome.used_fallback is True
        assert outcome.document_ids == ["a", "c", "b"]
        assert "No language model configured, skipping LLM selection" in outcome.processing_trace
        assert "No date specified, using relevance-only ranking" in outcome.processing_trace

    @pytest.mark.asyncio
    async def test_relevance_scores(self, offline_selector):
        outcome = await offline_selector.find_tasks(make_query())
        by_id = {r.document_id: r for r in outcome.results}

        # login + bug in title: (8 + 8 + 3) / 2 / 12
        assert by_id["a"].relevance_score == pytest.approx(19 / 24)
        assert by_id["c"].relevance_score == pytest.approx(8 / 24)
        assert by_id["b"].relevance_score == 0.0

    @pytest.mark.asyncio
    async def test_date_proximity_ranking(self, offline_selector):
        outcome = await offline_selector.find_tasks(make_query("login", target_date=NOW))

        assert "Applying date proximity ranking" in outcome.processing_trace
        # c is as relevant as a and created on the target date
        assert outcome.document_ids[0] == "c"
        assert outcome.results[0].date_proximity_score == 1.0

    @pytest.mark.asyncio
    async def test_date_input_resolved(self, offline_selector):
        outcome = await offline_selector.find_tasks(make_query("planning", date_input="2024-03-10T12:00:00Z"))

        assert outcome.query.target_date == datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert outcome.document_ids[0] == "b"
        assert outcome.results[0].date_proximity_score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_truncates_to_max_results(self, offline_selector):
        outcome = await offline_selector.find_tasks(make_query(max_results=1))

        assert outcome.document_ids == ["a"]
        assert outcome.total_candidate_count == 3
        assert "Returning top 1 results" in outcome.processing_trace

    @pytest.mark.asyncio
    async def test_fallback_failure_names_both_errors(self, store, llm, caller):
        from taskfinder.common.errors import SearchFailedError
        from taskfinder.retriever.query_enhancer import QueryEnhancer
        from taskfinder.retriever.selector import DocumentSelector

        llm.complete.side_effect = RuntimeError("model down")
        relevance = Mock()
        relevance.extract_terms.return_value = ["login"]
        relevance.score.side_effect = ValueError("scorer broke")
        selector = DocumentSelector(
            store=store, llm=llm, enhancer=QueryEnhancer(), caller=caller, relevance=relevance
        )

        with pytest.raises(SearchFailedError) as exc_info:
            await selector.find_tasks(make_query())

        message = str(exc_info.value)
        assert "model down" in message
        assert "scorer broke" in message
        assert "Fallback ranking failed: scorer broke" in exc_info.value.trace


class TestArchivedAndTrace:
    @pytest.mark.asyncio
    async def test_archived_documents_excluded(self, store, documents, offline_selector):
        store.fetch_candidates.return_value = documents + [
            make_doc("old", "Fix login bug again", archived=True)
        ]

        outcome = await offline_selector.find_tasks(make_query())

        assert "old" not in outcome.document_ids
        assert outcome.total_candidate_count == 3
        assert "Fetched 4 candidates" in outcome.processing_trace
        assert "Skipped 1 archived documents" in outcome.processing_trace

    @pytest.mark.asyncio
    async def test_trace_order(self, selector, llm):
        llm.complete.return_value = selection_reply(("a", 0.7))

        outcome = await selector.find_tasks(make_query())

        trace = outcome.processing_trace
        assert trace[0] == "Starting task search"
        assert trace.index("Fetched 3 candidates") < trace.index("Requesting LLM selection for 3 candidates")
        assert trace[-1] == "Returning top 1 results"
        assert outcome.elapsed_time_ms >= 0


class TestStoreFailure:
    @pytest.mark.asyncio
    async def test_fetch_error_raises_search_failed(self, store, llm, selector):
        from taskfinder.common.errors import DocumentStoreError, SearchFailedError

        cause = DocumentStoreError("Notion query failed (401): unauthorized", status_code=401)
        store.fetch_candidates.side_effect = cause

        with pytest.raises(SearchFailedError) as exc_info:
            await selector.find_tasks(make_query())

        assert exc_info.value.__cause__ is cause
        assert "db-1" in str(exc_info.value)
        assert exc_info.value.trace[-1].startswith("Candidate fetch failed")
        llm.complete.assert_not_awaited()


class TestSelectionConversation:
    @pytest.fixture
    def cache(self):
        from taskfinder.common.conversation_cache import ConversationCache
        return ConversationCache()

    @pytest.fixture
    def cached_selector(self, store, llm, caller, cache):
        from taskfinder.retriever.query_enhancer import QueryEnhancer
        from taskfinder.retriever.selector import DocumentSelector

        return DocumentSelector(store=store, llm=llm, enhancer=QueryEnhancer(), caller=caller, cache=cache)

    @pytest.mark.asyncio
    async def test_second_search_sends_earlier_exchange(self, cached_selector, llm, cache):
        llm.complete.return_value = selection_reply(("a", 0.7))

        await cached_selector.find_tasks(make_query())
        await cached_selector.find_tasks(make_query("login page"))

        second_messages = llm.complete.call_args_list[1].args[0]
        assert [m["role"] for m in second_messages] == ["user", "assistant", "user"]
        assert second_messages[1]["content"] == selection_reply(("a", 0.7)).content
        assert len(cache.get(("user-1", "db-1"))) == 4

    @pytest.mark.asyncio
    async def test_malformed_selection_leaves_cache_unchanged(self, cached_selector, llm, cache):
        llm.complete.return_value = selection_reply(("a", 0.7))
        await cached_selector.find_tasks(make_query())
        before = cache.get(("user-1", "db-1"))

        llm.complete.return_value = Completion(content="not json")
        outcome = await cached_selector.find_tasks(make_query())

        assert outcome.used_fallback is True
        assert cache.get(("user-1", "db-1")) == before

    @pytest.mark.asyncio
    async def test_failed_call_leaves_cache_empty(self, cached_selector, llm, cache):
        llm.complete.side_effect = RuntimeError("service unavailable")

        outcome = await cached_selector.find_tasks(make_query())

        assert outcome.used_fallback is True
        assert cache.get(("user-1", "db-1")) == []

    @pytest.mark.asyncio
    async def test_other_collection_starts_fresh(self, cached_selector, llm):
        llm.complete.return_value = selection_reply(("a", 0.7))

        await cached_selector.find_tasks(make_query())
        await cached_selector.find_tasks(
            Query(description="login bug", user_id="user-1", collection_id="db-2")
        )

        assert len(llm.complete.call_args_list[1].args[0]) == 1


class TestReplyShape:
    @pytest.mark.asyncio
    async def test_reply_without_token_count(self, selector, llm):
        from types import SimpleNamespace

        llm.complete.return_value = SimpleNamespace(content=json.dumps([
            {"documentId": "a", "relevanceScore": 0.8, "justification": "login bug"},
        ]))

        outcome = await selector.find_tasks(make_query())

        assert outcome.used_fallback is False
        assert outcome.document_ids == ["a"]
        assert outcome.llm_tokens_used == 0

    @pytest.mark.asyncio
    async def test_enhancement_trace_counts_added_keywords(self, store, llm, caller):
        from taskfinder.retriever.selector import DocumentSelector

        llm.complete.side_effect = [
            Completion(content="login page, authentication"),
            selection_reply(("a", 0.5)),
        ]
        selector = DocumentSelector(store=store, llm=llm, caller=caller)

        outcome = await selector.find_tasks(make_query())

        assert "Enhanced query with 2 keywords" in outcome.processing_trace
        assert outcome.query.description == "login bug login page authentication"


class TestClose:
    @pytest.mark.asyncio
    async def test_close_releases_owned_http_client(self):
        from taskfinder.retriever.selector import DocumentSelector
        from taskfinder.store.notion import NotionDocumentStore

        store = NotionDocumentStore(token="secret_abc")
        selector = DocumentSelector(store=store)

        await selector.close()

        assert store._client.is_closed

    @pytest.mark.asyncio
    async def test_async_context_manager_closes_store(self, store):
        from taskfinder.retriever.selector import DocumentSelector

        store.close = AsyncMock()

        async with DocumentSelector(store=store) as selector:
            outcome = await selector.find_tasks(make_query())

        assert outcome.document_ids[0] == "a"
        store.close.assert_awaited_once()
