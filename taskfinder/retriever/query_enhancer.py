"""
Query Enhancer

Prepares a task search query before ranking:
1. Extracts semantic keywords (LLM, with a local tokenizer fallback)
2. Appends new keywords to the description used downstream
3. Resolves relative or absolute date expressions into a target date
   (local patterns first, then LLM date analysis)
"""

import calendar
import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from ..common.conversation_cache import ConversationCache, ConversationKey
from ..common.llm_client import Completion
from ..common.llm_utils import parse_llm_json, split_keywords
from ..common.retry import ResilientCaller
from ..common.schemas.prompts import PromptManager, PromptType
from ..common.schemas.search import DEFAULT_MAX_RESULTS, DateAnalysis, DateAnalysisPayload, Query
from .date_proximity import ensure_aware
from .text import MIN_TOKEN_LENGTH, dedupe, is_stop_word, tokenize

logger = logging.getLogger("taskfinder.retriever.query_enhancer")

KEYWORD_MAX_TOKENS = 150
KEYWORD_TEMPERATURE = 0.3
DATE_MAX_TOKENS = 200
DATE_TEMPERATURE = 0.1


class QueryEnhancer:
    """
    Keyword extraction and date parsing for task search queries.

    Every language model call goes through the shared ResilientCaller.
    Keyword extraction with a conversation key reads prior turns from the
    ConversationCache and appends the new exchange after a successful reply.
    """

    DAYS_AGO_RE = re.compile(r"^(\d+)\s+days?\s+ago$")
    WEEKS_AGO_RE = re.compile(r"^(\d+)\s+weeks?\s+ago$")

    # Whole-day offsets relative to now
    RELATIVE_DAYS: Dict[str, int] = {
        "today": 0,
        "yesterday": -1,
        "tomorrow": 1,
        "last week": -7,
        "this week": 0,
        "this month": 0,
    }

    def __init__(
        self,
        llm=None,
        prompts: Optional[PromptManager] = None,
        caller: Optional[ResilientCaller] = None,
        cache: Optional[ConversationCache] = None,
        clock: Callable[[], datetime] = datetime.now,
        default_max_results: int = DEFAULT_MAX_RESULTS,
    ):
        """
        Args:
            llm: Object with ``async complete(messages, max_tokens, temperature)``;
                None disables the LLM paths
            prompts: Template source (built-in defaults if omitted)
            caller: Retry wrapper for model calls
            cache: Conversation history store
            clock: Returns the current local wall-clock time (naive)
            default_max_results: Result limit for queries that set none
        """
        self._llm = llm
        self._prompts = prompts or PromptManager()
        self._caller = caller or ResilientCaller()
        self._cache = cache
        self._clock = clock
        self._default_max_results = default_max_results

    @property
    def has_llm(self) -> bool:
        if self._llm is None:
            return False
        return getattr(self._llm, "is_available", True)

    # ------------------------------------------------------------------
    # Keywords
    # ------------------------------------------------------------------

    async def extract_keywords(
        self,
        description: str,
        conversation_key: Optional[ConversationKey] = None,
    ) -> List[str]:
        """
        Extract search keywords from a description.

        Returns:
            Description tokens followed by LLM keywords (deduplicated), or
            the description tokens alone when the LLM path fails
        """
        if not description or not description.strip():
            return []

        basic = self.extract_basic_keywords(description)
        if not self.has_llm:
            return basic

        try:
            prompt = self._prompts.render(PromptType.SEMANTIC_KEYWORDS, query=description)
            reply = await self._complete_in_conversation(
                prompt, conversation_key, KEYWORD_MAX_TOKENS, KEYWORD_TEMPERATURE
            )
        except Exception as e:
            logger.warning("Keyword extraction failed, using basic keywords: %s", e)
            return basic

        keywords = [
            k for k in split_keywords(reply.content)
            if len(k) >= MIN_TOKEN_LENGTH and not is_stop_word(k)
        ]
        if not keywords:
            logger.info("LLM returned no usable keywords, using basic keywords")
            return basic

        return dedupe(basic + keywords)

    @staticmethod
    def extract_basic_keywords(description: str) -> List[str]:
        """Local fallback: tokenize, drop short tokens and stop words"""
        return tokenize(description)

    async def _complete_in_conversation(
        self,
        prompt: str,
        key: Optional[ConversationKey],
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        history = self._cache.get(key) if (self._cache is not None and key) else []
        user_turn = {"role": "user", "content": prompt}
        messages = history + [user_turn]

        reply = await self._caller.call(
            lambda: self._llm.complete(messages, max_tokens=max_tokens, temperature=temperature)
        )

        if self._cache is not None and key:
            self._cache.append(key, user_turn, {"role": "assistant", "content": reply.content})
        return reply

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    async def parse_date(self, text: str) -> Optional[datetime]:
        """
        Resolve a date expression to a timezone-aware datetime.

        Returns:
            The target date, or None for empty or unresolvable input
        """
        analysis = await self.analyze_date(text)
        return analysis.target_date if analysis else None

    async def analyze_date(self, text: str) -> Optional[DateAnalysis]:
        if not text or not text.strip():
            return None

        local = self.parse_basic_date(text)
        if local is not None:
            return DateAnalysis(
                target_date=local,
                confidence=1.0,
                interpretation=f'Interpreted "{text.strip()}" as {local.isoformat()}',
            )

        if not self.has_llm:
            return None

        try:
            return await self._analyze_date_with_llm(text.strip())
        except Exception as e:
            logger.warning('Date analysis failed for "%s": %s', text, e)
            return None

    def parse_basic_date(self, text: str) -> Optional[datetime]:
        """
        Local date patterns, relative to the clock's wall-clock time.

        Arithmetic is done in whole calendar days on local time, then the
        local offset for the resulting day is attached.
        """
        lowered = " ".join(text.lower().split())
        now = self._clock()

        if lowered in self.RELATIVE_DAYS:
            return self._localize(now + timedelta(days=self.RELATIVE_DAYS[lowered]))

        match = self.DAYS_AGO_RE.match(lowered)
        if match:
            return self._localize(now - timedelta(days=int(match.group(1))))

        match = self.WEEKS_AGO_RE.match(lowered)
        if match:
            return self._localize(now - timedelta(days=7 * int(match.group(1))))

        if lowered == "last month":
            return self._localize(_shift_months(now, -1))

        try:
            parsed = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return ensure_aware(parsed)

    @staticmethod
    def _localize(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.astimezone()
        return value

    async def _analyze_date_with_llm(self, text: str) -> DateAnalysis:
        prompt = self._prompts.render(
            PromptType.DATE_ANALYSIS,
            dateInput=text,
            currentDate=self._localize(self._clock()).isoformat(),
        )
        messages = [{"role": "user", "content": prompt}]
        reply = await self._caller.call(
            lambda: self._llm.complete(messages, max_tokens=DATE_MAX_TOKENS, temperature=DATE_TEMPERATURE)
        )
        payload = DateAnalysisPayload.model_validate(parse_llm_json(reply.content))
        return DateAnalysis(
            target_date=ensure_aware(payload.target_date),
            confidence=payload.confidence,
            interpretation=payload.interpretation or f'Interpreted "{text}"',
        )

    # ------------------------------------------------------------------
    # Whole query
    # ------------------------------------------------------------------

    async def enhance(self, query: Query) -> Query:
        """Return a copy of ``query`` ready for ranking"""
        enhanced, _ = await self.enhance_with_keywords(query)
        return enhanced

    async def enhance_with_keywords(self, query: Query) -> Tuple[Query, List[str]]:
        """
        Return a copy of ``query`` ready for ranking, plus the keywords
        appended to its description.

        - description gains the extracted keywords it does not already contain
        - target_date is resolved from date_input when not given
        - max_results defaults to the enhancer's default_max_results
        """
        changes = {}

        keywords = await self.extract_keywords(query.description, query.conversation_key)
        existing = set(tokenize(query.description))
        extra = [k for k in keywords if k not in existing]
        if extra:
            changes["description"] = f"{query.description} {' '.join(extra)}"

        if query.target_date is None and query.date_input:
            target = await self.parse_date(query.date_input)
            if target is not None:
                changes["target_date"] = target

        if not query.max_results:
            changes["max_results"] = self._default_max_results

        return (query.with_changes(**changes) if changes else query), extra


def _shift_months(value: datetime, months: int) -> datetime:
    """Move by whole months, clamping the day to the target month's length"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
