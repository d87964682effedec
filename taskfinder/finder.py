"""
Task Finder Factory

Wires the search pipeline from configuration:
config -> document store, LLM client, conversation cache, enhancer, selector.
"""

import logging
from typing import Optional

from .common.config import TaskFinderConfig, load_config, validate_config
from .common.conversation_cache import ConversationCache
from .common.errors import ConfigurationError
from .common.llm_client import LLMClient
from .common.retry import ResilientCaller, RetryPolicy
from .common.schemas.prompts import PromptManager
from .retriever.query_enhancer import QueryEnhancer
from .retriever.selector import DocumentSelector
from .store.base import DocumentStore
from .store.notion import NotionDocumentStore

logger = logging.getLogger("taskfinder.finder")


def create_llm_client(config: TaskFinderConfig) -> LLMClient:
    llm = config.llm
    return LLMClient(
        provider=llm.provider,
        model=llm.model,
        openai_api_key=llm.openai_api_key or None,
        openai_base_url=llm.openai_base_url or None,
        anthropic_api_key=llm.anthropic_api_key or None,
        google_api_key=llm.google_api_key or None,
    )


def create_document_selector(
    config: Optional[TaskFinderConfig] = None,
    store: Optional[DocumentStore] = None,
) -> DocumentSelector:
    """
    Build a DocumentSelector from configuration.

    Args:
        config: Loaded configuration (``load_config()`` if omitted)
        store: Document store (a NotionDocumentStore from config if omitted)

    Raises:
        ConfigurationError: invalid configuration, or no store available
    """
    if config is None:
        config = load_config()
    validate_config(config)

    if store is None:
        if not config.notion.token:
            raise ConfigurationError("NOTION_TOKEN is required when no document store is given")
        store = NotionDocumentStore(
            token=config.notion.token,
            api_base=config.notion.api_base,
            notion_version=config.notion.notion_version,
        )

    llm = create_llm_client(config)
    if llm.is_available:
        logger.info("LLM selection enabled (%s, %s)", llm.provider, llm.model)
    else:
        logger.info("No LLM available, searches use text ranking only")

    search = config.search
    prompts = PromptManager(prompts_dir=search.prompts_dir or None)
    caller = ResilientCaller(
        RetryPolicy(max_attempts=search.retry_attempts, base_delay=search.retry_base_delay)
    )
    cache = ConversationCache(max_keys=search.max_conversations or None)
    enhancer = QueryEnhancer(
        llm=llm,
        prompts=prompts,
        caller=caller,
        cache=cache,
        default_max_results=search.max_results,
    )

    return DocumentSelector(
        store=store,
        llm=llm,
        enhancer=enhancer,
        prompts=prompts,
        caller=caller,
        cache=cache,
        excerpt_chars=search.excerpt_chars,
        max_tokens=config.llm.max_tokens,
        temperature=config.llm.temperature,
    )
