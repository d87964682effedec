"""
Task Finder Common Module

Shared infrastructure for the search pipeline: configuration, errors,
language model access, retries and conversation state.
"""

from .config import TaskFinderConfig, load_config, validate_config
from .conversation_cache import ConversationCache
from .errors import (
    TaskFinderError,
    ConfigurationError,
    PromptTemplateError,
    LLMUnavailableError,
    MalformedResponseError,
    RetryExhaustedError,
    DocumentStoreError,
    SearchFailedError,
)
from .llm_client import Completion, LLMClient
from .retry import ResilientCaller, RetryPolicy, is_rate_limit_error, with_retry

__all__ = [
    "TaskFinderConfig",
    "load_config",
    "validate_config",
    "ConversationCache",
    "TaskFinderError",
    "ConfigurationError",
    "PromptTemplateError",
    "LLMUnavailableError",
    "MalformedResponseError",
    "RetryExhaustedError",
    "DocumentStoreError",
    "SearchFailedError",
    "Completion",
    "LLMClient",
    "ResilientCaller",
    "RetryPolicy",
    "is_rate_limit_error",
    "with_retry",
]
