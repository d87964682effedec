"""
Configuration Management for the Task Finder

Loads configuration from ~/.taskfinder/config.json, a local .env file,
and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger("taskfinder.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".taskfinder"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class LLMConfig:
    """Language model provider configuration"""
    provider: str = "openai"
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    max_tokens: int = 2000
    temperature: float = 0.7

    @property
    def model(self) -> str:
        """Model name for the selected provider"""
        return {
            "openai": self.openai_model,
            "anthropic": self.anthropic_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class SearchConfig:
    """Search pipeline configuration"""
    max_results: int = 10
    excerpt_chars: int = 500
    retry_attempts: int = 3
    retry_base_delay: float = 1.0  # seconds
    max_conversations: int = 0  # 0 = unbounded
    prompts_dir: str = ""


@dataclass
class NotionConfig:
    """Notion document store configuration"""
    token: str = ""
    api_base: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"


@dataclass
class TaskFinderConfig:
    """Main task finder configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    notion: NotionConfig = field(default_factory=NotionConfig)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_base_url=llm_data.get("openai_base_url", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        max_tokens=llm_data.get("max_tokens", defaults.max_tokens),
        temperature=llm_data.get("temperature", defaults.temperature),
    )


def _parse_search_config(data: dict) -> SearchConfig:
    """Parse search section from config dict"""
    search_data = data.get("search", {})
    return SearchConfig(
        max_results=search_data.get("max_results", 10),
        excerpt_chars=search_data.get("excerpt_chars", 500),
        retry_attempts=search_data.get("retry_attempts", 3),
        retry_base_delay=search_data.get("retry_base_delay", 1.0),
        max_conversations=search_data.get("max_conversations", 0),
        prompts_dir=search_data.get("prompts_dir", ""),
    )


def _parse_notion_config(data: dict) -> NotionConfig:
    """Parse notion section from config dict"""
    notion_data = data.get("notion", {})
    defaults = NotionConfig()
    return NotionConfig(
        token=notion_data.get("token", ""),
        api_base=notion_data.get("api_base", defaults.api_base),
        notion_version=notion_data.get("notion_version", defaults.notion_version),
    )


def load_config(use_dotenv: bool = True) -> TaskFinderConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a .env file when use_dotenv is set)
    2. Config file (~/.taskfinder/config.json)
    3. Default values
    """
    config = TaskFinderConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.search = _parse_search_config(data)
            config.notion = _parse_notion_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    if use_dotenv:
        load_dotenv()

    _env_llm_map = {
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_BASE_URL": "openai_base_url",
        "OPENAI_MODEL": "openai_model",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "TASKFINDER_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)

    _env_numeric = [
        ("OPENAI_MAX_TOKENS", config.llm, "max_tokens", int),
        ("OPENAI_TEMPERATURE", config.llm, "temperature", float),
        ("SEARCH_MAX_RESULTS", config.search, "max_results", int),
        ("SEARCH_RETRY_ATTEMPTS", config.search, "retry_attempts", int),
        ("SEARCH_RETRY_BASE_DELAY", config.search, "retry_base_delay", float),
    ]
    for env_var, section, attr, cast in _env_numeric:
        val = os.getenv(env_var)
        if val:
            try:
                setattr(section, attr, cast(val))
            except ValueError as e:
                raise ConfigurationError(f"{env_var} must be a number, got {val!r}") from e

    if os.getenv("NOTION_TOKEN"):
        config.notion.token = os.getenv("NOTION_TOKEN")

    return config


def validate_config(config: TaskFinderConfig) -> None:
    """
    Validate configuration values before wiring the pipeline.

    Raises:
        ConfigurationError: the first invalid value found
    """
    llm = config.llm
    if llm.provider not in ("openai", "anthropic", "google"):
        raise ConfigurationError(f"Unsupported LLM provider: {llm.provider}")

    if llm.openai_base_url:
        parsed = urlparse(llm.openai_base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f'OPENAI_BASE_URL "{llm.openai_base_url}" is not a valid URL'
            )

    if llm.max_tokens <= 0:
        raise ConfigurationError("OPENAI_MAX_TOKENS must be a positive number")

    if llm.temperature < 0 or llm.temperature > 2:
        raise ConfigurationError("OPENAI_TEMPERATURE must be between 0 and 2")

    search = config.search
    if search.max_results <= 0:
        raise ConfigurationError("SEARCH_MAX_RESULTS must be a positive number")
    if search.retry_attempts < 1:
        raise ConfigurationError("SEARCH_RETRY_ATTEMPTS must be at least 1")
    if search.retry_base_delay < 0:
        raise ConfigurationError("SEARCH_RETRY_BASE_DELAY cannot be negative")
    if search.excerpt_chars <= 0:
        raise ConfigurationError("excerpt_chars must be a positive number")
    if search.max_conversations < 0:
        raise ConfigurationError("max_conversations cannot be negative")
