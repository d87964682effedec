"""
Prompt Templates

The three prompts the search pipeline sends to the language model, with
``{{variable}}`` placeholders. Built-in defaults can be overridden per type
by a ``<type>.txt`` file in a prompts directory.

A template with a placeholder that has no value is a configuration error
and is rejected before anything is sent.
"""

import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from ..errors import PromptTemplateError


class PromptType(str, Enum):
    """Named prompt templates"""
    SEMANTIC_KEYWORDS = "semantic-keywords"
    DATE_ANALYSIS = "date-analysis"
    DOCUMENT_SELECTION = "document-selection"


SEMANTIC_KEYWORDS_TEMPLATE = """Extract 5-10 key semantic keywords and concepts from this task search query. Return only the keywords separated by commas, no explanations.

Query: "{{query}}"

Keywords:"""


DATE_ANALYSIS_TEMPLATE = """You interpret date expressions for a task search.

Current date and time: {{currentDate}}
Date expression: "{{dateInput}}"

Resolve the expression to a single point in time relative to the current date.
Respond with a valid JSON object only:
{"targetDate": "ISO-8601 datetime", "confidence": 0.0-1.0, "interpretation": "one sentence"}"""


DOCUMENT_SELECTION_TEMPLATE = """You are an intelligent task search assistant. Given a search query and a list of documents, select the most relevant documents and score them.

Search Query: "{{query}}"
{{dateContext}}

Documents:
{{documents}}

Instructions:
1. Analyze each document for relevance to the search query
2. Consider semantic meaning, not just keyword matching
3. Score each relevant document from 0.0 to 1.0 (1.0 = perfect match)
4. Select up to {{maxResults}} most relevant documents
5. Provide a brief justification for each selection

Respond with a JSON array of selected documents in this exact format:
[
  {"documentId": "document_id", "relevanceScore": 0.95, "justification": "Brief explanation"}
]

Only return the JSON array, no other text."""


DEFAULT_TEMPLATES: Dict[PromptType, str] = {
    PromptType.SEMANTIC_KEYWORDS: SEMANTIC_KEYWORDS_TEMPLATE,
    PromptType.DATE_ANALYSIS: DATE_ANALYSIS_TEMPLATE,
    PromptType.DOCUMENT_SELECTION: DOCUMENT_SELECTION_TEMPLATE,
}

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def validate_prompt(template: str) -> bool:
    """Check a template is non-empty and its ``{{`` / ``}}`` pairs balance"""
    if not isinstance(template, str) or not template.strip():
        return False
    return template.count("{{") == template.count("}}")


def format_prompt(template: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders in a single pass.

    Values are inserted verbatim, so document text that happens to contain
    braces is never mistaken for a placeholder.

    Raises:
        PromptTemplateError: invalid template, or placeholders without values
    """
    if not validate_prompt(template):
        raise PromptTemplateError("Invalid prompt template provided")

    missing = sorted({name for name in PLACEHOLDER_RE.findall(template) if name not in variables})
    if missing:
        raise PromptTemplateError(
            "Missing variables in prompt: " + ", ".join("{{%s}}" % m for m in missing)
        )

    return PLACEHOLDER_RE.sub(lambda m: str(variables[m.group(1)]), template)


class PromptManager:
    """
    Loads and caches prompt templates.

    Lookup order per type: override file in ``prompts_dir``, then the
    built-in default.
    """

    def __init__(
        self,
        prompts_dir: Optional[Union[str, Path]] = None,
        templates: Optional[Mapping[PromptType, str]] = None,
    ):
        self._prompts_dir = Path(prompts_dir) if prompts_dir else None
        self._templates = dict(DEFAULT_TEMPLATES)
        if templates:
            self._templates.update(templates)
        self._cache: Dict[PromptType, str] = {}

    def get_prompt(self, prompt_type: PromptType) -> str:
        prompt_type = PromptType(prompt_type)
        cached = self._cache.get(prompt_type)
        if cached is not None:
            return cached

        template = None
        if self._prompts_dir is not None:
            path = self._prompts_dir / f"{prompt_type.value}.txt"
            if path.exists():
                try:
                    template = path.read_text(encoding="utf-8")
                except OSError as e:
                    raise PromptTemplateError(
                        f"Failed to load prompt template '{prompt_type.value}': {e}"
                    ) from e

        if template is None:
            template = self._templates.get(prompt_type)
        if template is None:
            raise PromptTemplateError(f"No template for prompt type '{prompt_type.value}'")

        self._cache[prompt_type] = template
        return template

    def render(self, prompt_type: PromptType, **variables: Any) -> str:
        """Fetch a template and fill it in one step"""
        return format_prompt(self.get_prompt(prompt_type), variables)

    def clear_cache(self) -> None:
        self._cache.clear()
