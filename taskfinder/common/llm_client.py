"""
Provider-agnostic chat client for the task finder.

Supports OpenAI (and OpenAI-compatible endpoints via base_url), Anthropic,
and Google Gemini behind one ``complete(messages, max_tokens, temperature)``
call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import LLMUnavailableError

logger = logging.getLogger("taskfinder.common.llm_client")


@dataclass(frozen=True)
class Completion:
    """Text reply from a chat call"""
    content: str
    tokens_used: int = 0


class LLMClient:
    """Unified async chat client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        openai_api_key: Optional[str] = None,
        openai_base_url: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.timeout = timeout
        self._client = None

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(api_key=openai_api_key, base_url=openai_base_url or None)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 512,
        temperature: float = 0.3,
    ) -> Completion:
        if not self.is_available:
            raise LLMUnavailableError("LLM client is not available")

        if self.provider == "openai":
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.timeout,
            )
            content = (response.choices[0].message.content or "") if response.choices else ""
            usage = getattr(response, "usage", None)
            return Completion(
                content=content.strip(),
                tokens_used=getattr(usage, "total_tokens", 0) or 0,
            )

        if self.provider == "anthropic":
            system, chat = _split_system(messages)
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=chat,
                timeout=self.timeout,
                **kwargs,
            )
            usage = getattr(response, "usage", None)
            tokens = (getattr(usage, "input_tokens", 0) or 0) + (getattr(usage, "output_tokens", 0) or 0)
            return Completion(content=response.content[0].text.strip(), tokens_used=tokens)

        if self.provider == "google":
            import hashlib

            system, chat = _split_system(messages)
            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            model = self._google_models[cache_key]
            contents = [
                {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
                for m in chat
            ]
            response = await model.generate_content_async(
                contents,
                generation_config={"max_output_tokens": max_tokens, "temperature": temperature},
                request_options={"timeout": self.timeout},
            )
            return Completion(content=response.text.strip())

        raise LLMUnavailableError(f"Unsupported LLM provider: {self.provider}")


def _split_system(messages: List[Dict[str, str]]) -> tuple[Optional[str], List[Dict[str, str]]]:
    """Separate system turns (joined) from user/assistant turns."""
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    chat = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") != "system"
    ]
    return ("\n\n".join(system_parts) or None), chat
