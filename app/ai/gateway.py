"""
LLM Gateway: provider routing for report drafting and interview analysis.

Providers:
    - OpenAIProvider: chat completions through the ``openai`` SDK
    - LocalStubProvider: deterministic text, no API key (dev/test)

The provider is chosen from app config:
    LLM_PROVIDER   openai | local   (default: openai when OPENAI_API_KEY is set)
    LLM_MODEL      chat model for the openai provider

Usage:
    from app.ai.gateway import LLMGateway
    gw = LLMGateway.from_config(current_app.config)
    result = gw.chat([{"role": "user", "content": "..."}], purpose="executive_summary")
"""

import json
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from collections import Counter

logger = logging.getLogger(__name__)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    name = "base"

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(self, api_key: str):
        self.api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
            except ImportError as exc:
                raise RuntimeError("openai package not installed. Run: pip install openai") from exc
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        extra = {}
        if kwargs.get("json_mode"):
            extra["response_format"] = {"type": "json_object"}
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 2048),
            temperature=kwargs.get("temperature", 0.4),
            **extra,
        )
        choice = response.choices[0]
        return {
            "content": choice.message.content or "",
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


# ── Local Stub Provider ───────────────────────────────────────────────────────

class LocalStubProvider(LLMProvider):
    """Returns a deterministic draft built from the prompt. No API key required."""

    name = "local"

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = self._analysis(user_msg) if kwargs.get("json_mode") else self._draft(user_msg)
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _draft(user_msg: str) -> str:
        facts = [line[2:].strip() for line in user_msg.splitlines() if line.startswith("- ")]
        lines = ["Executive summary (draft generated without an AI provider)."]
        if facts:
            lines.append("")
            lines.append("Key facts collected during onboarding:")
            lines.extend(f"- {f}" for f in facts)
        lines.append("")
        lines.append("Review and complete this section before publishing.")
        return "\n".join(lines)

    @staticmethod
    def _analysis(user_msg: str) -> str:
        """Neutral interview analysis; themes are the most frequent long words."""
        words = re.findall(r"[^\W\d_]{6,}", user_msg.lower())
        themes = [w for w, _ in Counter(words).most_common(3)]
        return json.dumps({
            "sentiment": "neutral",
            "sentiment_score": 0.5,
            "themes": themes,
            "key_insights": [],
            "anonymized_summary": (
                f"Transcript of {len(user_msg.split())} words, analysed without an AI provider."
            ),
            "action_items": ["Review this interview manually."],
        })


# ── Gateway ───────────────────────────────────────────────────────────────────

class LLMGateway:
    """
    Single entry point for LLM calls: retries the configured provider with a
    short backoff and logs token usage per purpose.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(self, provider: LLMProvider, model: str | None = None):
        self.provider = provider
        self.model = model or self.DEFAULT_MODEL

    @classmethod
    def from_config(cls, config) -> "LLMGateway":
        api_key = config.get("OPENAI_API_KEY") or ""
        choice = (config.get("LLM_PROVIDER") or ("openai" if api_key else "local")).lower()
        if choice == "openai":
            if not api_key:
                logger.warning("LLM_PROVIDER=openai without OPENAI_API_KEY; using local stub")
                return cls(LocalStubProvider(), "local-stub")
            return cls(OpenAIProvider(api_key), config.get("LLM_MODEL"))
        if choice == "local":
            return cls(LocalStubProvider(), "local-stub")
        raise RuntimeError(f"Unknown LLM_PROVIDER: {choice}")

    def chat(self, messages: list, *, purpose: str = "", max_retries: int = 3, **kwargs) -> dict:
        """
        Send ``messages`` to the provider, retrying transient failures.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, provider, latency_ms}

        Raises:
            RuntimeError: when every attempt failed (the last error is chained).
        """
        last_error = None
        for attempt in range(1, max_retries + 1):
            start = time.time()
            try:
                result = self.provider.chat(messages, self.model, **kwargs)
            except RuntimeError:
                raise
            except Exception as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed (%s): %s",
                               attempt, max_retries, purpose, e)
                if attempt < max_retries:
                    threading.Event().wait(min(2 ** (attempt - 1), 4))
                continue

            result["provider"] = self.provider.name
            result["latency_ms"] = int((time.time() - start) * 1000)
            logger.info(
                "LLM call ok: purpose=%s provider=%s model=%s tokens=%d+%d latency=%dms",
                purpose, self.provider.name, result["model"],
                result["prompt_tokens"], result["completion_tokens"], result["latency_ms"],
            )
            return result

        raise RuntimeError(f"LLM call failed after {max_retries} attempts: {last_error}") from last_error
