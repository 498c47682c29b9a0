########## LLM Interface ##########
# Async completion clients for OpenRouter / Ollama plus a deterministic stub.

from __future__ import annotations

import asyncio
import json
import os
import random
import re
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional

from openai import APIError, AsyncOpenAI

from . import config
from . import prompts
from .logs import log_debug, log_warning


class CompletionError(RuntimeError):
    """Raised when the provider fails to produce a completion."""


def _ollama_reachable(base_url: str, timeout: float = 1.0) -> bool:
    """Check if the Ollama endpoint responds."""

    try:
        with urllib.request.urlopen(f"{base_url}/models", timeout=timeout) as response:
            return response.status == 200
    except (urllib.error.URLError, OSError):
        return False


class BaseCompletionClient:
    """Submit one prompt, receive text; may fail transiently."""

    async def complete(self, prompt: str) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class _OpenAICompatibleClient(BaseCompletionClient):
    """Shared chat-completion call for OpenAI-compatible endpoints."""

    provider = "openai-compatible"

    def __init__(self, base_url: str, api_key: str, model: str, extra_body: Optional[Dict[str, Any]] = None) -> None:
        self.model = model
        self.temperature = config.COMPLETION_TEMPERATURE
        self.top_p = config.COMPLETION_TOP_P
        self.max_tokens = config.COMPLETION_MAX_TOKENS
        self.extra_body = extra_body
        self.client = AsyncOpenAI(base_url=base_url, api_key=api_key, timeout=config.COMPLETION_TIMEOUT_SECONDS)

    async def complete(self, prompt: str) -> str:
        # 1 Single system + user exchange; provider errors become CompletionError. # steps
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": config.SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        log_debug("LLM", f"{self.provider} prompt:\n{prompt}")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                top_p=self.top_p,
                max_tokens=self.max_tokens,
                extra_body=self.extra_body,
            )
        except APIError as error:
            raise CompletionError(f"{self.provider} request failed: {error}") from error
        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise CompletionError(f"{self.provider} returned no content")
        log_debug("LLM", f"{self.provider} reply:\n{content}")
        return content


class OpenRouterCompletionClient(_OpenAICompatibleClient):
    """Talks to OpenRouter using OpenAI-compatible SDK."""

    provider = "openrouter"

    def __init__(self) -> None:
        api_key = config.LLM_OPENROUTER_API_KEY
        if not api_key:
            raise RuntimeError("OPENROUTER_API_KEY is not set")
        super().__init__(config.LLM_OPENROUTER_BASE_URL, api_key, config.LLM_OPENROUTER_MODEL)


class OllamaCompletionClient(_OpenAICompatibleClient):
    """Talks to a local Ollama endpoint using the OpenAI compatible client."""

    provider = "ollama"

    def __init__(self) -> None:
        base_url = config.LLM_BASE_URL
        if not _ollama_reachable(base_url):
            raise RuntimeError("Ollama is not reachable. Start it with 'ollama serve'.")
        options = dict(getattr(config, "OLLAMA_OPTIONS", {}))
        super().__init__(base_url, config.LLM_API_KEY, config.LLM_MODEL_NAME, {"options": options} if options else None)


MEMORY_ID_RE = re.compile(r"\[(m\d+)\]")


class StubCompletionClient(BaseCompletionClient):
    """Deterministic fallback used when no provider is available."""

    def __init__(self) -> None:
        self.random = random.Random(config.RANDOM_SEED)
        self.calls: List[str] = []

    async def complete(self, prompt: str) -> str:
        # 1 Answer by task marker so every caller gets a parseable reply.      # steps
        self.calls.append(prompt)
        if prompts.TASK_IMPORTANCE in prompt:
            ids = MEMORY_ID_RE.findall(prompt)
            return json.dumps([{"id": memory_id, "importance": 5} for memory_id in ids])
        if prompts.TASK_DAILY_PLAN in prompt:
            return "[]"  # planning falls back to the default day
        if prompts.TASK_REFLECTION in prompt:
            return "I have been keeping busy, and the village feels steady around me."
        if prompts.TASK_YES_NO in prompt:
            return "NO"
        if prompts.TASK_CONTINUE in prompt:
            return json.dumps({"thought": "I should keep an eye on the time.", "continue": True, "utterance": ""})
        if prompts.TASK_CHAT in prompt:
            line = self.random.choice(
                ["Good day to you, traveler.", "Aye, what can I do for you?", "Mind the step, it's loose."]
            )
            return json.dumps({"response": line, "mood": "neutral", "intent": "chat"})
        if prompts.TASK_SELF_TALK in prompt:
            return "Another day, another job."
        return "Good day."


async def complete_or_none(client: BaseCompletionClient, prompt: str, tag: str) -> Optional[str]:
    """Bounded completion call; failures are logged and become None."""

    try:
        return await asyncio.wait_for(client.complete(prompt), timeout=config.COMPLETION_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        log_warning(tag, f"completion timed out after {config.COMPLETION_TIMEOUT_SECONDS}s")
    except (CompletionError, APIError) as error:
        log_warning(tag, f"completion failed: {error}")
    except Exception as error:  # any other client fault gets the same fallback
        log_warning(tag, f"completion failed ({type(error).__name__}): {error}")
    return None


def LLMClient() -> BaseCompletionClient:  # factory mirrors prior usage
    """Return a working completion client, falling back to the stub when needed."""

    if os.getenv("HEARTHMIND_LLM_STUB", "").lower() in {"1", "true", "yes"}:
        print("[LLM] HEARTHMIND_LLM_STUB=1 -> using stub client")
        return StubCompletionClient()
    provider = config.LLM_PROVIDER.lower()
    try:
        if provider == "openrouter":
            return OpenRouterCompletionClient()
        return OllamaCompletionClient()
    except Exception as error:
        log_warning(
            "LLM",
            "Failed to initialize completion client, using stub.\n"
            f"      Provider: {provider}\n"
            "      For ollama: ensure `ollama serve` is running and `LLM_BASE_URL` is reachable.\n"
            "      For openrouter: ensure OPENROUTER_API_KEY is set.\n"
            f"      Error: {error}",
        )
        return StubCompletionClient()
