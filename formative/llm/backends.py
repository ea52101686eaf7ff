"""LLM backend abstraction for multi-provider support.

Provides a unified interface for one blocking completion call against
different providers, with a consistent result type.

Each backend handles provider-specific concerns:
- Client creation and timeout configuration
- Request shape and response parsing
- Token counting from provider usage data
- Translating SDK / transport exceptions into ProviderUnavailable or LLMTimeout

Backends never retry. The orchestrator owns retry policy.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from formative.errors import LLMTimeout, ProviderUnavailable

logger = logging.getLogger(__name__)

# Connect timeout is capped separately so a dead host fails fast
MAX_CONNECT_TIMEOUT_S = 10.0

# Anthropic requires max_tokens on every request
ANTHROPIC_DEFAULT_MAX_TOKENS = 4096


@dataclass
class LLMCallResult:
    """Normalized response from any LLM backend."""

    content: str
    model_id: str
    input_tokens: int
    output_tokens: int
    duration_ms: int


def _timeout(timeout_s: float) -> httpx.Timeout:
    # Per-phase limits (read, write, pool); httpx has no total-call deadline
    return httpx.Timeout(timeout_s, connect=min(MAX_CONNECT_TIMEOUT_S, timeout_s))


@runtime_checkable
class ModelBackend(Protocol):
    """Protocol for LLM backend implementations."""

    @property
    def model_id(self) -> str: ...

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        timeout_s: float,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        label: str = "",
    ) -> LLMCallResult: ...


class OpenAICompatibleBackend:
    """Backend for providers exposing the OpenAI chat completions API.

    Covers deepseek, qwen (dashscope compatible mode), ollama, mimo and
    openai itself. Talks to `{base_url}/chat/completions` over httpx.
    """

    def __init__(
        self,
        model_id: str,
        base_url: str,
        api_key: str = "",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._model_id = model_id
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._transport = transport

    @property
    def model_id(self) -> str:
        return self._model_id

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        timeout_s: float,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        label: str = "",
    ) -> LLMCallResult:
        """Execute one chat completion request."""
        payload: dict[str, Any] = {
            "model": self._model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}/chat/completions"
        logger.info(
            f"[{label}] Chat completion: model={self._model_id}, "
            f"max_tokens={max_tokens or 'default'}, timeout={timeout_s:.1f}s"
        )

        start_time = time.time()
        try:
            with httpx.Client(timeout=_timeout(timeout_s), transport=self._transport) as client:
                response = client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as e:
            raise LLMTimeout(f"[{label}] {self._model_id} timed out after {timeout_s:.1f}s") from e
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(
                f"[{label}] {self._model_id} returned HTTP {e.response.status_code}: "
                f"{e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"[{label}] Transport error calling {url}: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"[{label}] Non-JSON response from {url}: {e}") from e

        duration_ms = int((time.time() - start_time) * 1000)

        try:
            content = body["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderUnavailable(
                f"[{label}] Malformed completion body from {self._model_id}: {e}"
            ) from e

        usage = body.get("usage") or {}
        return LLMCallResult(
            content=content,
            model_id=body.get("model") or self._model_id,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
            duration_ms=duration_ms,
        )


class AnthropicBackend:
    """Anthropic Claude backend via the anthropic SDK."""

    def __init__(
        self,
        model_id: str = "claude-sonnet-4-6",
        api_key: str = "",
        base_url: Optional[str] = None,
        default_max_tokens: int = ANTHROPIC_DEFAULT_MAX_TOKENS,
    ):
        self._model_id = model_id
        self.api_key = api_key
        self.base_url = base_url
        self.default_max_tokens = default_max_tokens

    @property
    def model_id(self) -> str:
        return self._model_id

    def execute_sync(
        self,
        system_prompt: str,
        user_message: str,
        *,
        timeout_s: float,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        label: str = "",
    ) -> LLMCallResult:
        """Execute a synchronous (non-streaming) Anthropic call."""
        import anthropic

        client = anthropic.Anthropic(
            api_key=self.api_key or None,
            base_url=self.base_url,
            timeout=_timeout(timeout_s),
            max_retries=0,
        )

        kwargs: dict[str, Any] = {
            "model": self._model_id,
            "max_tokens": max_tokens or self.default_max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_message}],
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        logger.info(
            f"[{label}] Anthropic sync: model={self._model_id}, "
            f"max_tokens={kwargs['max_tokens']}, timeout={timeout_s:.1f}s"
        )

        start_time = time.time()
        try:
            response = client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise LLMTimeout(f"[{label}] {self._model_id} timed out after {timeout_s:.1f}s") from e
        except anthropic.APIError as e:
            raise ProviderUnavailable(f"[{label}] Anthropic API error: {e}") from e

        duration_ms = int((time.time() - start_time) * 1000)

        raw_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                raw_text += block.text

        return LLMCallResult(
            content=raw_text,
            model_id=self._model_id,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            duration_ms=duration_ms,
        )
