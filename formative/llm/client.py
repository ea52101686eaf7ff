"""LLM client: one blocking call, classified failures, no retry.

`invoke()` turns a system prompt plus a context message into raw model
text. Every failure surfaces as one of:

- ProviderUnavailable: transport or provider error
- LLMTimeout: no response within timeout_ms
- EmptyResponse: the model answered with nothing but whitespace

Retrying is the caller's decision (see executor.orchestrator).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from formative.config import DEFAULT_TIMEOUT_MS, LLMSettings
from formative.errors import EmptyResponse, LLMError, LLMTimeout, ProviderUnavailable
from formative.llm.backends import LLMCallResult, ModelBackend
from formative.llm.factory import get_backend
from formative.llm.tokens import log_token_usage

logger = logging.getLogger(__name__)


@dataclass
class InvokeOptions:
    """Per-call options. `max_output_tokens=None` means the provider default.

    `timeout_ms` bounds each network phase of the call (connect, each read,
    each write), not the wall-clock total. A provider that trickles bytes,
    never pausing longer than the timeout, can exceed it in total.
    Connect is additionally capped at MAX_CONNECT_TIMEOUT_S.
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_output_tokens: Optional[int] = None
    temperature: Optional[float] = None


class LLMClient:
    """Wraps a ModelBackend with error classification."""

    def __init__(self, backend: ModelBackend, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.backend = backend
        self.default_timeout_ms = default_timeout_ms

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "LLMClient":
        return cls(get_backend(settings), default_timeout_ms=settings.timeout_ms)

    def invoke(
        self,
        system_prompt: str,
        context_message: str,
        options: Optional[InvokeOptions] = None,
        label: str = "",
    ) -> str:
        """Call the model and return its raw text."""
        return self.invoke_with_metadata(system_prompt, context_message, options, label).content

    def invoke_with_metadata(
        self,
        system_prompt: str,
        context_message: str,
        options: Optional[InvokeOptions] = None,
        label: str = "",
    ) -> LLMCallResult:
        """Call the model and return the full call result.

        Raises:
            ProviderUnavailable: On transport or provider errors
            LLMTimeout: If no response arrives within the timeout
            EmptyResponse: If the response text is empty or whitespace
        """
        options = options or InvokeOptions(timeout_ms=self.default_timeout_ms)
        label = label or self.backend.model_id
        timeout_s = options.timeout_ms / 1000

        try:
            result = self.backend.execute_sync(
                system_prompt,
                context_message,
                timeout_s=timeout_s,
                max_tokens=options.max_output_tokens,
                temperature=options.temperature,
                label=label,
            )
        except LLMError:
            raise
        except TimeoutError as e:
            raise LLMTimeout(f"[{label}] Timed out after {timeout_s:.1f}s: {e}") from e
        except Exception as e:
            raise ProviderUnavailable(f"[{label}] LLM call failed: {e}") from e

        if not result.content or not result.content.strip():
            raise EmptyResponse(f"[{label}] Empty response from {result.model_id}")

        logger.info(
            f"[{label}] Completed: {result.input_tokens}+{result.output_tokens} tokens, "
            f"{result.duration_ms}ms, {len(result.content):,} chars"
        )
        log_token_usage(label, system_prompt + context_message, result.content, log=logger)
        return result
