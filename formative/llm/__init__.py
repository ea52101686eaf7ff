"""LLM access: provider backends, the classified-error client, token estimates."""

from formative.llm.backends import (
    LLMCallResult,
    ModelBackend,
    AnthropicBackend,
    OpenAICompatibleBackend,
)
from formative.llm.client import InvokeOptions, LLMClient
from formative.llm.factory import get_backend
from formative.llm.tokens import estimate_tokens, format_token_count, log_token_usage

__all__ = [
    "LLMCallResult",
    "ModelBackend",
    "AnthropicBackend",
    "OpenAICompatibleBackend",
    "InvokeOptions",
    "LLMClient",
    "get_backend",
    "estimate_tokens",
    "format_token_count",
    "log_token_usage",
]
