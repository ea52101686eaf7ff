"""Model backend factory.

Resolves configured providers to the appropriate backend implementation.
"""

import logging
from typing import Union

from formative.config import LLMProvider, LLMSettings
from formative.llm.backends import AnthropicBackend, OpenAICompatibleBackend

logger = logging.getLogger(__name__)


def get_backend(settings: LLMSettings) -> Union[AnthropicBackend, OpenAICompatibleBackend]:
    """Get the backend for the configured provider.

    Args:
        settings: Validated LLM settings

    Returns:
        Backend instance for the provider
    """
    if settings.provider == LLMProvider.ANTHROPIC:
        backend = AnthropicBackend(
            model_id=settings.resolved_model,
            api_key=settings.api_key,
            base_url=settings.base_url,
        )
    else:
        backend = OpenAICompatibleBackend(
            model_id=settings.resolved_model,
            base_url=settings.resolved_base_url,
            api_key=settings.api_key,
        )

    logger.info(f"Using {type(backend).__name__} for provider '{settings.provider.value}'")
    return backend
