"""Environment configuration for the LLM provider and storage.

Settings are read from environment variables once and validated with
pydantic. Anything invalid raises ConfigurationError listing every problem,
so a bad deployment fails at startup instead of on the first stage run.

Variables:
    LLM_PROVIDER            deepseek | qwen | ollama | mimo | openai | anthropic
    LLM_MODEL               model name passed to the provider
    LLM_API_KEY             required except for ollama
    LLM_BASE_URL            overrides the provider default
    LLM_TIMEOUT_MS          default per-call timeout
    FORMATIVE_DATABASE_PATH sqlite file for sessions (empty = in-memory store)
"""

import logging
import os
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from formative.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000


class LLMProvider(str, Enum):
    DEEPSEEK = "deepseek"
    QWEN = "qwen"
    OLLAMA = "ollama"
    MIMO = "mimo"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


PROVIDER_BASE_URLS: dict[LLMProvider, str] = {
    LLMProvider.DEEPSEEK: "https://api.deepseek.com/v1",
    LLMProvider.QWEN: "https://dashscope.aliyuncs.com/compatible-mode/v1",
    LLMProvider.OLLAMA: "http://localhost:11434/v1",
    LLMProvider.MIMO: "https://api.mimo.com/v1",
    LLMProvider.OPENAI: "https://api.openai.com/v1",
    LLMProvider.ANTHROPIC: "https://api.anthropic.com",
}

PROVIDER_DEFAULT_MODELS: dict[LLMProvider, str] = {
    LLMProvider.DEEPSEEK: "deepseek-chat",
    LLMProvider.QWEN: "qwen-plus",
    LLMProvider.OLLAMA: "llama3.1",
    LLMProvider.MIMO: "mimo-v2-flash",
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.ANTHROPIC: "claude-sonnet-4-6",
}


class LLMSettings(BaseModel):
    """Validated provider configuration."""

    provider: LLMProvider = LLMProvider.DEEPSEEK
    model: Optional[str] = Field(
        default=None,
        description="Model name; provider default when unset",
    )
    api_key: str = ""
    base_url: Optional[str] = None
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    database_path: str = ""

    @model_validator(mode="after")
    def _check_api_key(self) -> "LLMSettings":
        # Ollama runs locally and ignores the key
        if self.provider != LLMProvider.OLLAMA and not self.api_key:
            raise ValueError(f"LLM_API_KEY is required for provider '{self.provider.value}'")
        if self.base_url and not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"LLM_BASE_URL must be an http(s) URL, got '{self.base_url}'")
        return self

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or PROVIDER_BASE_URLS[self.provider]).rstrip("/")

    @property
    def resolved_model(self) -> str:
        return self.model or PROVIDER_DEFAULT_MODELS[self.provider]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> LLMSettings:
    """Build LLMSettings from environment variables.

    Raises:
        ConfigurationError: If any variable is missing or invalid
    """
    env = os.environ if environ is None else environ

    raw: dict[str, object] = {
        "provider": env.get("LLM_PROVIDER", LLMProvider.DEEPSEEK.value),
        "api_key": env.get("LLM_API_KEY", ""),
        "database_path": env.get("FORMATIVE_DATABASE_PATH", ""),
    }
    if env.get("LLM_MODEL"):
        raw["model"] = env["LLM_MODEL"]
    if env.get("LLM_BASE_URL"):
        raw["base_url"] = env["LLM_BASE_URL"]
    if env.get("LLM_TIMEOUT_MS"):
        raw["timeout_ms"] = env["LLM_TIMEOUT_MS"]

    try:
        settings = LLMSettings.model_validate(raw)
    except ValidationError as e:
        problems = [
            f"  - {'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            "Invalid LLM configuration:\n" + "\n".join(problems)
        ) from e

    logger.info(
        f"LLM settings: provider={settings.provider.value}, "
        f"model={settings.resolved_model}, base_url={settings.resolved_base_url}, "
        f"timeout_ms={settings.timeout_ms}"
    )
    return settings


_settings: Optional[LLMSettings] = None


def get_settings() -> LLMSettings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
