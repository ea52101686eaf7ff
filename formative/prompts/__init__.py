"""Stage prompts.

- system/      - system prompt per stage (markdown, sent verbatim)
- context/     - Jinja2 context message template per stage
- registry.py  - PromptRegistry for loading prompts
- composer.py  - ContextComposer for rendering context templates
"""

from .registry import PromptRegistry, get_prompt_registry
from .composer import ContextComposer

__all__ = [
    "PromptRegistry",
    "get_prompt_registry",
    "ContextComposer",
]
