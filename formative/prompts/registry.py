"""Prompt registry: system prompts and context templates per stage.

Layout:
- system/<stage>.md         - system prompt sent verbatim to the model
- context/<stage>.md.j2     - Jinja2 template for the per-call context message

Both are read once and cached; lookups are plain dict reads. Templates are
not mutated after load, so the registry is shared across sessions without
locking.
"""

import logging
from pathlib import Path
from typing import Optional

from formative.errors import UnknownStage
from formative.stages.schemas import STAGE_ORDER, StageKind

logger = logging.getLogger(__name__)


class PromptRegistry:
    """Loads and serves stage prompts."""

    def __init__(
        self,
        system_dir: Optional[Path] = None,
        context_dir: Optional[Path] = None,
    ):
        base_dir = Path(__file__).parent

        self.system_dir = system_dir or base_dir / "system"
        self.context_dir = context_dir or base_dir / "context"

        self._system_prompts: dict[str, str] = {}
        self._context_templates: dict[str, str] = {}

        self._load()

    def _load(self) -> None:
        if not self.system_dir.exists():
            logger.warning(f"System prompt directory not found: {self.system_dir}")
        else:
            for prompt_file in sorted(self.system_dir.glob("*.md")):
                self._system_prompts[prompt_file.stem] = prompt_file.read_text(encoding="utf-8").strip()

        if not self.context_dir.exists():
            logger.warning(f"Context template directory not found: {self.context_dir}")
        else:
            for template_file in sorted(self.context_dir.glob("*.md.j2")):
                stage_name = template_file.name[: -len(".md.j2")]
                self._context_templates[stage_name] = template_file.read_text(encoding="utf-8")

        logger.info(
            f"PromptRegistry: loaded {len(self._system_prompts)} system prompts, "
            f"{len(self._context_templates)} context templates"
        )

    def resolve(self, kind: StageKind) -> str:
        """Return the system prompt for a stage.

        Raises:
            UnknownStage: If no system prompt is registered for the stage
        """
        prompt = self._system_prompts.get(kind.value)
        if prompt is None:
            raise UnknownStage(f"No system prompt registered for stage '{kind.value}'")
        return prompt

    def get_context_template(self, kind: StageKind) -> str:
        """Return the raw context template for a stage.

        Raises:
            UnknownStage: If no context template is registered for the stage
        """
        template = self._context_templates.get(kind.value)
        if template is None:
            raise UnknownStage(f"No context template registered for stage '{kind.value}'")
        return template

    def validate(self) -> None:
        """Check every stage has both prompts. Called at startup.

        Raises:
            UnknownStage: Listing every stage with a missing prompt or template
        """
        missing = []
        for kind in STAGE_ORDER:
            if kind.value not in self._system_prompts:
                missing.append(f"system/{kind.value}.md")
            if kind.value not in self._context_templates:
                missing.append(f"context/{kind.value}.md.j2")
        if missing:
            raise UnknownStage(f"Missing prompt files: {', '.join(missing)}")

    def list_prompts(self) -> list[str]:
        return list(self._system_prompts.keys())

    def count(self) -> int:
        return len(self._system_prompts)

    def reload(self) -> None:
        """Reload all prompts from disk."""
        self._system_prompts.clear()
        self._context_templates.clear()
        self._load()


# Global singleton instance
_registry: Optional[PromptRegistry] = None


def get_prompt_registry() -> PromptRegistry:
    """Get the global PromptRegistry singleton."""
    global _registry
    if _registry is None:
        _registry = PromptRegistry()
    return _registry
