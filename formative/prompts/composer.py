"""Context message composer using Jinja2 templates.

Renders a stage's context template with the stage inputs (payload merged
with upstream stage outputs). The system prompt is never rendered; it is
passed to the model as-is.
"""

import json
from typing import Any, Optional

from jinja2 import BaseLoader, Environment, TemplateError

from formative.stages.schemas import STAGE_NAMES, StageKind
from .registry import PromptRegistry, get_prompt_registry


def _pretty_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


class ContextComposer:
    """Composes per-call context messages from templates and stage inputs.

    Usage:
        composer = ContextComposer()
        message = composer.compose(StageKind.RISK_ANALYSIS, {"profile": {...}})
    """

    def __init__(self, registry: Optional[PromptRegistry] = None):
        self.registry = registry or get_prompt_registry()

        self.env = Environment(
            loader=BaseLoader(),
            autoescape=False,  # markdown, not HTML
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["pretty_json"] = _pretty_json
        self.env.filters["bullets"] = lambda items: "\n".join(f"- {item}" for item in items)

    def compose(self, kind: StageKind, inputs: dict[str, Any]) -> str:
        """Render the context message for a stage.

        Args:
            kind: Stage being generated
            inputs: Template variables (see executor.context_broker)

        Returns:
            Rendered context message

        Raises:
            UnknownStage: If the stage has no context template
            ValueError: If the template fails to render
        """
        template_str = self.registry.get_context_template(kind)
        context = {"stage_name": STAGE_NAMES[kind], **inputs}

        try:
            rendered = self.env.from_string(template_str).render(**context)
        except TemplateError as e:
            raise ValueError(f"Template rendering error for {kind.value}: {e}") from e

        return rendered.strip()
