"""Post-processing for the generated development document."""

import re
from typing import Any

DIAGRAMS_HEADING = "## System Diagrams"

# Diagrams go right before the data/API design section when the model wrote one
_ANCHOR_RE = re.compile(r"^#{1,6}[^\n]*Data and API Design[^\n]*$", re.MULTILINE | re.IGNORECASE)


def _diagram_block(title: str, diagram: dict[str, Any]) -> str:
    parts = [f"### {title}", ""]
    if diagram.get("description"):
        parts.extend([diagram["description"], ""])
    parts.extend(["```mermaid", diagram.get("mermaidCode", "").strip(), "```"])
    return "\n".join(parts)


def render_diagrams_section(diagrams: dict[str, Any]) -> str:
    """Render stored diagram output as a markdown section."""
    blocks = [DIAGRAMS_HEADING]
    if diagrams.get("architectureDiagram"):
        blocks.append(_diagram_block("Architecture", diagrams["architectureDiagram"]))
    if diagrams.get("sequenceDiagram"):
        blocks.append(_diagram_block("Core Sequence", diagrams["sequenceDiagram"]))
    return "\n\n".join(blocks)


def insert_diagrams_section(document: str, diagrams: dict[str, Any]) -> str:
    """Insert the diagrams section before "Data and API Design", else append it."""
    if not diagrams:
        return document

    section = render_diagrams_section(diagrams)
    match = _ANCHOR_RE.search(document)
    if match:
        head = document[: match.start()].rstrip()
        tail = document[match.start():]
        if not head:
            return f"{section}\n\n{tail}"
        return f"{head}\n\n{section}\n\n{tail}"
    return f"{document.rstrip()}\n\n{section}\n"
