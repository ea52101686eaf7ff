"""Cross-stage input assembly.

Each stage's context template reads the stored outputs of the stages it
depends on. The broker picks those outputs, reduces them to the template
variables, and lets the caller's payload override any of them (a user who
picked a different approach or stack in the UI sends it in the payload).

Diagrams are not threaded into the document stage; they are inserted into
the finished document afterwards.
"""

import logging
from typing import Any, Optional

from formative.stages.schemas import StageKind

logger = logging.getLogger(__name__)

STAGE_UPSTREAM: dict[StageKind, tuple[StageKind, ...]] = {
    StageKind.REQUIREMENT_COLLECTION: (),
    StageKind.RISK_ANALYSIS: (StageKind.REQUIREMENT_COLLECTION,),
    StageKind.TECH_STACK: (StageKind.REQUIREMENT_COLLECTION, StageKind.RISK_ANALYSIS),
    StageKind.MVP_BOUNDARY: (StageKind.REQUIREMENT_COLLECTION, StageKind.TECH_STACK),
    StageKind.DIAGRAM_DESIGN: (
        StageKind.REQUIREMENT_COLLECTION,
        StageKind.TECH_STACK,
        StageKind.MVP_BOUNDARY,
    ),
    StageKind.DOCUMENT_GENERATION: (
        StageKind.REQUIREMENT_COLLECTION,
        StageKind.RISK_ANALYSIS,
        StageKind.TECH_STACK,
        StageKind.MVP_BOUNDARY,
    ),
}


def _pick_recommended(items: list[dict]) -> Optional[dict]:
    """First item flagged recommended, else the first item."""
    for item in items:
        if item.get("recommended"):
            return item
    return items[0] if items else None


def _describe_approach(approach: dict) -> str:
    title = approach.get("label") or approach.get("name", "")
    description = approach.get("description", "")
    return f"{title}: {description}" if description else title


def build_stage_inputs(
    kind: StageKind,
    outputs: dict[StageKind, dict[str, Any]],
    payload: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build the template variables for a stage.

    Args:
        kind: Stage about to be generated
        outputs: Stored outputs of completed stages, keyed by kind
        payload: Caller inputs; keys here win over derived values

    Returns:
        Dict of template variables (profile, risk_approach, tech_stack, ...)
    """
    upstream = STAGE_UPSTREAM[kind]
    inputs: dict[str, Any] = {}

    requirements = outputs.get(StageKind.REQUIREMENT_COLLECTION)
    # The requirement stage reads back its own partial profile between turns
    own_profile = kind == StageKind.REQUIREMENT_COLLECTION
    if requirements and (own_profile or StageKind.REQUIREMENT_COLLECTION in upstream):
        inputs["profile"] = requirements.get("extracted") or {}

    risk = outputs.get(StageKind.RISK_ANALYSIS)
    if StageKind.RISK_ANALYSIS in upstream and risk:
        approach = _pick_recommended(risk.get("approaches") or [])
        if approach:
            inputs["risk_approach"] = _describe_approach(approach)

    tech = outputs.get(StageKind.TECH_STACK)
    if StageKind.TECH_STACK in upstream and tech:
        option = _pick_recommended(tech.get("options") or [])
        if option:
            inputs["tech_stack"] = option

    mvp = outputs.get(StageKind.MVP_BOUNDARY)
    if StageKind.MVP_BOUNDARY in upstream and mvp:
        inputs["mvp_boundary"] = mvp
        inputs["mvp_features"] = [f.get("name", "") for f in mvp.get("mvpFeatures") or []]

    if payload:
        inputs.update(payload)

    missing = [k for k in upstream if k not in outputs]
    if missing:
        logger.warning(
            f"[{kind.value}] Upstream outputs missing: {[k.value for k in missing]}"
        )

    inputs.setdefault("profile", {})
    return inputs
