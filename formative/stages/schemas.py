"""Pydantic schemas for workflow stages.

A WorkflowState is an immutable value. StageEngine operations take a state
and return a new one; nothing in the package keeps a shared "current stage".
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class StageKind(str, Enum):
    """The six workflow stages, in workflow order."""

    REQUIREMENT_COLLECTION = "requirement_collection"
    RISK_ANALYSIS = "risk_analysis"
    TECH_STACK = "tech_stack"
    MVP_BOUNDARY = "mvp_boundary"
    DIAGRAM_DESIGN = "diagram_design"
    DOCUMENT_GENERATION = "document_generation"

    @property
    def ordinal(self) -> int:
        """1-based position in the workflow."""
        return STAGE_ORDER.index(self) + 1


STAGE_ORDER: tuple[StageKind, ...] = tuple(StageKind)

STAGE_NAMES: dict[StageKind, str] = {
    StageKind.REQUIREMENT_COLLECTION: "Requirement Collection",
    StageKind.RISK_ANALYSIS: "Risk Analysis",
    StageKind.TECH_STACK: "Tech Stack Selection",
    StageKind.MVP_BOUNDARY: "MVP Boundary",
    StageKind.DIAGRAM_DESIGN: "Diagram Design",
    StageKind.DOCUMENT_GENERATION: "Document Generation",
}

# A stage can be referenced by kind, kind value ("risk_analysis") or ordinal id
StageRef = Union[StageKind, str, int]


class StageStatus(str, Enum):
    LOCKED = "locked"
    ACTIVE = "active"
    COMPLETED = "completed"


class Stage(BaseModel):
    """One step of the workflow."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1, description="Stable ordinal, 1..N in kind order")
    kind: StageKind
    status: StageStatus = StageStatus.LOCKED

    @property
    def name(self) -> str:
        return STAGE_NAMES[self.kind]


class WorkflowState(BaseModel):
    """Ordered stages plus the pointer to the ACTIVE one.

    `active_stage_id` is None only when every stage is COMPLETED.
    """

    model_config = ConfigDict(frozen=True)

    stages: tuple[Stage, ...]
    active_stage_id: Optional[int] = None

    def by_id(self, stage_id: int) -> Optional[Stage]:
        if 1 <= stage_id <= len(self.stages):
            return self.stages[stage_id - 1]
        return None

    def by_kind(self, kind: StageKind) -> Stage:
        return self.stages[kind.ordinal - 1]

    def statuses(self) -> dict[str, str]:
        """Kind value -> status value, for logging and API responses."""
        return {s.kind.value: s.status.value for s in self.stages}
