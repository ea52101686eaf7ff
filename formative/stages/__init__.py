"""Workflow stages and the progression engine.

- schemas.py - StageKind, StageStatus, Stage, WorkflowState
- engine.py  - StageEngine (initialize, can_enter, mark_completed, reset, current_stage)
"""

from .schemas import (
    STAGE_NAMES,
    STAGE_ORDER,
    Stage,
    StageKind,
    StageRef,
    StageStatus,
    WorkflowState,
)
from .engine import StageEngine, resolve_kind

__all__ = [
    "STAGE_NAMES",
    "STAGE_ORDER",
    "Stage",
    "StageKind",
    "StageRef",
    "StageStatus",
    "WorkflowState",
    "StageEngine",
    "resolve_kind",
]
