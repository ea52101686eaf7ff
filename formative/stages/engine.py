"""Stage progression engine.

Enforces the LOCKED -> ACTIVE -> COMPLETED progression over the fixed
stage order: no skipping, no parallel active stages, no reverting a
completed stage except through reset().

The engine holds no workflow state. Every operation takes a WorkflowState
and, for commands, returns a new one; a failed command leaves the caller's
state untouched because states are immutable.
"""

import logging
from typing import Optional

from formative.errors import InvalidTransition, UnknownStage
from formative.stages.schemas import (
    STAGE_ORDER,
    Stage,
    StageKind,
    StageRef,
    StageStatus,
    WorkflowState,
)

logger = logging.getLogger(__name__)


def resolve_kind(ref: StageRef) -> StageKind:
    """Resolve a stage reference to its StageKind.

    Raises:
        UnknownStage: If the reference matches no stage
    """
    if isinstance(ref, StageKind):
        return ref
    # bool is an int subclass; True is not a stage id
    if isinstance(ref, int) and not isinstance(ref, bool):
        if 1 <= ref <= len(STAGE_ORDER):
            return STAGE_ORDER[ref - 1]
        raise UnknownStage(f"No stage with id {ref} (valid: 1..{len(STAGE_ORDER)})")
    if isinstance(ref, str):
        key = ref.strip().lower()
        for kind in STAGE_ORDER:
            if kind.value == key:
                return kind
    raise UnknownStage(f"Unknown stage: {ref!r}")


class StageEngine:
    """Queries and transitions over WorkflowState values."""

    def initialize(self) -> WorkflowState:
        """Create the initial state: stage 1 ACTIVE, the rest LOCKED."""
        stages = tuple(
            Stage(
                id=i + 1,
                kind=kind,
                status=StageStatus.ACTIVE if i == 0 else StageStatus.LOCKED,
            )
            for i, kind in enumerate(STAGE_ORDER)
        )
        return WorkflowState(stages=stages, active_stage_id=1)

    def reset(self, state: Optional[WorkflowState] = None) -> WorkflowState:
        """Discard `state` and return a fresh initial state. Idempotent."""
        if state is not None:
            logger.info(f"Resetting workflow (was: {state.statuses()})")
        return self.initialize()

    def stage(self, state: WorkflowState, ref: StageRef) -> Stage:
        return state.by_kind(resolve_kind(ref))

    def can_enter(self, state: WorkflowState, ref: StageRef) -> bool:
        """True iff the stage is ACTIVE or COMPLETED (completed stages stay viewable)."""
        return self.stage(state, ref).status in (StageStatus.ACTIVE, StageStatus.COMPLETED)

    def is_active(self, state: WorkflowState, ref: StageRef) -> bool:
        return self.stage(state, ref).status == StageStatus.ACTIVE

    def is_finished(self, state: WorkflowState) -> bool:
        return all(s.status == StageStatus.COMPLETED for s in state.stages)

    def completed_kinds(self, state: WorkflowState) -> list[StageKind]:
        return [s.kind for s in state.stages if s.status == StageStatus.COMPLETED]

    def current_stage(self, state: WorkflowState) -> Stage:
        """The ACTIVE stage, or the last stage once the workflow is finished."""
        if state.active_stage_id is not None:
            active = state.by_id(state.active_stage_id)
            if active is not None:
                return active
        return state.stages[-1]

    def mark_completed(self, state: WorkflowState, ref: StageRef) -> WorkflowState:
        """Complete the ACTIVE stage and activate the next one, if any.

        Raises:
            InvalidTransition: If the stage is not currently ACTIVE
        """
        target = self.stage(state, ref)
        if target.status != StageStatus.ACTIVE:
            raise InvalidTransition(
                f"Cannot complete stage {target.id} ({target.kind.value}): "
                f"status is {target.status.value}, expected active"
            )

        next_id = target.id + 1 if target.id < len(state.stages) else None
        stages = []
        for s in state.stages:
            if s.id == target.id:
                stages.append(s.model_copy(update={"status": StageStatus.COMPLETED}))
            elif s.id == next_id:
                stages.append(s.model_copy(update={"status": StageStatus.ACTIVE}))
            else:
                stages.append(s)

        new_state = WorkflowState(stages=tuple(stages), active_stage_id=next_id)
        if next_id is None:
            logger.info(f"Stage {target.kind.value} completed; workflow finished")
        else:
            logger.info(
                f"Stage {target.kind.value} completed; "
                f"{new_state.stages[next_id - 1].kind.value} is now active"
            )
        return new_state
