"""Executor-side schemas for stage generation requests and results.

Both are transient: built per run_stage call and never persisted. What
gets persisted is the WorkflowState and each stage's data (completed
stages, plus a partial requirement profile while questions remain).
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from formative.errors import ErrorKind
from formative.stages.schemas import StageKind


class GenerationRequest(BaseModel):
    """One request to generate a stage's structured result."""

    stage: StageKind
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Caller inputs; override upstream outputs of the same name",
    )


class GenerationResult(BaseModel):
    """Outcome of one run_stage call."""

    success: bool
    stage: Optional[StageKind] = None
    data: Optional[dict[str, Any]] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    attempts: int = Field(default=0, description="LLM calls made, including retries")
    needs_more_input: bool = Field(
        default=False,
        description="Valid result, but the stage stays ACTIVE until the user answers",
    )

    @classmethod
    def ok(
        cls,
        stage: StageKind,
        data: dict[str, Any],
        attempts: int,
        needs_more_input: bool = False,
    ) -> "GenerationResult":
        return cls(
            success=True,
            stage=stage,
            data=data,
            attempts=attempts,
            needs_more_input=needs_more_input,
        )

    @classmethod
    def failed(
        cls,
        error_kind: ErrorKind,
        message: str,
        stage: Optional[StageKind] = None,
        attempts: int = 0,
    ) -> "GenerationResult":
        return cls(
            success=False,
            stage=stage,
            error_kind=error_kind,
            message=message,
            attempts=attempts,
        )

    def to_response(self) -> dict[str, Any]:
        """Wire shape: {success, data} or {success, errorKind, message}.

        A partial requirement result adds `needsMoreInput: true`.
        """
        if self.success:
            body: dict[str, Any] = {"success": True, "data": self.data}
            if self.needs_more_input:
                body["needsMoreInput"] = True
            return body
        return {
            "success": False,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
        }
