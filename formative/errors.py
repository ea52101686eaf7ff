"""Error taxonomy for the stage workflow and the LLM pipeline.

Every failure the core can surface is a WorkflowError subclass carrying an
ErrorKind. The kind is what callers see in failed GenerationResults; the
exception message is for logs.

Retry eligibility is decided by the orchestrator, using `retryable` for
transport-level failures and ExtractionError for model-output failures.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classified failure kinds exposed to callers."""

    INVALID_TRANSITION = "invalid_transition"
    UNKNOWN_STAGE = "unknown_stage"
    STAGE_NOT_ACTIVE = "stage_not_active"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    TIMEOUT = "timeout"
    EMPTY_RESPONSE = "empty_response"
    NO_STRUCTURED_VALUE_FOUND = "no_structured_value_found"
    SHAPE_MISMATCH = "shape_mismatch"
    CONFIGURATION = "configuration"


class WorkflowError(Exception):
    """Base class for all classified errors."""

    kind: ErrorKind
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransition(WorkflowError):
    """Stage machine misuse, e.g. completing a stage that is not ACTIVE."""

    kind = ErrorKind.INVALID_TRANSITION


class UnknownStage(WorkflowError):
    """A stage reference or prompt lookup that matches nothing configured."""

    kind = ErrorKind.UNKNOWN_STAGE


class StageNotActive(WorkflowError):
    """Generation requested for a stage that is locked or already completed."""

    kind = ErrorKind.STAGE_NOT_ACTIVE


class ConfigurationError(WorkflowError):
    kind = ErrorKind.CONFIGURATION


# --- LLM transport failures (transient) ---


class LLMError(WorkflowError):
    retryable = True


class ProviderUnavailable(LLMError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE


class LLMTimeout(LLMError):
    kind = ErrorKind.TIMEOUT


class EmptyResponse(LLMError):
    kind = ErrorKind.EMPTY_RESPONSE


# --- Model output failures ---


class ExtractionError(WorkflowError):
    """Model text could not be turned into a valid structured value.

    `raw_excerpt` is a bounded prefix of the model text, never the full text.
    """

    def __init__(self, message: str, raw_excerpt: str = ""):
        super().__init__(message)
        self.raw_excerpt = raw_excerpt


class NoStructuredValueFound(ExtractionError):
    kind = ErrorKind.NO_STRUCTURED_VALUE_FOUND


class ShapeMismatch(ExtractionError):
    kind = ErrorKind.SHAPE_MISMATCH

    def __init__(
        self,
        message: str,
        field: str,
        raw_excerpt: str = "",
        problems: Optional[list[str]] = None,
    ):
        super().__init__(message, raw_excerpt)
        self.field = field
        self.problems = problems or [message]
