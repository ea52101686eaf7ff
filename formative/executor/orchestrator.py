"""Stage orchestrator: one stage run from session state to persisted result.

`run_stage()` is the single entry point for generation:

1. Load the session's WorkflowState (initialize if the session is new)
2. Reject the call unless the stage is ACTIVE (no LLM call, state untouched)
3. Resolve the system prompt and compose the context message
4. Call the model in an explicit bounded loop:
   - transient failures (provider_unavailable, timeout, empty_response)
     are retried up to max_transient_retries, with a delay
   - format failures (no_structured_value_found, shape_mismatch) are
     retried up to max_format_retries, each retry carrying every
     correction hint so far
5. On success: post-process, complete the stage, persist output and state.
   A requirement result that still lists missing fields is persisted as a
   partial profile and the stage stays ACTIVE for the next answer.
6. On failure: the stage stays ACTIVE and nothing is persisted

The LLM client and extractor never retry; every retry decision is here.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from formative.errors import (
    ErrorKind,
    ExtractionError,
    LLMError,
    NoStructuredValueFound,
    ShapeMismatch,
    StageNotActive,
    UnknownStage,
)
from formative.extraction.contracts import ContractRegistry, get_contract_registry
from formative.extraction.extractor import StructuredResponseExtractor
from formative.llm.client import InvokeOptions, LLMClient
from formative.prompts.composer import ContextComposer
from formative.prompts.registry import PromptRegistry, get_prompt_registry
from formative.stages.engine import StageEngine, resolve_kind
from formative.stages.schemas import STAGE_NAMES, StageKind, StageRef, WorkflowState
from .context_broker import build_stage_inputs
from .documents import insert_diagrams_section
from .schemas import GenerationRequest, GenerationResult
from .session_store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

MAX_TRANSIENT_RETRIES = 2
MAX_FORMAT_RETRIES = 1
RETRY_DELAYS = [2, 5]  # seconds, indexed by transient failure count


@dataclass(frozen=True)
class StageModelConfig:
    """Sampling parameters for one stage's model calls."""

    temperature: float
    max_output_tokens: int


# Extraction-style stages run cold; open-ended analysis runs warmer
STAGE_MODEL_CONFIGS: dict[StageKind, StageModelConfig] = {
    StageKind.REQUIREMENT_COLLECTION: StageModelConfig(temperature=0.1, max_output_tokens=1000),
    StageKind.RISK_ANALYSIS: StageModelConfig(temperature=0.3, max_output_tokens=1500),
    StageKind.TECH_STACK: StageModelConfig(temperature=0.3, max_output_tokens=1500),
    StageKind.MVP_BOUNDARY: StageModelConfig(temperature=0.3, max_output_tokens=1500),
    StageKind.DIAGRAM_DESIGN: StageModelConfig(temperature=0.1, max_output_tokens=2000),
    StageKind.DOCUMENT_GENERATION: StageModelConfig(temperature=0.2, max_output_tokens=4000),
}


def failure_message(kind: Optional[StageKind], error_kind: ErrorKind) -> str:
    """User-facing message for a failed stage. Never includes model text."""
    stage_name = STAGE_NAMES[kind] if kind else "Stage"
    if error_kind == ErrorKind.STAGE_NOT_ACTIVE:
        return f"{stage_name} is not available right now. Complete the earlier stages first."
    if error_kind == ErrorKind.UNKNOWN_STAGE:
        return "Unknown stage."
    if error_kind in (ErrorKind.NO_STRUCTURED_VALUE_FOUND, ErrorKind.SHAPE_MISMATCH):
        return f"{stage_name} failed: the model returned an unusable result. Please try again."
    return f"{stage_name} failed: the model service is unavailable. Please try again."


class WorkflowOrchestrator:
    """Runs stages for sessions held in a SessionStore."""

    def __init__(
        self,
        client: LLMClient,
        store: Optional[SessionStore] = None,
        *,
        prompts: Optional[PromptRegistry] = None,
        composer: Optional[ContextComposer] = None,
        extractor: Optional[StructuredResponseExtractor] = None,
        contracts: Optional[ContractRegistry] = None,
        engine: Optional[StageEngine] = None,
        max_transient_retries: int = MAX_TRANSIENT_RETRIES,
        max_format_retries: int = MAX_FORMAT_RETRIES,
        retry_delays: Sequence[float] = RETRY_DELAYS,
        timeout_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.store = store if store is not None else InMemorySessionStore()
        self.prompts = prompts or get_prompt_registry()
        self.composer = composer or ContextComposer(self.prompts)
        self.contracts = contracts or get_contract_registry()
        self.extractor = extractor or StructuredResponseExtractor(self.contracts)
        self.engine = engine or StageEngine()
        self.max_transient_retries = max_transient_retries
        self.max_format_retries = max_format_retries
        self.retry_delays = list(retry_delays) or [0]
        self.timeout_ms = timeout_ms
        self._sleep = sleep

    # --- Session queries ---

    def create_session(self) -> tuple[str, WorkflowState]:
        session_id = uuid.uuid4().hex
        state = self.engine.initialize()
        self.store.save(session_id, state)
        logger.info(f"Created session {session_id}")
        return session_id, state

    def get_state(self, session_id: str) -> WorkflowState:
        """Load a session's state, initializing unknown sessions."""
        state = self.store.load(session_id)
        if state is None:
            state = self.engine.initialize()
            self.store.save(session_id, state)
            logger.info(f"Initialized state for new session {session_id}")
        return state

    def get_outputs(self, session_id: str) -> dict[StageKind, dict[str, Any]]:
        return self.store.load_outputs(session_id)

    def get_output(self, session_id: str, stage: StageRef) -> Optional[dict[str, Any]]:
        """Stored output of a stage, or None if it has not been generated.

        Raises:
            UnknownStage: If the stage reference is invalid
            StageNotActive: If the stage is still LOCKED
        """
        kind = resolve_kind(stage)
        state = self.get_state(session_id)
        if not self.engine.can_enter(state, kind):
            raise StageNotActive(f"Stage {kind.value} is locked for session {session_id}")
        return self.store.load_outputs(session_id).get(kind)

    def reset(self, session_id: str) -> WorkflowState:
        """Drop all outputs and return the session to its initial state."""
        previous = self.store.load(session_id)
        self.store.delete(session_id)
        state = self.engine.reset(previous)
        self.store.save(session_id, state)
        return state

    # --- Generation ---

    def run(self, session_id: str, request: GenerationRequest) -> GenerationResult:
        return self.run_stage(session_id, request.stage, request.payload)

    def run_stage(
        self,
        session_id: str,
        stage: StageRef,
        payload: Optional[dict[str, Any]] = None,
    ) -> GenerationResult:
        """Generate, validate and commit one stage's result.

        Never raises for classified failures; they come back as a failed
        GenerationResult with the error kind and a stage-level message.
        """
        try:
            kind = resolve_kind(stage)
        except UnknownStage as e:
            logger.warning(f"run_stage: {e.message}")
            return GenerationResult.failed(
                ErrorKind.UNKNOWN_STAGE, failure_message(None, ErrorKind.UNKNOWN_STAGE)
            )

        state = self.get_state(session_id)
        if not self.engine.is_active(state, kind):
            status = self.engine.stage(state, kind).status.value
            logger.info(f"[{kind.value}] Rejected run for session {session_id}: stage is {status}")
            return GenerationResult.failed(
                ErrorKind.STAGE_NOT_ACTIVE,
                failure_message(kind, ErrorKind.STAGE_NOT_ACTIVE),
                stage=kind,
            )

        try:
            system_prompt = self.prompts.resolve(kind)
        except UnknownStage as e:
            logger.error(f"[{kind.value}] {e.message}")
            return GenerationResult.failed(
                ErrorKind.UNKNOWN_STAGE, failure_message(kind, ErrorKind.UNKNOWN_STAGE), stage=kind
            )

        outputs = self.store.load_outputs(session_id)
        inputs = build_stage_inputs(kind, outputs, payload)
        base_context = self.composer.compose(kind, inputs)

        config = STAGE_MODEL_CONFIGS[kind]
        options = InvokeOptions(
            timeout_ms=self.timeout_ms or self.client.default_timeout_ms,
            max_output_tokens=config.max_output_tokens,
            temperature=config.temperature,
        )

        max_attempts = 1 + self.max_transient_retries + self.max_format_retries
        transient_failures = 0
        format_failures = 0
        hints: list[str] = []
        attempt = 0

        while True:
            attempt += 1
            label = f"{kind.value} attempt {attempt}/{max_attempts}"
            context = self._with_hints(base_context, hints)

            try:
                raw = self.client.invoke(system_prompt, context, options, label=label)
                result = self.extractor.parse_for_stage(raw, kind)
                break

            except LLMError as e:
                transient_failures += 1
                if transient_failures > self.max_transient_retries:
                    logger.error(
                        f"[{label}] Giving up after {transient_failures} transient failures: "
                        f"{e.kind.value}: {e.message}"
                    )
                    return GenerationResult.failed(
                        e.kind, failure_message(kind, e.kind), stage=kind, attempts=attempt
                    )
                delay = self.retry_delays[min(transient_failures - 1, len(self.retry_delays) - 1)]
                logger.warning(
                    f"[{label}] {e.kind.value}: {e.message}. "
                    f"Retry {transient_failures}/{self.max_transient_retries} after {delay}s"
                )
                self._sleep(delay)

            except ExtractionError as e:
                format_failures += 1
                logger.warning(
                    f"[{label}] {e.kind.value}: {e.message} | raw excerpt: {e.raw_excerpt!r}"
                )
                if format_failures > self.max_format_retries:
                    logger.error(
                        f"[{label}] Giving up after {format_failures} unusable responses"
                    )
                    return GenerationResult.failed(
                        e.kind, failure_message(kind, e.kind), stage=kind, attempts=attempt
                    )
                hints.append(self._corrective_hint(kind, e, attempt))

        data = result.to_data()
        if kind == StageKind.DOCUMENT_GENERATION:
            diagrams = outputs.get(StageKind.DIAGRAM_DESIGN)
            if diagrams:
                data["document"] = insert_diagrams_section(data["document"], diagrams)

        if kind == StageKind.REQUIREMENT_COLLECTION and data.get("missingFields"):
            # Partial profile: keep it for the next turn, stage stays ACTIVE
            self.store.save_output(session_id, kind, data)
            logger.info(
                f"[{kind.value}] Session {session_id} needs more input, "
                f"missing: {data['missingFields']}"
            )
            return GenerationResult.ok(kind, data, attempts=attempt, needs_more_input=True)

        new_state = self.engine.mark_completed(state, kind)
        self.store.save_output(session_id, kind, data)
        self.store.save(session_id, new_state)

        logger.info(
            f"[{kind.value}] Session {session_id} completed stage in {attempt} attempt(s)"
        )
        return GenerationResult.ok(kind, data, attempts=attempt)

    # --- Helpers ---

    @staticmethod
    def _with_hints(base_context: str, hints: list[str]) -> str:
        if not hints:
            return base_context
        corrections = "\n".join(f"- {hint}" for hint in hints)
        return f"{base_context}\n\n## Corrections\n{corrections}"

    def _corrective_hint(self, kind: StageKind, error: ExtractionError, attempt: int) -> str:
        if isinstance(error, ShapeMismatch):
            return (
                f"Attempt {attempt} was invalid: field `{error.field}` did not match the "
                f"required shape ({error.problems[0]}). Reply with one JSON value matching "
                f"this schema:\n{self.contracts.describe(kind)}"
            )
        if isinstance(error, NoStructuredValueFound):
            return (
                f"Attempt {attempt} was invalid: no JSON object was found in the reply. "
                f"Reply with the JSON object only."
            )
        return f"Attempt {attempt} was invalid: {error.message}"
