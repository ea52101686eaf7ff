"""Stage execution: orchestrator, cross-stage inputs, session persistence.

- orchestrator.py   - WorkflowOrchestrator.run_stage (bounded retry loop)
- context_broker.py - upstream outputs -> template variables
- documents.py      - diagram insertion into the generated document
- session_store.py  - in-memory and SQLite session stores
- schemas.py        - GenerationRequest / GenerationResult
"""

from .schemas import GenerationRequest, GenerationResult
from .session_store import (
    InMemorySessionStore,
    SessionStore,
    SqliteSessionStore,
    create_session_store,
)
from .orchestrator import STAGE_MODEL_CONFIGS, StageModelConfig, WorkflowOrchestrator

__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "InMemorySessionStore",
    "SessionStore",
    "SqliteSessionStore",
    "create_session_store",
    "STAGE_MODEL_CONFIGS",
    "StageModelConfig",
    "WorkflowOrchestrator",
]
