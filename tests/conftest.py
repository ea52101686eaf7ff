"""Shared fixtures: a scripted model backend and valid stage responses."""

import json

import pytest

from formative.executor.orchestrator import WorkflowOrchestrator
from formative.executor.session_store import InMemorySessionStore
from formative.llm.backends import LLMCallResult
from formative.llm.client import LLMClient
from formative.stages.schemas import StageKind


class ScriptedBackend:
    """ModelBackend that replays scripted replies or raises scripted errors.

    A callable item is invoked at call time and its return value is the reply.
    """

    def __init__(self, responses=None, model_id="fake-model"):
        self.responses = list(responses or [])
        self.calls = []
        self._model_id = model_id

    @property
    def model_id(self):
        return self._model_id

    def queue(self, *responses):
        self.responses.extend(responses)

    def execute_sync(
        self,
        system_prompt,
        user_message,
        *,
        timeout_s,
        max_tokens=None,
        temperature=None,
        label="",
    ):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_message": user_message,
                "timeout_s": timeout_s,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "label": label,
            }
        )
        if not self.responses:
            raise AssertionError("ScriptedBackend ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item()
        return LLMCallResult(
            content=item,
            model_id=self._model_id,
            input_tokens=100,
            output_tokens=50,
            duration_ms=5,
        )


REQUIREMENT_RESULT = {
    "extracted": {
        "projectName": "Recipe Box",
        "productGoal": "Save and share family recipes",
        "targetUsers": "Home cooks",
        "coreFunctions": ["save recipes", "share recipes"],
        "needsDataStorage": True,
        "needsMultiUser": True,
        "needsAuth": True,
    },
    "missingFields": [],
    "nextQuestion": None,
}

RISK_RESULT = {
    "risks": [
        {"type": "privacy", "description": "Recipes shared publicly by mistake", "severity": "medium"},
        {"type": "scale", "description": "Image storage costs", "severity": "low", "impact": ["cost"]},
    ],
    "approaches": [
        {
            "id": "lean",
            "name": "Lean",
            "label": "Lean hosted MVP",
            "description": "Managed backend, minimal custom code",
            "pros": ["fast"],
            "cons": ["vendor lock-in"],
            "recommended": True,
        },
        {
            "name": "Custom",
            "description": "Own API and database",
            "pros": ["control"],
            "cons": ["slower"],
        },
    ],
}

TECH_STACK_RESULT = {
    "category": "baas",
    "reasoning": "Auth and storage are commodity needs",
    "options": [
        {
            "name": "Next.js + Supabase",
            "category": "baas",
            "stack": {"frontend": "Next.js", "database": "Postgres", "deployment": "Vercel"},
            "pros": ["auth built in"],
            "cons": ["vendor coupling"],
            "recommended": True,
        }
    ],
}

MVP_RESULT = {
    "mvpFeatures": [
        {"name": "Recipe CRUD", "description": "Create and edit recipes"},
        {"name": "Share link"},
    ],
    "futureFeatures": [{"name": "Meal planning"}],
    "devPlan": {
        "phase1": ["auth", "recipe CRUD"],
        "phase2": ["sharing"],
        "estimatedComplexity": "low",
        "estimatedWeeks": 4,
    },
}

DIAGRAM_RESULT = {
    "architectureDiagram": {
        "mermaidCode": "graph TD\n  UI --> API\n  API --> DB",
        "description": "Client, API and database",
    },
    "sequenceDiagram": {
        "mermaidCode": "sequenceDiagram\n  User->>UI: save recipe\n  UI->>API: POST /recipes",
    },
}

DOCUMENT_RESULT = {
    "document": (
        "# Recipe Box\n\n"
        "## 1. Overview\n\nSave and share family recipes.\n\n"
        "## 5. Data and API Design\n\nRecipes table, REST endpoints.\n"
    ),
    "metadata": {"projectName": "Recipe Box", "version": "1.0"},
}

STAGE_RESULTS = {
    StageKind.REQUIREMENT_COLLECTION: REQUIREMENT_RESULT,
    StageKind.RISK_ANALYSIS: RISK_RESULT,
    StageKind.TECH_STACK: TECH_STACK_RESULT,
    StageKind.MVP_BOUNDARY: MVP_RESULT,
    StageKind.DIAGRAM_DESIGN: DIAGRAM_RESULT,
    StageKind.DOCUMENT_GENERATION: DOCUMENT_RESULT,
}


@pytest.fixture
def stage_reply():
    """Model reply text for a stage, wrapped in prose and a code fence."""

    def _reply(kind):
        return (
            f"Here is the {kind.value} result:\n```json\n"
            f"{json.dumps(STAGE_RESULTS[kind], ensure_ascii=False)}\n```"
        )

    return _reply


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(backend, sleeps):
    return WorkflowOrchestrator(
        LLMClient(backend),
        InMemorySessionStore(),
        sleep=sleeps.append,
    )
