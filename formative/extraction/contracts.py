"""Per-stage shape contracts for model output.

Each stage's structured result is validated against one pydantic model
before anything downstream trusts it. Field names are snake_case in Python
and camelCase on the wire (`projectName`, `mermaidCode`, ...), matching what
the prompts ask the model for.

Contracts tolerate extra fields and enforce required ones. Optional `id`
fields are backfilled with fresh uuid4 hex ids and `recommended` defaults to
False, so downstream code never sees a missing identifier.
"""

import json
import logging
import uuid
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from formative.errors import UnknownStage
from formative.stages.schemas import StageKind

logger = logging.getLogger(__name__)

Severity = Literal["low", "medium", "high"]
StackCategory = Literal["frontend-only", "fullstack", "baas"]


def new_id() -> str:
    return uuid.uuid4().hex


class ContractModel(BaseModel):
    """Base for all contract models: camelCase aliases, extras allowed."""

    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_data(self) -> dict[str, Any]:
        """Dump to the wire shape (camelCase keys, JSON-safe values)."""
        return self.model_dump(mode="json", by_alias=True)


class Identified(ContractModel):
    """A contract item with a stable identifier."""

    id: str = Field(default_factory=new_id, description="Backfilled when absent or empty")

    @field_validator("id", mode="before")
    @classmethod
    def _backfill_id(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return new_id()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


# --- Requirement collection ---


class RequirementProfile(ContractModel):
    project_name: Optional[str] = None
    product_goal: Optional[str] = None
    target_users: Optional[str] = None
    use_cases: Optional[str] = None
    core_functions: Optional[list[str]] = None
    needs_data_storage: Optional[bool] = None
    needs_multi_user: Optional[bool] = None
    needs_auth: Optional[bool] = None


class AnswerOption(Identified):
    label: str
    value: str
    description: Optional[str] = None


class RequirementCollectionResult(ContractModel):
    extracted: RequirementProfile
    missing_fields: list[str]
    next_question: Optional[str] = None
    options: Optional[list[AnswerOption]] = None


# --- Risk analysis ---


class Risk(Identified):
    type: str
    description: str
    severity: Severity
    impact: Optional[list[str]] = None


class Approach(Identified):
    name: str
    label: Optional[str] = None
    description: str
    pros: list[str]
    cons: list[str]
    timeline: Optional[str] = None
    complexity: Optional[str] = None
    recommended: bool = False


class RiskAnalysisResult(ContractModel):
    risks: list[Risk]
    approaches: list[Approach]


# --- Tech stack ---


class StackLayers(ContractModel):
    frontend: str
    backend: Optional[str] = None
    database: Optional[str] = None
    deployment: Optional[str] = None


class TechStackOption(Identified):
    name: str
    category: StackCategory
    stack: StackLayers
    pros: list[str]
    cons: list[str]
    evolution_cost: Optional[str] = None
    suitable_for: Optional[str] = None
    recommended: bool = False


class TechStackResult(ContractModel):
    category: StackCategory
    reasoning: Optional[str] = None
    options: list[TechStackOption]


# --- MVP boundary ---


class Feature(Identified):
    name: str
    description: Optional[str] = None


class DevPlan(ContractModel):
    phase1: list[str]
    phase2: Optional[list[str]] = None
    estimated_complexity: Severity
    estimated_weeks: Optional[Union[int, str]] = None


class MvpBoundaryResult(ContractModel):
    mvp_features: list[Feature]
    future_features: list[Feature]
    dev_plan: DevPlan


# --- Diagram design ---


class MermaidDiagram(ContractModel):
    mermaid_code: str
    description: Optional[str] = None


class DiagramDesignResult(ContractModel):
    architecture_diagram: MermaidDiagram
    sequence_diagram: MermaidDiagram


# --- Document generation ---


class DocumentGenerationResult(ContractModel):
    document: str
    metadata: Optional[dict[str, Any]] = None

    @field_validator("document")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("document must be non-empty markdown")
        return value


class ContractRegistry:
    """Static lookup of the shape contract for each stage kind."""

    def __init__(self, contracts: Optional[dict[StageKind, type[ContractModel]]] = None):
        self._contracts = dict(contracts or STAGE_CONTRACTS)

    def get(self, kind: StageKind) -> type[ContractModel]:
        try:
            return self._contracts[kind]
        except KeyError:
            raise UnknownStage(f"No shape contract for stage '{kind}'") from None

    def list_kinds(self) -> list[StageKind]:
        return list(self._contracts)

    def describe(self, kind: StageKind) -> str:
        """JSON schema of a stage's contract, for corrective prompts."""
        schema = self.get(kind).model_json_schema(by_alias=True)
        return json.dumps(schema, indent=2, ensure_ascii=False)


STAGE_CONTRACTS: dict[StageKind, type[ContractModel]] = {
    StageKind.REQUIREMENT_COLLECTION: RequirementCollectionResult,
    StageKind.RISK_ANALYSIS: RiskAnalysisResult,
    StageKind.TECH_STACK: TechStackResult,
    StageKind.MVP_BOUNDARY: MvpBoundaryResult,
    StageKind.DIAGRAM_DESIGN: DiagramDesignResult,
    StageKind.DOCUMENT_GENERATION: DocumentGenerationResult,
}


_registry: Optional[ContractRegistry] = None


def get_contract_registry() -> ContractRegistry:
    """Get the singleton contract registry."""
    global _registry
    if _registry is None:
        _registry = ContractRegistry()
    return _registry


def get_contract(kind: StageKind) -> type[ContractModel]:
    return get_contract_registry().get(kind)


def describe_contract(kind: StageKind) -> str:
    return get_contract_registry().describe(kind)
