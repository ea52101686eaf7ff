"""Turn raw model text into a validated stage result.

Pipeline for `parse(raw_text, contract)`:
1. Direct JSON parse; accepted only when it yields an object or array.
2. Otherwise the balanced-delimiter scan. The first candidate that parses
   as a JSON object wins; an array is used only when no object parses.
3. Contract validation; failures name the dotted field path.
4. Backfill happens inside the contract models (ids, `recommended`).

The extractor never retries and never calls the model.
"""

import json
import logging
from typing import Any, Optional, TypeVar, Union

from pydantic import ValidationError

from formative.errors import NoStructuredValueFound, ShapeMismatch
from formative.stages.schemas import StageKind
from .contracts import ContractModel, ContractRegistry, get_contract_registry
from .scanner import iter_candidates

logger = logging.getLogger(__name__)

MAX_RAW_EXCERPT_CHARS = 200
TRUNCATION_MARKER = "... [truncated]"

M = TypeVar("M", bound=ContractModel)


def raw_excerpt(text: str, limit: int = MAX_RAW_EXCERPT_CHARS) -> str:
    """Bounded prefix of model text, safe for logs and error payloads."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def _format_loc(loc: tuple) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def _loads(text: str) -> Any:
    """json.loads, with unparseable or pathologically nested text as None."""
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


class StructuredResponseExtractor:
    """Extracts and validates structured values from model output."""

    def __init__(self, contracts: Optional[ContractRegistry] = None):
        self.contracts = contracts or get_contract_registry()

    def extract_value(self, raw_text: str, root_type: Optional[type] = None) -> Union[dict, list]:
        """Recover a JSON object or array from raw text.

        With `root_type`, the first value of that type wins; the first value
        of the other type is returned only when none matches.

        Raises:
            NoStructuredValueFound: If no candidate parses as JSON
        """
        fallback: Union[dict, list, None] = None

        value = _loads(raw_text.strip())
        if isinstance(value, (dict, list)):
            if root_type is None or isinstance(value, root_type):
                return value
            fallback = value

        tried = 0
        for candidate in iter_candidates(raw_text):
            tried += 1
            value = _loads(candidate.text)
            if not isinstance(value, (dict, list)):
                logger.debug(
                    f"Balanced span at {candidate.start}-{candidate.end} is not valid JSON"
                )
                continue
            if root_type is None or isinstance(value, root_type):
                return value
            if fallback is None:
                fallback = value

        if fallback is not None:
            return fallback

        raise NoStructuredValueFound(
            f"No JSON object or array found in model output "
            f"({len(raw_text):,} chars, {tried} balanced spans tried)",
            raw_excerpt=raw_excerpt(raw_text),
        )

    def validate(self, value: Any, contract: type[M], raw_text: str = "") -> M:
        """Validate a recovered value against a contract.

        Raises:
            ShapeMismatch: Naming the first failing field path
        """
        try:
            return contract.model_validate(value)
        except ValidationError as e:
            problems = [
                f"{_format_loc(err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            first_field = _format_loc(e.errors()[0]["loc"])
            message = f"Response does not match {contract.__name__}: {problems[0]}"
            if len(problems) > 1:
                message += f" (+{len(problems) - 1} more)"
            raise ShapeMismatch(
                message,
                field=first_field,
                raw_excerpt=raw_excerpt(raw_text),
                problems=problems,
            ) from e

    def parse(self, raw_text: str, contract: type[M]) -> M:
        """Extract, validate and backfill one structured result."""
        # Every contract is a pydantic model, so its root is a JSON object
        value = self.extract_value(raw_text, root_type=dict)
        return self.validate(value, contract, raw_text)

    def parse_for_stage(self, raw_text: str, kind: StageKind) -> ContractModel:
        """Parse using the registered contract for a stage."""
        return self.parse(raw_text, self.contracts.get(kind))
