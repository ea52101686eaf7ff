"""Structured-value extraction: balanced scanner, shape contracts, extractor."""

from formative.extraction.contracts import (
    ContractModel,
    ContractRegistry,
    STAGE_CONTRACTS,
    describe_contract,
    get_contract,
    get_contract_registry,
)
from formative.extraction.extractor import (
    MAX_RAW_EXCERPT_CHARS,
    StructuredResponseExtractor,
    raw_excerpt,
)
from formative.extraction.scanner import Candidate, iter_candidates

__all__ = [
    "ContractModel",
    "ContractRegistry",
    "STAGE_CONTRACTS",
    "describe_contract",
    "get_contract",
    "get_contract_registry",
    "MAX_RAW_EXCERPT_CHARS",
    "StructuredResponseExtractor",
    "raw_excerpt",
    "Candidate",
    "iter_candidates",
]
