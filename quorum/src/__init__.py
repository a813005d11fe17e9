"""
Quorum core package.

Main Classes:
- SourceValidator: Runs fact extraction across agents and builds the validation result
- ConsensusErrorHandler: Classifies agent failures and decides retry/skip/abort
- ResultCache: Content+settings addressed store for generation results
- ModelCoordinator: Parallel agent invocation with per-call timeout

Utilities:
- text_processing: Normalization and lexical similarity
- comparator: Cross-agent fact grouping and confidence scoring
- discrepancies: Topic contradictions and citation location conflicts
- citations: Citation span/text/fact checks
- response_parser: Schema-validated extraction parsing
"""

from .models import (
    Citation,
    FactExtraction,
    ConsensusFact,
    ExtractionConsensus,
    SourceDiscrepancy,
    SourceValidationResult,
    ErrorCategory,
    AgentErrorAction,
    ConsensusFailureReason,
    ConsensusFailureAction,
    ErrorContext,
    ErrorHandlingResult,
    RetryConfig,
    ConsensusSettings,
    CouncilSettings,
)
from .errors import (
    QuorumError,
    ConsensusAbortError,
    AgentInvocationError,
    NoAgentsConfiguredError,
    CachePersistenceError,
)
from .comparator import compare_extractions, calculate_validation_confidence
from .discrepancies import identify_discrepancies, facts_are_contradictory
from .citations import validate_citations
from .error_handler import ConsensusErrorHandler
from .cache import ResultCache, hash_string, hash_content
from .coordinator import ModelCoordinator, AgentResponse, PoolAgent
from .validator import SourceValidator

__all__ = [
    # Models
    "Citation",
    "FactExtraction",
    "ConsensusFact",
    "ExtractionConsensus",
    "SourceDiscrepancy",
    "SourceValidationResult",
    "ErrorCategory",
    "AgentErrorAction",
    "ConsensusFailureReason",
    "ConsensusFailureAction",
    "ErrorContext",
    "ErrorHandlingResult",
    "RetryConfig",
    "ConsensusSettings",
    "CouncilSettings",
    # Errors
    "QuorumError",
    "ConsensusAbortError",
    "AgentInvocationError",
    "NoAgentsConfiguredError",
    "CachePersistenceError",
    # Functions
    "compare_extractions",
    "calculate_validation_confidence",
    "identify_discrepancies",
    "facts_are_contradictory",
    "validate_citations",
    # Components
    "ConsensusErrorHandler",
    "ResultCache",
    "hash_string",
    "hash_content",
    "ModelCoordinator",
    "AgentResponse",
    "PoolAgent",
    "SourceValidator",
]
