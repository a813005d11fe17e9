"""Data models for consensus validation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# --- Fact Extraction Models ---

@dataclass(frozen=True)
class Citation:
    """A claimed source span justifying a fact."""
    start: int  # Inclusive character offset into the source
    end: int  # Exclusive character offset
    text: str  # Text the agent claims is at [start, end)
    supports_fact: str  # Fact this citation backs up

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "supports_fact": self.supports_fact,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Citation":
        return cls(
            start=data["start"],
            end=data["end"],
            text=data["text"],
            supports_fact=data.get("supports_fact", data.get("supportsFact", "")),
        )


@dataclass(frozen=True)
class FactExtraction:
    """
    Facts and citations one agent extracted from the source.

    A failed or unparsable agent yields an empty, zero-confidence
    extraction; that is a valid record, not an error.
    """
    agent_id: str
    facts: tuple[str, ...] = ()
    citations: tuple[Citation, ...] = ()
    confidence: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "facts", tuple(self.facts))
        object.__setattr__(self, "citations", tuple(self.citations))

    @classmethod
    def empty(cls, agent_id: str) -> "FactExtraction":
        return cls(agent_id=agent_id)

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "facts": list(self.facts),
            "citations": [c.to_dict() for c in self.citations],
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ConsensusFact:
    """A fact that some, but not all, agents agreed on."""
    fact: str
    agreeing_agents: tuple[str, ...]
    disagreeing_agents: tuple[str, ...]
    agreement_percentage: float  # 0.0-1.0

    def __post_init__(self):
        object.__setattr__(self, "agreeing_agents", tuple(self.agreeing_agents))
        object.__setattr__(self, "disagreeing_agents", tuple(self.disagreeing_agents))

    def to_dict(self) -> dict:
        return {
            "fact": self.fact,
            "agreeing_agents": list(self.agreeing_agents),
            "disagreeing_agents": list(self.disagreeing_agents),
            "agreement_percentage": self.agreement_percentage,
        }


@dataclass(frozen=True)
class ExtractionConsensus:
    """Every canonical fact lands in exactly one of the three buckets."""
    agreed_facts: tuple[str, ...] = ()
    partial_agreement_facts: tuple[ConsensusFact, ...] = ()
    disagreed_facts: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "agreed_facts", tuple(self.agreed_facts))
        object.__setattr__(self, "partial_agreement_facts", tuple(self.partial_agreement_facts))
        object.__setattr__(self, "disagreed_facts", tuple(self.disagreed_facts))

    @property
    def total_facts(self) -> int:
        return (
            len(self.agreed_facts)
            + len(self.partial_agreement_facts)
            + len(self.disagreed_facts)
        )

    def to_dict(self) -> dict:
        return {
            "agreed_facts": list(self.agreed_facts),
            "partial_agreement_facts": [f.to_dict() for f in self.partial_agreement_facts],
            "disagreed_facts": list(self.disagreed_facts),
        }


@dataclass(frozen=True)
class SourceDiscrepancy:
    """Agents disagree about the same topic or cite different spans for one fact."""
    description: str
    source_section: str
    agents_involved: tuple[str, ...]
    conflicting_interpretations: tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "agents_involved", tuple(self.agents_involved))
        object.__setattr__(
            self, "conflicting_interpretations", tuple(self.conflicting_interpretations)
        )

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "source_section": self.source_section,
            "agents_involved": list(self.agents_involved),
            "conflicting_interpretations": list(self.conflicting_interpretations),
        }


@dataclass(frozen=True)
class SourceValidationResult:
    """Outcome of one validation call. Built once, never updated."""
    source_content: str
    extractions: tuple[FactExtraction, ...]
    fact_consensus: ExtractionConsensus
    discrepancies: tuple[SourceDiscrepancy, ...]
    validation_confidence: float

    def __post_init__(self):
        object.__setattr__(self, "extractions", tuple(self.extractions))
        object.__setattr__(self, "discrepancies", tuple(self.discrepancies))

    def to_dict(self) -> dict:
        return {
            "source_content": self.source_content,
            "extractions": [e.to_dict() for e in self.extractions],
            "fact_consensus": self.fact_consensus.to_dict(),
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "validation_confidence": self.validation_confidence,
        }


# --- Error Handling Models ---

class ErrorCategory(str, Enum):
    """Failure taxonomy, in classification priority order."""
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    PARSE_ERROR = "parse_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


RETRYABLE_CATEGORIES = frozenset({
    ErrorCategory.NETWORK,
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.SERVICE_UNAVAILABLE,
    ErrorCategory.PARSE_ERROR,
})


class AgentErrorAction(str, Enum):
    """What to do about a single agent's failure."""
    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"


class ConsensusFailureReason(str, Enum):
    """System-level reasons a consensus run can fail."""
    INSUFFICIENT_AGENTS = "insufficient_agents"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    CIRCULAR_REASONING = "circular_reasoning"
    ALL_AGENTS_FAILED = "all_agents_failed"
    VALIDATION_FAILURE = "validation_failure"


class ConsensusFailureAction(str, Enum):
    """Recovery actions for a consensus failure."""
    FALLBACK_SINGLE_AGENT = "fallback_single_agent"
    NOTIFY_PARTIAL = "notify_partial"
    ABORT = "abort"


@dataclass
class ErrorContext:
    """Situation around one agent failure. Built fresh per failure."""
    agent_id: str
    retry_count: int
    total_agents: int
    successful_agents: int
    min_agents_required: int
    current_round: Optional[int] = None
    max_rounds: Optional[int] = None


@dataclass
class ErrorHandlingResult:
    """Decision for an agent failure."""
    action: AgentErrorAction
    category: ErrorCategory
    user_message: str
    technical_details: str
    suggestions: list[str] = field(default_factory=list)
    retry_delay_seconds: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "category": self.category.value,
            "user_message": self.user_message,
            "technical_details": self.technical_details,
            "suggestions": list(self.suggestions),
            "retry_delay_seconds": self.retry_delay_seconds,
        }


@dataclass
class RetryConfig:
    """Retry/backoff tunables."""
    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "RetryConfig":
        data = data or {}
        defaults = cls()
        return cls(
            max_retries=data.get("max_retries", defaults.max_retries),
            base_delay_seconds=data.get("base_delay_seconds", defaults.base_delay_seconds),
            max_delay_seconds=data.get("max_delay_seconds", defaults.max_delay_seconds),
            backoff_multiplier=data.get("backoff_multiplier", defaults.backoff_multiplier),
        )


# --- Settings (read-only inputs) ---

@dataclass
class AgentReference:
    """One configured agent."""
    agent_id: str
    enabled: bool = True
    weight: float = 1.0

    @classmethod
    def from_dict(cls, data) -> "AgentReference":
        if isinstance(data, str):
            return cls(agent_id=data)
        return cls(
            agent_id=data["agent_id"],
            enabled=data.get("enabled", True),
            weight=data.get("weight", 1.0),
        )


@dataclass
class ConsensusSettings:
    """Settings for consensus generation."""
    enabled: bool = False
    agents: list[AgentReference] = field(default_factory=list)
    min_models_required: int = 2
    consensus_threshold: float = 0.66
    max_iterations: int = 3
    enable_source_validation: bool = True
    enable_caching: bool = True
    show_audit_trail: bool = True
    fallback_to_single_model: bool = True

    @property
    def enabled_agent_ids(self) -> list[str]:
        return [a.agent_id for a in self.agents if a.enabled]

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ConsensusSettings":
        data = data or {}
        defaults = cls()
        return cls(
            enabled=data.get("enabled", defaults.enabled),
            agents=[AgentReference.from_dict(a) for a in data.get("agents", [])],
            min_models_required=data.get("min_models_required", defaults.min_models_required),
            consensus_threshold=data.get("consensus_threshold", defaults.consensus_threshold),
            max_iterations=data.get("max_iterations", defaults.max_iterations),
            enable_source_validation=data.get(
                "enable_source_validation", defaults.enable_source_validation
            ),
            enable_caching=data.get("enable_caching", defaults.enable_caching),
            show_audit_trail=data.get("show_audit_trail", defaults.show_audit_trail),
            fallback_to_single_model=data.get(
                "fallback_to_single_model", defaults.fallback_to_single_model
            ),
        )


@dataclass
class ChairConfig:
    """How the council picks the synthesizing agent."""
    selection_strategy: str = "highest-ranked"
    configured_chair_id: Optional[str] = None
    synthesis_weight: float = 1.0


def _default_phase_timeouts() -> dict:
    return {
        "parallel_query": 30.0,
        "critique": 45.0,
        "ranking": 30.0,
        "synthesis": 60.0,
    }


@dataclass
class CouncilSettings:
    """Settings for council (debate) generation."""
    enabled: bool = False
    agents: list[AgentReference] = field(default_factory=list)
    min_models_required: int = 2
    chair: ChairConfig = field(default_factory=ChairConfig)
    enable_critique: bool = True
    enable_ranking: bool = True
    show_debate_trail: bool = True
    fallback_to_single_model: bool = True
    enable_caching: bool = True
    phase_timeouts: dict = field(default_factory=_default_phase_timeouts)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CouncilSettings":
        data = data or {}
        defaults = cls()
        chair = data.get("chair", {}) or {}
        return cls(
            enabled=data.get("enabled", defaults.enabled),
            agents=[AgentReference.from_dict(a) for a in data.get("agents", [])],
            min_models_required=data.get("min_models_required", defaults.min_models_required),
            chair=ChairConfig(
                selection_strategy=chair.get("selection_strategy", "highest-ranked"),
                configured_chair_id=chair.get("configured_chair_id"),
                synthesis_weight=chair.get("synthesis_weight", 1.0),
            ),
            enable_critique=data.get("enable_critique", defaults.enable_critique),
            enable_ranking=data.get("enable_ranking", defaults.enable_ranking),
            show_debate_trail=data.get("show_debate_trail", defaults.show_debate_trail),
            fallback_to_single_model=data.get(
                "fallback_to_single_model", defaults.fallback_to_single_model
            ),
            enable_caching=data.get("enable_caching", defaults.enable_caching),
            phase_timeouts=data.get("phase_timeouts", _default_phase_timeouts()),
        )
