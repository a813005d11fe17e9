"""
Source Validator - Multi-agent fact extraction and cross-checking.

Flow:
1. Build one extraction prompt for the source
2. Send it to every agent through the ModelCoordinator
3. Parse each response and drop citations that do not hold up
4. Compare facts across agents and look for discrepancies
5. Score the overall validation confidence

A single agent that fails or answers garbage contributes an empty,
zero-confidence extraction. Only an ABORT decision (quorum out of reach)
escapes as ConsensusAbortError.
"""

from typing import Optional, Sequence

from shared.logging import get_logger

from .citations import validate_citations
from .comparator import calculate_validation_confidence, compare_extractions
from .coordinator import DEFAULT_TIMEOUT_SECONDS, AgentResponse, ModelCoordinator
from .discrepancies import identify_discrepancies
from .errors import ConsensusAbortError, NoAgentsConfiguredError
from .models import FactExtraction, SourceValidationResult
from .prompts import build_extraction_prompt
from .response_parser import ParseError, parse_extraction_response
from .text_processing import FACT_SIMILARITY_THRESHOLD

log = get_logger("quorum", "validator")


class SourceValidator:
    """
    Validates a source document by asking several agents to extract facts.

    Usage:
        validator = SourceValidator(coordinator)
        result = await validator.validate_source(text, question_context="geography")
    """

    def __init__(
        self,
        coordinator: ModelCoordinator,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        fact_similarity_threshold: float = FACT_SIMILARITY_THRESHOLD,
    ):
        self.coordinator = coordinator
        self.timeout = timeout
        self.fact_similarity_threshold = fact_similarity_threshold

    async def validate_source(
        self,
        source_content: str,
        question_context: Optional[str] = None,
    ) -> SourceValidationResult:
        """
        Run the full validation pipeline.

        Args:
            source_content: The source document
            question_context: Optional topic to focus extraction on

        Returns:
            SourceValidationResult

        Raises:
            NoAgentsConfiguredError: If the coordinator has no agents
            ConsensusAbortError: If an agent failure left too few agents for quorum
        """
        if self.coordinator.enabled_agent_count == 0:
            raise NoAgentsConfiguredError("No models configured for source validation")

        prompt = build_extraction_prompt(source_content, question_context)
        responses = await self.coordinator.invoke_all(
            prompt,
            timeout=self.timeout,
            continue_on_error=True,
        )

        for response in responses:
            if response.aborted:
                raise ConsensusAbortError(response.decision)

        extractions = self.parse_extractions(responses, source_content)
        fact_consensus = compare_extractions(extractions, self.fact_similarity_threshold)
        discrepancies = identify_discrepancies(extractions, self.fact_similarity_threshold)
        confidence = calculate_validation_confidence(extractions, fact_consensus)

        log.info(
            "quorum.validation.complete",
            agents=len(extractions),
            agreed=len(fact_consensus.agreed_facts),
            partial=len(fact_consensus.partial_agreement_facts),
            disagreed=len(fact_consensus.disagreed_facts),
            discrepancies=len(discrepancies),
            confidence=round(confidence, 3),
        )

        return SourceValidationResult(
            source_content=source_content,
            extractions=extractions,
            fact_consensus=fact_consensus,
            discrepancies=discrepancies,
            validation_confidence=confidence,
        )

    def parse_extractions(
        self,
        responses: Sequence[AgentResponse],
        source_content: str,
    ) -> list[FactExtraction]:
        """Turn settled agent responses into extractions, one per response."""
        extractions = []

        for response in responses:
            if not response.success or not response.raw_text:
                extractions.append(FactExtraction.empty(response.agent_id))
                continue

            parsed = parse_extraction_response(response.raw_text)
            if isinstance(parsed, ParseError):
                log.warning(
                    "quorum.validation.parse_failed",
                    agent=response.agent_id,
                    reason=parsed.reason,
                )
                extractions.append(FactExtraction.empty(response.agent_id))
                continue

            extractions.append(FactExtraction(
                agent_id=response.agent_id,
                facts=parsed.facts,
                citations=validate_citations(
                    parsed.citations,
                    parsed.facts,
                    source_content,
                    self.fact_similarity_threshold,
                ),
                confidence=parsed.confidence,
            ))

        return extractions
