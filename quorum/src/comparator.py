"""
Fact Consensus Comparator - Groups equivalent facts across agents.

Each fact is attached to the first canonical fact it is similar to, in
the order extractions are supplied and then fact order within each
extraction. The same inputs in the same order always give the same
grouping.
"""

from typing import Sequence

from shared.logging import get_logger

from .models import ConsensusFact, ExtractionConsensus, FactExtraction
from .text_processing import FACT_SIMILARITY_THRESHOLD, facts_are_similar, normalize_fact

log = get_logger("quorum", "comparator")

# Weight of the per-agent confidence term vs. the consensus term
AGENT_CONFIDENCE_WEIGHT = 0.5
CONSENSUS_WEIGHT = 0.5

# A partially agreed fact counts this much toward the consensus ratio
PARTIAL_AGREEMENT_CREDIT = 0.5


def group_facts(
    extractions: Sequence[FactExtraction],
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> dict[str, list[str]]:
    """
    Map each canonical (first-seen, normalized) fact to the agents that stated it.

    Args:
        extractions: Per-agent extractions, in a stable order
        threshold: Fact similarity threshold

    Returns:
        Ordered dict of canonical fact -> agent ids (first-seen order, no repeats)
    """
    groups: dict[str, list[str]] = {}

    for extraction in extractions:
        for fact in extraction.facts:
            normalized = normalize_fact(fact)

            for canonical, agents in groups.items():
                if facts_are_similar(normalized, canonical, threshold):
                    if extraction.agent_id not in agents:
                        agents.append(extraction.agent_id)
                    break
            else:
                groups[normalized] = [extraction.agent_id]

    return groups


def compare_extractions(
    extractions: Sequence[FactExtraction],
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> ExtractionConsensus:
    """
    Bucket every extracted fact by how many agents agree on it.

    - All agents -> agreed
    - Exactly one agent -> disagreed
    - Anything in between -> partial, with the agents that did not state it

    Args:
        extractions: Per-agent extractions
        threshold: Fact similarity threshold

    Returns:
        ExtractionConsensus (all buckets empty when there are no extractions)
    """
    if not extractions:
        return ExtractionConsensus()

    total_agents = len(extractions)
    agreed: list[str] = []
    partial: list[ConsensusFact] = []
    disagreed: list[str] = []

    for fact, agreeing in group_facts(extractions, threshold).items():
        agreement_count = len(agreeing)

        if agreement_count == total_agents:
            agreed.append(fact)
        elif agreement_count == 1:
            disagreed.append(fact)
        else:
            partial.append(ConsensusFact(
                fact=fact,
                agreeing_agents=agreeing,
                disagreeing_agents=[
                    e.agent_id for e in extractions if e.agent_id not in agreeing
                ],
                agreement_percentage=agreement_count / total_agents,
            ))

    log.debug(
        "quorum.comparator.bucketed",
        agents=total_agents,
        agreed=len(agreed),
        partial=len(partial),
        disagreed=len(disagreed),
    )

    return ExtractionConsensus(
        agreed_facts=agreed,
        partial_agreement_facts=partial,
        disagreed_facts=disagreed,
    )


def calculate_validation_confidence(
    extractions: Sequence[FactExtraction],
    consensus: ExtractionConsensus,
) -> float:
    """
    Blend mean agent confidence with how much of the fact set is agreed on.

    0.5 * mean(confidence) + 0.5 * (agreed + 0.5 * partial) / total_facts,
    clamped to [0, 1]. The consensus term is 0 when no facts were found.
    """
    if not extractions:
        return 0.0

    mean_confidence = sum(e.confidence for e in extractions) / len(extractions)

    total_facts = consensus.total_facts
    if total_facts > 0:
        consensus_ratio = (
            len(consensus.agreed_facts)
            + len(consensus.partial_agreement_facts) * PARTIAL_AGREEMENT_CREDIT
        ) / total_facts
    else:
        consensus_ratio = 0.0

    confidence = mean_confidence * AGENT_CONFIDENCE_WEIGHT + consensus_ratio * CONSENSUS_WEIGHT
    return max(0.0, min(1.0, confidence))
