"""
Citation Validator - Cross-checks citations against the source and the facts.

A citation survives only if:
1. Its span lies inside the source and is non-empty
2. Its quoted text matches the source text at that span
3. The fact it claims to support is one of the agent's own facts

Failing citations are dropped, never repaired. Surviving citations keep
their original order and are returned unchanged.
"""

from typing import Sequence

from shared.logging import get_logger

from .models import Citation
from .text_processing import (
    FACT_SIMILARITY_THRESHOLD,
    facts_are_similar,
    normalize_fact,
    normalize_whitespace,
    texts_are_equivalent,
)

log = get_logger("quorum", "citations")


def span_in_bounds(citation: Citation, source_length: int) -> bool:
    """True when 0 <= start < end <= source_length."""
    return 0 <= citation.start < citation.end <= source_length


def validate_citations(
    citations: Sequence[Citation],
    facts: Sequence[str],
    source: str,
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> list[Citation]:
    """
    Filter out citations that do not hold up against the source.

    Args:
        citations: Citations claimed by one agent
        facts: That agent's extracted facts
        source: The source document
        threshold: Fact similarity threshold for the supported-fact check

    Returns:
        Citations that passed every check, in input order
    """
    normalized_facts = [normalize_fact(f) for f in facts]
    validated = []

    for citation in citations:
        if not span_in_bounds(citation, len(source)):
            log.debug(
                "quorum.citations.out_of_bounds",
                start=citation.start,
                end=citation.end,
                source_length=len(source),
            )
            continue

        actual_text = normalize_whitespace(source[citation.start:citation.end])
        if not texts_are_equivalent(actual_text, normalize_whitespace(citation.text)):
            log.debug(
                "quorum.citations.text_mismatch",
                start=citation.start,
                end=citation.end,
            )
            continue

        supported = normalize_fact(citation.supports_fact)
        if not any(facts_are_similar(supported, fact, threshold) for fact in normalized_facts):
            log.debug("quorum.citations.unknown_fact", supports_fact=citation.supports_fact[:80])
            continue

        validated.append(citation)

    dropped = len(citations) - len(validated)
    if dropped:
        log.info("quorum.citations.dropped", dropped=dropped, kept=len(validated))

    return validated
