"""
Discrepancy Detector - Finds where agents read the source differently.

Two independent passes:
1. Topic contradictions: facts about the same subject that make
   conflicting claims (different numbers, opposite adjectives).
2. Citation location conflicts: the same fact backed by spans that
   share no character across agents.
"""

import re
from dataclasses import dataclass, field
from typing import Sequence

from shared.logging import get_logger

from .models import Citation, FactExtraction, SourceDiscrepancy
from .text_processing import (
    extract_numbers,
    FACT_SIMILARITY_THRESHOLD,
    facts_are_similar,
    normalize_fact,
    word_overlap,
)

log = get_logger("quorum", "discrepancies")

UNKNOWN_SECTION = "Unknown section"

# Words dropped when deriving a fact's topic
TOPIC_STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can",
})

# Predicate adjectives, also dropped so "X is big" and "X is small" share a topic
TOPIC_PREDICATE_WORDS = frozenset({
    "beautiful", "ugly", "good", "bad", "high", "low", "large", "small",
    "big", "hot", "cold", "fast", "slow", "charming", "nice", "poor",
    "rich", "old", "new", "young",
})

TOPIC_WORD_COUNT = 2

# Opposing terms; a fact holding one side and another fact the other side conflict
ANTONYM_PAIRS = (
    ("is", "isn't"),
    ("has", "doesn't have"),
    ("was", "wasn't"),
    ("are", "aren't"),
    ("beautiful", "ugly"),
    ("good", "bad"),
    ("high", "low"),
    ("large", "small"),
    ("big", "small"),
    ("hot", "cold"),
    ("fast", "slow"),
)

# Subject is the first N words; short facts use fewer words and a looser match
SHORT_FACT_WORDS = 6
SHORT_SUBJECT_WORDS = 3
LONG_SUBJECT_WORDS = 4
SHORT_SUBJECT_OVERLAP = 0.5
LONG_SUBJECT_OVERLAP = 0.6

_PURE_NUMBER = re.compile(r"^\d+$")
_TERM_PATTERNS = {
    term: re.compile(r"(?<![\w'])" + re.escape(term) + r"(?![\w'])")
    for pair in ANTONYM_PAIRS
    for term in pair
}


@dataclass
class _Interpretation:
    fact: str
    agent_id: str
    citations: list[Citation]


@dataclass(eq=False)
class _FactGroup:
    canonical: str
    facts: list[str] = field(default_factory=list)
    agent_ids: list[str] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)


def extract_fact_topic(fact: str) -> str:
    """
    Derive a coarse topic key for a fact.

    Lowercases, drops stop words, predicate adjectives and pure numbers,
    then keeps the first two remaining words.
    """
    significant = [
        word for word in normalize_fact(fact).split()
        if word not in TOPIC_STOP_WORDS
        and word not in TOPIC_PREDICATE_WORDS
        and not _PURE_NUMBER.match(word)
    ]
    return " ".join(significant[:TOPIC_WORD_COUNT])


def _contains_term(text: str, term: str) -> bool:
    return _TERM_PATTERNS[term].search(text) is not None


def facts_are_contradictory(
    fact1: str,
    fact2: str,
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> bool:
    """
    Check if two facts share a subject but make conflicting claims.

    Facts that are already similar are the same fact, not a conflict.

    Args:
        fact1: First fact
        fact2: Second fact
        threshold: Similarity threshold at which the two count as one fact

    Returns:
        True if facts are contradictory
    """
    normalized1 = normalize_fact(fact1)
    normalized2 = normalize_fact(fact2)

    if facts_are_similar(normalized1, normalized2, threshold):
        return False

    words1 = normalized1.split()
    words2 = normalized2.split()
    is_short = min(len(words1), len(words2)) < SHORT_FACT_WORDS

    subject_words = SHORT_SUBJECT_WORDS if is_short else LONG_SUBJECT_WORDS
    subject_threshold = SHORT_SUBJECT_OVERLAP if is_short else LONG_SUBJECT_OVERLAP

    subject1 = " ".join(words1[:subject_words])
    subject2 = " ".join(words2[:subject_words])
    if word_overlap(subject1, subject2) < subject_threshold:
        return False

    numbers1 = extract_numbers(normalized1)
    numbers2 = extract_numbers(normalized2)
    if numbers1 and numbers2:
        for idx, number in enumerate(numbers1):
            if idx >= len(numbers2) or numbers2[idx] != number:
                return True

    for term1, term2 in ANTONYM_PAIRS:
        if (_contains_term(normalized1, term1) and _contains_term(normalized2, term2)) or (
            _contains_term(normalized1, term2) and _contains_term(normalized2, term1)
        ):
            return True

    return False


def _citations_for_fact(
    extraction: FactExtraction,
    fact: str,
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> list[Citation]:
    return [
        c for c in extraction.citations
        if c.supports_fact == fact or facts_are_similar(c.supports_fact, fact, threshold)
    ]


def _unique(items) -> list:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _spans_overlap(first: Citation, second: Citation) -> bool:
    """Half-open spans overlap when they share at least one character."""
    return first.start < second.end and second.start < first.end


def _group_interpretations(
    interpretations: list[_Interpretation],
    threshold: float,
) -> list[_FactGroup]:
    groups: list[_FactGroup] = []
    for interp in interpretations:
        normalized = normalize_fact(interp.fact)
        for group in groups:
            if facts_are_similar(normalized, group.canonical, threshold):
                break
        else:
            group = _FactGroup(canonical=normalized)
            groups.append(group)
        group.facts.append(interp.fact)
        group.agent_ids.append(interp.agent_id)
        group.citations.extend(interp.citations)
    return groups


def find_topic_contradictions(
    extractions: Sequence[FactExtraction],
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> list[SourceDiscrepancy]:
    """First pass: same topic, contradictory claims, at least two agents involved."""
    topics: dict[str, list[_Interpretation]] = {}

    for extraction in extractions:
        for fact in extraction.facts:
            topics.setdefault(extract_fact_topic(fact), []).append(_Interpretation(
                fact=fact,
                agent_id=extraction.agent_id,
                citations=_citations_for_fact(extraction, fact, threshold),
            ))

    discrepancies = []
    for topic, interpretations in topics.items():
        if len(interpretations) < 2:
            continue

        groups = _group_interpretations(interpretations, threshold)
        if len(groups) < 2:
            continue

        implicated: list[_FactGroup] = []
        for i, first in enumerate(groups):
            for second in groups[i + 1:]:
                if len(set(first.agent_ids) | set(second.agent_ids)) < 2:
                    continue
                if facts_are_contradictory(first.canonical, second.canonical, threshold):
                    for group in (first, second):
                        if group not in implicated:
                            implicated.append(group)

        if not implicated:
            continue

        implicated.sort(key=groups.index)
        citations = [c for group in implicated for c in group.citations]
        if citations:
            source_section = (
                f"Characters {min(c.start for c in citations)}-{max(c.end for c in citations)}"
            )
        else:
            source_section = UNKNOWN_SECTION

        discrepancies.append(SourceDiscrepancy(
            description=f"Conflicting interpretations about: {topic}",
            source_section=source_section,
            agents_involved=_unique(a for group in implicated for a in group.agent_ids),
            conflicting_interpretations=_unique(f for group in implicated for f in group.facts),
        ))

    return discrepancies


def find_citation_conflicts(
    extractions: Sequence[FactExtraction],
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> list[SourceDiscrepancy]:
    """Second pass: same normalized fact, agents cite spans that never overlap."""
    by_fact: dict[str, list[tuple[str, list[Citation]]]] = {}

    for extraction in extractions:
        for fact in extraction.facts:
            by_fact.setdefault(normalize_fact(fact), []).append(
                (extraction.agent_id, _citations_for_fact(extraction, fact, threshold))
            )

    discrepancies = []
    for fact, cited in by_fact.items():
        spans = [(agent_id, c) for agent_id, citations in cited for c in citations]
        if len({agent_id for agent_id, _ in spans}) < 2:
            continue

        any_overlap = any(
            _spans_overlap(c1, c2)
            for i, (agent1, c1) in enumerate(spans)
            for agent2, c2 in spans[i + 1:]
            if agent1 != agent2
        )
        if any_overlap:
            continue

        discrepancies.append(SourceDiscrepancy(
            description=f'Agents cite different source locations for the same fact: "{fact}"',
            source_section=", ".join(f"{c.start}-{c.end}" for _, c in spans),
            agents_involved=_unique(agent_id for agent_id, _ in spans),
            conflicting_interpretations=[
                f"Agent {agent_id} cites: " + ", ".join(f'"{c.text}"' for c in citations)
                for agent_id, citations in cited
                if citations
            ],
        ))

    return discrepancies


def identify_discrepancies(
    extractions: Sequence[FactExtraction],
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> list[SourceDiscrepancy]:
    """
    Find source interpretation discrepancies across agents.

    Args:
        extractions: Per-agent extractions
        threshold: Fact similarity threshold

    Returns:
        Topic contradictions followed by citation location conflicts.
        Empty with fewer than two extractions.
    """
    if len(extractions) < 2:
        return []

    discrepancies = (
        find_topic_contradictions(extractions, threshold)
        + find_citation_conflicts(extractions, threshold)
    )

    if discrepancies:
        log.info(
            "quorum.discrepancies.found",
            count=len(discrepancies),
            agents=len(extractions),
        )

    return discrepancies
