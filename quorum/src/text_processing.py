"""
Text processing functions for fact and citation comparison.

Contains:
- Whitespace and fact normalization
- Numeric literal extraction
- Jaccard word-overlap similarity
- Fact similarity (numbers are never fuzzy)
- Citation text equivalence

Matching is deliberately lexical. The thresholds below are heuristic
and tunable; they are kept at these values for compatibility with
results produced by earlier versions.
"""

import re
import string

# Minimum word-set Jaccard for two facts to count as the same fact
FACT_SIMILARITY_THRESHOLD = 0.70

# Citation texts whose lengths differ by more than this ratio are never equivalent
CITATION_LENGTH_RATIO = 0.80

# Minimum positional character match for citation texts
CITATION_CHAR_MATCH_THRESHOLD = 0.90

WHITESPACE_PATTERN = re.compile(r"\s+")
NUMBER_PATTERN = re.compile(r"\d+")

_EDGE_PUNCTUATION = string.punctuation + "“”‘’"


def normalize_whitespace(text: str) -> str:
    """Trim and collapse internal whitespace runs to a single space."""
    return WHITESPACE_PATTERN.sub(" ", text.strip())


def normalize_fact(fact: str) -> str:
    """Lowercase, trim and collapse whitespace. Never mutates the original."""
    return normalize_whitespace(fact.lower())


def extract_numbers(text: str) -> list[str]:
    """All numeric literals in order of appearance."""
    return NUMBER_PATTERN.findall(text)


def jaccard_similarity(set1: set, set2: set) -> float:
    """Calculate Jaccard similarity between two sets."""
    if not set1 or not set2:
        return 0.0
    intersection = len(set1 & set2)
    union = len(set1 | set2)
    return intersection / union if union > 0 else 0.0


def word_overlap(text1: str, text2: str) -> float:
    """Jaccard similarity of the whitespace-separated, lowercased word sets."""
    return jaccard_similarity(set(text1.lower().split()), set(text2.lower().split()))


def facts_are_similar(
    fact1: str,
    fact2: str,
    threshold: float = FACT_SIMILARITY_THRESHOLD,
) -> bool:
    """
    Check if two facts state the same thing.

    Numbers are load-bearing: if either fact contains a number, the two
    numeric sequences must match exactly and in order, otherwise the facts
    are different no matter how much wording they share.

    Args:
        fact1: First fact
        fact2: Second fact
        threshold: Minimum word Jaccard similarity

    Returns:
        True if facts are similar
    """
    normalized1 = normalize_fact(fact1)
    normalized2 = normalize_fact(fact2)

    numbers1 = extract_numbers(normalized1)
    numbers2 = extract_numbers(normalized2)
    if (numbers1 or numbers2) and numbers1 != numbers2:
        return False

    return word_overlap(normalized1, normalized2) >= threshold


def positional_char_similarity(text1: str, text2: str) -> float:
    """
    Fraction of character positions that match.

    Compares position by position over the shorter text and divides by
    the longer length, so trailing extra characters count as mismatches.
    """
    max_length = max(len(text1), len(text2))
    if max_length == 0:
        return 1.0

    matches = sum(1 for c1, c2 in zip(text1, text2) if c1 == c2)
    return matches / max_length


def _strip_edge_punctuation(text: str) -> str:
    return text.strip(_EDGE_PUNCTUATION).strip()


def texts_are_equivalent(
    text1: str,
    text2: str,
    length_ratio: float = CITATION_LENGTH_RATIO,
    char_match_threshold: float = CITATION_CHAR_MATCH_THRESHOLD,
) -> bool:
    """
    Check if a quoted citation text matches the real source text.

    In order:
    1. Equal after case/whitespace normalization (edge punctuation ignored)
    2. Lengths differ by more than the allowed ratio -> not equivalent
    3. One contains the other -> equivalent
    4. Positional character match at or above the threshold

    Args:
        text1: First text
        text2: Second text
        length_ratio: Minimum shorter/longer length ratio
        char_match_threshold: Minimum positional character match

    Returns:
        True if texts are equivalent
    """
    normalized1 = normalize_whitespace(text1.lower())
    normalized2 = normalize_whitespace(text2.lower())

    if normalized1 == normalized2:
        return True

    stripped1 = _strip_edge_punctuation(normalized1)
    if stripped1 and stripped1 == _strip_edge_punctuation(normalized2):
        return True

    shorter = min(len(normalized1), len(normalized2))
    longer = max(len(normalized1), len(normalized2))
    if longer == 0 or shorter / longer < length_ratio:
        return False

    if normalized1 in normalized2 or normalized2 in normalized1:
        return True

    return positional_char_similarity(normalized1, normalized2) >= char_match_threshold
