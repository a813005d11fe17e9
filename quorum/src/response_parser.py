"""
Response Parser - Turns raw agent text into a structured extraction.

Agents answer in free text that usually contains a JSON object. The
object is located by trying, in order:
1. The whole response as JSON
2. The first fenced ```json ... ``` block
3. The widest {...} span mentioning "facts"

The located object is then schema-checked. Malformed individual facts
and citations are dropped; a missing or non-list "facts"/"citations"
field fails the whole response.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from .models import Citation

DEFAULT_CONFIDENCE = 0.5

# Compiled regex patterns
FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
FACTS_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\"facts\"[\s\S]*\}")


class RawCitation(BaseModel):
    """A citation exactly as an agent wrote it."""
    model_config = ConfigDict(populate_by_name=True)

    start: StrictInt
    end: StrictInt
    text: StrictStr
    supports_fact: StrictStr = Field(alias="supportsFact")

    def to_citation(self) -> Citation:
        return Citation(
            start=self.start,
            end=self.end,
            text=self.text,
            supports_fact=self.supports_fact,
        )


class ExtractionPayload(BaseModel):
    """Top-level shape of an extraction response. Items are checked separately."""
    facts: list[Any]
    citations: list[Any]
    confidence: Any = None


@dataclass
class ParsedExtraction:
    """A successfully parsed response."""
    facts: list[str] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE


@dataclass
class ParseError:
    """Why a response could not be parsed."""
    reason: str


ParseResult = Union[ParsedExtraction, ParseError]


def _locate_json(text: str) -> Optional[Any]:
    """Find and decode the JSON object. Returns None if nothing decodes."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    fenced = FENCED_JSON_PATTERN.search(text)
    if fenced:
        candidate = fenced.group(1)
    else:
        match = FACTS_OBJECT_PATTERN.search(text)
        if not match:
            return None
        candidate = match.group(0)

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def _clamp_confidence(value: Any) -> float:
    # bool is an int subclass; true/false are not confidences
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def _parse_citations(items: list) -> list[Citation]:
    citations = []
    for item in items:
        try:
            citations.append(RawCitation.model_validate(item).to_citation())
        except ValidationError:
            continue
    return citations


def parse_extraction_response(text: Optional[str]) -> ParseResult:
    """
    Parse one agent's extraction response.

    Args:
        text: Raw response text

    Returns:
        ParsedExtraction, or ParseError describing why nothing usable was found
    """
    if not text:
        return ParseError("Empty response")

    data = _locate_json(text)
    if data is None:
        return ParseError("Could not find valid JSON in response")
    if not isinstance(data, dict):
        return ParseError("Response is not a valid object")

    try:
        payload = ExtractionPayload.model_validate(data)
    except ValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        return ParseError(f"Response missing or invalid field(s): {', '.join(missing)}")

    return ParsedExtraction(
        facts=[fact for fact in payload.facts if isinstance(fact, str)],
        citations=_parse_citations(payload.citations),
        confidence=_clamp_confidence(payload.confidence),
    )
