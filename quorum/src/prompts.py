"""
Prompt templates for fact extraction.

Every agent receives the same prompt so their extractions are comparable.
"""

from typing import Optional

JSON_FORMAT_INSTRUCTION = """
Please respond in the following JSON format:
{
  "facts": [
    "First extracted fact",
    "Second extracted fact",
    ...
  ],
  "citations": [
    {
      "start": <start character position>,
      "end": <end character position>,
      "text": "<exact text from source>",
      "supportsFact": "<which fact this citation supports>"
    },
    ...
  ],
  "confidence": <number between 0.0 and 1.0>
}
""".strip()

EXAMPLE_SECTION = """
EXAMPLE:
If the source says "Paris is the capital of France" at characters 100-130:
{
  "facts": ["Paris is the capital of France"],
  "citations": [
    {
      "start": 100,
      "end": 130,
      "text": "Paris is the capital of France",
      "supportsFact": "Paris is the capital of France"
    }
  ],
  "confidence": 0.95
}
""".strip()


def get_context_section(question_context: Optional[str]) -> str:
    """Return the optional CONTEXT block, or an empty string."""
    if not question_context:
        return ""
    return (
        "\n\nCONTEXT:\n"
        f"This source material will be used to generate quiz questions about: {question_context}\n"
        "Please focus on facts relevant to this context.\n"
    )


def build_extraction_prompt(source_content: str, question_context: Optional[str] = None) -> str:
    """
    Build the fact extraction prompt.

    Args:
        source_content: The source document, embedded verbatim
        question_context: Optional topic to focus the extraction on

    Returns:
        Prompt asking for facts, character-offset citations and a confidence
    """
    return f"""You are a fact extraction expert. Your task is to carefully read the source material below and extract key facts that could be used to generate quiz questions.

SOURCE MATERIAL:
{source_content}
{get_context_section(question_context)}

TASK:
1. Read the source material carefully
2. Extract key facts that are clearly stated in the source
3. For each fact, provide a citation with the character position range (start and end)
4. Do NOT infer or extrapolate beyond what is explicitly stated
5. Focus on factual, verifiable statements
6. Indicate your overall confidence in the extraction (0.0 to 1.0)

IMPORTANT:
- Only extract facts that are directly supported by the source material
- Provide accurate character positions for citations
- Do not include opinions, interpretations, or inferences
- Each fact should be a complete, standalone statement

{JSON_FORMAT_INSTRUCTION}

{EXAMPLE_SECTION}"""
