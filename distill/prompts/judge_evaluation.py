"""Prompt templates for the evaluator.

Separated from scorer.py so prompt iteration doesn't touch logic.
"""

SYSTEM_PROMPT = """You are an expert evaluator of AI agent outputs. Your job is to determine if a target output meets the quality standards of a gold standard output.

Guidelines:
- Be strict but fair
- Focus on semantic equivalence, not exact wording
- Minor stylistic differences are acceptable
- Missing critical information = failure
- Hallucinations or incorrect facts = failure

Respond with JSON only: no markdown, no extra text.
"""

DIMENSION_DESCRIPTIONS: dict[str, str] = {
    "correctness": "Is the target output factually correct? Does it achieve the same goal as the gold standard?",
    "completeness": "Does the target include all important information from the gold standard?",
    "quality": "Is the target output well-formed, clear, and professional?",
    "consistency": "Does the target maintain the same tone, style and length as the gold standard?",
}

RESPONSE_FORMAT = """Respond in this EXACT JSON format:
{{
  "scores": {{
{score_lines}
  }},
  "reasoning": "<brief explanation>",
  "failures": ["<specific issue 1>", "<specific issue 2>"],
  "suggestions": ["<general improvement 1>", "<general improvement 2>"]
}}"""


def build_user_prompt(
    input_text: str,
    reference_output: str,
    candidate_output: str,
    dimensions: tuple[str, ...],
    max_score: float,
    expected_behavior: str | None = None,
) -> str:
    """Build the evaluator prompt for one (input, reference, candidate) triple.

    Args:
        input_text: The user's original request.
        reference_output: Gold standard output from the expensive agent.
        candidate_output: Output of the candidate agent under test.
        dimensions: Sub-dimensions to score individually.
        max_score: Top of the scoring scale (0 is the bottom).
        expected_behavior: Optional free-text description of what a good answer does.
    """
    scale = f"0-{max_score:g}"
    parts = [
        f"INPUT (user's original request):\n{input_text}",
        f"GOLD STANDARD OUTPUT (from expensive model):\n{reference_output}",
        f"TARGET OUTPUT (from cheaper model being tested):\n{candidate_output}",
    ]
    if expected_behavior:
        parts.append(f"EXPECTED BEHAVIOR:\n{expected_behavior}")

    criteria = [
        f"{i}. {name.upper()}: {DIMENSION_DESCRIPTIONS.get(name, f'How well does the target do on {name}?')}"
        for i, name in enumerate(dimensions, start=1)
    ]
    parts.append(
        f"Evaluate the TARGET OUTPUT across these dimensions (score each {scale}):\n"
        + "\n".join(criteria)
    )

    score_lines = ",\n".join(f'    "{name}": <{scale}>' for name in dimensions)
    parts.append(RESPONSE_FORMAT.format(score_lines=score_lines))
    return "\n\n".join(parts)
