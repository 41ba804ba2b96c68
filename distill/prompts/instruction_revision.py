"""Prompt templates for instruction revision.

Separated from reviser.py so prompt iteration doesn't touch logic.
"""

SYSTEM_PROMPT = """You are an expert at optimizing prompts for cheaper LLMs.

You rewrite a system prompt so that a cheaper, smaller model produces outputs matching the quality and style of a more expensive model.

Respond with ONLY the improved system prompt: no explanation, no markdown, no code blocks.
"""

ABSTRACT_RULES = """Your task: Generate an IMPROVED system prompt that teaches GENERAL STRATEGIES.

CRITICAL RULES:
1. DO NOT include specific answers or example responses from the test cases
2. DO NOT memorize the test inputs - teach general approaches instead
3. Focus on TRANSFERABLE strategies (e.g., "match response length to question complexity")
4. Add guidelines for handling different TYPES of questions (simple, complex, concise explanations)
5. Use abstract examples if needed, but NEVER from the actual test cases

The improved prompt should help the model handle NEW questions, not just pass these specific tests."""

VERBATIM_RULES = """Your task: Generate an IMPROVED system prompt.

Analyze the failures above and identify what the target model is missing. You may:
- Add explicit context and definitions
- Add chain-of-thought instructions for complex reasoning
- Clarify the output format with templates
- Add step-by-step workflows

Keep the intent of the current system prompt intact."""


def build_user_prompt(
    current_instructions: str,
    target_model: str,
    failure_blocks: list[str],
    abstract: bool,
) -> str:
    """Build the reviser prompt.

    Args:
        current_instructions: The system prompt under revision.
        target_model: Name of the cheaper model the prompt is tuned for.
        failure_blocks: One formatted block per failing case (already shaped).
        abstract: Whether the blocks are abstracted patterns or verbatim cases.
    """
    heading = "FAILURE PATTERNS OBSERVED" if abstract else "FAILED EVALUATIONS"
    failures = "\n\n".join(failure_blocks) if failure_blocks else "(none)"
    parts = [
        f"CURRENT SYSTEM PROMPT:\n{current_instructions}",
        f"TARGET MODEL: {target_model}",
        f"{heading} ({len(failure_blocks)}):\n{failures}",
        ABSTRACT_RULES if abstract else VERBATIM_RULES,
    ]
    return "\n\n".join(parts)
