"""Instruction revision.

The reviser turns current instructions plus shaped failure reports into
new instructions. It never decides how failures are shaped: it receives
whatever shaping.shape_failures produced.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

from distill.config import ReviserConfig
from distill.core.errors import RevisionError
from distill.core.llm import LLMClient
from distill.core.parsing import strip_code_fences
from distill.models import AbstractFailure, FailureReport
from distill.prompts.instruction_revision import SYSTEM_PROMPT, build_user_prompt

logger = logging.getLogger(__name__)


@runtime_checkable
class Reviser(Protocol):
    """Protocol for rewriting instructions from failing cases."""

    async def revise(
        self, current_instructions: str, failures: Sequence[FailureReport]
    ) -> str:
        ...


def build_revision_prompt(
    current_instructions: str,
    failures: Sequence[FailureReport],
    target_model: str,
) -> str:
    """Construct the reviser user prompt.

    Pure function: separated from the LLM call for testability. Abstract
    wording is used unless every report is verbatim.
    """
    abstract = not failures or any(isinstance(f, AbstractFailure) for f in failures)
    return build_user_prompt(
        current_instructions=current_instructions,
        target_model=target_model,
        failure_blocks=[f.to_prompt_context() for f in failures],
        abstract=abstract,
    )


class LLMReviser:
    """Reviser that asks a model to rewrite the instructions."""

    def __init__(
        self,
        llm_client: LLMClient,
        target_model: str,
        config: ReviserConfig = ReviserConfig(),
    ) -> None:
        self.llm_client = llm_client
        self.target_model = target_model
        self.config = config

    async def revise(
        self, current_instructions: str, failures: Sequence[FailureReport]
    ) -> str:
        """Return improved instructions.

        Raises:
            RevisionError: If the LLM call fails or returns empty text.
        """
        user_prompt = build_revision_prompt(current_instructions, failures, self.target_model)
        try:
            raw_response = await self.llm_client.complete(
                system=SYSTEM_PROMPT,
                user=user_prompt,
                model=self.config.model or None,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except Exception as e:
            raise RevisionError(f"Reviser LLM call failed: {e}") from e

        revised = strip_code_fences(raw_response)
        if not revised:
            raise RevisionError("Reviser returned empty instructions")
        logger.info(
            "Revised instructions from %d failure reports (%d -> %d chars)",
            len(failures), len(current_instructions), len(revised),
        )
        return revised
