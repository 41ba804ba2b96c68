"""Scoring candidate outputs against reference outputs.

A Scorer judges one (input, reference, candidate) triple and returns a
CaseVerdict. score_batch applies it to a whole CandidateRun with bounded
concurrency. Execution and scoring errors for a single case become failed
verdicts carrying an explicit failure tag.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from distill.config import ExecutionConfig, ScorerConfig
from distill.core.errors import ScoringError
from distill.core.llm import LLMClient
from distill.core.parsing import parse_json_from_response
from distill.models import CaseExecution, CaseVerdict, ReferenceCase
from distill.prompts.judge_evaluation import SYSTEM_PROMPT, build_user_prompt

logger = logging.getLogger(__name__)


# Failure tags. Case-level errors are data, not exceptions.
TAG_EXECUTION_ERROR = "execution_error"
TAG_EXECUTION_TIMEOUT = "execution_timeout"
TAG_SCORING_ERROR = "scoring_error"
TAG_SCORING_TIMEOUT = "scoring_timeout"
TAG_BELOW_MIN_DIMENSION = "below_min_dimension"

ERROR_TAGS: frozenset[str] = frozenset({
    TAG_EXECUTION_ERROR,
    TAG_EXECUTION_TIMEOUT,
    TAG_SCORING_ERROR,
    TAG_SCORING_TIMEOUT,
})


@runtime_checkable
class Scorer(Protocol):
    """Protocol for judging one candidate output.

    Treated as a pure function by the engine. Sampling nondeterminism,
    if any, is the implementation's concern.
    """

    async def score(
        self,
        input_text: str,
        reference_output: str,
        candidate_output: str,
        case_id: str = "",
        expected_behavior: Optional[str] = None,
    ) -> CaseVerdict:
        ...


# =============================================================================
# LLM evaluator
# =============================================================================


class JudgeScorer:
    """Scorer that asks an evaluator model to grade each sub-dimension.

    A case passes only when every dimension reaches
    config.min_dimension_score. The normalized score is the dimension
    mean divided by config.max_dimension_score.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        config: ScorerConfig = ScorerConfig(),
    ) -> None:
        self.llm_client = llm_client
        self.config = config

    async def score(
        self,
        input_text: str,
        reference_output: str,
        candidate_output: str,
        case_id: str = "",
        expected_behavior: Optional[str] = None,
    ) -> CaseVerdict:
        user_prompt = build_user_prompt(
            input_text=input_text,
            reference_output=reference_output,
            candidate_output=candidate_output,
            dimensions=self.config.dimensions,
            max_score=self.config.max_dimension_score,
            expected_behavior=expected_behavior,
        )
        try:
            raw_response = await self.llm_client.complete(
                system=SYSTEM_PROMPT,
                user=user_prompt,
                model=self.config.model or None,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except Exception as e:
            raise ScoringError(f"Evaluator call failed: {e}") from e

        try:
            parsed = parse_json_from_response(raw_response)
        except ValueError as e:
            raise ScoringError(
                f"Failed to parse evaluator response: {e}. Response was: {raw_response[:300]}"
            ) from e
        return self.build_verdict(case_id, parsed)

    def build_verdict(self, case_id: str, parsed: Any) -> CaseVerdict:
        """Turn a parsed evaluator response into a CaseVerdict.

        Pure function: separated from the LLM call for testability.
        Raises ScoringError when a configured dimension is missing or non-numeric.
        """
        if not isinstance(parsed, dict) or not isinstance(parsed.get("scores"), dict):
            raise ScoringError("Invalid evaluator response structure: missing 'scores'")

        raw_scores = parsed["scores"]
        top = self.config.max_dimension_score
        dimensions: dict[str, float] = {}
        for name in self.config.dimensions:
            value = raw_scores.get(name)
            try:
                dimensions[name] = max(0.0, min(top, float(value)))
            except (TypeError, ValueError) as e:
                raise ScoringError(
                    f"Evaluator response has no numeric score for '{name}': {value!r}"
                ) from e

        low = [
            name for name, value in dimensions.items()
            if value < self.config.min_dimension_score
        ]
        passed = not low
        mean = sum(dimensions.values()) / len(dimensions) if dimensions else 0.0
        score = max(0.0, min(1.0, mean / top)) if top > 0 else 0.0

        tags: list[str] = []
        if low:
            tags.append(TAG_BELOW_MIN_DIMENSION)
            tags.extend(f"low_{name}" for name in low)

        return CaseVerdict(
            case_id=case_id,
            score=score,
            passed=passed,
            feedback=str(parsed.get("reasoning", "")),
            failure_tags=tuple(tags),
            dimensions=dimensions,
            issues=tuple(str(item) for item in parsed.get("failures") or []),
            suggestions=tuple(str(item) for item in parsed.get("suggestions") or []),
        )


# =============================================================================
# Batch scoring
# =============================================================================


def failed_verdict(case_id: str, tag: str, feedback: str) -> CaseVerdict:
    """A zero-score verdict for a case that could not be executed or scored."""
    return CaseVerdict(
        case_id=case_id,
        score=0.0,
        passed=False,
        feedback=feedback,
        failure_tags=(tag,),
    )


async def _score_case(
    scorer: Scorer,
    case: ReferenceCase,
    execution: Optional[CaseExecution],
    semaphore: asyncio.Semaphore,
    timeout_seconds: float,
) -> CaseVerdict:
    if execution is None:
        return failed_verdict(case.id, TAG_EXECUTION_ERROR, "No candidate output recorded")
    if not execution.succeeded:
        tag = TAG_EXECUTION_TIMEOUT if execution.timed_out else TAG_EXECUTION_ERROR
        return failed_verdict(case.id, tag, execution.error or "Execution failed")

    async with semaphore:
        try:
            verdict = await asyncio.wait_for(
                scorer.score(
                    case.input,
                    case.reference_output,
                    execution.output.text,
                    case_id=case.id,
                    expected_behavior=case.expected_behavior,
                ),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Case %s: scoring timed out after %.0fs", case.id, timeout_seconds)
            return failed_verdict(
                case.id, TAG_SCORING_TIMEOUT, f"Scoring timed out after {timeout_seconds}s"
            )
        except Exception as e:
            logger.warning("Case %s: scoring failed: %s", case.id, e)
            return failed_verdict(case.id, TAG_SCORING_ERROR, str(e) or type(e).__name__)

    if verdict.case_id != case.id:
        verdict = replace(verdict, case_id=case.id)
    logger.debug(
        "Case %s: %s score=%.2f", case.id, "pass" if verdict.passed else "fail", verdict.score
    )
    return verdict


async def score_batch(
    scorer: Scorer,
    cases: Sequence[ReferenceCase],
    executions: dict[str, CaseExecution],
    config: ExecutionConfig = ExecutionConfig(),
) -> list[CaseVerdict]:
    """Score a complete CandidateRun. Returns one verdict per case, in case order."""
    semaphore = asyncio.Semaphore(max(1, config.concurrency))
    verdicts = await asyncio.gather(
        *(
            _score_case(
                scorer, case, executions.get(case.id), semaphore, config.case_timeout_seconds
            )
            for case in cases
        )
    )
    return list(verdicts)


def compute_success_rate(verdicts: Sequence[CaseVerdict]) -> float:
    """Fraction of verdicts that passed. Raises ValueError on an empty batch."""
    if not verdicts:
        raise ValueError("Cannot compute a success rate over zero verdicts")
    return sum(1 for v in verdicts if v.passed) / len(verdicts)


def count_scored(verdicts: Sequence[CaseVerdict]) -> int:
    """Number of verdicts produced by a real evaluation (not an error placeholder)."""
    return sum(1 for v in verdicts if not ERROR_TAGS.intersection(v.failure_tags))
