"""Failure shaping: what the reviser gets to see about failing cases.

Abstract mode reduces each failing case to a pattern (question type,
length mismatch, issue tags) so the reviser writes transferable
instructions instead of memorizing the reference answers. Verbatim mode
passes the raw input, reference and candidate text through.

Both are pure functions over the verdicts and the current CandidateRun.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from distill.config import ReviserConfig
from distill.models import (
    AbstractFailure,
    CaseExecution,
    CaseVerdict,
    FailureReport,
    LengthDirection,
    ReferenceCase,
    VerbatimFailure,
)


def classify_input(case: ReferenceCase, config: ReviserConfig = ReviserConfig()) -> str:
    """Describe the kind of request without revealing its content.

    The reference case category wins when present.
    """
    if case.category:
        return case.category
    text = case.input
    if len(text) < config.simple_input_chars:
        return "simple"
    if "one sentence" in text.lower():
        return "concise_explanation"
    if len(text) > config.complex_input_chars:
        return "complex"
    return "general"


def length_direction(expected: int, actual: int, tolerance: float = 0.2) -> LengthDirection:
    """Compare candidate length to reference length within a relative tolerance."""
    if expected == 0:
        return LengthDirection.SIMILAR if actual == 0 else LengthDirection.LONGER
    delta = (actual - expected) / expected
    if delta > tolerance:
        return LengthDirection.LONGER
    if delta < -tolerance:
        return LengthDirection.SHORTER
    return LengthDirection.SIMILAR


def _candidate_text(executions: Mapping[str, CaseExecution], case_id: str) -> str:
    execution = executions.get(case_id)
    if execution is None or execution.output is None:
        return ""
    return execution.output.text


def abstract_failures(
    failing: Sequence[CaseVerdict],
    cases: Mapping[str, ReferenceCase],
    executions: Mapping[str, CaseExecution],
    config: ReviserConfig = ReviserConfig(),
) -> list[AbstractFailure]:
    """Reduce failing cases to patterns. No case text survives."""
    patterns: list[AbstractFailure] = []
    for verdict in failing[: config.max_failures]:
        case = cases[verdict.case_id]
        expected = len(case.reference_output)
        actual = len(_candidate_text(executions, verdict.case_id))
        patterns.append(
            AbstractFailure(
                index=len(patterns) + 1,
                question_type=classify_input(case, config),
                expected_length=expected,
                actual_length=actual,
                length_direction=length_direction(expected, actual, config.length_tolerance),
                issues=verdict.issues,
                suggestions=verdict.suggestions,
                failure_tags=verdict.failure_tags,
            )
        )
    return patterns


def verbatim_failures(
    failing: Sequence[CaseVerdict],
    cases: Mapping[str, ReferenceCase],
    executions: Mapping[str, CaseExecution],
    config: ReviserConfig = ReviserConfig(),
) -> list[VerbatimFailure]:
    """Pass failing cases through with their full text."""
    reports: list[VerbatimFailure] = []
    for verdict in failing[: config.max_failures]:
        case = cases[verdict.case_id]
        reports.append(
            VerbatimFailure(
                index=len(reports) + 1,
                case_id=case.id,
                input=case.input,
                expected_output=case.reference_output,
                actual_output=_candidate_text(executions, verdict.case_id),
                score=verdict.score,
                feedback=verdict.feedback,
                issues=verdict.issues,
            )
        )
    return reports


def shape_failures(
    failing: Sequence[CaseVerdict],
    cases: Sequence[ReferenceCase],
    executions: Mapping[str, CaseExecution],
    config: ReviserConfig = ReviserConfig(),
) -> list[FailureReport]:
    """Shape failing verdicts for the reviser according to config.abstract_failures."""
    by_id = {case.id: case for case in cases}
    if config.abstract_failures:
        return list(abstract_failures(failing, by_id, executions, config))
    return list(verbatim_failures(failing, by_id, executions, config))
