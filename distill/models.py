"""distill data models and migration state.

Contains all dataclasses that cross module boundaries.
MigrationState is the LangGraph TypedDict for the migration loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TypedDict, Union

from distill.core.errors import ConfigError


# --- Enums ---


class MigrationStatus(str, Enum):
    """How a migration run ended."""

    CONVERGED = "converged"
    BEST_EFFORT = "best_effort"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class LengthDirection(str, Enum):
    """Candidate output length relative to the reference output."""

    LONGER = "longer"
    SHORTER = "shorter"
    SIMILAR = "similar"


# --- Inputs ---


@dataclass(frozen=True)
class AgentDescriptor:
    """An agent: a model plus the instructions (system prompt) it runs with."""

    name: str
    model: str
    instructions: str
    provider: str = "anthropic"
    temperature: float = 0.0
    max_tokens: int = 4096
    description: str = ""


@dataclass(frozen=True)
class ReferenceCase:
    """One (input, gold-standard output) pair captured from the source agent.

    Immutable. Read-only to the engine.
    """

    id: str
    input: str
    reference_output: str
    category: Optional[str] = None
    expected_behavior: Optional[str] = None


@dataclass(frozen=True)
class Budget:
    """Threshold and iteration limit for one migration. Never changes mid-run."""

    threshold: float
    max_iterations: int

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ConfigError(f"threshold must be in [0, 1], got {self.threshold}")
        if self.max_iterations < 1:
            raise ConfigError(f"max_iterations must be >= 1, got {self.max_iterations}")


# --- Candidate execution ---


@dataclass(frozen=True)
class CandidateOutput:
    """Output of running the candidate agent on one input."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class CaseExecution:
    """Outcome of executing one reference case: an output or an error."""

    case_id: str
    output: Optional[CandidateOutput] = None
    error: Optional[str] = None
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.output is not None and self.error is None


# --- Scoring ---


@dataclass(frozen=True)
class CaseVerdict:
    """The evaluator's judgment on one case.

    Immutable. dimensions holds the individual sub-dimension scores
    on the evaluator's own scale; score is normalized to [0, 1].
    """

    case_id: str
    score: float
    passed: bool
    feedback: str = ""
    failure_tags: tuple[str, ...] = ()
    dimensions: dict[str, float] = field(default_factory=dict)
    issues: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "failure_tags", tuple(self.failure_tags))
        object.__setattr__(self, "issues", tuple(self.issues))
        object.__setattr__(self, "suggestions", tuple(self.suggestions))


@dataclass(frozen=True)
class IterationRecord:
    """One completed pass of the loop. History entries are never mutated."""

    iteration: int
    instructions: str
    success_rate: float
    verdicts: tuple[CaseVerdict, ...] = ()
    total_cost: float = 0.0
    total_tokens: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "verdicts", tuple(self.verdicts))
        if self.iteration < 1:
            raise ValueError(f"iteration must be >= 1, got {self.iteration}")
        if not 0.0 <= self.success_rate <= 1.0:
            raise ValueError(f"success_rate must be in [0, 1], got {self.success_rate}")

    @property
    def passed_count(self) -> int:
        return sum(1 for v in self.verdicts if v.passed)

    @property
    def average_score(self) -> float:
        if not self.verdicts:
            return 0.0
        return sum(v.score for v in self.verdicts) / len(self.verdicts)

    @property
    def failed_verdicts(self) -> list[CaseVerdict]:
        return [v for v in self.verdicts if not v.passed]


# --- Policy I/O ---


@dataclass(frozen=True)
class Decision:
    """A policy's continue/stop answer. Transient."""

    should_continue: bool
    reason: str


@dataclass(frozen=True)
class BestResult:
    """The best-scoring historical iteration."""

    instructions: str
    success_rate: float
    iteration: int


@dataclass(frozen=True)
class ProgressUpdate:
    """Payload handed to the on_iteration callback after each decision."""

    iteration: int
    success_rate: float
    instructions: str
    should_continue: bool = False
    reason: str = ""


# --- Reviser input (shaped failures) ---


@dataclass(frozen=True)
class AbstractFailure:
    """A failing case reduced to its pattern. Carries no case text."""

    index: int
    question_type: str
    expected_length: int
    actual_length: int
    length_direction: LengthDirection
    issues: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    failure_tags: tuple[str, ...] = ()

    def to_prompt_context(self) -> str:
        """Format for inclusion in reviser prompts."""
        lines = [
            f"Pattern {self.index} - {self.question_type} question:",
            f"Length mismatch: expected ~{self.expected_length} chars, "
            f"got {self.actual_length} chars ({self.length_direction.value})",
        ]
        if self.failure_tags:
            lines.append(f"Tags: {', '.join(self.failure_tags)}")
        if self.issues:
            lines.append(f"Issues: {'; '.join(self.issues)}")
        if self.suggestions:
            lines.append(f"General guidance needed: {'; '.join(self.suggestions)}")
        return "\n".join(lines)


@dataclass(frozen=True)
class VerbatimFailure:
    """A failing case with its full input, reference and candidate text."""

    index: int
    case_id: str
    input: str
    expected_output: str
    actual_output: str
    score: float
    feedback: str = ""
    issues: tuple[str, ...] = ()

    def to_prompt_context(self) -> str:
        """Format for inclusion in reviser prompts."""
        lines = [
            f"Failure {self.index} (score: {self.score:.2f}):",
            f"Input: {self.input}",
            f"Expected: {self.expected_output}",
            f"Got: {self.actual_output}",
        ]
        if self.feedback:
            lines.append(f"Feedback: {self.feedback}")
        if self.issues:
            lines.append(f"Issues: {'; '.join(self.issues)}")
        return "\n".join(lines)


FailureReport = Union[AbstractFailure, VerbatimFailure]


# --- Output ---


@dataclass(frozen=True)
class MigrationResult:
    """Final outcome of a migration run. Produced once, immutable thereafter.

    final_* fields describe the best-scoring iteration, not the last one.
    """

    success: bool
    iterations: int
    final_success_rate: float
    final_instructions: str
    original_instructions: str
    status: MigrationStatus = MigrationStatus.BEST_EFFORT
    best_iteration: int = 0
    stop_reason: str = ""
    warning: Optional[str] = None
    history: tuple[IterationRecord, ...] = ()
    source_model: str = ""
    target_model: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "history", tuple(self.history))

    @property
    def total_cost(self) -> float:
        return sum(record.total_cost for record in self.history)

    @property
    def aborted(self) -> bool:
        return self.status == MigrationStatus.ABORTED


# --- Migration Loop State (LangGraph TypedDict) ---


class MigrationState(TypedDict, total=False):
    """LangGraph state for the migration loop.

    total=False: all fields optional, enabling incremental building.
    Nodes read/write only their fields.
    """

    # Inputs (set by migrate)
    source: AgentDescriptor
    target: AgentDescriptor
    reference_cases: list[ReferenceCase]
    budget: Budget
    original_instructions: str

    # Progress
    iteration: int
    current_instructions: str

    # Execute node output (current iteration only)
    executions: dict[str, CaseExecution]

    # Score node output
    history: list[IterationRecord]

    # Decide node output
    decision: Optional[Decision]
    cancelled: bool

    # Fatal errors (routed to finalize)
    iteration_error: Optional[str]
    revision_error: Optional[str]

    # Finalize node output
    result: Optional[MigrationResult]
