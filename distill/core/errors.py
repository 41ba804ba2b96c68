"""Exception hierarchy for the distill project.

DistillError is the root. All exceptions inherit from it so callers
can catch broad categories or specific types.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from distill.models import IterationRecord, MigrationResult


class DistillError(Exception):
    """Root exception for the entire project."""


# --- Shared errors ---


class ConfigError(DistillError):
    """Configuration errors: invalid budget, policy parameters, unknown policy."""


class LLMError(DistillError):
    """LLM API call failures: network errors, rate limits, malformed responses."""


# --- Migration engine ---


class MigrationError(DistillError):
    """Base for all convergence engine errors."""


class ExecutionError(MigrationError):
    """A candidate execution failed for one reference case."""


class ScoringError(MigrationError):
    """The evaluator call or its response parsing failed for one case."""


class IterationError(MigrationError):
    """Every case of an iteration failed to execute.

    Fatal for the run. Carries the history accumulated so far and, when at
    least one iteration completed, a result built from the best of them.
    """

    def __init__(
        self,
        message: str,
        iteration: int = 0,
        history: Optional[list[IterationRecord]] = None,
        partial_result: Optional[MigrationResult] = None,
    ) -> None:
        super().__init__(message)
        self.iteration = iteration
        self.history: list[Any] = list(history or [])
        self.partial_result = partial_result


class RevisionError(MigrationError):
    """The reviser failed or returned unusable instructions."""


class PolicyError(MigrationError):
    """A convergence policy broke its contract (programming defect)."""
