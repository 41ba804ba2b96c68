"""Convergence policies: when to stop iterating, and which attempt to report.

Each policy is an independent implementation of the ConvergencePolicy
protocol. They share no base class, only two module-level helpers:
the budget guard and the best-result scan.

Every policy stops once iteration >= budget.max_iterations. Every policy
reports the best-scoring iteration in history (earliest on ties), never
simply the last one.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol, Sequence, runtime_checkable

from distill.core.errors import ConfigError, PolicyError
from distill.models import BestResult, Budget, Decision, IterationRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class ConvergencePolicy(Protocol):
    """Protocol for a stopping rule.

    initialize() resets all private counters; call it once per run.
    """

    @property
    def name(self) -> str:
        ...

    def initialize(self, budget: Budget) -> None:
        ...

    def should_continue(
        self,
        iteration: int,
        success_rate: float,
        budget: Budget,
        history: Sequence[IterationRecord],
    ) -> Decision:
        ...

    def best_result(
        self, history: Sequence[IterationRecord], budget: Budget
    ) -> BestResult:
        ...


# =============================================================================
# Shared helpers
# =============================================================================


def budget_exhausted(iteration: int, budget: Budget) -> bool:
    return iteration >= budget.max_iterations


def select_best(history: Sequence[IterationRecord]) -> BestResult:
    """Scan history for the highest success rate. Ties go to the earliest.

    Raises PolicyError on an empty history: there is nothing to report.
    """
    if not history:
        raise PolicyError("Cannot select a best result from an empty history")
    best = history[0]
    for record in history[1:]:
        if record.success_rate > best.success_rate:
            best = record
    return BestResult(
        instructions=best.instructions,
        success_rate=best.success_rate,
        iteration=best.iteration,
    )


def _log_best(policy_name: str, best: BestResult, history: Sequence[IterationRecord]) -> None:
    logger.info(
        "%s: best iteration %d of %d with %.1f%%",
        policy_name, best.iteration, len(history), best.success_rate * 100,
    )


# =============================================================================
# Exhaustive
# =============================================================================


class ExhaustivePolicy:
    """Always runs every iteration in the budget, then reports the best one."""

    name = "always-max"

    def initialize(self, budget: Budget) -> None:
        logger.info("Policy %s: will run all %d iterations", self.name, budget.max_iterations)

    def should_continue(
        self,
        iteration: int,
        success_rate: float,
        budget: Budget,
        history: Sequence[IterationRecord],
    ) -> Decision:
        if budget_exhausted(iteration, budget):
            return Decision(False, f"Completed all {budget.max_iterations} iterations")
        return Decision(
            True, f"Running all iterations ({iteration}/{budget.max_iterations})"
        )

    def best_result(
        self, history: Sequence[IterationRecord], budget: Budget
    ) -> BestResult:
        best = select_best(history)
        _log_best(self.name, best, history)
        return best


# =============================================================================
# Patience (early stopping)
# =============================================================================


class PatiencePolicy:
    """Stops after `patience` consecutive iterations without enough improvement.

    An iteration counts as an improvement when it beats the best rate so
    far by at least min_improvement. Improvements reset the countdown.

    Example (patience=3, min_improvement=0.05):
        0.50 -> best=0.50, remaining=3
        0.75 -> best=0.75, remaining=3
        0.76 -> remaining=2 (gain 0.01 < 0.05)
        0.75 -> remaining=1
        0.74 -> remaining=0 -> stop; reports 0.76
    """

    name = "early-stop"

    def __init__(self, patience: int, min_improvement: float = 0.01) -> None:
        if patience < 1:
            raise ConfigError(f"patience must be >= 1, got {patience}")
        if min_improvement < 0:
            raise ConfigError(f"min_improvement must be >= 0, got {min_improvement}")
        self.patience = patience
        self.min_improvement = min_improvement
        self._best_so_far = 0.0
        self._remaining = patience

    @property
    def remaining_patience(self) -> int:
        return self._remaining

    def initialize(self, budget: Budget) -> None:
        self._best_so_far = 0.0
        self._remaining = self.patience
        logger.info(
            "Policy %s: patience=%d, min_improvement=%.3f, max_iterations=%d",
            self.name, self.patience, self.min_improvement, budget.max_iterations,
        )

    def should_continue(
        self,
        iteration: int,
        success_rate: float,
        budget: Budget,
        history: Sequence[IterationRecord],
    ) -> Decision:
        if success_rate - self._best_so_far >= self.min_improvement:
            self._best_so_far = success_rate
            self._remaining = self.patience
        else:
            self._remaining -= 1

        if self._remaining <= 0:
            return Decision(False, f"No improvement for {self.patience} iterations")
        if budget_exhausted(iteration, budget):
            return Decision(False, f"Reached max_iterations ({budget.max_iterations})")
        return Decision(
            True, f"Patience remaining: {self._remaining}/{self.patience}"
        )

    def best_result(
        self, history: Sequence[IterationRecord], budget: Budget
    ) -> BestResult:
        best = select_best(history)
        _log_best(self.name, best, history)
        if len(history) < budget.max_iterations:
            logger.info(
                "Stopped early after %d iterations (max was %d)",
                len(history), budget.max_iterations,
            )
        return best


# =============================================================================
# Threshold plus bonus rounds
# =============================================================================


class ThresholdBonusPolicy:
    """Keeps going for a few bonus rounds once the threshold is first met.

    Bonus rounds are capped by the remaining budget:
        granted = min(bonus_rounds, max_iterations - iteration_reached)

    Example (bonus_rounds=2, threshold=0.75, max_iterations=5):
        threshold first met at iteration 4 -> granted = min(2, 1) = 1
        iteration 5 is the single bonus round, then stop.

    The bonus bookkeeping only drives continuation. The reported result is
    the best iteration overall, which can precede a regressing bonus round.
    """

    name = "threshold-bonus"

    def __init__(self, bonus_rounds: int = 2) -> None:
        if bonus_rounds < 0:
            raise ConfigError(f"bonus_rounds must be >= 0, got {bonus_rounds}")
        self.bonus_rounds = bonus_rounds
        self._threshold_reached_at: Optional[int] = None
        self._bonus_rounds_granted = 0

    @property
    def threshold_reached_at(self) -> Optional[int]:
        return self._threshold_reached_at

    @property
    def bonus_rounds_granted(self) -> int:
        return self._bonus_rounds_granted

    def initialize(self, budget: Budget) -> None:
        self._threshold_reached_at = None
        self._bonus_rounds_granted = 0
        logger.info(
            "Policy %s: bonus_rounds=%d after threshold %.1f%%",
            self.name, self.bonus_rounds, budget.threshold * 100,
        )

    def should_continue(
        self,
        iteration: int,
        success_rate: float,
        budget: Budget,
        history: Sequence[IterationRecord],
    ) -> Decision:
        if self._threshold_reached_at is None and success_rate >= budget.threshold:
            self._threshold_reached_at = iteration
            remaining = max(0, budget.max_iterations - iteration)
            self._bonus_rounds_granted = min(self.bonus_rounds, remaining)
            logger.info(
                "Threshold reached at iteration %d; granting %d bonus rounds "
                "(requested %d, remaining %d)",
                iteration, self._bonus_rounds_granted, self.bonus_rounds, remaining,
            )

        if self._threshold_reached_at is not None:
            since = iteration - self._threshold_reached_at
            if since >= self._bonus_rounds_granted or budget_exhausted(iteration, budget):
                return Decision(
                    False,
                    f"Completed {self._bonus_rounds_granted} bonus rounds after threshold",
                )
            return Decision(
                True, f"Bonus round {since + 1}/{self._bonus_rounds_granted}"
            )

        if budget_exhausted(iteration, budget):
            return Decision(
                False,
                f"Reached max_iterations ({budget.max_iterations}) without hitting threshold",
            )
        return Decision(
            True,
            f"Seeking threshold ({success_rate:.1%} < {budget.threshold:.1%})",
        )

    def best_result(
        self, history: Sequence[IterationRecord], budget: Budget
    ) -> BestResult:
        best = select_best(history)
        _log_best(self.name, best, history)
        if self._threshold_reached_at is not None:
            logger.info(
                "Threshold reached at iteration %d, %d bonus rounds granted",
                self._threshold_reached_at, self._bonus_rounds_granted,
            )
        else:
            logger.info("Threshold never reached, returning best attempt")
        return best


# =============================================================================
# Registry
# =============================================================================


_POLICIES: dict[str, Callable[..., Any]] = {
    ExhaustivePolicy.name: ExhaustivePolicy,
    PatiencePolicy.name: PatiencePolicy,
    ThresholdBonusPolicy.name: ThresholdBonusPolicy,
}


def policy_names() -> list[str]:
    return sorted(_POLICIES)


def make_policy(name: str, **params: Any) -> ConvergencePolicy:
    """Build a policy by its registered name.

    Usage:
        make_policy("early-stop", patience=3)
        make_policy("threshold-bonus", bonus_rounds=2)

    Raises ConfigError for unknown names or parameters.
    """
    factory = _POLICIES.get(name)
    if factory is None:
        raise ConfigError(
            f"Unknown policy '{name}'. Expected one of: {', '.join(policy_names())}"
        )
    try:
        return factory(**params)
    except TypeError as e:
        raise ConfigError(f"Invalid parameters for policy '{name}': {e}") from e
