"""Migration loop graph (LangGraph StateGraph).

Graph topology:
    execute -> score -> decide
                 |         ├── "revise"   -> revise -> execute (loop back)
                 |         └── "finalize" -> finalize -> END
                 └── "finalize" (every case failed) -> finalize -> END
    revise ── "finalize" (reviser failed) -> finalize -> END

Iterations are strictly sequential. Inside one iteration the candidate
runs over all reference cases concurrently, and scoring starts only once
every case has an execution result.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Callable, Optional, Sequence

from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from distill.config import MigrationConfig
from distill.core.errors import ConfigError, IterationError, MigrationError, PolicyError
from distill.executor import AgentExecutor, run_candidate
from distill.models import (
    AgentDescriptor,
    Budget,
    Decision,
    IterationRecord,
    MigrationResult,
    MigrationState,
    MigrationStatus,
    ProgressUpdate,
    ReferenceCase,
)
from distill.policies import ConvergencePolicy, budget_exhausted
from distill.reviser import Reviser
from distill.scorer import Scorer, compute_success_rate, count_scored, score_batch
from distill.shaping import shape_failures

logger = logging.getLogger(__name__)

# Synchronous. An awaitable return value is closed unawaited and logged.
ProgressCallback = Callable[[ProgressUpdate], None]

# Nodes visited per iteration: execute, score, decide, revise
_STEPS_PER_ITERATION = 4


def _make_execute_node(executor: AgentExecutor, config: MigrationConfig):
    """Create an execute node that closes over the candidate executor.

    LangGraph nodes must have signature (state) -> dict, so dependencies
    are captured via closure rather than passed as arguments.
    """

    async def execute_node(state: MigrationState) -> dict:
        """Run the current instructions over every reference case."""
        iteration = state.get("iteration", 0) + 1
        cases = state.get("reference_cases", [])
        budget = state["budget"]
        logger.info(
            "Iteration %d/%d: executing candidate over %d cases",
            iteration, budget.max_iterations, len(cases),
        )
        executions = await run_candidate(
            executor, state["current_instructions"], cases, config.execution
        )
        return {"iteration": iteration, "executions": executions}

    return execute_node


def _make_score_node(scorer: Scorer, config: MigrationConfig):
    """Create a score node that closes over the scorer."""

    async def score_node(state: MigrationState) -> dict:
        """Score the CandidateRun and append one IterationRecord to history."""
        iteration = state["iteration"]
        cases = state.get("reference_cases", [])
        executions = state.get("executions", {})

        if not any(e.succeeded for e in executions.values()):
            message = f"All {len(cases)} cases failed to execute in iteration {iteration}"
            logger.warning("%s", message)
            return {"iteration_error": message}

        verdicts = await score_batch(scorer, cases, executions, config.execution)
        if count_scored(verdicts) == 0:
            message = f"No case could be scored in iteration {iteration}"
            logger.warning("%s", message)
            return {"iteration_error": message}

        success_rate = compute_success_rate(verdicts)
        outputs = [e.output for e in executions.values() if e.output is not None]
        record = IterationRecord(
            iteration=iteration,
            instructions=state["current_instructions"],
            success_rate=success_rate,
            verdicts=verdicts,
            total_cost=sum(o.cost for o in outputs),
            total_tokens=sum(o.total_tokens for o in outputs),
        )
        logger.info(
            "Iteration %d: %d/%d passed (%.1f%%)",
            iteration, record.passed_count, len(verdicts), success_rate * 100,
        )
        return {"history": state.get("history", []) + [record]}

    return score_node


def _notify(on_iteration: Optional[ProgressCallback], update: ProgressUpdate) -> None:
    """Fire the progress callback. Its failures never reach the loop."""
    if on_iteration is None:
        return
    try:
        returned = on_iteration(update)
    except Exception as e:
        logger.warning("Progress callback failed at iteration %d: %s", update.iteration, e)
        return
    if inspect.isawaitable(returned):
        if inspect.iscoroutine(returned):
            returned.close()
        logger.warning(
            "Progress callback returned an awaitable at iteration %d; "
            "on_iteration must be synchronous, update dropped",
            update.iteration,
        )


def _make_decide_node(
    policy: ConvergencePolicy,
    on_iteration: Optional[ProgressCallback],
    cancel_event: Optional[asyncio.Event],
):
    """Create a decide node that captures the policy and callback."""

    async def decide_node(state: MigrationState) -> dict:
        """Ask the policy whether to continue, then honor cancellation."""
        history = state.get("history", [])
        budget = state["budget"]
        record = history[-1]

        decision = policy.should_continue(
            record.iteration, record.success_rate, budget, history
        )
        if decision.should_continue and budget_exhausted(record.iteration, budget):
            raise PolicyError(
                f"Policy '{policy.name}' asked to continue at iteration {record.iteration} "
                f"with max_iterations={budget.max_iterations}"
            )
        logger.info(
            "Iteration %d: %s (%s)",
            record.iteration, "continue" if decision.should_continue else "stop", decision.reason,
        )

        _notify(
            on_iteration,
            ProgressUpdate(
                iteration=record.iteration,
                success_rate=record.success_rate,
                instructions=record.instructions,
                should_continue=decision.should_continue,
                reason=decision.reason,
            ),
        )

        if decision.should_continue and cancel_event is not None and cancel_event.is_set():
            logger.warning("Migration cancelled after iteration %d", record.iteration)
            return {
                "decision": Decision(False, f"Cancelled after iteration {record.iteration}"),
                "cancelled": True,
            }
        return {"decision": decision, "cancelled": False}

    return decide_node


def _make_revise_node(reviser: Reviser, config: MigrationConfig):
    """Create a revise node that captures the reviser and shaping config."""

    async def revise_node(state: MigrationState) -> dict:
        """Shape the failing cases and ask the reviser for new instructions."""
        record = state["history"][-1]
        failures = shape_failures(
            record.failed_verdicts,
            state.get("reference_cases", []),
            state.get("executions", {}),
            config.reviser,
        )
        try:
            revised = await reviser.revise(state["current_instructions"], failures)
        except Exception as e:
            logger.warning("Reviser failed after iteration %d: %s", record.iteration, e)
            return {"revision_error": str(e) or type(e).__name__}
        if not revised or not revised.strip():
            logger.warning("Reviser returned empty instructions after iteration %d", record.iteration)
            return {"revision_error": "Reviser returned empty instructions"}
        # Candidate outputs belong to the iteration that produced them
        return {"current_instructions": revised, "executions": {}}

    return revise_node


def _resolve_status(state: MigrationState, success: bool) -> MigrationStatus:
    if state.get("revision_error") or state.get("iteration_error"):
        return MigrationStatus.ABORTED
    if state.get("cancelled"):
        return MigrationStatus.CANCELLED
    return MigrationStatus.CONVERGED if success else MigrationStatus.BEST_EFFORT


def _make_finalize_node(policy: ConvergencePolicy):
    """Create a finalize node that asks the policy for the best attempt."""

    async def finalize_node(state: MigrationState) -> dict:
        """Build the MigrationResult from the best historical iteration."""
        history = state.get("history", [])
        if not history:
            return {"result": None}

        budget = state["budget"]
        best = policy.best_result(history, budget)
        success = best.success_rate >= budget.threshold
        status = _resolve_status(state, success)

        warning: Optional[str] = None
        stop_reason = ""
        decision = state.get("decision")
        if state.get("revision_error"):
            warning = f"Could not continue optimizing: {state['revision_error']}"
            stop_reason = "Reviser failed"
        elif state.get("iteration_error"):
            warning = state["iteration_error"]
            stop_reason = "Iteration failed"
        elif decision is not None:
            stop_reason = decision.reason

        source = state.get("source")
        target = state.get("target")
        return {
            "result": MigrationResult(
                success=success,
                iterations=len(history),
                final_success_rate=best.success_rate,
                final_instructions=best.instructions,
                original_instructions=state.get("original_instructions", ""),
                status=status,
                best_iteration=best.iteration,
                stop_reason=stop_reason,
                warning=warning,
                history=tuple(history),
                source_model=source.model if source else "",
                target_model=target.model if target else "",
            )
        }

    return finalize_node


def _route_after_score(state: MigrationState) -> str:
    return "finalize" if state.get("iteration_error") else "decide"


def _route_after_decide(state: MigrationState) -> str:
    decision = state.get("decision")
    return "revise" if decision is not None and decision.should_continue else "finalize"


def _route_after_revise(state: MigrationState) -> str:
    return "finalize" if state.get("revision_error") else "execute"


def build_migration_graph(
    executor: AgentExecutor,
    scorer: Scorer,
    reviser: Reviser,
    policy: ConvergencePolicy,
    config: MigrationConfig = MigrationConfig(),
    on_iteration: Optional[ProgressCallback] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> CompiledStateGraph:
    """Build the migration loop as a LangGraph StateGraph.

    Args:
        executor: Runs the candidate agent on one input.
        scorer: Judges one (input, reference, candidate) triple.
        reviser: Rewrites instructions from shaped failures.
        policy: Stopping rule; must already be initialized for this run.
        config: Concurrency, timeouts, scorer and reviser settings.
        on_iteration: Synchronous progress callback fired after every policy
            decision. Awaitable return values are discarded with a warning.
        cancel_event: When set, the loop stops at the next iteration boundary.

    Returns a compiled StateGraph ready to invoke.
    """
    graph = StateGraph(MigrationState)

    graph.add_node("execute", _make_execute_node(executor, config))
    graph.add_node("score", _make_score_node(scorer, config))
    graph.add_node("decide", _make_decide_node(policy, on_iteration, cancel_event))
    graph.add_node("revise", _make_revise_node(reviser, config))
    graph.add_node("finalize", _make_finalize_node(policy))

    graph.add_edge(START, "execute")
    graph.add_edge("execute", "score")
    graph.add_conditional_edges(
        "score", _route_after_score, {"decide": "decide", "finalize": "finalize"}
    )
    graph.add_conditional_edges(
        "decide", _route_after_decide, {"revise": "revise", "finalize": "finalize"}
    )
    graph.add_conditional_edges(
        "revise", _route_after_revise, {"execute": "execute", "finalize": "finalize"}
    )
    graph.add_edge("finalize", END)

    return graph.compile()


def _validate_cases(reference_cases: Sequence[ReferenceCase]) -> list[ReferenceCase]:
    cases = list(reference_cases)
    if not cases:
        raise ConfigError("reference_cases must not be empty")
    seen: set[str] = set()
    for case in cases:
        if case.id in seen:
            raise ConfigError(f"Duplicate reference case id: {case.id}")
        seen.add(case.id)
    return cases


async def migrate(
    source: AgentDescriptor,
    target: AgentDescriptor,
    reference_cases: Sequence[ReferenceCase],
    budget: Budget,
    policy: ConvergencePolicy,
    on_iteration: Optional[ProgressCallback] = None,
    *,
    executor: AgentExecutor,
    scorer: Scorer,
    reviser: Reviser,
    config: MigrationConfig = MigrationConfig(),
    cancel_event: Optional[asyncio.Event] = None,
) -> MigrationResult:
    """Migrate the target agent's instructions until the policy says stop.

    Main entry point. The target's instructions are the starting candidate.
    The result always describes the best-scoring iteration, whatever the
    reason for stopping.

    Raises:
        ConfigError: If reference_cases is empty or has duplicate ids.
        IterationError: If no case of an iteration executed or could be
            scored. Carries the history so far and, when available, a
            partial result.
        PolicyError: If the policy broke the max_iterations invariant.
    """
    cases = _validate_cases(reference_cases)
    policy.initialize(budget)
    logger.info(
        "Migrating %s (%s) -> %s (%s): %d cases, threshold %.1f%%, max %d iterations, policy %s",
        source.name, source.model, target.name, target.model, len(cases),
        budget.threshold * 100, budget.max_iterations, policy.name,
    )

    graph = build_migration_graph(
        executor, scorer, reviser, policy, config, on_iteration, cancel_event
    )
    initial_state: MigrationState = {
        "source": source,
        "target": target,
        "reference_cases": cases,
        "budget": budget,
        "original_instructions": target.instructions,
        "current_instructions": target.instructions,
        "iteration": 0,
        "history": [],
    }
    final_state = await graph.ainvoke(
        initial_state,
        config={"recursion_limit": budget.max_iterations * _STEPS_PER_ITERATION + 5},
    )

    if final_state.get("iteration_error"):
        raise IterationError(
            final_state["iteration_error"],
            iteration=final_state.get("iteration", 0),
            history=final_state.get("history", []),
            partial_result=final_state.get("result"),
        )

    result = final_state.get("result")
    if result is None:
        raise MigrationError("Migration loop ended without a result")
    logger.info(
        "Migration %s after %d iterations: best iteration %d with %.1f%%",
        result.status.value, result.iterations, result.best_iteration,
        result.final_success_rate * 100,
    )
    return result
