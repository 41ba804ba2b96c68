"""Candidate execution over the reference cases.

The engine only needs execute(instructions, case_input) -> CandidateOutput.
run_candidate fans that out over every reference case with a bounded
concurrency window and a per-call timeout. Per-case errors become data
(a failed CaseExecution), never exceptions.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol, Sequence, runtime_checkable

from distill.config import ExecutionConfig
from distill.core.errors import ExecutionError
from distill.core.llm import LLMClient
from distill.models import AgentDescriptor, CandidateOutput, CaseExecution, ReferenceCase
from distill.pricing import compute_cost

logger = logging.getLogger(__name__)


@runtime_checkable
class AgentExecutor(Protocol):
    """Runs the candidate agent on one input with the given instructions."""

    async def execute(self, instructions: str, case_input: str) -> CandidateOutput:
        ...


class LLMAgentExecutor:
    """AgentExecutor backed by an LLMClient and the target agent's model settings."""

    def __init__(self, llm_client: LLMClient, target: AgentDescriptor) -> None:
        self.llm_client = llm_client
        self.target = target

    async def execute(self, instructions: str, case_input: str) -> CandidateOutput:
        start = time.perf_counter()
        try:
            completion = await self.llm_client.complete_with_usage(
                system=instructions,
                user=case_input,
                model=self.target.model,
                temperature=self.target.temperature,
                max_tokens=self.target.max_tokens,
            )
        except Exception as e:
            raise ExecutionError(f"Agent execution failed: {e}") from e
        latency_ms = int((time.perf_counter() - start) * 1000)
        return CandidateOutput(
            text=completion.text,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            latency_ms=latency_ms,
            cost=compute_cost(
                self.target.model, completion.input_tokens, completion.output_tokens
            ),
        )


async def _execute_case(
    executor: AgentExecutor,
    instructions: str,
    case: ReferenceCase,
    semaphore: asyncio.Semaphore,
    timeout_seconds: float,
) -> CaseExecution:
    async with semaphore:
        try:
            output = await asyncio.wait_for(
                executor.execute(instructions, case.input), timeout=timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Case %s: execution timed out after %.0fs", case.id, timeout_seconds
            )
            return CaseExecution(
                case_id=case.id,
                error=f"Execution timed out after {timeout_seconds}s",
                timed_out=True,
            )
        except Exception as e:
            logger.warning("Case %s: execution failed: %s", case.id, e)
            return CaseExecution(case_id=case.id, error=str(e) or type(e).__name__)
    return CaseExecution(case_id=case.id, output=output)


async def run_candidate(
    executor: AgentExecutor,
    instructions: str,
    cases: Sequence[ReferenceCase],
    config: ExecutionConfig = ExecutionConfig(),
) -> dict[str, CaseExecution]:
    """Execute the instructions over every case; return results keyed by case id.

    At most config.concurrency calls are in flight. Returns only once every
    case has an entry, successful or not.
    """
    semaphore = asyncio.Semaphore(max(1, config.concurrency))
    executions = await asyncio.gather(
        *(
            _execute_case(executor, instructions, case, semaphore, config.case_timeout_seconds)
            for case in cases
        )
    )
    results: dict[str, CaseExecution] = {}
    for execution in executions:
        if execution.case_id in results:
            raise ExecutionError(f"Duplicate reference case id: {execution.case_id}")
        results[execution.case_id] = execution
    return results
