"""distill: migrate an agent to a cheaper model by iteratively revising its instructions."""

from distill.config import (
    ExecutionConfig,
    LLMConfig,
    MigrationConfig,
    ReviserConfig,
    ScorerConfig,
)
from distill.core.errors import (
    ConfigError,
    DistillError,
    IterationError,
    LLMError,
    MigrationError,
    PolicyError,
    RevisionError,
)
from distill.core.llm import AnthropicClient, GeminiClient, LLMClient
from distill.executor import AgentExecutor, LLMAgentExecutor
from distill.loop import build_migration_graph, migrate
from distill.models import (
    AgentDescriptor,
    Budget,
    CaseVerdict,
    IterationRecord,
    MigrationResult,
    MigrationStatus,
    ProgressUpdate,
    ReferenceCase,
)
from distill.policies import (
    ConvergencePolicy,
    ExhaustivePolicy,
    PatiencePolicy,
    ThresholdBonusPolicy,
    make_policy,
)
from distill.report import format_report, summarize_verdicts
from distill.reviser import LLMReviser, Reviser
from distill.scorer import JudgeScorer, Scorer

__all__ = [
    "AgentDescriptor",
    "AgentExecutor",
    "AnthropicClient",
    "Budget",
    "CaseVerdict",
    "ConfigError",
    "ConvergencePolicy",
    "DistillError",
    "ExecutionConfig",
    "ExhaustivePolicy",
    "GeminiClient",
    "IterationError",
    "IterationRecord",
    "JudgeScorer",
    "LLMAgentExecutor",
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LLMReviser",
    "MigrationConfig",
    "MigrationError",
    "MigrationResult",
    "MigrationStatus",
    "PatiencePolicy",
    "PolicyError",
    "ProgressUpdate",
    "ReferenceCase",
    "Reviser",
    "RevisionError",
    "ReviserConfig",
    "Scorer",
    "ScorerConfig",
    "ThresholdBonusPolicy",
    "build_migration_graph",
    "format_report",
    "make_policy",
    "migrate",
    "summarize_verdicts",
]
