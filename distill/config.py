"""Migration configuration.

Composes all sub-configs. Each module receives the relevant slice.
Uses field(default_factory=...) for nested defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LLMConfig:
    """Call parameters shared by every LLMClient implementation.

    API keys belong to the clients. Failed calls are retried up to
    max_retries times, sleeping backoff_seconds * 2**attempt in between.
    """

    max_retries: int = 3
    backoff_seconds: float = 1.0
    temperature: float = 0.0
    max_tokens: int = 4096


@dataclass(frozen=True)
class ExecutionConfig:
    """Concurrency window and per-call timeout for case-level calls.

    Applies to both candidate execution and scoring.
    """

    concurrency: int = 3
    case_timeout_seconds: float = 120.0


@dataclass(frozen=True)
class ScorerConfig:
    """Evaluator settings.

    A case passes only when every dimension reaches min_dimension_score.
    """

    min_dimension_score: float = 8.0
    max_dimension_score: float = 10.0
    dimensions: tuple[str, ...] = ("correctness", "completeness", "quality", "consistency")
    model: str = ""
    temperature: float = 0.0
    max_tokens: int = 1024


@dataclass(frozen=True)
class ReviserConfig:
    """Instruction reviser settings.

    abstract_failures is the anti-overfitting switch: when True the reviser
    only sees abstracted failure patterns, never the raw reference cases.
    """

    abstract_failures: bool = True
    max_failures: int = 10
    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 4096

    # Input classification (character counts)
    simple_input_chars: int = 30
    complex_input_chars: int = 50
    # Relative length difference still reported as "similar"
    length_tolerance: float = 0.2


@dataclass(frozen=True)
class MigrationConfig:
    """Top-level configuration for a migration run."""

    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    scorer: ScorerConfig = field(default_factory=ScorerConfig)
    reviser: ReviserConfig = field(default_factory=ReviserConfig)
