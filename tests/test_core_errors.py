"""Tests for distill.core.errors: error hierarchy and isinstance checks."""

from distill.core.errors import (
    ConfigError,
    DistillError,
    ExecutionError,
    IterationError,
    LLMError,
    MigrationError,
    PolicyError,
    RevisionError,
    ScoringError,
)


def test_distill_error_is_base():
    assert issubclass(DistillError, Exception)


def test_shared_errors_inherit_from_root():
    for cls in [ConfigError, LLMError]:
        assert issubclass(cls, DistillError)


def test_migration_errors_inherit_from_migration_error():
    for cls in [ExecutionError, ScoringError, IterationError, RevisionError, PolicyError]:
        assert issubclass(cls, MigrationError)
        assert issubclass(cls, DistillError)


def test_catch_broad_category():
    """Catching DistillError catches all specific errors."""
    try:
        raise RevisionError("test")
    except DistillError:
        pass  # should be caught


def test_error_message():
    err = LLMError("API timeout")
    assert str(err) == "API timeout"


def test_iteration_error_carries_history():
    err = IterationError("all failed", iteration=3, history=["a", "b"])
    assert str(err) == "all failed"
    assert err.iteration == 3
    assert err.history == ["a", "b"]
    assert err.partial_result is None


def test_iteration_error_defaults():
    err = IterationError("boom")
    assert err.iteration == 0
    assert err.history == []
