"""Tests for stepflow.core.errors and the orchestration exception hierarchy."""

import pytest

from stepflow.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    OrchestrationError,
    StepflowError,
    categorize_error,
    is_config_error,
)
from stepflow.orchestration.exceptions import (
    CycleDetectedError,
    DependencyError,
    DuplicateStepError,
    PipelineConfigError,
    StepActivationError,
    StepContractError,
)


class TestStepflowError:
    """Test the base error."""

    def test_default_category_is_internal(self):
        error = StepflowError("boom")
        assert error.category == ErrorCategory.INTERNAL
        assert str(error) == "boom"

    def test_explicit_category_wins(self):
        error = StepflowError("boom", category=ErrorCategory.CONFIG)
        assert error.category == ErrorCategory.CONFIG

    def test_cause_is_chained(self):
        cause = KeyError("missing")
        error = StepflowError("wrapped", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == str(cause)

    def test_with_context_sets_known_fields_and_metadata(self):
        error = StepflowError("boom").with_context(pipeline="checkout", step="charge", run_id="r1")
        assert error.context.pipeline == "checkout"
        assert error.context.step == "charge"
        assert error.context.metadata == {"run_id": "r1"}

    def test_to_dict(self):
        error = OrchestrationError("bad run").with_context(level=2)
        data = error.to_dict()
        assert data["error_type"] == "OrchestrationError"
        assert data["message"] == "bad run"
        assert data["category"] == "ORCHESTRATION"
        assert data["context"] == {"level": 2}

    def test_to_dict_omits_empty_context(self):
        assert "context" not in StepflowError("x").to_dict()

    def test_repr(self):
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"


class TestErrorContext:
    """Test ErrorContext serialization."""

    def test_only_set_fields_are_serialized(self):
        ctx = ErrorContext(step="a", metadata={"attempt": 1})
        assert ctx.to_dict() == {"step": "a", "attempt": 1}

    def test_level_zero_is_kept(self):
        assert ErrorContext(level=0).to_dict() == {"level": 0}


class TestConfigErrors:
    """Test configuration error types."""

    def test_invalid_config_error_default_message(self):
        error = InvalidConfigError("max_workers", 0)
        assert error.key == "max_workers"
        assert error.value == 0
        assert "max_workers" in str(error)
        assert error.category == ErrorCategory.CONFIG

    def test_invalid_config_error_custom_message(self):
        assert str(InvalidConfigError("k", "v", "nope")) == "nope"

    def test_pipeline_config_error_is_value_error(self):
        error = PipelineConfigError("bad pipeline")
        assert isinstance(error, ConfigError)
        assert isinstance(error, ValueError)

    def test_duplicate_step_error(self):
        error = DuplicateStepError("fetch")
        assert error.step_name == "fetch"
        assert str(error) == "Duplicate step name: fetch"
        assert isinstance(error, PipelineConfigError)

    def test_dependency_error(self):
        error = DependencyError("render", ["fetch", "load"])
        assert error.missing_deps == ["fetch", "load"]
        assert str(error) == "Step 'render' depends on unknown steps: fetch, load"

    def test_cycle_detected_error(self):
        error = CycleDetectedError(["a", "b", "a"])
        assert error.cycle == ["a", "b", "a"]
        assert "a -> b -> a" in str(error)
        assert is_config_error(error)


class TestOrchestrationErrors:
    """Test run-time error types."""

    def test_step_activation_error(self):
        error = StepActivationError("notify", "unknown")
        assert error.step_name == "notify"
        assert error.reason == "unknown"
        assert str(error) == "Cannot activate unknown step 'notify'"
        assert categorize_error(error) == ErrorCategory.ORCHESTRATION

    def test_step_contract_error_named(self):
        error = StepContractError("load", {"x": 1})
        assert error.returned_type == "dict"
        assert str(error) == "Step 'load' must return an Outcome, got dict"

    def test_step_contract_error_unnamed(self):
        assert "(unnamed)" in str(StepContractError(None, None))

    def test_not_config_errors(self):
        assert not is_config_error(StepContractError("s", 1))


class TestHelpers:
    """Test classification helpers."""

    def test_categorize_foreign_exception(self):
        assert categorize_error(RuntimeError("x")) == ErrorCategory.UNKNOWN

    def test_is_config_error_foreign_exception(self):
        assert not is_config_error(ValueError("x"))

    @pytest.mark.parametrize(
        "error,category",
        [
            (ConfigError("x"), ErrorCategory.CONFIG),
            (InvalidConfigError("k", 1), ErrorCategory.CONFIG),
            (DuplicateStepError("s"), ErrorCategory.CONFIG),
            (OrchestrationError("x"), ErrorCategory.ORCHESTRATION),
            (StepActivationError("s", "non-optional"), ErrorCategory.ORCHESTRATION),
        ],
    )
    def test_categories(self, error, category):
        assert categorize_error(error) == category
