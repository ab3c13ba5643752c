"""Orchestration exceptions — structured error hierarchy.

Configuration errors inherit from ``stepflow.core.errors.ConfigError`` and are
raised while a pipeline or graph is being constructed. Run-time scheduling
errors inherit from ``stepflow.core.errors.OrchestrationError``.

Exceptions raised by step actions are not part of this hierarchy; they
propagate to the caller unmodified.

Hierarchy::

    ConfigError  (from stepflow.core.errors)
      └── PipelineConfigError          ── base for invalid pipeline definitions
            ├── DuplicateStepError       ── two steps share a name
            ├── DependencyError          ── step depends on an unknown step
            └── CycleDetectedError       ── dependency graph has a cycle

    OrchestrationError  (from stepflow.core.errors)
      ├── StepActivationError          ── activation of unknown/non-optional step
      └── StepContractError            ── step returned something other than an Outcome
"""

from typing import Any

from stepflow.core.errors import ConfigError, OrchestrationError


class PipelineConfigError(ConfigError, ValueError):
    """Base exception for invalid pipeline definitions."""

    pass


class DuplicateStepError(PipelineConfigError):
    """Raised when two steps in one pipeline share a name."""

    def __init__(self, step_name: str):
        self.step_name = step_name
        super().__init__(f"Duplicate step name: {step_name}")


class DependencyError(PipelineConfigError):
    """Raised when step dependencies reference unknown steps."""

    def __init__(self, step_name: str, missing_deps: list[str]):
        self.step_name = step_name
        self.missing_deps = missing_deps
        deps_str = ", ".join(missing_deps)
        super().__init__(f"Step '{step_name}' depends on unknown steps: {deps_str}")


class CycleDetectedError(PipelineConfigError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        cycle_str = " -> ".join(cycle)
        super().__init__(f"Cycle detected in dependency graph: {cycle_str}")


class StepActivationError(OrchestrationError):
    """Raised when a step activates a step that cannot be activated."""

    def __init__(self, step_name: str, reason: str):
        self.step_name = step_name
        self.reason = reason
        super().__init__(f"Cannot activate {reason} step '{step_name}'")


class StepContractError(OrchestrationError):
    """Raised when a step action returns something other than an Outcome."""

    def __init__(self, step_name: str | None, returned: Any):
        self.step_name = step_name
        self.returned_type = type(returned).__name__
        label = f"'{step_name}'" if step_name else "(unnamed)"
        super().__init__(f"Step {label} must return an Outcome, got {self.returned_type}")
