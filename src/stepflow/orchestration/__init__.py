"""
Stepflow Orchestration — dependency-aware step execution.

WHY
───
A workflow is a set of steps, some of which need the results of others.
Declaring those needs lets the scheduler discover which steps are
independent, run each such level concurrently, and merge their results
into one Outcome that flows into the next level.

ARCHITECTURE
────────────
::

    Pipeline (scheduler)
      ├── sequential mode    ─ fold positional steps / parallel blocks
      ├── dependency mode    ─ level_order() groups, one barrier per level
      └── optional steps     ─ dynamic rounds driven by Outcome.activate()

    DependencyGraph         ─ topological / level / reverse order, subgraph, merge
    GroupExecutor           ─ fan-out, barrier, deterministic merge
    Outcome                 ─ immutable value + context + errors + flag
    Step / ParallelBlock    ─ step templates
    middleware              ─ wrap(action) -> action, applied once
    PipelineBuilder         ─ fluent configuration object

MODULE MAP (recommended reading order)
──────────────────────────────────────
1. exceptions.py         ─ error hierarchy
2. outcome.py            ─ Outcome
3. step_types.py         ─ Step, ParallelBlock, StepAction protocol
4. dependency_graph.py   ─ DependencyGraph
5. group_executor.py     ─ GroupExecutor + merge_outcomes
6. middleware.py         ─ logging / timing / halt tracking wrappers
7. pipeline.py           ─ Pipeline + ExecutionStrategy
8. builder.py            ─ PipelineBuilder

Example:
    from stepflow.orchestration import Outcome, Pipeline, Step

    def fetch_user(outcome):
        return outcome.with_context("user", {"id": outcome.value})

    def fetch_orders(outcome):
        return outcome.with_context("orders", [1, 2, 3])

    def fetch_prefs(outcome):
        return outcome.with_context("prefs", {"theme": "dark"})

    def render(outcome):
        return outcome.continue_with(dict(outcome.context))

    pipeline = Pipeline([
        Step.named("fetch_user", fetch_user),
        Step.named("fetch_orders", fetch_orders, depends_on="fetch_user"),
        Step.named("fetch_prefs", fetch_prefs, depends_on="fetch_user"),
        Step.named("render", render, depends_on=["fetch_orders", "fetch_prefs"]),
    ])

    result = pipeline.run(42)
"""

from stepflow.orchestration.builder import PipelineBuilder
from stepflow.orchestration.dependency_graph import DependencyGraph
from stepflow.orchestration.exceptions import (
    CycleDetectedError,
    DependencyError,
    DuplicateStepError,
    PipelineConfigError,
    StepActivationError,
    StepContractError,
)
from stepflow.orchestration.group_executor import Concurrency, GroupExecutor, merge_outcomes
from stepflow.orchestration.middleware import (
    HALTED_STEP_KEY,
    Middleware,
    apply_middleware,
    halt_tracker,
    logging_middleware,
    timing_middleware,
)
from stepflow.orchestration.outcome import Outcome
from stepflow.orchestration.pipeline import ExecutionStrategy, Pipeline
from stepflow.orchestration.step_types import ParallelBlock, Step, StepAction, as_action, is_async_action

__all__ = [
    # Core types
    "Outcome",
    "Step",
    "StepAction",
    "ParallelBlock",
    "as_action",
    "is_async_action",
    # Graph
    "DependencyGraph",
    # Execution
    "Concurrency",
    "GroupExecutor",
    "merge_outcomes",
    "ExecutionStrategy",
    "Pipeline",
    "PipelineBuilder",
    # Middleware
    "Middleware",
    "HALTED_STEP_KEY",
    "apply_middleware",
    "logging_middleware",
    "timing_middleware",
    "halt_tracker",
    # Exceptions
    "PipelineConfigError",
    "DuplicateStepError",
    "DependencyError",
    "CycleDetectedError",
    "StepActivationError",
    "StepContractError",
]
