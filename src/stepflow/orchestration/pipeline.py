"""Pipeline — schedules steps sequentially or as dependency levels.

The Pipeline takes the declared steps, wraps their actions with middleware
once, validates the dependency graph, and then runs Outcomes through them.
It handles:

- **Sequential** folding of positional steps, stopping at the first halt
- **Parallel blocks** inside a sequential pipeline (ad-hoc groups)
- **Dependency levels** for named steps, each level run concurrently by the
  :class:`~stepflow.orchestration.group_executor.GroupExecutor`
- **Optional steps** that only run once an upstream step activates them
- **Composition** of dependency pipelines (``merge`` / ``subgraph``)

Example::

    from stepflow.orchestration import Outcome, Pipeline, Step

    pipeline = Pipeline(
        [
            Step.named("fetch_user", fetch_user),
            Step.named("fetch_orders", fetch_orders, depends_on=["fetch_user"]),
            Step.named("fetch_prefs", fetch_prefs, depends_on=["fetch_user"]),
            Step.named("render", render, depends_on=["fetch_orders", "fetch_prefs"]),
        ],
        name="profile_page",
    )

    pipeline.level_order()
    # [["fetch_user"], ["fetch_orders", "fetch_prefs"], ["render"]]

    outcome = pipeline.run(Outcome(value={"user_id": 42}))
    if not outcome.should_continue():
        print(f"Halted: {dict(outcome.errors)}")
"""

from __future__ import annotations

import time
from collections.abc import Generator, Iterable
from enum import Enum
from typing import Any

from stepflow.core.errors import InvalidConfigError
from stepflow.core.logging import get_logger
from stepflow.orchestration.dependency_graph import DependencyGraph
from stepflow.orchestration.exceptions import (
    DuplicateStepError,
    PipelineConfigError,
    StepActivationError,
)
from stepflow.orchestration.group_executor import Concurrency, GroupExecutor
from stepflow.orchestration.middleware import Middleware, apply_middleware
from stepflow.orchestration.outcome import Outcome
from stepflow.orchestration.step_types import ParallelBlock, Step, coerce_stage

logger = get_logger(__name__)

# A plan yields groups of steps and receives the merged Outcome of each group
Plan = Generator[list[Step], Outcome, None]


class ExecutionStrategy(str, Enum):
    """How named steps are scheduled."""

    AUTOMATIC = "automatic"  # Dependency levels run concurrently
    EXPLICIT = "explicit"  # Only explicit parallel blocks run concurrently

    @classmethod
    def parse(cls, value: ExecutionStrategy | str) -> ExecutionStrategy:
        """Coerce a string or enum member, raising InvalidConfigError on unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(s.value for s in cls)
            raise InvalidConfigError(
                "strategy", value, f"Invalid execution strategy {value!r}; expected one of: {choices}"
            ) from None


class Pipeline:
    """
    An ordered set of steps plus the policy for running them.

    Args:
        steps: Steps, parallel blocks, or bare actions (bare actions become
            positional steps). Named and positional steps cannot be mixed.
        name: Name used in logs
        middlewares: Applied to every action at construction; the first one
            is outermost
        concurrency: Group backend (defaults to settings)
        max_workers: Max concurrently running steps per group
        strategy: ``automatic`` or ``explicit``; defaults to ``automatic``
            when named steps exist, else ``explicit``

    Raises:
        PipelineConfigError: Mixed named/positional steps
        DuplicateStepError: Two steps share a name
        DependencyError: A step depends on an unknown step
        CycleDetectedError: The dependency graph has a cycle
    """

    def __init__(
        self,
        steps: Iterable[Any] = (),
        *,
        name: str = "pipeline",
        middlewares: Iterable[Middleware] = (),
        concurrency: Concurrency | str | None = None,
        max_workers: int | None = None,
        strategy: ExecutionStrategy | str | None = None,
    ) -> None:
        self.name = name
        self.middlewares: tuple[Middleware, ...] = tuple(middlewares)
        self.executor = GroupExecutor(concurrency=concurrency, max_workers=max_workers)

        declared = tuple(coerce_stage(item) for item in steps)
        named = [s for s in declared if isinstance(s, Step) and s.name is not None]
        if named and len(named) != len(declared):
            raise PipelineConfigError(
                f"Pipeline '{name}' mixes named and positional steps; declare every step with a name "
                "to use dependencies, or none to run sequentially"
            )

        seen: set[str] = set()
        for step in named:
            if step.name in seen:
                raise DuplicateStepError(step.name)
            seen.add(step.name)

        self._declared = declared
        self._stages = tuple(self._wrap(stage) for stage in declared)
        self._named: dict[str, Step] = {s.name: s for s in self._stages if isinstance(s, Step) and s.name}
        self.graph: DependencyGraph | None = DependencyGraph.from_steps(named) if named else None

        if strategy is None:
            self.strategy = ExecutionStrategy.AUTOMATIC if named else ExecutionStrategy.EXPLICIT
        else:
            self.strategy = ExecutionStrategy.parse(strategy)

    def _wrap(self, stage: Step | ParallelBlock) -> Step | ParallelBlock:
        if not self.middlewares:
            return stage
        if isinstance(stage, ParallelBlock):
            return ParallelBlock(tuple(self._wrap(step) for step in stage.steps))
        return stage.with_action(apply_middleware(stage.action, self.middlewares))

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def steps(self) -> tuple[Step | ParallelBlock, ...]:
        """Declared stages, without middleware applied."""
        return self._declared

    @property
    def uses_dependencies(self) -> bool:
        """True when the pipeline is scheduled from its dependency graph."""
        return self.graph is not None

    @property
    def optional_steps(self) -> list[str]:
        return [s.name for s in self._named.values() if s.optional]

    @property
    def step_dependencies(self) -> dict[str, list[str]]:
        return self.graph.to_dict() if self.graph is not None else {}

    def topological_order(self) -> list[str]:
        return self.graph.topological_order() if self.graph is not None else []

    def level_order(self) -> list[list[str]]:
        return self.graph.level_order() if self.graph is not None else []

    def reverse_order(self) -> list[str]:
        return self.graph.reverse_order() if self.graph is not None else []

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self, outcome: Outcome | Any = None) -> Outcome:
        """
        Run the pipeline with its configured strategy.

        Named steps are scheduled from the dependency graph; positional
        steps are folded in order. A bare value is wrapped in an Outcome.
        """
        return self._drive(self._plan(self.strategy), _as_outcome(outcome), self.strategy)

    __call__ = run

    def run_sequential(self, outcome: Outcome | Any = None) -> Outcome:
        """Run one stage at a time; named steps run in topological order."""
        return self._drive(self._plan(ExecutionStrategy.EXPLICIT), _as_outcome(outcome), ExecutionStrategy.EXPLICIT)

    def run_parallel(
        self,
        outcome: Outcome | Any = None,
        strategy: ExecutionStrategy | str | None = None,
    ) -> Outcome:
        """Run with dependency-based parallelism (``automatic``) or explicit blocks only."""
        chosen = ExecutionStrategy.parse(strategy) if strategy is not None else self.strategy
        return self._drive(self._plan(chosen), _as_outcome(outcome), chosen)

    async def arun(
        self,
        outcome: Outcome | Any = None,
        strategy: ExecutionStrategy | str | None = None,
    ) -> Outcome:
        """Awaitable ``run_parallel``; groups are joined with ``asyncio.gather``."""
        chosen = ExecutionStrategy.parse(strategy) if strategy is not None else self.strategy
        plan = self._plan(chosen)
        outcome = _as_outcome(outcome)
        started = self._log_start(chosen)

        try:
            group = next(plan)
            while True:
                outcome = await self.executor.arun_group(group, outcome)
                group = plan.send(outcome)
        except StopIteration:
            pass

        self._log_complete(outcome, started)
        return outcome

    def _drive(self, plan: Plan, outcome: Outcome, strategy: ExecutionStrategy) -> Outcome:
        started = self._log_start(strategy)

        try:
            group = next(plan)
            while True:
                outcome = self.executor.run_group(group, outcome)
                group = plan.send(outcome)
        except StopIteration:
            pass

        self._log_complete(outcome, started)
        return outcome

    # =========================================================================
    # Plans
    # =========================================================================

    def _plan(self, strategy: ExecutionStrategy) -> Plan:
        if self.graph is None:
            return self._sequential_plan()
        if strategy is ExecutionStrategy.AUTOMATIC and not self.optional_steps:
            return self._level_plan()
        return self._dynamic_plan(concurrent=strategy is ExecutionStrategy.AUTOMATIC)

    def _sequential_plan(self) -> Plan:
        """Fold stages in order; a parallel block is one ad-hoc group."""
        outcome = yield []
        for index, stage in enumerate(self._stages):
            if not outcome.continues:
                self._log_halt(outcome, index)
                return
            steps = list(stage.steps) if isinstance(stage, ParallelBlock) else [stage]
            logger.debug("pipeline.stage.start", pipeline=self.name, stage=index, label=stage.label)
            outcome = yield steps

    def _level_plan(self) -> Plan:
        """Run ``level_order()`` levels in sequence, stopping at the first halt."""
        levels = self.graph.level_order()
        outcome = yield []
        for index, level in enumerate(levels):
            if not outcome.continues:
                self._log_halt(outcome, index)
                return
            logger.debug("pipeline.level.start", pipeline=self.name, level=index, steps=level)
            outcome = yield [self._named[name] for name in level]
            if outcome.continues:
                self._check_activations(outcome, completed=set())

    def _dynamic_plan(self, concurrent: bool) -> Plan:
        """
        Schedule rounds from what has actually run.

        Each round is every step not yet run that is eligible (non-optional,
        or activated) and whose dependencies have all run. With ``concurrent``
        False only the first such step (topological order) runs per round.
        """
        order = self.graph.topological_order()
        completed: set[str] = set()
        activated: set[str] = set()
        outcome = yield []
        round_index = 0

        while True:
            if not outcome.continues:
                self._log_halt(outcome, round_index)
                return

            activated |= self._check_activations(outcome, completed)
            ready = [
                name
                for name in order
                if name not in completed
                and (not self._named[name].optional or name in activated)
                and all(dep in completed for dep in self._named[name].depends_on)
            ]
            if not ready:
                return
            if not concurrent:
                ready = ready[:1]

            logger.debug("pipeline.level.start", pipeline=self.name, level=round_index, steps=ready)
            outcome = yield [self._named[name] for name in ready]
            completed.update(ready)
            round_index += 1

    def _check_activations(self, outcome: Outcome, completed: set[str]) -> set[str]:
        """Validate activation requests; returns the optional steps still to run."""
        pending: set[str] = set()
        for name in outcome.activated_steps:
            step = self._named.get(name)
            if step is None:
                raise StepActivationError(name, "unknown").with_context(pipeline=self.name, step=name)
            if not step.optional:
                raise StepActivationError(name, "non-optional").with_context(pipeline=self.name, step=name)
            if name not in completed:
                pending.add(name)
        return pending

    # =========================================================================
    # Logging helpers
    # =========================================================================

    def _log_start(self, strategy: ExecutionStrategy) -> float:
        logger.info(
            "pipeline.start",
            pipeline=self.name,
            mode="dependency" if self.graph is not None else "sequential",
            strategy=strategy.value,
            backend=self.executor.backend.value,
            step_count=len(self._named) or len(self._stages),
        )
        return time.perf_counter()

    def _log_halt(self, outcome: Outcome, position: int) -> None:
        logger.info("pipeline.halted", pipeline=self.name, position=position, error_keys=list(outcome.errors))

    def _log_complete(self, outcome: Outcome, started: float) -> None:
        logger.info(
            "pipeline.complete",
            pipeline=self.name,
            halted=not outcome.continues,
            error_keys=list(outcome.errors),
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )

    # =========================================================================
    # Composition
    # =========================================================================

    def merge(self, other: Pipeline) -> Pipeline:
        """
        Combine two dependency pipelines.

        Steps only in one pipeline are kept as declared. A step declared in
        both keeps this pipeline's action and gets the union of both
        dependency lists. Middleware lists are concatenated without duplicates.
        """
        if self.graph is None:
            raise PipelineConfigError(f"Cannot merge: pipeline '{self.name}' has no named steps")
        if other.graph is None:
            raise PipelineConfigError(f"Cannot merge: pipeline '{other.name}' has no named steps")

        steps: dict[str, Step] = {s.name: s for s in self._declared}  # type: ignore[misc]
        for step in other._declared:
            existing = steps.get(step.name)  # type: ignore[union-attr]
            if existing is None:
                steps[step.name] = step  # type: ignore[index]
            else:
                deps = tuple(dict.fromkeys((*existing.depends_on, *step.depends_on)))
                steps[existing.name] = Step.named(existing.name, existing.action, deps, existing.optional)

        middlewares = self.middlewares + tuple(m for m in other.middlewares if m not in self.middlewares)
        return Pipeline(
            steps.values(),
            name=f"{self.name}+{other.name}",
            middlewares=middlewares,
            concurrency=self.executor.concurrency,
            max_workers=self.executor.max_workers,
            strategy=self.strategy,
        )

    def subgraph(self, step_name: str) -> Pipeline:
        """Return a pipeline with ``step_name`` and its transitive dependencies."""
        if self.graph is None:
            raise PipelineConfigError(f"Cannot create subgraph: pipeline '{self.name}' has no named steps")
        if step_name not in self.graph:
            raise PipelineConfigError(f"Cannot create subgraph: unknown step '{step_name}'")

        declared = {s.name: s for s in self._declared}  # type: ignore[misc]
        sub = self.graph.subgraph(step_name)
        return Pipeline(
            [declared[name] for name in sub.nodes],
            name=f"{self.name}[{step_name}]",
            middlewares=self.middlewares,
            concurrency=self.executor.concurrency,
            max_workers=self.executor.max_workers,
            strategy=self.strategy,
        )

    def __repr__(self) -> str:
        mode = "dependency" if self.graph is not None else "sequential"
        return f"Pipeline({self.name!r}, steps={len(self._declared)}, mode={mode}, strategy={self.strategy.value})"


def _as_outcome(value: Outcome | Any) -> Outcome:
    return value if isinstance(value, Outcome) else Outcome(value=value)
