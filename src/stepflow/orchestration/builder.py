"""Pipeline builder — accumulate configuration, then construct a Pipeline.

Each builder owns its step and middleware lists; nothing is registered
globally. ``build()`` can be called more than once and returns a fresh
Pipeline each time.

Example::

    pipeline = (
        PipelineBuilder("checkout")
        .use_middleware(logging_middleware)
        .step("validate", validate)
        .step("price", price, depends_on=["validate"])
        .step("stock", check_stock, depends_on=["validate"])
        .step("confirm", confirm, depends_on=["price", "stock"])
        .concurrency("threads", max_workers=4)
        .build()
    )
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from stepflow.orchestration.exceptions import PipelineConfigError
from stepflow.orchestration.group_executor import Concurrency
from stepflow.orchestration.middleware import Middleware
from stepflow.orchestration.pipeline import ExecutionStrategy, Pipeline
from stepflow.orchestration.step_types import ParallelBlock, Step


class PipelineBuilder:
    """Fluent builder for :class:`Pipeline`."""

    def __init__(self, name: str = "pipeline") -> None:
        self.name = name
        self._stages: list[Step | ParallelBlock] = []
        self._middlewares: list[Middleware] = []
        self._concurrency: Concurrency | None = None
        self._max_workers: int | None = None
        self._strategy: ExecutionStrategy | None = None

    def step(
        self,
        name_or_action: str | Any,
        action: Any = None,
        *,
        depends_on: str | Iterable[str] | None = None,
        optional: bool = False,
    ) -> PipelineBuilder:
        """
        Add a step.

        ``step(action)`` adds a positional step; ``step(name, action, ...)``
        adds a named step.
        """
        if isinstance(name_or_action, str):
            if action is None:
                raise PipelineConfigError(f"Step '{name_or_action}' needs an action")
            self._stages.append(Step.named(name_or_action, action, depends_on=depends_on, optional=optional))
        else:
            if action is not None or depends_on is not None or optional:
                raise PipelineConfigError("Positional steps take a single action and no dependency options")
            self._stages.append(Step.positional(name_or_action))
        return self

    def parallel(self, *actions: Any) -> PipelineBuilder:
        """Add an explicit parallel block of positional steps."""
        if not actions:
            raise PipelineConfigError("A parallel block needs at least one action")
        self._stages.append(ParallelBlock.of(*actions))
        return self

    def use_middleware(self, middleware: Middleware) -> PipelineBuilder:
        self._middlewares.append(middleware)
        return self

    def concurrency(self, backend: Concurrency | str, max_workers: int | None = None) -> PipelineBuilder:
        self._concurrency = Concurrency.parse(backend)
        self._max_workers = max_workers
        return self

    def strategy(self, strategy: ExecutionStrategy | str) -> PipelineBuilder:
        self._strategy = ExecutionStrategy.parse(strategy)
        return self

    def build(self) -> Pipeline:
        return Pipeline(
            list(self._stages),
            name=self.name,
            middlewares=list(self._middlewares),
            concurrency=self._concurrency,
            max_workers=self._max_workers,
            strategy=self._strategy,
        )

    def __len__(self) -> int:
        return len(self._stages)


__all__ = ["PipelineBuilder"]
