"""Step Types — step templates and explicit parallel blocks.

Manifesto:
A pipeline is a list of Steps. A step is a template: it is declared once and
many Outcomes pass through it over the pipeline's lifetime. A step's action
is anything satisfying ``StepAction``: a function, a closure, a bound method,
or an object with ``__call__`` or a single ``execute`` method. No base class
is required.

ARCHITECTURE
────────────
::

    Step
      ├── .positional(action)                       ── unnamed, sequential
      └── .named(name, action, depends_on, optional) ── node in the graph

    ParallelBlock(steps)   ── explicit concurrent group inside a sequential
                              pipeline, merged like a dependency level

    StepAction             ── Protocol: (Outcome) -> Outcome

Related modules:
    outcome.py          — Outcome consumed and produced by every step
    middleware.py       — wraps actions at construction time
    pipeline.py         — schedules steps and blocks

Tags:
    stepflow, orchestration, step-types, protocol, parallel-block

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from stepflow.orchestration.exceptions import PipelineConfigError

if TYPE_CHECKING:
    from stepflow.orchestration.outcome import Outcome


@runtime_checkable
class StepAction(Protocol):
    """Structural protocol for a step action.

    Example::

        class Tag:
            def __init__(self, key):
                self.key = key

            def __call__(self, outcome: Outcome) -> Outcome:
                return outcome.with_context(self.key, True)
    """

    def __call__(self, outcome: Outcome) -> Outcome: ...


def as_action(obj: Any) -> Callable[[Outcome], Outcome]:
    """Return ``obj`` as a callable step action.

    Callables are returned unchanged; objects exposing ``execute`` are
    adapted to their bound method.

    Raises:
        TypeError: If ``obj`` is neither callable nor has ``execute``.
    """
    if callable(obj):
        return obj
    execute = getattr(obj, "execute", None)
    if callable(execute):
        return execute
    raise TypeError(f"Step action must be callable or define execute(), got {type(obj).__name__}")


def is_async_action(action: Any) -> bool:
    """True when calling ``action`` returns a coroutine (async def function or ``__call__``)."""
    return inspect.iscoroutinefunction(action) or inspect.iscoroutinefunction(getattr(action, "__call__", None))


def _normalize_deps(depends_on: str | Iterable[str] | None) -> tuple[str, ...]:
    if depends_on is None:
        return ()
    if isinstance(depends_on, str):
        return (depends_on,)
    return tuple(depends_on)


@dataclass(frozen=True)
class Step:
    """
    A unit of work in a pipeline.

    Attributes:
        action: Callable ``(Outcome) -> Outcome``
        name: Unique name within a pipeline (None for positional steps)
        depends_on: Names of steps that must run before this one
        optional: Only runs when an upstream step activates it
    """

    action: Callable[[Outcome], Outcome]
    name: str | None = None
    depends_on: tuple[str, ...] = ()
    optional: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", as_action(self.action))
        object.__setattr__(self, "depends_on", _normalize_deps(self.depends_on))
        if self.name is None and (self.depends_on or self.optional):
            raise PipelineConfigError("Only named steps can declare dependencies or be optional")
        if self.optional and self.depends_on:
            raise PipelineConfigError(f"Optional step '{self.name}' cannot declare dependencies")

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def positional(cls, action: Any) -> Step:
        """Create an unnamed step identified by its position."""
        return cls(action=action)

    @classmethod
    def named(
        cls,
        name: str,
        action: Any,
        depends_on: str | Iterable[str] | None = None,
        optional: bool = False,
    ) -> Step:
        """Create a named step, optionally with dependencies."""
        if not name:
            raise PipelineConfigError("Step name must be a non-empty string")
        return cls(action=action, name=name, depends_on=_normalize_deps(depends_on), optional=optional)

    # =========================================================================
    # Execution
    # =========================================================================

    def __call__(self, outcome: Outcome) -> Outcome:
        return self.action(outcome)

    def with_action(self, action: Callable[[Outcome], Outcome]) -> Step:
        """Return a copy of this step with a different (e.g. wrapped) action."""
        return Step(action=action, name=self.name, depends_on=self.depends_on, optional=self.optional)

    @property
    def label(self) -> str:
        """Name used in logs: the step name, or the action's qualified name."""
        if self.name:
            return self.name
        return getattr(self.action, "__qualname__", type(self.action).__name__)

    def __repr__(self) -> str:
        if self.name is None:
            return f"Step({self.label})"
        deps = f", depends_on={list(self.depends_on)}" if self.depends_on else ""
        opt = ", optional" if self.optional else ""
        return f"Step({self.name!r}{deps}{opt})"


@dataclass(frozen=True)
class ParallelBlock:
    """An explicit group of positional steps run concurrently in a sequential pipeline."""

    steps: tuple[Step, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        steps = tuple(s if isinstance(s, Step) else Step.positional(s) for s in self.steps)
        for step in steps:
            if step.name is not None:
                raise PipelineConfigError(f"Parallel blocks hold positional steps only, got named step '{step.name}'")
        object.__setattr__(self, "steps", steps)

    @classmethod
    def of(cls, *actions: Any) -> ParallelBlock:
        return cls(steps=tuple(actions))

    @property
    def label(self) -> str:
        return f"parallel[{', '.join(s.label for s in self.steps)}]"

    def __len__(self) -> int:
        return len(self.steps)


def coerce_stage(item: Any) -> Step | ParallelBlock:
    """Turn a pipeline entry (Step, ParallelBlock, or bare action) into a stage."""
    if isinstance(item, (Step, ParallelBlock)):
        return item
    return Step.positional(item)
