"""Group Executor — fan-out a group of steps, barrier, merge.

WHY
───
Steps in one dependency level have no dependency on each other, so they can
all read the same immutable input Outcome at the same time. The executor
launches one invocation per step, waits for every invocation to finish, and
folds the results into a single Outcome in declaration order, so the merged
result never depends on which thread finished first.

ARCHITECTURE
────────────
::

    GroupExecutor(concurrency, max_workers)
      ├── .run_group(steps, outcome)         ─ sync entry point
      ├── .arun_group(steps, outcome)        ─ awaitable entry point
      └── .run_step(step, outcome)           ─ single invocation + contract check

    Backends (Concurrency)
    ──────────────────────
    THREADS      ThreadPoolExecutor + wait()          (AUTO resolves here)
    ASYNC        asyncio.gather + Semaphore; sync actions via to_thread
    SEQUENTIAL   one after another, same merge

    merge_outcomes(outcomes, base)          ─ deterministic merge

Nothing in a group is cancelled: a halted or failing sibling never stops the
others. When steps raise, the first fault in declaration order is re-raised
unmodified once every invocation has finished.

Related modules:
    pipeline.py        — feeds levels / parallel blocks to the executor
    outcome.py         — the immutable input shared by all invocations
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Any

from stepflow.core.errors import InvalidConfigError, OrchestrationError
from stepflow.core.logging import get_logger
from stepflow.core.settings import get_settings
from stepflow.orchestration.exceptions import StepContractError
from stepflow.orchestration.outcome import Outcome
from stepflow.orchestration.step_types import Step, is_async_action

logger = get_logger(__name__)


class Concurrency(str, Enum):
    """Backend used to run the members of a group."""

    AUTO = "auto"  # Default: resolves to THREADS
    THREADS = "threads"
    ASYNC = "async"
    SEQUENTIAL = "sequential"  # Fallback: no concurrency, identical merge

    @classmethod
    def parse(cls, value: Concurrency | str) -> Concurrency:
        """Coerce a string or enum member, raising InvalidConfigError on unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(c.value for c in cls)
            raise InvalidConfigError(
                "concurrency", value, f"Invalid concurrency option {value!r}; expected one of: {choices}"
            ) from None


# =============================================================================
# Merge
# =============================================================================


def _new_messages(messages: tuple[str, ...], inherited: tuple[str, ...]) -> tuple[str, ...]:
    """Messages a step added on top of the ones it inherited from the group input."""
    if inherited and messages[: len(inherited)] == inherited:
        return messages[len(inherited):]
    return messages


def merge_outcomes(outcomes: Sequence[Outcome], base: Outcome | None = None) -> Outcome:
    """
    Merge the Outcomes of one group, in declaration order.

    - value: last Outcome that continues; if all halted, the last Outcome
    - context: union, later steps overwrite earlier keys
    - errors: union, shared categories concatenated in order
    - continues: False if any member halted
    - activated_steps: concatenated, duplicates dropped

    Args:
        outcomes: Member Outcomes in declaration order
        base: The group's input Outcome. Error messages every member inherited
            from it are kept once instead of once per member.
    """
    if not outcomes:
        raise ValueError("merge_outcomes() needs at least one Outcome")
    if len(outcomes) == 1:
        return outcomes[0]

    continuing = [o for o in outcomes if o.continues]
    value = (continuing or outcomes)[-1].value

    context: dict[str, Any] = {}
    for outcome in outcomes:
        context.update(outcome.context)

    inherited = base.errors if base is not None else {}
    errors: dict[str, list[str]] = {key: list(messages) for key, messages in inherited.items()}
    for outcome in outcomes:
        for key, messages in outcome.errors.items():
            errors.setdefault(key, []).extend(_new_messages(messages, inherited.get(key, ())))

    activated = dict.fromkeys(name for outcome in outcomes for name in outcome.activated_steps)

    return Outcome(
        value=value,
        context=context,
        errors=errors,
        continues=len(continuing) == len(outcomes),
        activated_steps=tuple(activated),
    )


# =============================================================================
# Executor
# =============================================================================


class GroupExecutor:
    """Runs a group of mutually independent steps against one Outcome.

    Stateless between calls: the same executor can serve many groups and
    many pipeline runs.

    Args:
        concurrency: Backend name or ``Concurrency`` member. Defaults to the
            ``STEPFLOW_CONCURRENCY`` setting.
        max_workers: Upper bound on simultaneously running steps. Defaults to
            the ``STEPFLOW_MAX_WORKERS`` setting, else one worker per step.
    """

    def __init__(
        self,
        concurrency: Concurrency | str | None = None,
        max_workers: int | None = None,
    ) -> None:
        settings = get_settings()
        self.concurrency = Concurrency.parse(concurrency if concurrency is not None else settings.concurrency)
        self.max_workers = max_workers if max_workers is not None else settings.max_workers
        if self.max_workers is not None and self.max_workers < 1:
            raise InvalidConfigError("max_workers", self.max_workers, "max_workers must be >= 1")

    @property
    def backend(self) -> Concurrency:
        """The backend actually used (AUTO resolved)."""
        if self.concurrency is Concurrency.AUTO:
            return Concurrency.THREADS
        return self.concurrency

    def _workers_for(self, size: int) -> int:
        return min(size, self.max_workers) if self.max_workers else size

    # =========================================================================
    # Single step
    # =========================================================================

    def run_step(self, step: Step, outcome: Outcome) -> Outcome:
        """Invoke one step and check it honoured the Outcome contract."""
        result = step(outcome)
        return self._checked(step, result)

    @staticmethod
    def _checked(step: Step, result: Any) -> Outcome:
        if not isinstance(result, Outcome):
            if inspect.iscoroutine(result):
                result.close()
            raise StepContractError(step.label, result)
        return result

    # =========================================================================
    # Sync entry point
    # =========================================================================

    def run_group(self, steps: Sequence[Step], outcome: Outcome) -> Outcome:
        """
        Run ``steps`` against ``outcome`` and merge their results.

        A single step is invoked directly; an empty group returns ``outcome``.
        """
        steps = list(steps)
        if not steps:
            return outcome
        if len(steps) == 1:
            return self.run_step(steps[0], outcome)

        backend = self.backend
        logger.debug("group.start", size=len(steps), backend=backend.value, steps=[s.label for s in steps])

        if backend is Concurrency.SEQUENTIAL:
            results = self._run_sequential(steps, outcome)
        elif backend is Concurrency.ASYNC:
            results = self._run_async(steps, outcome)
        else:
            results = self._run_threads(steps, outcome)

        merged = merge_outcomes(results, base=outcome)
        logger.debug("group.merged", size=len(steps), halted=not merged.continues)
        return merged

    def _run_sequential(self, steps: list[Step], outcome: Outcome) -> list[Outcome]:
        results: list[Outcome] = []
        faults: list[tuple[Step, BaseException]] = []
        for step in steps:
            try:
                results.append(self.run_step(step, outcome))
            except Exception as exc:
                faults.append((step, exc))
        self._raise_first_fault(faults)
        return results

    def _run_threads(self, steps: list[Step], outcome: Outcome) -> list[Outcome]:
        with ThreadPoolExecutor(max_workers=self._workers_for(len(steps)), thread_name_prefix="stepflow") as pool:
            futures = [pool.submit(self.run_step, step, outcome) for step in steps]
            wait(futures)

        faults = [(step, f.exception()) for step, f in zip(steps, futures) if f.exception() is not None]
        self._raise_first_fault(faults)
        return [f.result() for f in futures]

    def _run_async(self, steps: list[Step], outcome: Outcome) -> list[Outcome]:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self._gather(steps, outcome))
        raise OrchestrationError("The async backend cannot block inside a running event loop; await arun() instead")

    # =========================================================================
    # Async entry point
    # =========================================================================

    async def arun_group(self, steps: Sequence[Step], outcome: Outcome) -> Outcome:
        """Awaitable ``run_group``. Coroutine actions are awaited natively."""
        steps = list(steps)
        if not steps:
            return outcome
        if len(steps) == 1:
            return await self.arun_step(steps[0], outcome)

        logger.debug("group.start", size=len(steps), backend=self.backend.value, steps=[s.label for s in steps])

        if self.backend is Concurrency.SEQUENTIAL:
            results: list[Outcome] = []
            faults: list[tuple[Step, BaseException]] = []
            for step in steps:
                try:
                    results.append(await self.arun_step(step, outcome))
                except Exception as exc:
                    faults.append((step, exc))
            self._raise_first_fault(faults)
        else:
            results = await self._gather(steps, outcome)

        merged = merge_outcomes(results, base=outcome)
        logger.debug("group.merged", size=len(steps), halted=not merged.continues)
        return merged

    async def arun_step(self, step: Step, outcome: Outcome) -> Outcome:
        """Invoke one step from async code; sync actions run in a worker thread."""
        if is_async_action(step.action):
            result = await step.action(outcome)
        else:
            result = await asyncio.to_thread(step.action, outcome)
            if inspect.isawaitable(result):
                result = await result
        return self._checked(step, result)

    async def _gather(self, steps: list[Step], outcome: Outcome) -> list[Outcome]:
        sem = asyncio.Semaphore(self._workers_for(len(steps)))

        async def _run_one(step: Step) -> Outcome:
            async with sem:
                return await self.arun_step(step, outcome)

        gathered = await asyncio.gather(*[_run_one(step) for step in steps], return_exceptions=True)

        faults = [(step, r) for step, r in zip(steps, gathered) if isinstance(r, BaseException)]
        self._raise_first_fault(faults)
        return list(gathered)

    # =========================================================================
    # Faults
    # =========================================================================

    @staticmethod
    def _raise_first_fault(faults: list[tuple[Step, BaseException]]) -> None:
        """Re-raise the first fault in declaration order; log the rest."""
        if not faults:
            return
        for step, exc in faults:
            logger.error(
                "group.step_failed",
                step=step.label,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        raise faults[0][1]

    def __repr__(self) -> str:
        return f"GroupExecutor(concurrency={self.concurrency.value!r}, max_workers={self.max_workers})"
