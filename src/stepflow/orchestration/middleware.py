"""Middleware — wrap step actions for cross-cutting concerns.

A middleware is a plain function ``wrap(action) -> action`` applied once, when
the pipeline is constructed. The wrapped action keeps the step contract
(``Outcome -> Outcome``) and calls the inner action exactly once per
invocation.

Order: the first registered middleware is the outermost wrapper, so it sees
the call first and the result last::

    apply_middleware(action, [logging_middleware, timing_middleware])
    # logging_middleware(timing_middleware(action))

The built-ins wrap a coroutine action in an ``async def`` so their
post-processing runs after the action is awaited under ``Pipeline.arun()``.

Middleware that needs options is a factory returning a middleware::

    def tagging(key):
        def middleware(action):
            @functools.wraps(action)
            def wrapped(outcome):
                return action(outcome).with_context(key, True)
            return wrapped
        return middleware
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Iterable
from typing import Any

from stepflow.core.logging import get_logger
from stepflow.orchestration.outcome import Outcome
from stepflow.orchestration.step_types import is_async_action

logger = get_logger(__name__)

StepFn = Callable[[Outcome], Outcome]
Middleware = Callable[[StepFn], StepFn]

HALTED_STEP_KEY = "halted_step"


def apply_middleware(action: StepFn, middlewares: Iterable[Middleware]) -> StepFn:
    """Wrap ``action`` so that the first middleware in the list is outermost."""
    for middleware in reversed(list(middlewares)):
        action = middleware(action)
    return action


def _action_name(action: Any) -> str:
    return getattr(action, "__qualname__", None) or type(action).__name__


def logging_middleware(action: StepFn) -> StepFn:
    """Log ``step.start`` before and ``step.complete`` after each invocation."""
    name = _action_name(action)

    def _complete(result: Any) -> None:
        if isinstance(result, Outcome):
            logger.info(
                "step.complete",
                action=name,
                **{"continue": result.continues},
                error_keys=list(result.errors),
            )

    if is_async_action(action):

        @functools.wraps(action)
        async def awrapped(outcome: Outcome) -> Outcome:
            logger.info("step.start", action=name, value_type=type(outcome.value).__name__)
            result = await action(outcome)
            _complete(result)
            return result

        return awrapped

    @functools.wraps(action)
    def wrapped(outcome: Outcome) -> Outcome:
        logger.info("step.start", action=name, value_type=type(outcome.value).__name__)
        result = action(outcome)
        _complete(result)
        return result

    return wrapped


def timing_middleware(action: StepFn) -> StepFn:
    """Log ``step.timing`` with the wall-clock duration of each invocation."""
    name = _action_name(action)

    def _log(start: float) -> None:
        logger.debug("step.timing", action=name, duration_ms=round((time.perf_counter() - start) * 1000, 3))

    if is_async_action(action):

        @functools.wraps(action)
        async def awrapped(outcome: Outcome) -> Outcome:
            start = time.perf_counter()
            try:
                return await action(outcome)
            finally:
                _log(start)

        return awrapped

    @functools.wraps(action)
    def wrapped(outcome: Outcome) -> Outcome:
        start = time.perf_counter()
        try:
            return action(outcome)
        finally:
            _log(start)

    return wrapped


def halt_tracker(action: StepFn) -> StepFn:
    """Record which action halted the flow under the ``halted_step`` context key."""
    name = _action_name(action)

    def _track(result: Any) -> Any:
        if isinstance(result, Outcome) and not result.continues:
            return result.with_context(HALTED_STEP_KEY, name)
        return result

    if is_async_action(action):

        @functools.wraps(action)
        async def awrapped(outcome: Outcome) -> Outcome:
            return _track(await action(outcome))

        return awrapped

    @functools.wraps(action)
    def wrapped(outcome: Outcome) -> Outcome:
        return _track(action(outcome))

    return wrapped


__all__ = [
    "Middleware",
    "StepFn",
    "HALTED_STEP_KEY",
    "apply_middleware",
    "logging_middleware",
    "timing_middleware",
    "halt_tracker",
]
