"""Outcome — the immutable object that flows through every step.

Manifesto:
    Steps never mutate their input. Every step receives an Outcome and
returns a NEW one built with the ``with_*`` / ``continue_with`` / ``halt``
methods, so a single Outcome can be handed to many concurrently running
steps without locks.

ARCHITECTURE
────────────
::

    Outcome
      ├── value              ── opaque payload
      ├── context            ── read-only mapping, accumulates metadata
      ├── errors             ── read-only mapping: category → tuple of messages
      ├── continues          ── continuation flag (default True)
      └── activated_steps    ── optional steps requested by upstream steps

      .with_context(key, value)   → new Outcome, key set
      .with_error(key, message)   → new Outcome, message appended
      .continue_with(value)       → new Outcome, flag forced True
      .halt(value=<keep>)         → new Outcome, flag False
      .activate(*names)           → new Outcome, names appended

``continue_with`` clears a previous halt: a step that
continues re-enables progress unless it halts again.

Example::

    from stepflow.orchestration import Outcome

    def validate(outcome: Outcome) -> Outcome:
        if not outcome.value.get("email"):
            return outcome.with_error("validation", "email is required").halt()
        return outcome.with_context("validated", True).continue_with(outcome.value)

Tags:
    stepflow, orchestration, outcome, immutable, flow-control

Doc-Types:
    api-reference
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

_KEEP = object()


def _freeze_errors(errors: Mapping[str, Iterable[str]]) -> MappingProxyType:
    return MappingProxyType({key: tuple(messages) for key, messages in errors.items()})


def _flatten_names(names: Iterable[Any]) -> list[str]:
    flat: list[str] = []
    for name in names:
        if isinstance(name, str):
            flat.append(name)
        else:
            flat.extend(_flatten_names(name))
    return flat


@dataclass(frozen=True)
class Outcome:
    """
    Immutable carrier of a step's value, context, errors, and continuation flag.

    Attributes:
        value: Payload produced by the last step
        context: Metadata accumulated across steps (read-only mapping)
        errors: Error messages grouped by category (read-only mapping of tuples)
        continues: Whether downstream steps should run
        activated_steps: Optional step names activated by upstream steps
    """

    value: Any = None
    context: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    errors: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    continues: bool = True
    activated_steps: tuple[str, ...] = ()

    # Mapping fields are unhashable; equality compares values
    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        # Copy on construction so no two Outcomes share mutable backing state
        object.__setattr__(self, "context", MappingProxyType(dict(self.context)))
        object.__setattr__(self, "errors", _freeze_errors(self.errors))
        object.__setattr__(self, "activated_steps", tuple(self.activated_steps))

    # =========================================================================
    # Mutation (returns new Outcome)
    # =========================================================================

    def with_context(self, key: str, value: Any) -> Outcome:
        """Return a new Outcome with ``key`` set to ``value`` in the context."""
        return self._copy_with(context={**self.context, key: value})

    def with_error(self, key: str, message: str) -> Outcome:
        """Return a new Outcome with ``message`` appended under ``key``."""
        errors = dict(self.errors)
        errors[key] = (*errors.get(key, ()), message)
        return self._copy_with(errors=errors)

    def continue_with(self, new_value: Any) -> Outcome:
        """Return a new Outcome carrying ``new_value`` with the flag forced to True."""
        return self._copy_with(value=new_value, continues=True)

    def halt(self, new_value: Any = _KEEP) -> Outcome:
        """
        Return a new Outcome with the continuation flag cleared.

        The value is replaced only when ``new_value`` is passed explicitly
        (``halt(None)`` stores ``None``).
        """
        if new_value is _KEEP:
            return self._copy_with(continues=False)
        return self._copy_with(value=new_value, continues=False)

    def activate(self, *step_names: str | Iterable[str]) -> Outcome:
        """Return a new Outcome with the named optional steps activated."""
        names = _flatten_names(step_names)
        return self._copy_with(activated_steps=(*self.activated_steps, *names))

    # =========================================================================
    # Accessors
    # =========================================================================

    def should_continue(self) -> bool:
        """Whether downstream steps should run."""
        return self.continues

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict snapshot for logging and reporting."""
        return {
            "value": self.value,
            "context": dict(self.context),
            "errors": {key: list(messages) for key, messages in self.errors.items()},
            "continue": self.continues,
            "activated_steps": list(self.activated_steps),
        }

    def _copy_with(self, **overrides: Any) -> Outcome:
        return dataclasses.replace(self, **overrides)

    def __repr__(self) -> str:
        state = "continue" if self.continues else "halted"
        return (
            f"Outcome(value={self.value!r}, {state}, "
            f"context_keys={list(self.context)}, errors={list(self.errors)})"
        )
