"""
Structured error types for the stepflow framework.

Provides a small hierarchy of typed errors carrying a category, structured
context, and an optional chained cause so that callers can tell a broken
pipeline definition apart from a problem raised while scheduling it.

Manifesto:
    - **Typed Error Hierarchy:** Configuration problems and orchestration
      problems are different types, caught with one ``except`` each
    - **Rich Context:** Errors carry pipeline/step metadata for logging
    - **Error Chaining:** Preserve original exceptions while adding context
    - **Faults are not wrapped:** Exceptions raised by step actions are never
      converted into StepflowError; they reach the caller unmodified

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                     StepflowError                         │
        │            (category, context, cause)                     │
        ├──────────────────────────────────────────────────────────┤
        │                                                           │
        │  ConfigError (CONFIG)          OrchestrationError         │
        │       │                        (ORCHESTRATION)            │
        │  InvalidConfigError                 │                     │
        │  PipelineConfigError          StepActivationError         │
        │   (see orchestration.         StepContractError           │
        │    exceptions)                                            │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> error = InvalidConfigError("concurrency", "fibers")
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.with_context(pipeline="checkout").context.pipeline
    'checkout'

Tags:
    error-handling, exception-hierarchy, error-context, stepflow-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification.

    - CONFIG: the pipeline definition is invalid and must be fixed
    - ORCHESTRATION: scheduling went wrong while a pipeline was running
    - INTERNAL: bug in stepflow itself
    - UNKNOWN: anything raised outside the hierarchy
    """

    CONFIG = "CONFIG"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        pipeline: Name of the pipeline where the error occurred
        step: Name of the step involved, if any
        level: Index of the dependency level being executed
        metadata: Additional key-value pairs
    """

    pipeline: str | None = None
    step: str | None = None
    level: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["pipeline", "step", "level"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StepflowError(Exception):
    """
    Base exception for all stepflow errors.

    Subclasses set ``default_category`` so that callers and log processors
    can route errors without string matching.

    Examples:
        >>> error = StepflowError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["error_type"]
        'StepflowError'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StepflowError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DependencyError("charge", ["reserve"]).with_context(pipeline="checkout")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(StepflowError):
    """
    Configuration error.

    Raised while a pipeline is being defined; the definition must be fixed.
    """

    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(StepflowError):
    """Error raised while a pipeline is being scheduled."""

    default_category = ErrorCategory.ORCHESTRATION


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_config_error(error: Exception) -> bool:
    """Check whether an error was caused by an invalid pipeline definition."""
    return isinstance(error, StepflowError) and error.category == ErrorCategory.CONFIG


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StepflowError):
        return error.category
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StepflowError",
    "ConfigError",
    "InvalidConfigError",
    "OrchestrationError",
    "is_config_error",
    "categorize_error",
]
