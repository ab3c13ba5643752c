"""
Stepflow core primitives — errors, logging, settings.

These modules carry no orchestration concepts; ``stepflow.orchestration``
builds on them.
"""

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
from stepflow.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_from_settings,
    configure_logging,
    get_logger,
    unbind_context,
)
from stepflow.core.settings import StepflowSettings, get_settings, reset_settings

__all__ = [
    # errors
    "ErrorCategory",
    "ErrorContext",
    "StepflowError",
    "ConfigError",
    "InvalidConfigError",
    "OrchestrationError",
    "is_config_error",
    "categorize_error",
    # logging
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    # settings
    "StepflowSettings",
    "get_settings",
    "reset_settings",
]
