"""
Stepflow - dependency-aware step pipelines with concurrent level execution.

- stepflow.core: errors, logging, settings
- stepflow.orchestration: Outcome, Step, DependencyGraph, Pipeline
"""

__version__ = "0.1.0"

from stepflow.orchestration import (  # noqa: E402
    Outcome,
    Pipeline,
    PipelineBuilder,
    Step,
)

__all__ = ["__version__", "Outcome", "Pipeline", "PipelineBuilder", "Step"]
