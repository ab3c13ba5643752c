"""
Shared pytest fixtures and configuration for stepflow tests.

This module provides:
- Settings isolation (no STEPFLOW_* leakage between tests)
- structlog reset so log capture sees every event
- Sample dependency graphs
"""

import os
import sys
from pathlib import Path
from typing import Generator

import pytest
import structlog

# Ensure stepflow package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stepflow.core.settings import reset_settings


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """
    Clear STEPFLOW_* variables and the settings cache around each test.

    Tests that need a setting use ``monkeypatch.setenv`` then ``reset_settings()``.
    """
    for key in [k for k in list(os.environ) if k.startswith("STEPFLOW_")]:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(Path(__file__).parent)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults so ``capture_logs`` works in every test."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Sample Graphs
# =============================================================================


@pytest.fixture
def diamond_edges() -> dict[str, list[str]]:
    """
    Diamond dependency pattern:
        a
       / \\
      b   c
       \\ /
        d
    """
    return {"a": [], "b": ["a"], "c": ["a"], "d": ["b", "c"]}


@pytest.fixture
def wide_edges() -> dict[str, list[str]]:
    """Uneven graph: levels do not require identical dependency sets."""
    return {
        "extract": [],
        "config": [],
        "clean": ["extract"],
        "enrich": ["extract", "config"],
        "report": ["clean"],
        "publish": ["report", "enrich"],
    }
