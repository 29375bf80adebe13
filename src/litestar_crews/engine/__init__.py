"""Workflow execution engine.

This module provides the executor that drives workflow definitions, the
per-model step runners and the in-process worker registry.
"""

from __future__ import annotations

from litestar_crews.engine.executor import WorkflowExecutor
from litestar_crews.engine.registry import WorkerRegistry
from litestar_crews.engine.runners import (
    ConditionalRunner,
    ParallelRunner,
    SequentialRunner,
    StepRunner,
    evaluate_condition,
    get_runner,
)

__all__ = [
    "ConditionalRunner",
    "ParallelRunner",
    "SequentialRunner",
    "StepRunner",
    "WorkerRegistry",
    "WorkflowExecutor",
    "evaluate_condition",
    "get_runner",
]
