"""Litestar Crews - Multi-agent workflow orchestration for Litestar.

This package coordinates a set of workers (agents) through sequential,
parallel and conditional workflows, with persisted run state, human approval
gates and automatic recovery from failed steps.

Key Features:
    - Sequential, parallel, and conditional execution
    - Run state with bounded snapshot history and rollback
    - Human approval gates with timeouts
    - Retry, skip and rollback recovery strategies
    - In-memory and SQL persistence
    - Litestar plugin with dependency injection

Example:
    >>> from litestar_crews import CrewServices, WorkerRegistry
    >>>
    >>> workers = WorkerRegistry()
    >>> workers.register("researcher", research, name="Researcher")
    >>> workers.register("writer", write, name="Writer")
    >>>
    >>> services = CrewServices.create(workers)
    >>> result = await services.executor.execute(
    ...     "crew-123",
    ...     "Research Team",
    ...     {"type": "sequential", "steps": [{"workerId": "researcher"}, {"workerId": "writer"}]},
    ...     "Analyze market trends",
    ... )
"""

from __future__ import annotations

from litestar_crews.__metadata__ import __project__, __version__
from litestar_crews.approvals import ApprovalGateManager
from litestar_crews.config import EngineSettings
from litestar_crews.core import (
    ApprovalDecision,
    ApprovalRequest,
    Condition,
    ExecutionResult,
    RecoveryStrategy,
    Step,
    StepResult,
    WorkflowDefinition,
    WorkflowState,
)
from litestar_crews.engine import WorkerRegistry, WorkflowExecutor
from litestar_crews.exceptions import (
    ApprovalError,
    ApprovalRejectedError,
    ApprovalTimeoutError,
    CrewsError,
    InvalidTransitionError,
    RecoveryError,
    RunNotFoundError,
    UnknownWorkflowTypeError,
    WorkerNotFoundError,
    WorkflowValidationError,
)
from litestar_crews.plugin import CrewsPlugin, CrewsPluginConfig
from litestar_crews.recovery import RecoveryManager
from litestar_crews.services import CrewServices
from litestar_crews.state import StateManager
from litestar_crews.store import InMemoryStore

__all__ = (
    "ApprovalDecision",
    "ApprovalError",
    "ApprovalGateManager",
    "ApprovalRejectedError",
    "ApprovalRequest",
    "ApprovalTimeoutError",
    "Condition",
    "CrewServices",
    "CrewsError",
    "CrewsPlugin",
    "CrewsPluginConfig",
    "EngineSettings",
    "ExecutionResult",
    "InMemoryStore",
    "InvalidTransitionError",
    "RecoveryError",
    "RecoveryManager",
    "RecoveryStrategy",
    "RunNotFoundError",
    "StateManager",
    "Step",
    "StepResult",
    "UnknownWorkflowTypeError",
    "WorkerNotFoundError",
    "WorkerRegistry",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowState",
    "WorkflowValidationError",
    "__project__",
    "__version__",
)
