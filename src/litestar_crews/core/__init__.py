"""Core domain module for litestar-crews.

This module exports the building blocks shared by every other module: the
workflow definition, the run and approval records, events, protocols and the
enumerations they are expressed in.
"""

from __future__ import annotations

from litestar_crews.core.definition import Condition, Step, WorkflowDefinition
from litestar_crews.core.events import CompleteEvent, CrewEvent, ErrorEvent, RunStarted, StepEvent
from litestar_crews.core.models import (
    ApprovalDecision,
    ApprovalGate,
    ApprovalRequest,
    ExecutionResult,
    RecoveryResult,
    RecoveryStrategy,
    RollbackAction,
    Snapshot,
    StepResult,
    WorkflowState,
)
from litestar_crews.core.protocols import EventBus, StateStore, Worker
from litestar_crews.core.types import (
    ConditionKind,
    EventType,
    GateStatus,
    RecordKind,
    RecoveryStrategyType,
    RollbackActionType,
    WorkflowStatus,
    WorkflowType,
)

__all__ = [
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalRequest",
    "CompleteEvent",
    "Condition",
    "ConditionKind",
    "CrewEvent",
    "ErrorEvent",
    "EventBus",
    "EventType",
    "ExecutionResult",
    "GateStatus",
    "RecordKind",
    "RecoveryResult",
    "RecoveryStrategy",
    "RecoveryStrategyType",
    "RollbackAction",
    "RollbackActionType",
    "RunStarted",
    "Snapshot",
    "StateStore",
    "Step",
    "StepEvent",
    "StepResult",
    "Worker",
    "WorkflowDefinition",
    "WorkflowState",
    "WorkflowStatus",
    "WorkflowType",
]
