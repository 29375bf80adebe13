"""Core type definitions for litestar-crews.

This module defines the fundamental enums and the status state machine used
throughout the orchestration engine.
"""

from __future__ import annotations

from enum import StrEnum, auto

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "ConditionKind",
    "EventType",
    "GateStatus",
    "RecordKind",
    "RecoveryStrategyType",
    "RollbackActionType",
    "WorkflowStatus",
    "WorkflowType",
]


class WorkflowType(StrEnum):
    """Execution model of a workflow definition.

    Attributes:
        SEQUENTIAL: Steps run one after another, feeding outputs forward.
        PARALLEL: Steps fan out concurrently and are gathered in index order.
        CONDITIONAL: Like sequential, but each step may be gated on a prior result.
    """

    SEQUENTIAL = auto()
    PARALLEL = auto()
    CONDITIONAL = auto()


class ConditionKind(StrEnum):
    """Kind of condition attached to a conditional step.

    Attributes:
        SUCCESS: Run when the referenced result succeeded.
        FAILURE: Run when the referenced result failed.
        ALWAYS: Always run.
    """

    SUCCESS = auto()
    FAILURE = auto()
    ALWAYS = auto()


class WorkflowStatus(StrEnum):
    """Overall status of a workflow run.

    Attributes:
        PENDING: Run has been created but not yet started.
        RUNNING: Run is actively executing steps.
        PAUSED: Run is suspended (approval, rollback or manual action).
        COMPLETED: Run finished successfully.
        FAILED: Run terminated due to an error.
    """

    PENDING = auto()
    RUNNING = auto()
    PAUSED = auto()
    COMPLETED = auto()
    FAILED = auto()


class GateStatus(StrEnum):
    """Status of an approval gate."""

    PENDING = auto()
    APPROVED = auto()
    REJECTED = auto()


class RecoveryStrategyType(StrEnum):
    """Recovery policy applied to a failed step.

    Attributes:
        RETRY: Re-run the same step, bounded by a retry budget.
        SKIP: Continue with the next step.
        ROLLBACK: Restore an earlier snapshot and resume after it.
        MANUAL: Leave the run for a human to resolve.
    """

    RETRY = auto()
    SKIP = auto()
    ROLLBACK = auto()
    MANUAL = auto()


class RollbackActionType(StrEnum):
    """Kind of planned compensating action."""

    UNDO = auto()
    COMPENSATE = auto()
    SKIP = auto()


class RecordKind(StrEnum):
    """Kind of record kept in durable storage."""

    WORKFLOW_RUN = auto()
    APPROVAL_GATE = auto()


class EventType(StrEnum):
    """Caller-facing event types emitted during execution."""

    RUN = auto()
    STEP = auto()
    COMPLETE = auto()
    ERROR = auto()


TERMINAL_STATUSES: frozenset[WorkflowStatus] = frozenset({WorkflowStatus.COMPLETED, WorkflowStatus.FAILED})
"""Statuses after which a run only changes through rollback."""

ACTIVE_STATUSES: frozenset[WorkflowStatus] = frozenset(
    {WorkflowStatus.PENDING, WorkflowStatus.RUNNING, WorkflowStatus.PAUSED}
)
"""Statuses of runs that are still in flight."""

ALLOWED_TRANSITIONS: dict[WorkflowStatus, frozenset[WorkflowStatus]] = {
    WorkflowStatus.PENDING: frozenset({WorkflowStatus.RUNNING, WorkflowStatus.FAILED}),
    WorkflowStatus.RUNNING: frozenset({WorkflowStatus.PAUSED, WorkflowStatus.COMPLETED, WorkflowStatus.FAILED}),
    WorkflowStatus.PAUSED: frozenset({WorkflowStatus.RUNNING, WorkflowStatus.FAILED}),
    WorkflowStatus.COMPLETED: frozenset(),
    WorkflowStatus.FAILED: frozenset(),
}
"""Run status state machine. Rollback re-opening is handled separately."""
