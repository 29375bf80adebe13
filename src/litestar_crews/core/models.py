"""Concrete data models for litestar-crews.

This module provides the dataclasses exchanged between the executor, the state
manager, the approval gate manager and the recovery manager, together with
their JSON-safe record shapes (camelCase keys, ISO 8601 timestamps).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from litestar_crews.core.definition import WorkflowDefinition
from litestar_crews.core.types import (
    GateStatus,
    RecoveryStrategyType,
    RollbackActionType,
    WorkflowStatus,
    WorkflowType,
)

__all__ = [
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalRequest",
    "ExecutionResult",
    "RecoveryResult",
    "RecoveryStrategy",
    "RollbackAction",
    "Snapshot",
    "StepResult",
    "WorkflowState",
    "utcnow",
]


def utcnow() -> datetime:
    """Return the current timezone-aware UTC time."""
    return datetime.now(timezone.utc)


def _dump_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _load_dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class StepResult:
    """Outcome of one executed step.

    One StepResult exists per executed step; steps omitted by a condition
    produce none.

    Attributes:
        step_index: Index of the step in the workflow definition.
        worker_id: Worker that ran the step.
        worker_name: Display name of the worker.
        input: Input passed to the worker.
        output: Worker output (empty when the step failed).
        success: Whether the step succeeded.
        error: Error message if the step failed.
        start_time: When the invocation began.
        end_time: When the invocation settled.
        duration: Elapsed seconds.
    """

    step_index: int
    worker_id: str
    worker_name: str
    input: str
    output: str
    success: bool
    start_time: datetime
    end_time: datetime
    duration: float
    error: str | None = None

    @classmethod
    def succeeded(
        cls,
        step_index: int,
        worker_id: str,
        worker_name: str,
        input: str,  # noqa: A002
        output: str,
        start_time: datetime,
    ) -> StepResult:
        """Build a successful result ending now."""
        end_time = utcnow()
        return cls(
            step_index=step_index,
            worker_id=worker_id,
            worker_name=worker_name,
            input=input,
            output=output,
            success=True,
            start_time=start_time,
            end_time=end_time,
            duration=(end_time - start_time).total_seconds(),
        )

    @classmethod
    def failed(
        cls,
        step_index: int,
        worker_id: str,
        worker_name: str,
        input: str,  # noqa: A002
        error: str,
        start_time: datetime | None = None,
    ) -> StepResult:
        """Build a failed result ending now."""
        end_time = utcnow()
        start_time = start_time or end_time
        return cls(
            step_index=step_index,
            worker_id=worker_id,
            worker_name=worker_name,
            input=input,
            output="",
            success=False,
            start_time=start_time,
            end_time=end_time,
            duration=(end_time - start_time).total_seconds(),
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stepIndex": self.step_index,
            "workerId": self.worker_id,
            "workerName": self.worker_name,
            "input": self.input,
            "output": self.output,
            "success": self.success,
            "startTime": _dump_dt(self.start_time),
            "endTime": _dump_dt(self.end_time),
            "duration": self.duration,
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepResult:
        return cls(
            step_index=data["stepIndex"],
            worker_id=data["workerId"],
            worker_name=data.get("workerName", ""),
            input=data.get("input", ""),
            output=data.get("output", ""),
            success=data["success"],
            start_time=_load_dt(data["startTime"]),  # type: ignore[arg-type]
            end_time=_load_dt(data["endTime"]),  # type: ignore[arg-type]
            duration=data.get("duration", 0.0),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ExecutionResult:
    """Overall outcome of one execution.

    Attributes:
        run_id: Caller-supplied run identifier.
        run_name: Human-readable run name.
        workflow_type: Execution model that produced the result.
        steps: Produced step results in index order.
        success: True iff every produced step succeeded and no fatal error occurred.
        total_duration: Elapsed seconds for the whole execution.
        start_time: When the execution began.
        end_time: When the execution settled.
        error: Human-readable failure summary, if any.
        state_id: Identifier of the backing WorkflowState, for state-backed runs.
    """

    run_id: str
    run_name: str
    workflow_type: WorkflowType
    steps: tuple[StepResult, ...]
    success: bool
    total_duration: float
    start_time: datetime
    end_time: datetime
    error: str | None = None
    state_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "runId": self.run_id,
            "runName": self.run_name,
            "workflowType": str(self.workflow_type),
            "steps": [step.to_dict() for step in self.steps],
            "success": self.success,
            "totalDuration": self.total_duration,
            "startTime": _dump_dt(self.start_time),
            "endTime": _dump_dt(self.end_time),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.state_id is not None:
            data["stateId"] = self.state_id
        return data


@dataclass
class WorkflowState:
    """Persisted, mutable record of one execution attempt.

    Only the state manager mutates instances of this class; everyone else
    receives copies.

    Attributes:
        id: Unique identifier of this execution attempt.
        workflow_id: Identifier of the logical run / definition being executed.
        run_name: Human-readable run name.
        workflow: The workflow definition being executed.
        status: Current run status.
        current_step_index: Index of the step being (or last) executed.
        steps: Kept step results.
        context: Free-form JSON-safe data, starting as ``{"initial_input": ...}``.
        start_time: When the attempt was created.
        end_time: When the attempt reached a terminal status.
        paused_at: When the run was last paused.
        resumed_at: When the run was last resumed from a pause.
        error: Error message if the run failed.
    """

    id: str
    workflow_id: str
    run_name: str
    workflow: WorkflowDefinition
    status: WorkflowStatus
    start_time: datetime
    current_step_index: int = 0
    steps: list[StepResult] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    end_time: datetime | None = None
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    error: str | None = None

    @property
    def initial_input(self) -> str:
        """Input the run was started with."""
        return self.context.get("initial_input", "")

    def copy(self) -> WorkflowState:
        """Return a deep copy that shares nothing with this state."""
        return WorkflowState.from_dict(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "runName": self.run_name,
            "workflow": self.workflow.to_dict(),
            "status": str(self.status),
            "currentStepIndex": self.current_step_index,
            "steps": [step.to_dict() for step in self.steps],
            "context": copy.deepcopy(self.context),
            "startTime": _dump_dt(self.start_time),
            "endTime": _dump_dt(self.end_time),
            "pausedAt": _dump_dt(self.paused_at),
            "resumedAt": _dump_dt(self.resumed_at),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowState:
        return cls(
            id=data["id"],
            workflow_id=data["workflowId"],
            run_name=data.get("runName", ""),
            workflow=WorkflowDefinition.from_dict(data["workflow"]),
            status=WorkflowStatus(data["status"]),
            current_step_index=data.get("currentStepIndex", 0),
            steps=[StepResult.from_dict(step) for step in data.get("steps", [])],
            context=copy.deepcopy(data.get("context", {})),
            start_time=_load_dt(data["startTime"]),  # type: ignore[arg-type]
            end_time=_load_dt(data.get("endTime")),
            paused_at=_load_dt(data.get("pausedAt")),
            resumed_at=_load_dt(data.get("resumedAt")),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class Snapshot:
    """Immutable, timestamped copy of a run's full state.

    Attributes:
        sequence: Per-run monotonic counter; keeps increasing across evictions.
        timestamp: When the snapshot was taken.
        state: Copy of the state right after the mutation.
    """

    sequence: int
    timestamp: datetime
    state: WorkflowState


@dataclass
class ApprovalRequest:
    """Request for a human decision before a step.

    Attributes:
        step_index: Step being gated.
        step_name: Display name for approvers.
        data: Extra context shown to approvers.
        timeout: Seconds to wait for a decision. None waits indefinitely.
    """

    step_index: int
    step_name: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    timeout: float | None = None


@dataclass(frozen=True)
class ApprovalDecision:
    """A human decision on an approval gate."""

    approved: bool
    comment: str | None = None
    user_id: str | None = None


@dataclass
class ApprovalGate:
    """Named checkpoint awaiting (or holding) a human decision.

    Attributes:
        id: ``f"{workflow_id}-{step_index}"``.
        workflow_id: Workflow the gate belongs to.
        step_index: Step the gate guards.
        status: Pending, approved or rejected.
        requested_at: When approval was requested.
        resolved_at: When the decision arrived.
        resolved_by: Identity of the approver.
        comment: Approver's comment.
        data: Request data shown to approvers.
    """

    id: str
    workflow_id: str
    step_index: int
    status: GateStatus
    requested_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    comment: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "stepIndex": self.step_index,
            "status": str(self.status),
            "requestedAt": _dump_dt(self.requested_at),
            "resolvedAt": _dump_dt(self.resolved_at),
            "resolvedBy": self.resolved_by,
            "comment": self.comment,
            "data": copy.deepcopy(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApprovalGate:
        return cls(
            id=data["id"],
            workflow_id=data["workflowId"],
            step_index=data["stepIndex"],
            status=GateStatus(data["status"]),
            requested_at=_load_dt(data["requestedAt"]),  # type: ignore[arg-type]
            resolved_at=_load_dt(data.get("resolvedAt")),
            resolved_by=data.get("resolvedBy"),
            comment=data.get("comment"),
            data=copy.deepcopy(data.get("data") or {}),
        )


@dataclass(frozen=True)
class RecoveryStrategy:
    """Policy applied to a failed step.

    Attributes:
        type: Which recovery to attempt.
        max_retries: Retry budget per step (retry only). None uses the
            recovery manager's default.
        retry_delay: Seconds to wait before the second and later attempts
            (retry only). None uses the recovery manager's default.
        rollback_steps: How many steps to roll back (rollback only).
    """

    type: RecoveryStrategyType
    max_retries: int | None = None
    retry_delay: float | None = None
    rollback_steps: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecoveryStrategy:
        return cls(
            type=RecoveryStrategyType(data["type"]),
            max_retries=data.get("maxRetries"),
            retry_delay=data.get("retryDelay"),
            rollback_steps=data["rollbackSteps"] if data.get("rollbackSteps") is not None else 1,
        )


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of a recovery attempt.

    Attributes:
        recovered: Whether execution may continue automatically.
        strategy: The strategy that was applied.
        message: Human-readable description of what happened.
        next_step_index: Where execution should continue, when recovered.
    """

    recovered: bool
    strategy: RecoveryStrategyType
    message: str
    next_step_index: int | None = None


@dataclass(frozen=True)
class RollbackAction:
    """Planned compensation for a previously successful step."""

    step_index: int
    action: RollbackActionType
    compensation_data: dict[str, Any] = field(default_factory=dict)
