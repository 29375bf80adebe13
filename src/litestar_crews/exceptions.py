"""Exception hierarchy for litestar-crews."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar_crews.core.types import WorkflowStatus

__all__ = (
    "ApprovalError",
    "ApprovalPendingError",
    "ApprovalRejectedError",
    "ApprovalTimeoutError",
    "CrewsError",
    "GateAlreadyResolvedError",
    "GateNotFoundError",
    "InvalidTransitionError",
    "MaxRetriesExceededError",
    "ProviderError",
    "RecoveryError",
    "RollbackTargetInvalidError",
    "RunAlreadyActiveError",
    "RunNotFoundError",
    "SnapshotNotFoundError",
    "StepTimeoutError",
    "UnknownWorkflowTypeError",
    "WorkerNotFoundError",
    "WorkflowValidationError",
)


class CrewsError(Exception):
    """Base exception for all litestar-crews errors.

    All exceptions raised by litestar-crews inherit from this class, so callers
    can catch every orchestration error with a single except clause.
    """


class WorkerNotFoundError(CrewsError):
    """Raised when a step references a worker that is not registered.

    Attributes:
        worker_id: The identifier of the missing worker.
    """

    def __init__(self, worker_id: str) -> None:
        """Initialize the exception with worker details.

        Args:
            worker_id: The identifier of the missing worker.
        """
        self.worker_id = worker_id
        super().__init__(f"Worker not found: {worker_id}")


class StepTimeoutError(CrewsError):
    """Raised when a worker invocation exceeds its time budget.

    Attributes:
        worker_id: The worker that timed out.
        timeout: The budget in seconds.
    """

    def __init__(self, worker_id: str, timeout: float) -> None:
        """Initialize the exception with timeout details.

        Args:
            worker_id: The worker that timed out.
            timeout: The budget in seconds.
        """
        self.worker_id = worker_id
        self.timeout = timeout
        super().__init__(f"Worker '{worker_id}' timed out after {timeout}s")


class ProviderError(CrewsError):
    """Raised when the underlying worker call fails.

    Attributes:
        worker_id: The worker whose call failed.
        cause: The underlying exception, if any.
    """

    def __init__(self, worker_id: str, cause: BaseException | str | None = None) -> None:
        """Initialize the exception with provider failure details.

        Args:
            worker_id: The worker whose call failed.
            cause: The underlying exception or message, if any.
        """
        self.worker_id = worker_id
        self.cause = cause
        super().__init__(str(cause) if cause else f"Worker '{worker_id}' failed")


class UnknownWorkflowTypeError(CrewsError):
    """Raised when a workflow definition names an unsupported execution model.

    Attributes:
        workflow_type: The unrecognised type value.
    """

    def __init__(self, workflow_type: object) -> None:
        """Initialize the exception.

        Args:
            workflow_type: The unrecognised type value.
        """
        self.workflow_type = workflow_type
        super().__init__(f"Unknown workflow type: {workflow_type}")


class WorkflowValidationError(CrewsError):
    """Raised when a workflow definition does not have the expected shape.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Workflow validation failed: {'; '.join(errors)}")


class RunNotFoundError(CrewsError):
    """Raised when a workflow run state is neither cached nor stored.

    Attributes:
        run_id: The identifier of the missing run.
    """

    def __init__(self, run_id: str) -> None:
        """Initialize the exception with run details.

        Args:
            run_id: The identifier of the missing run.
        """
        self.run_id = run_id
        super().__init__(f"Workflow state not found: {run_id}")


class RunAlreadyActiveError(CrewsError):
    """Raised when a second execution loop tries to drive the same run.

    Attributes:
        run_id: The identifier of the busy run.
    """

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Workflow run '{run_id}' is already being executed")


class InvalidTransitionError(CrewsError):
    """Raised when a run status change is not allowed by the state machine.

    Attributes:
        run_id: The run being updated.
        from_status: The current status.
        to_status: The requested status.
    """

    def __init__(self, run_id: str, from_status: WorkflowStatus, to_status: WorkflowStatus) -> None:
        """Initialize the exception with transition details.

        Args:
            run_id: The run being updated.
            from_status: The current status.
            to_status: The requested status.
        """
        self.run_id = run_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition for '{run_id}' from '{from_status}' to '{to_status}'")


class ApprovalError(CrewsError):
    """Base exception for approval gate errors.

    Keeps human decision failures distinguishable from execution failures.
    """


class ApprovalTimeoutError(ApprovalError):
    """Raised when no decision arrives before the gate's timeout.

    A timeout is inconclusive: the caller may request approval again.

    Attributes:
        gate_id: The gate that expired.
        timeout: The timeout in seconds.
    """

    def __init__(self, gate_id: str, timeout: float) -> None:
        """Initialize the exception.

        Args:
            gate_id: The gate that expired.
            timeout: The timeout in seconds.
        """
        self.gate_id = gate_id
        self.timeout = timeout
        super().__init__("Approval timeout")


class ApprovalRejectedError(ApprovalError):
    """Raised when an approver explicitly rejects a gate.

    Attributes:
        gate_id: The rejected gate.
        comment: The approver's comment, if any.
    """

    def __init__(self, gate_id: str, comment: str | None = None) -> None:
        """Initialize the exception.

        Args:
            gate_id: The rejected gate.
            comment: The approver's comment, if any.
        """
        self.gate_id = gate_id
        self.comment = comment
        msg = "Approval rejected"
        if comment:
            msg += f": {comment}"
        super().__init__(msg)


class ApprovalPendingError(ApprovalError):
    """Raised when a gate for the same workflow and step is still pending.

    Attributes:
        gate_id: The gate already awaiting a decision.
    """

    def __init__(self, gate_id: str) -> None:
        self.gate_id = gate_id
        super().__init__(f"Approval gate '{gate_id}' is already pending")


class GateNotFoundError(ApprovalError):
    """Raised when a decision targets an unknown gate.

    Attributes:
        gate_id: The unknown gate identifier.
    """

    def __init__(self, gate_id: str) -> None:
        self.gate_id = gate_id
        super().__init__(f"No pending approval found for gate: {gate_id}")


class GateAlreadyResolvedError(ApprovalError):
    """Raised when a decision targets a gate that was already decided.

    Attributes:
        gate_id: The gate identifier.
        status: The status the gate was resolved to.
    """

    def __init__(self, gate_id: str, status: str) -> None:
        self.gate_id = gate_id
        self.status = status
        super().__init__(f"Approval gate '{gate_id}' is already {status}")


class RecoveryError(CrewsError):
    """Base exception for rollback and recovery errors."""


class SnapshotNotFoundError(RecoveryError):
    """Raised when no usable snapshot exists for a restore or rollback.

    Attributes:
        run_id: The run whose history was searched.
        index: The requested snapshot or step index, if any.
    """

    def __init__(self, run_id: str, index: int | None = None, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            run_id: The run whose history was searched.
            index: The requested snapshot or step index, if any.
            reason: Additional context about the lookup.
        """
        self.run_id = run_id
        self.index = index
        super().__init__(reason or f"Invalid snapshot index {index} for run '{run_id}'")


class RollbackTargetInvalidError(RecoveryError):
    """Raised when a rollback target lies outside the run's recorded steps.

    Attributes:
        run_id: The run being rolled back.
        target_index: The requested target.
        step_count: Number of steps recorded for the run.
    """

    def __init__(self, run_id: str, target_index: int, step_count: int) -> None:
        """Initialize the exception.

        Args:
            run_id: The run being rolled back.
            target_index: The requested target.
            step_count: Number of steps recorded for the run.
        """
        self.run_id = run_id
        self.target_index = target_index
        self.step_count = step_count
        super().__init__(f"Invalid step index: {target_index} (run '{run_id}' has {step_count} step(s))")


class MaxRetriesExceededError(RecoveryError):
    """Raised when a step has used up its retry budget.

    Attributes:
        step_index: The step being retried.
        max_retries: The configured budget.
    """

    def __init__(self, step_index: int, max_retries: int) -> None:
        """Initialize the exception.

        Args:
            step_index: The step being retried.
            max_retries: The configured budget.
        """
        self.step_index = step_index
        self.max_retries = max_retries
        super().__init__(f"Max retries ({max_retries}) exceeded for step {step_index}")
