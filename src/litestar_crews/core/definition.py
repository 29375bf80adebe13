"""Workflow definition structures.

This module provides the immutable data structures describing a workflow: the
execution model, the ordered steps delegated to workers, and the optional
conditions that gate steps in conditional workflows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from litestar_crews.core.types import ConditionKind, WorkflowType
from litestar_crews.exceptions import UnknownWorkflowTypeError, WorkflowValidationError

__all__ = ["Condition", "Step", "WorkflowDefinition"]


@dataclass(frozen=True)
class Condition:
    """Gate for a step in a conditional workflow.

    Attributes:
        kind: Which outcome of the referenced result lets the step run.
        reference_step_index: Index of the step whose result is inspected. When
            None, the most recently produced result is used.

    Example:
        >>> Condition(kind=ConditionKind.FAILURE, reference_step_index=0)
    """

    kind: ConditionKind
    reference_step_index: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], position: int = 0) -> Condition:
        """Parse a condition from its external shape.

        Args:
            data: Mapping with ``kind`` (or ``type``) and optional ``referenceStepIndex``
                (or ``previousStepIndex``).
            position: Index of the owning step, used in error messages.

        Returns:
            The parsed Condition.

        Raises:
            WorkflowValidationError: If the kind or the reference index is invalid.
        """
        if not isinstance(data, dict):
            raise WorkflowValidationError([f"steps[{position}].condition must be an object"])

        raw_kind = data.get("kind", data.get("type"))
        try:
            kind = ConditionKind(raw_kind)
        except ValueError:
            raise WorkflowValidationError([f"steps[{position}].condition has unknown kind {raw_kind!r}"]) from None

        reference = data.get("referenceStepIndex", data.get("previousStepIndex"))
        if reference is not None and (isinstance(reference, bool) or not isinstance(reference, int) or reference < 0):
            raise WorkflowValidationError(
                [f"steps[{position}].condition.referenceStepIndex must be a non-negative integer"]
            )
        return cls(kind=kind, reference_step_index=reference)

    def to_dict(self) -> dict[str, Any]:
        """Render the canonical external shape."""
        data: dict[str, Any] = {"kind": str(self.kind)}
        if self.reference_step_index is not None:
            data["referenceStepIndex"] = self.reference_step_index
        return data


@dataclass(frozen=True)
class Step:
    """A single unit of work delegated to a worker.

    Attributes:
        worker_id: Identifier of the worker that performs the step.
        input: Explicit input. When unset (or empty) the step receives the rolling
            input (sequential/conditional) or the initial input (parallel).
        condition: Optional gate, only meaningful for conditional workflows.
        requires_approval: Whether a human must approve before the step runs.
    """

    worker_id: str
    input: str | None = None
    condition: Condition | None = None
    requires_approval: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], position: int = 0) -> Step:
        """Parse a step from its external shape.

        Args:
            data: Mapping with ``workerId`` (or ``agentId``), optional ``input``,
                ``condition`` and ``requiresApproval``.
            position: Index of the step within the definition.

        Returns:
            The parsed Step.

        Raises:
            WorkflowValidationError: If required fields are missing or malformed.
        """
        if not isinstance(data, dict):
            raise WorkflowValidationError([f"steps[{position}] must be an object"])

        worker_id = data.get("workerId", data.get("agentId"))
        if not isinstance(worker_id, str) or not worker_id:
            raise WorkflowValidationError([f"steps[{position}].workerId is required"])

        step_input = data.get("input")
        if step_input is not None and not isinstance(step_input, str):
            raise WorkflowValidationError([f"steps[{position}].input must be a string"])

        raw_condition = data.get("condition")
        condition = Condition.from_dict(raw_condition, position) if raw_condition is not None else None

        return cls(
            worker_id=worker_id,
            input=step_input,
            condition=condition,
            requires_approval=bool(data.get("requiresApproval", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Render the canonical external shape."""
        data: dict[str, Any] = {"workerId": self.worker_id}
        if self.input is not None:
            data["input"] = self.input
        if self.condition is not None:
            data["condition"] = self.condition.to_dict()
        if self.requires_approval:
            data["requiresApproval"] = True
        return data


@dataclass(frozen=True)
class WorkflowDefinition:
    """Declarative workflow structure.

    The WorkflowDefinition is the blueprint for a run: the execution model and
    the ordered steps. It is immutable once execution starts.

    Attributes:
        type: The execution model.
        steps: Ordered tuple of steps.

    Example:
        >>> definition = WorkflowDefinition.from_dict(
        ...     {
        ...         "type": "sequential",
        ...         "steps": [{"workerId": "researcher"}, {"workerId": "writer"}],
        ...     }
        ... )
        >>> len(definition.steps)
        2
    """

    type: WorkflowType
    steps: tuple[Step, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        try:
            workflow_type = WorkflowType(self.type)
        except ValueError:
            raise UnknownWorkflowTypeError(self.type) from None
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "type", workflow_type)
        object.__setattr__(self, "steps", tuple(self.steps))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowDefinition:
        """Parse a workflow definition from its external shape.

        Args:
            data: Mapping ``{"type": ..., "steps": [...]}``.

        Returns:
            The parsed WorkflowDefinition.

        Raises:
            UnknownWorkflowTypeError: If ``type`` is not a supported execution model.
            WorkflowValidationError: If the steps are missing or malformed.
        """
        if not isinstance(data, dict):
            raise WorkflowValidationError(["workflow must be an object"])

        raw_type = data.get("type")
        try:
            workflow_type = WorkflowType(raw_type)
        except ValueError:
            raise UnknownWorkflowTypeError(raw_type) from None

        raw_steps = data.get("steps")
        if not isinstance(raw_steps, list):
            raise WorkflowValidationError(["steps must be a list"])
        if not raw_steps:
            raise WorkflowValidationError(["at least one step is required"])

        steps = tuple(Step.from_dict(raw, position) for position, raw in enumerate(raw_steps))
        return cls(type=workflow_type, steps=steps)

    @classmethod
    def coerce(cls, workflow: WorkflowDefinition | dict[str, Any]) -> WorkflowDefinition:
        """Return ``workflow`` as a definition, parsing the external shape if needed."""
        if isinstance(workflow, WorkflowDefinition):
            return workflow
        return cls.from_dict(workflow)

    def to_dict(self) -> dict[str, Any]:
        """Render the canonical external shape."""
        return {"type": str(self.type), "steps": [step.to_dict() for step in self.steps]}
