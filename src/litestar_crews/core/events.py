"""Caller-facing execution events.

This module defines the events the executor emits while a run progresses.
They are delivered to the configured event bus and to ``WorkflowExecutor.stream``
consumers, so a UI or automation layer can observe progress without polling.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, ClassVar

from litestar_crews.core.types import EventType, WorkflowType

if TYPE_CHECKING:
    from litestar_crews.core.models import ExecutionResult, StepResult

__all__ = [
    "CompleteEvent",
    "CrewEvent",
    "ErrorEvent",
    "RunStarted",
    "StepEvent",
]


@dataclass
class CrewEvent:
    """Base class for all execution events.

    Attributes:
        run_id: Caller-supplied run identifier.
        timestamp: When the event occurred.
    """

    event_type: ClassVar[EventType]

    run_id: str
    timestamp: datetime


@dataclass
class RunStarted(CrewEvent):
    """Event emitted when an execution begins.

    Attributes:
        run_id: Caller-supplied run identifier.
        timestamp: When the execution started.
        workflow_type: Execution model of the workflow.
        run_name: Human-readable run name.
        state_id: Backing state id for state-backed runs.
    """

    event_type: ClassVar[EventType] = EventType.RUN

    workflow_type: WorkflowType
    run_name: str = ""
    state_id: str | None = None


@dataclass
class StepEvent(CrewEvent):
    """Event emitted for every produced step result.

    Example:
        >>> event = StepEvent(run_id="run-1", timestamp=utcnow(), step=result)
        >>> event.step.success
        True
    """

    event_type: ClassVar[EventType] = EventType.STEP

    step: StepResult


@dataclass
class CompleteEvent(CrewEvent):
    """Event emitted once with the final execution result."""

    event_type: ClassVar[EventType] = EventType.COMPLETE

    result: ExecutionResult


@dataclass
class ErrorEvent(CrewEvent):
    """Event emitted for a fatal, non step-scoped failure.

    Attributes:
        error: Error message.
        error_type: Class name of the error.
    """

    event_type: ClassVar[EventType] = EventType.ERROR

    error: str
    error_type: str | None = None
