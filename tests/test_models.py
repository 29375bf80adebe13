"""Tests for result, state and approval records."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest


def make_state():
    from litestar_crews.core.definition import WorkflowDefinition
    from litestar_crews.core.models import WorkflowState
    from litestar_crews.core.types import WorkflowStatus

    return WorkflowState(
        id="crew-1-abc",
        workflow_id="crew-1",
        run_name="Research Team",
        workflow=WorkflowDefinition.from_dict({"type": "sequential", "steps": [{"workerId": "researcher"}]}),
        status=WorkflowStatus.PENDING,
        start_time=datetime(2026, 1, 1, tzinfo=timezone.utc),
        context={"initial_input": "topic", "nested": {"a": [1, 2]}},
    )


@pytest.mark.unit
class TestStepResult:
    """Tests for StepResult."""

    def test_succeeded(self) -> None:
        """Test a successful result measures its duration in seconds."""
        from litestar_crews.core.models import StepResult

        start = datetime.now(timezone.utc) - timedelta(seconds=2)
        result = StepResult.succeeded(0, "researcher", "Researcher", "in", "out", start)

        assert result.success is True
        assert result.error is None
        assert result.output == "out"
        assert result.duration >= 2
        assert result.end_time >= result.start_time

    def test_failed(self) -> None:
        """Test a failed result has empty output and an error."""
        from litestar_crews.core.models import StepResult

        result = StepResult.failed(1, "broken", "Broken", "in", "boom")

        assert result.success is False
        assert result.output == ""
        assert result.error == "boom"
        assert result.duration >= 0

    def test_dict_shape(self) -> None:
        """Test results serialise with camelCase keys and ISO timestamps."""
        from litestar_crews.core.models import StepResult

        result = StepResult.failed(1, "broken", "Broken", "in", "boom")
        data = result.to_dict()

        assert data["stepIndex"] == 1
        assert data["workerName"] == "Broken"
        assert data["error"] == "boom"
        assert isinstance(data["startTime"], str)
        assert StepResult.from_dict(data) == result


@pytest.mark.unit
class TestWorkflowState:
    """Tests for WorkflowState."""

    def test_initial_input(self) -> None:
        """Test the initial input is read from the context."""
        assert make_state().initial_input == "topic"

    def test_copy_is_deep(self) -> None:
        """Test copies share no mutable data with the original."""
        state = make_state()
        clone = state.copy()

        clone.context["nested"]["a"].append(3)
        clone.steps.append(None)  # type: ignore[arg-type]

        assert state.context["nested"]["a"] == [1, 2]
        assert state.steps == []
        assert clone.workflow == state.workflow

    def test_dict_shape(self) -> None:
        """Test the persisted record shape."""
        data = make_state().to_dict()

        assert data["id"] == "crew-1-abc"
        assert data["workflowId"] == "crew-1"
        assert data["status"] == "pending"
        assert data["workflow"] == {"type": "sequential", "steps": [{"workerId": "researcher"}]}
        assert data["endTime"] is None


@pytest.mark.unit
class TestExecutionResult:
    """Tests for ExecutionResult."""

    def test_to_dict_omits_unset(self) -> None:
        """Test error and state id are only rendered when set."""
        from litestar_crews.core.models import ExecutionResult
        from litestar_crews.core.types import WorkflowType

        now = datetime.now(timezone.utc)
        result = ExecutionResult("crew-1", "Team", WorkflowType.PARALLEL, (), True, 0.0, now, now)

        data = result.to_dict()

        assert data["workflowType"] == "parallel"
        assert "error" not in data
        assert "stateId" not in data


@pytest.mark.unit
class TestApprovalGate:
    """Tests for ApprovalGate."""

    def test_round_trip(self) -> None:
        """Test a gate survives serialisation."""
        from litestar_crews.core.models import ApprovalGate, utcnow
        from litestar_crews.core.types import GateStatus

        gate = ApprovalGate(
            id="wf-1-2",
            workflow_id="wf-1",
            step_index=2,
            status=GateStatus.PENDING,
            requested_at=utcnow(),
            data={"stepName": "Writer"},
        )

        assert ApprovalGate.from_dict(gate.to_dict()) == gate


@pytest.mark.unit
class TestRecoveryStrategy:
    """Tests for RecoveryStrategy."""

    def test_defaults(self) -> None:
        """Test unset retry fields stay None so manager defaults apply."""
        from litestar_crews.core.models import RecoveryStrategy

        strategy = RecoveryStrategy(type="retry")

        assert strategy.max_retries is None
        assert strategy.retry_delay is None
        assert strategy.rollback_steps == 1

    def test_from_dict(self) -> None:
        """Test parsing the external shape."""
        from litestar_crews.core.models import RecoveryStrategy
        from litestar_crews.core.types import RecoveryStrategyType

        strategy = RecoveryStrategy.from_dict({"type": "rollback", "rollbackSteps": 2})

        assert strategy.type is RecoveryStrategyType.ROLLBACK
        assert strategy.rollback_steps == 2

    def test_from_dict_keeps_zero(self) -> None:
        """Test explicit zero values are not replaced by defaults."""
        from litestar_crews.core.models import RecoveryStrategy

        strategy = RecoveryStrategy.from_dict({"type": "retry", "maxRetries": 0, "rollbackSteps": 0})

        assert strategy.max_retries == 0
        assert strategy.rollback_steps == 0
