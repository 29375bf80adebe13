"""End-to-end tests for crew workflows.

These tests drive complete runs through ``CrewServices`` and check how the
executor, state manager, approval gates and recovery cooperate.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from litestar_crews.engine.registry import WorkerRegistry
    from litestar_crews.store import InMemoryStore
    from tests.conftest import FlakyHandler, GateWaiter


@pytest.fixture
def services(workers: WorkerRegistry, store: InMemoryStore, settings):
    """Create a service container over the shared in-memory store."""
    from litestar_crews.services import CrewServices

    return CrewServices.create(workers, store, settings)


@pytest.mark.integration
@pytest.mark.asyncio
class TestEditorialCrew:
    """A research, review and publish crew."""

    async def test_review_then_publish(self, services, wait_for_gate: GateWaiter) -> None:
        """Test an approved publish step completes a conditional run."""
        from litestar_crews.core.models import ApprovalDecision
        from litestar_crews.core.types import WorkflowStatus

        workflow = {
            "type": "conditional",
            "steps": [
                {"workerId": "researcher"},
                {"workerId": "writer", "condition": {"kind": "success", "referenceStepIndex": 0}},
                {"workerId": "editor", "requiresApproval": True},
                {"workerId": "writer", "condition": {"kind": "failure"}},
            ],
        }
        events = []
        running = asyncio.create_task(
            services.executor.execute("crew-7", "Editorial", workflow, "ai", on_step=events.append)
        )

        (gate,) = await wait_for_gate(services.approvals)
        paused = await services.state_manager.get_state(gate.workflow_id)
        assert paused.status is WorkflowStatus.PAUSED
        assert [step.step_index for step in paused.steps] == [0, 1]
        await services.approvals.provide_decision(gate.id, ApprovalDecision(approved=True, user_id="editor-in-chief"))

        result = await running
        assert result.success is True
        assert [step.step_index for step in result.steps] == [0, 1, 2]
        assert result.steps[-1].output == "DRAFT:RESEARCH:AI"
        assert len(events) == 3
        assert services.approvals.get_gate(gate.id).resolved_by == "editor-in-chief"

    async def test_rejected_review_fails_run(self, services, wait_for_gate: GateWaiter) -> None:
        """Test a rejected gate fails the state with the rejection."""
        from litestar_crews.core.models import ApprovalDecision
        from litestar_crews.core.types import WorkflowStatus

        workflow = {"type": "sequential", "steps": [{"workerId": "writer", "requiresApproval": True}]}
        running = asyncio.create_task(services.executor.execute("crew-7", "Editorial", workflow, "ai"))

        (gate,) = await wait_for_gate(services.approvals)
        await services.approvals.provide_decision(gate.id, ApprovalDecision(approved=False, comment="off-topic"))
        result = await running

        state = await services.state_manager.get_state(result.state_id)
        assert state.status is WorkflowStatus.FAILED
        assert state.error == "Step 1 failed: Approval rejected: off-topic"


@pytest.mark.integration
@pytest.mark.asyncio
class TestRecoveryFlows:
    """Recovery applied across a whole run."""

    async def test_rollback_after_completion(self, services, sequential_workflow: dict) -> None:
        """Test a finished run can be rolled back and resumed to completion again."""
        from litestar_crews.core.types import WorkflowStatus

        first = await services.executor.execute("crew-7", "Editorial", sequential_workflow, "ai")

        rolled = await services.recovery.rollback_to_step(first.state_id, 0)
        assert rolled.status is WorkflowStatus.PAUSED
        assert len(rolled.steps) == 1

        second = await services.executor.resume(first.state_id)
        assert second.success is True
        assert [step.output for step in second.steps] == [step.output for step in first.steps]
        assert (await services.state_manager.get_state(first.state_id)).status is WorkflowStatus.COMPLETED

    async def test_retry_then_skip(
        self, services, workers: WorkerRegistry, flaky: type[FlakyHandler]
    ) -> None:
        """Test separate runs recover differently from the same kind of failure."""
        from litestar_crews.core.models import RecoveryStrategy

        workers.register("flaky", flaky(failures=1, output="second time lucky"))
        workflow = {
            "type": "sequential",
            "steps": [{"workerId": "researcher"}, {"workerId": "flaky"}, {"workerId": "editor"}],
        }

        retried = await services.executor.execute(
            "crew-7", "Editorial", workflow, "ai", recovery_strategy=RecoveryStrategy(type="retry")
        )
        skipped = await services.executor.execute(
            "crew-8",
            "Editorial",
            {"type": "sequential", "steps": [{"workerId": "researcher"}, {"workerId": "broken"}]},
            "ai",
            recovery_strategy=RecoveryStrategy(type="skip"),
        )

        assert retried.steps[-1].output == "SECOND TIME LUCKY"
        assert [step.step_index for step in skipped.steps] == [0]
        assert skipped.success is True
        state = await services.state_manager.get_state(skipped.state_id)
        assert state.context["skipped_step_1"] is True

    async def test_list_and_cleanup(self, services, sequential_workflow: dict) -> None:
        """Test finished runs are listed per workflow and cleaned up."""
        from datetime import timedelta

        await services.executor.execute("crew-7", "Editorial", sequential_workflow, "a")
        await services.executor.execute("crew-7", "Editorial", sequential_workflow, "b")

        assert len(await services.state_manager.list_states(workflow_id="crew-7")) == 2
        assert await services.state_manager.cleanup_old_workflows(timedelta(0)) == 2
        assert await services.state_manager.list_states() == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestRestart:
    """Runs paused at an approval gate survive a restart of the services."""

    GATED = {
        "type": "sequential",
        "steps": [{"workerId": "researcher"}, {"workerId": "writer", "requiresApproval": True}],
    }

    async def _stop_at_gate(self, workers: WorkerRegistry, store: InMemoryStore, settings, wait_for_gate: GateWaiter):
        from litestar_crews.services import CrewServices

        before = CrewServices.create(workers, store, settings)
        running = asyncio.create_task(before.executor.execute("crew-9", "Editorial", self.GATED, "ai"))
        (gate,) = await wait_for_gate(before.approvals)
        await before.shutdown()
        with pytest.raises(asyncio.CancelledError):
            await running

        after = CrewServices.create(workers, store, settings)
        await after.startup()
        return after, gate

    async def test_resume_reattaches_restored_gate(
        self, workers: WorkerRegistry, store: InMemoryStore, settings, wait_for_gate: GateWaiter
    ) -> None:
        """Test resuming waits on the reloaded gate instead of opening a new one."""
        from litestar_crews.core.models import ApprovalDecision
        from litestar_crews.core.types import GateStatus, RecordKind, WorkflowStatus

        services, gate = await self._stop_at_gate(workers, store, settings, wait_for_gate)
        assert (await services.state_manager.get_state(gate.workflow_id)).status is WorkflowStatus.PAUSED
        assert [pending.id for pending in services.approvals.get_pending_approvals()] == [gate.id]

        resumed = asyncio.create_task(services.executor.resume(gate.workflow_id))
        async with asyncio.timeout(2):
            while gate.id not in services.approvals._waiters:
                await asyncio.sleep(0.005)
        await services.approvals.provide_decision(gate.id, ApprovalDecision(approved=True, user_id="editor"))
        result = await resumed

        assert result.success is True
        assert [step.output for step in result.steps] == ["research:ai", "draft:research:ai"]
        assert services.approvals.get_gate(gate.id).status is GateStatus.APPROVED
        assert await store.load_pending(RecordKind.APPROVAL_GATE) == []
        assert (await services.state_manager.get_state(gate.workflow_id)).status is WorkflowStatus.COMPLETED

    async def test_resume_uses_decision_made_while_down(
        self, workers: WorkerRegistry, store: InMemoryStore, settings, wait_for_gate: GateWaiter
    ) -> None:
        """Test a gate decided before resuming is honoured without asking again."""
        from litestar_crews.core.models import ApprovalDecision
        from litestar_crews.core.types import WorkflowStatus

        services, gate = await self._stop_at_gate(workers, store, settings, wait_for_gate)
        await services.approvals.provide_decision(gate.id, ApprovalDecision(approved=False, comment="stale"))

        result = await services.executor.resume(gate.workflow_id)

        assert result.success is False
        assert result.error == "Step 2 failed: Approval rejected: stale"
        assert services.approvals.get_pending_approvals() == []
        assert (await services.state_manager.get_state(gate.workflow_id)).status is WorkflowStatus.FAILED
