"""Workflow executor.

This module provides the WorkflowExecutor, which drives a workflow definition
against the worker capability. It optionally backs each run with a persisted
``WorkflowState``, gates steps behind human approvals, and applies automatic
recovery to failed steps.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar_crews.approvals.manager import gate_id_for
from litestar_crews.config import EngineSettings
from litestar_crews.core.definition import WorkflowDefinition
from litestar_crews.core.events import CompleteEvent, ErrorEvent, RunStarted, StepEvent
from litestar_crews.core.models import ApprovalRequest, ExecutionResult, StepResult, utcnow
from litestar_crews.core.types import GateStatus, RecoveryStrategyType, WorkflowStatus
from litestar_crews.engine.runners import Resumption, RunContext, RunOutcome, get_runner
from litestar_crews.exceptions import (
    ApprovalRejectedError,
    ApprovalTimeoutError,
    CrewsError,
    InvalidTransitionError,
    RunAlreadyActiveError,
    StepTimeoutError,
    WorkerNotFoundError,
)
from litestar_crews.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

    from litestar_crews.approvals.manager import ApprovalGateManager
    from litestar_crews.core.definition import Step
    from litestar_crews.core.events import CrewEvent
    from litestar_crews.core.models import RecoveryStrategy
    from litestar_crews.core.protocols import EventBus, Worker
    from litestar_crews.recovery.manager import RecoveryManager
    from litestar_crews.state.manager import StateManager

__all__ = ["UNKNOWN_WORKER_NAME", "WorkflowExecutor"]

logger = get_logger(__name__)

UNKNOWN_WORKER_NAME = "Unknown Worker"


@dataclass
class _Session:
    """Bookkeeping for one execution loop."""

    run_id: str
    run_name: str
    definition: WorkflowDefinition
    state_id: str | None = None
    on_step: Callable[[StepResult], None] | None = None
    recovery_strategy: RecoveryStrategy | None = None
    sinks: list[Callable[[CrewEvent], Awaitable[None]]] = field(default_factory=list)
    approval_holds: int = 0
    rollbacks: dict[int, int] = field(default_factory=dict)
    resumed: bool = False
    reattached: set[int] = field(default_factory=set)

    @property
    def gate_workflow_id(self) -> str:
        return self.state_id or self.run_id


class WorkflowExecutor:
    """Drives workflow definitions against a worker.

    Without a state manager the executor is ephemeral: it only produces step
    results and the final ``ExecutionResult``. With one, every run is backed by
    a persisted ``WorkflowState`` and can be paused, resumed, approved and
    recovered.

    Attributes:
        worker: The worker capability steps are delegated to.
        settings: Engine tunables.
        state_manager: Optional state manager backing runs.
        approvals: Optional approval gate manager.
        recovery: Optional recovery manager used for automatic recovery.
        event_bus: Optional event bus receiving ``run``, ``step``, ``complete``
            and ``error`` events.
        approval_policy: Optional caller policy marking extra steps for approval.
        _running: Map of state ids to the tasks currently driving them.
    """

    def __init__(
        self,
        worker: Worker,
        *,
        settings: EngineSettings | None = None,
        state_manager: StateManager | None = None,
        approvals: ApprovalGateManager | None = None,
        recovery: RecoveryManager | None = None,
        event_bus: EventBus | None = None,
        approval_policy: Callable[[int, Step], bool] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            worker: The worker capability steps are delegated to.
            settings: Engine tunables. Defaults to ``EngineSettings()``.
            state_manager: Optional state manager backing runs.
            approvals: Optional approval gate manager.
            recovery: Optional recovery manager used for automatic recovery.
            event_bus: Optional event bus implementing ``emit``.
            approval_policy: Optional ``policy(step_index, step) -> bool``.
        """
        self.worker = worker
        self.settings = settings or EngineSettings()
        self.state_manager = state_manager
        self.approvals = approvals
        self.recovery = recovery
        self.event_bus = event_bus
        self.approval_policy = approval_policy
        self._running: dict[str, asyncio.Task[Any]] = {}

    async def execute(
        self,
        run_id: str,
        run_name: str,
        workflow: WorkflowDefinition | dict[str, Any],
        initial_input: str,
        *,
        on_step: Callable[[StepResult], None] | None = None,
        recovery_strategy: RecoveryStrategy | None = None,
    ) -> ExecutionResult:
        """Execute a workflow.

        Args:
            run_id: Caller-supplied run identifier.
            run_name: Human-readable run name.
            workflow: The definition, or its external ``{"type", "steps"}`` shape.
            initial_input: Input for the first step(s).
            on_step: Callback invoked synchronously with every produced result.
            recovery_strategy: Strategy applied automatically to failed steps of
                state-backed sequential and conditional runs.

        Returns:
            The execution result. Step failures are reported in it, never raised.

        Raises:
            UnknownWorkflowTypeError: If the definition names an unknown type.
            WorkflowValidationError: If the definition is malformed.

        Example:
            >>> result = await executor.execute(
            ...     "crew-123",
            ...     "Research Team",
            ...     {"type": "sequential", "steps": [{"workerId": "researcher"}, {"workerId": "writer"}]},
            ...     "Analyze market trends",
            ... )
            >>> result.success
            True
        """
        return await self._execute(
            run_id,
            run_name,
            workflow,
            initial_input,
            on_step=on_step,
            recovery_strategy=recovery_strategy,
            sinks=[],
        )

    async def stream(
        self,
        run_id: str,
        run_name: str,
        workflow: WorkflowDefinition | dict[str, Any],
        initial_input: str,
        *,
        recovery_strategy: RecoveryStrategy | None = None,
    ) -> AsyncIterator[CrewEvent]:
        """Execute a workflow, yielding its events as they happen.

        The last event is always a ``CompleteEvent``. Leaving the iteration early
        cancels the execution.
        """
        queue: asyncio.Queue[CrewEvent | None] = asyncio.Queue()

        async def sink(event: CrewEvent) -> None:
            await queue.put(event)

        task = asyncio.create_task(
            self._execute(
                run_id,
                run_name,
                workflow,
                initial_input,
                on_step=None,
                recovery_strategy=recovery_strategy,
                sinks=[sink],
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def resume(
        self,
        state_id: str,
        *,
        on_step: Callable[[StepResult], None] | None = None,
        recovery_strategy: RecoveryStrategy | None = None,
    ) -> ExecutionResult:
        """Continue a paused (or never started) state-backed run.

        Sequential and conditional runs continue after their last kept result
        with the last kept output as rolling input; parallel runs execute only
        the steps that have no kept result.

        Raises:
            CrewsError: If the executor has no state manager.
            RunNotFoundError: If the state is unknown.
            InvalidTransitionError: If the run is neither paused nor pending.
            RunAlreadyActiveError: If another loop is driving the run.
        """
        if self.state_manager is None:
            msg = "Resuming a run requires a state manager"
            raise CrewsError(msg)

        state = await self.state_manager.get_state(state_id)
        if state.status not in {WorkflowStatus.PAUSED, WorkflowStatus.PENDING}:
            raise InvalidTransitionError(state_id, state.status, WorkflowStatus.RUNNING)

        session = _Session(
            run_id=state.workflow_id,
            run_name=state.run_name,
            definition=state.workflow,
            state_id=state_id,
            on_step=on_step,
            recovery_strategy=recovery_strategy,
            resumed=True,
        )
        logger.info("run_resuming", run_id=state.workflow_id, state_id=state_id, kept_steps=len(state.steps))
        with self._claim(state_id):
            return await self._drive(session, state.initial_input, kept=list(state.steps))

    def is_running(self, state_id: str) -> bool:
        """Whether an execution loop is currently driving ``state_id``."""
        return state_id in self._running

    async def _execute(
        self,
        run_id: str,
        run_name: str,
        workflow: WorkflowDefinition | dict[str, Any],
        initial_input: str,
        *,
        on_step: Callable[[StepResult], None] | None,
        recovery_strategy: RecoveryStrategy | None,
        sinks: list[Callable[[CrewEvent], Awaitable[None]]],
    ) -> ExecutionResult:
        definition = WorkflowDefinition.coerce(workflow)
        get_runner(definition.type)

        session = _Session(
            run_id=run_id,
            run_name=run_name,
            definition=definition,
            on_step=on_step,
            recovery_strategy=recovery_strategy,
            sinks=sinks,
        )
        if self.state_manager is None:
            return await self._drive(session, initial_input, kept=[])

        state = await self.state_manager.create_state(run_id, run_name, definition, initial_input)
        session.state_id = state.id
        with self._claim(state.id):
            return await self._drive(session, initial_input, kept=[])

    @contextlib.contextmanager
    def _claim(self, state_id: str) -> Iterator[None]:
        if state_id in self._running:
            raise RunAlreadyActiveError(state_id)
        self._running[state_id] = asyncio.current_task()  # type: ignore[assignment]
        try:
            yield
        finally:
            del self._running[state_id]

    async def _drive(self, session: _Session, initial_input: str, kept: list[StepResult]) -> ExecutionResult:
        """Main execution loop shared by ``execute`` and ``resume``."""
        runner = get_runner(session.definition.type)
        start_time = utcnow()

        await self._emit(
            session,
            RunStarted(
                run_id=session.run_id,
                timestamp=start_time,
                workflow_type=session.definition.type,
                run_name=session.run_name,
                state_id=session.state_id,
            ),
        )
        logger.info(
            "run_started",
            run_id=session.run_id,
            state_id=session.state_id,
            workflow_type=str(session.definition.type),
            steps=len(session.definition.steps),
        )

        ctx = RunContext(
            definition=session.definition,
            initial_input=initial_input,
            execute_step=lambda index, step, step_input: self._execute_step(session, index, step, step_input),
            report=lambda result: self._report(session, result),
            persist=lambda result: self._persist(session, result),
            recover=lambda result: self._recover(session, result),
            results=list(kept),
            max_concurrency=self.settings.max_concurrency,
        )

        crashed: Exception | None = None
        try:
            if session.state_id is not None and self.state_manager is not None:
                await self.state_manager.update_status(session.state_id, WorkflowStatus.RUNNING)
            outcome = await runner.run(ctx)
        except asyncio.CancelledError:
            await self._interrupt(session)
            raise
        except Exception as e:
            crashed = e
            logger.exception("run_crashed", run_id=session.run_id, state_id=session.state_id)
            outcome = RunOutcome(steps=list(ctx.results), error=str(e) or type(e).__name__, aborted=True)

        end_time = utcnow()
        steps = tuple(sorted(outcome.steps, key=lambda result: result.step_index))
        result = ExecutionResult(
            run_id=session.run_id,
            run_name=session.run_name,
            workflow_type=session.definition.type,
            steps=steps,
            success=outcome.error is None and all(step.success for step in steps),
            total_duration=(end_time - start_time).total_seconds(),
            start_time=start_time,
            end_time=end_time,
            error=outcome.error,
            state_id=session.state_id,
        )

        if crashed is not None:
            await self._emit(
                session,
                ErrorEvent(
                    run_id=session.run_id,
                    timestamp=end_time,
                    error=result.error or "",
                    error_type=type(crashed).__name__,
                ),
            )
        await self._finish_state(session, result, crashed)
        await self._emit(session, CompleteEvent(run_id=session.run_id, timestamp=end_time, result=result))

        log = logger.info if result.success else logger.warning
        log(
            "run_finished",
            run_id=session.run_id,
            state_id=session.state_id,
            success=result.success,
            steps=len(result.steps),
            error=result.error,
            duration=result.total_duration,
        )
        return result

    async def _finish_state(self, session: _Session, result: ExecutionResult, crashed: Exception | None) -> None:
        if session.state_id is None or self.state_manager is None:
            return
        try:
            if crashed is not None:
                await self.state_manager.set_error(session.state_id, result.error or "")
            else:
                await self.state_manager.complete_workflow(session.state_id, result)
        except CrewsError:
            logger.exception("state_finalize_failed", run_id=session.run_id, state_id=session.state_id)

    async def _execute_step(self, session: _Session, index: int, step: Step, step_input: str) -> StepResult:
        if self._needs_approval(index, step):
            denial = await self._await_approval(session, index, step, step_input)
            if denial is not None:
                return StepResult.failed(
                    step_index=index,
                    worker_id=step.worker_id,
                    worker_name=self.worker.worker_name(step.worker_id) or UNKNOWN_WORKER_NAME,
                    input=step_input,
                    error=denial,
                )

        if session.state_id is not None and self.state_manager is not None:
            await self.state_manager.update_current_step(session.state_id, index)

        return await self._invoke(index, step.worker_id, step_input)

    async def _invoke(self, index: int, worker_id: str, step_input: str) -> StepResult:
        """Run one worker invocation, capturing every failure as data."""
        start_time = utcnow()
        worker_name = self.worker.worker_name(worker_id)
        timeout = self.settings.step_timeout

        logger.debug("step_started", step_index=index, worker_id=worker_id)
        try:
            output = await asyncio.wait_for(self.worker.invoke(worker_id, step_input, timeout), timeout=timeout)
        except WorkerNotFoundError as e:
            error, worker_name = str(e), UNKNOWN_WORKER_NAME
        except (asyncio.TimeoutError, StepTimeoutError):
            error = "timeout"
        except Exception as e:
            error = str(e) or type(e).__name__
        else:
            return StepResult.succeeded(
                step_index=index,
                worker_id=worker_id,
                worker_name=worker_name or worker_id,
                input=step_input,
                output=output,
                start_time=start_time,
            )

        logger.warning("step_failed", step_index=index, worker_id=worker_id, error=error)
        return StepResult.failed(
            step_index=index,
            worker_id=worker_id,
            worker_name=worker_name or UNKNOWN_WORKER_NAME,
            input=step_input,
            error=error,
            start_time=start_time,
        )

    def _needs_approval(self, index: int, step: Step) -> bool:
        if step.requires_approval:
            return True
        return self.approval_policy is not None and bool(self.approval_policy(index, step))

    async def _await_approval(self, session: _Session, index: int, step: Step, step_input: str) -> str | None:
        """Block until the step is approved. Returns the denial message otherwise."""
        if self.approvals is None:
            logger.warning("approval_unavailable", run_id=session.run_id, step_index=index)
            return "Approval required but no approval gate manager is configured"

        request = ApprovalRequest(
            step_index=index,
            step_name=self.worker.worker_name(step.worker_id) or step.worker_id,
            data={"workerId": step.worker_id, "input": step_input},
            timeout=self.settings.approval_timeout,
        )
        gate_id = gate_id_for(session.gate_workflow_id, index)
        existing = self.approvals.get_gate(gate_id)
        await self._hold(session)
        try:
            if existing is not None and self._reattaches(session, index, existing.status):
                # Gate reloaded from the store, or decided while the run was down.
                session.reattached.add(index)
                logger.info("approval_reattached", run_id=session.run_id, gate_id=gate_id, status=existing.status)
                decision = await self.approvals.wait_for_decision(gate_id, timeout=self.settings.approval_timeout)
                if not decision.approved:
                    raise ApprovalRejectedError(gate_id, decision.comment)
            else:
                await self.approvals.require_approval(session.gate_workflow_id, request)
        except (ApprovalRejectedError, ApprovalTimeoutError) as e:
            logger.warning("step_not_approved", run_id=session.run_id, step_index=index, reason=str(e))
            return str(e)
        finally:
            await self._release(session)
        return None

    @staticmethod
    def _reattaches(session: _Session, index: int, status: GateStatus) -> bool:
        if GateStatus(status) == GateStatus.PENDING:
            return True
        return session.resumed and index not in session.reattached

    async def _interrupt(self, session: _Session) -> None:
        """Leave a cancelled state-backed run paused so it can be resumed."""
        if session.state_id is None or self.state_manager is None:
            return
        logger.warning("run_cancelled", run_id=session.run_id, state_id=session.state_id)
        state = await self.state_manager.get_state(session.state_id)
        if state.status == WorkflowStatus.RUNNING:
            await self.state_manager.pause_workflow(session.state_id)

    async def _hold(self, session: _Session) -> None:
        session.approval_holds += 1
        if session.approval_holds == 1 and session.state_id is not None and self.state_manager is not None:
            await self.state_manager.pause_workflow(session.state_id)

    async def _release(self, session: _Session) -> None:
        session.approval_holds -= 1
        if session.approval_holds == 0 and session.state_id is not None and self.state_manager is not None:
            await self.state_manager.resume_workflow(session.state_id)

    async def _report(self, session: _Session, result: StepResult) -> None:
        if session.on_step is not None:
            session.on_step(result)
        await self._emit(session, StepEvent(run_id=session.run_id, timestamp=result.end_time, step=result))

    async def _persist(self, session: _Session, result: StepResult) -> None:
        if session.state_id is not None and self.state_manager is not None:
            await self.state_manager.add_step_result(session.state_id, result)

    async def _recover(self, session: _Session, failed: StepResult) -> Resumption | None:
        """Apply the session's recovery strategy to a failed step."""
        strategy = session.recovery_strategy
        if strategy is None or session.state_id is None or self.recovery is None or self.state_manager is None:
            return None

        if RecoveryStrategyType(strategy.type) == RecoveryStrategyType.ROLLBACK:
            attempts = session.rollbacks.get(failed.step_index, 0)
            if attempts >= self.settings.max_retries:
                logger.warning("rollback_budget_exhausted", run_id=session.run_id, step_index=failed.step_index)
                return None
            session.rollbacks[failed.step_index] = attempts + 1

        recovery = await self.recovery.recover_from_error(session.state_id, failed, strategy)
        if not recovery.recovered:
            return None

        if recovery.strategy == RecoveryStrategyType.ROLLBACK:
            state = await self.state_manager.resume_workflow(session.state_id)
            kept = list(state.steps)
            return Resumption(next_index=kept[-1].step_index + 1 if kept else 0, kept=kept)

        next_index = recovery.next_step_index if recovery.next_step_index is not None else failed.step_index + 1
        return Resumption(next_index=next_index)

    async def _emit(self, session: _Session, event: CrewEvent) -> None:
        for sink in session.sinks:
            await sink(event)
        if self.event_bus is not None:
            await self.event_bus.emit(str(event.event_type), event=event, run_id=event.run_id)
