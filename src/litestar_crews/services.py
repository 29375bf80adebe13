"""Service container wiring the engine components together.

The container is built once per application (or test) and owns one instance
of every manager. Nothing in litestar-crews keeps module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from litestar_crews.approvals.manager import ApprovalGateManager
from litestar_crews.config import EngineSettings
from litestar_crews.core.protocols import StateStore
from litestar_crews.engine.executor import WorkflowExecutor
from litestar_crews.recovery.manager import RecoveryManager
from litestar_crews.state.manager import StateManager
from litestar_crews.store import InMemoryStore
from litestar_crews.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar_crews.core.definition import Step
    from litestar_crews.core.protocols import EventBus, Worker

__all__ = ["CrewServices"]

logger = get_logger(__name__)


@dataclass
class CrewServices:
    """One instance of every engine component, sharing a single store.

    Attributes:
        settings: Engine tunables.
        store: Durable record store shared by runs and gates.
        state_manager: Run state and snapshots.
        approvals: Approval gates.
        recovery: Rollback and recovery.
        executor: The workflow executor, state-backed.
    """

    settings: EngineSettings
    store: StateStore
    state_manager: StateManager
    approvals: ApprovalGateManager
    recovery: RecoveryManager
    executor: WorkflowExecutor

    @classmethod
    def create(
        cls,
        worker: Worker,
        store: StateStore | None = None,
        settings: EngineSettings | None = None,
        *,
        event_bus: EventBus | None = None,
        approval_policy: Callable[[int, Step], bool] | None = None,
    ) -> CrewServices:
        """Build the container.

        Args:
            worker: The worker capability steps are delegated to.
            store: Durable store. Defaults to a fresh ``InMemoryStore``.
            settings: Engine tunables. Defaults to ``EngineSettings()``.
            event_bus: Optional event bus for the executor.
            approval_policy: Optional policy marking extra steps for approval.

        Returns:
            The wired container.
        """
        settings = settings or EngineSettings()
        store = store if store is not None else InMemoryStore()
        state_manager = StateManager(store, snapshot_limit=settings.snapshot_limit)
        approvals = ApprovalGateManager(
            store,
            default_timeout=settings.approval_timeout,
            resolved_limit=settings.resolved_gate_limit,
        )
        recovery = RecoveryManager(
            state_manager,
            default_max_retries=settings.max_retries,
            default_retry_delay=settings.retry_delay,
        )
        executor = WorkflowExecutor(
            worker,
            settings=settings,
            state_manager=state_manager,
            approvals=approvals,
            recovery=recovery,
            event_bus=event_bus,
            approval_policy=approval_policy,
        )
        return cls(
            settings=settings,
            store=store,
            state_manager=state_manager,
            approvals=approvals,
            recovery=recovery,
            executor=executor,
        )

    async def startup(self) -> None:
        """Reload in-flight runs and pending approval gates from the store."""
        runs = await self.state_manager.load_active()
        gates = await self.approvals.restore_pending()
        logger.info("services_started", active_runs=runs, pending_gates=gates)

    async def shutdown(self) -> None:
        """Cancel outstanding approval waits."""
        await self.approvals.close()
        logger.info("services_stopped")
